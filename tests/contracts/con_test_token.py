# Minimal fungible token used as the external ledger in tests.

balances = Hash(default_value=0)
approvals = Hash(default_value=0)
metadata = Hash()

@construct
def seed(supply: int = 1000000):
    balances[ctx.caller] = supply
    metadata['operator'] = ctx.caller

@export
def transfer(amount: int, to: str):
    assert amount > 0, 'Cannot send non-positive balances!'
    assert balances[ctx.caller] >= amount, 'PayoutFailed: not enough coins to send!'
    balances[ctx.caller] -= amount
    balances[to] += amount

@export
def approve(amount: int, to: str):
    assert amount > 0, 'Cannot approve non-positive balances!'
    approvals[ctx.caller, to] += amount

@export
def transfer_from(amount: int, to: str, main_account: str):
    assert amount > 0, 'Cannot send non-positive balances!'
    assert approvals[main_account, ctx.caller] >= amount, 'Not enough coins approved to send!'
    assert balances[main_account] >= amount, 'Not enough coins to send!'
    approvals[main_account, ctx.caller] -= amount
    balances[main_account] -= amount
    balances[to] += amount

@export
def balance_of(address: str):
    return balances[address]
