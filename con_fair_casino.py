"""
FAIR CASINO: VERIFIABLE PAILLIER DICE

The seed is a Paillier sum of encrypted contributions from the dealer,
its controlled participants and the public. Bets are linked to the dealer's
encrypted commitment; once the dealer discloses (p, q) every outcome can be
recomputed on-chain.

  - Seed:     dealer first, a controlled participant last
  - Bet:      link = Enc(k) * C_dealer  (public)
  - Reveal:   p, q, r, seed_sum  ->  casino_cheat on any mismatch
  - Dispute:  verify / report / claim_compensation before the deadline

Failures use assert messages prefixed with their error kind
(InvalidInput, ProtocolViolation, NotFound, ...).
"""

# -----------------------------------------------------------------------------
# Parameters & Helpers
# -----------------------------------------------------------------------------

DOMAIN = "FAIRCASINO:v1|"

STATE_NOT_STARTED = 'not_started'
STATE_IN_PROGRESS = 'in_progress'
STATE_REVEALED = 'revealed'

SEED_AWAITING_FIRST = 'awaiting_first'
SEED_COLLECTING = 'collecting'
SEED_COMPLETE = 'complete'

STATUS_PENDING = 'pending'
STATUS_LOST = 'lost'
STATUS_WON = 'won'

PAYOUT_MULTIPLIER = 2

def domain_hash(*parts):
    s = "|".join(str(x) for x in parts)
    return hashlib.sha3(DOMAIN + s)

def mod_exp(base: int, exponent: int, modulus: int):
    assert modulus != 0, 'InvalidInput: zero modulus'
    if exponent == 0:
        return 1
    result = 1
    base = base % modulus
    while exponent > 0:
        if exponent % 2 == 1:
            result = (result * base) % modulus
        exponent = exponent >> 1
        base = (base * base) % modulus
    return result

def extended_gcd(a: int, b: int):
    # iterative; returns (g, x, y) with a*x + b*y == g
    old_r, r = a, b
    old_x, x = 1, 0
    old_y, y = 0, 1
    while r != 0:
        quotient = old_r // r
        old_r, r = r, old_r - quotient * r
        old_x, x = x, old_x - quotient * x
        old_y, y = y, old_y - quotient * y
    return old_r, old_x, old_y

def gcd(a: int, b: int):
    return abs(extended_gcd(a, b)[0])

def lcm(a: int, b: int):
    return abs(a // gcd(a, b) * b)

def mod_inverse(x: int, modulus: int):
    g, inverse, unused = extended_gcd(x % modulus, modulus)
    assert g == 1, 'NoInverseExists: value not invertible modulo n'
    return inverse % modulus

# --- Paillier (g = n + 1) ----------------------------------------------------

def is_ciphertext(value: int):
    return isinstance(value, int) and not isinstance(value, bool) and 0 < value < metadata['n_squared']

def derive_randomizer(entropy: str):
    # stretch sha3 digests past the bit length of n
    n = metadata['n']
    material = ''
    counter = 0
    while len(material) * 4 < n.bit_length() + 64:
        material = material + domain_hash('rand', entropy, counter)
        counter += 1
    return int(material, 16) % n

def encrypt(plaintext: int, entropy: str):
    n = metadata['n']
    n_squared = metadata['n_squared']
    assert 0 <= plaintext < n, 'InvalidInput: plaintext out of range'

    r = derive_randomizer(entropy)
    if r == 0 or gcd(r, n_squared) != 1:
        r = 1

    return (mod_exp(n + 1, plaintext, n_squared) * mod_exp(r, n, n_squared)) % n_squared

def decrypt(ciphertext: int):
    lam = private_key['lambda']
    assert lam is not None, 'ProtocolViolation: private key not revealed'
    n = metadata['n']
    u = mod_exp(ciphertext, lam, metadata['n_squared'])
    return (((u - 1) // n) * private_key['mu']) % n

def homomorphic_add(c1: int, c2: int):
    return (c1 * c2) % metadata['n_squared']

def hash_to_commitment(value: int):
    return int(domain_hash('commit', value), 16) % metadata['n']

def order_binding(choice: int, secret: int, timestamp: int):
    return hash_to_commitment(choice + secret + timestamp)

# -----------------------------------------------------------------------------
# State
# -----------------------------------------------------------------------------

# config: operator, n, n_squared, token, stake, coverage_factor, reveal_window, threshold
metadata = Hash()

# address -> True for dealer-controlled participants (dealer included)
controlled = Hash(default_value=False)

# address -> ciphertext (write-once)
seed_submissions = Hash()

seed_phase = Variable()
encrypted_seed_sum = Variable()
controlled_submitted = Variable()
public_submitted = Variable()

# Enc(r), r = H(seed_sum)
dealer_commitment = Variable()

game_state = Variable()
reveal_deadline = Variable()
casino_cheat = Variable()

# p, q, lambda, mu, r, seed_sum (written once, at reveal)
private_key = Hash()

# order_id -> {'player', 'choice', 'stake', 'status', 'settled', 'proof',
#              'linked', 'timestamp', 'compensated'}
orders = Hash()
next_order_id = Variable()

# address -> amount owed for won orders
pending_claims = Hash(default_value=0)

call_lock = Variable()

# Events
SeedSubmittedEvent = LogEvent('SeedSubmitted', {
    'participant': {'type': str, 'idx': True},
    'kind': {'type': str},
    'phase': {'type': str}
})

CommitmentSetEvent = LogEvent('CommitmentSet', {
    'dealer': {'type': str, 'idx': True}
})

BettingOpenedEvent = LogEvent('BettingOpened', {
    'dealer': {'type': str, 'idx': True}
})

BetPlacedEvent = LogEvent('BetPlaced', {
    'player': {'type': str, 'idx': True},
    'order_id': {'type': int, 'idx': True},
    'choice': {'type': int},
    'stake': {'type': int}
})

ResultUploadedEvent = LogEvent('ResultUploaded', {
    'player': {'type': str, 'idx': True},
    'order_id': {'type': int, 'idx': True},
    'status': {'type': str}
})

RevealedEvent = LogEvent('Revealed', {
    'dealer': {'type': str, 'idx': True},
    'deadline': {'type': int}
})

CheatDetectedEvent = LogEvent('CheatDetected', {
    'reason': {'type': str, 'idx': True},
    'order_id': {'type': int}
})

PayoutEvent = LogEvent('Payout', {
    'to': {'type': str, 'idx': True},
    'kind': {'type': str, 'idx': True},
    'amount': {'type': int}
})

# -----------------------------------------------------------------------------
# Construction
# -----------------------------------------------------------------------------

@construct
def seed(n: int,
         controlled_participants: list,
         token_contract: str = 'currency',
         bet_stake: int = 10,
         coverage_factor: int = 0,
         reveal_window: int = 100):
    assert n > 3, 'InvalidInput: modulus too small'
    assert bet_stake > 0, 'InvalidInput: stake must be positive'
    assert reveal_window > 0, 'InvalidInput: reveal window must be positive'

    metadata['operator'] = ctx.caller
    metadata['n'] = n
    metadata['n_squared'] = n * n
    metadata['token'] = token_contract
    metadata['stake'] = bet_stake
    metadata['coverage_factor'] = coverage_factor if coverage_factor > 0 else PAYOUT_MULTIPLIER * bet_stake
    metadata['reveal_window'] = reveal_window

    # The dealer always holds the first controlled slot
    controlled[ctx.caller] = True
    threshold = 1
    for address in controlled_participants:
        if not controlled[address]:
            controlled[address] = True
            threshold += 1
    assert threshold >= 2, 'InvalidInput: at least two controlled participants required'
    metadata['threshold'] = threshold

    seed_phase.set(SEED_AWAITING_FIRST)
    controlled_submitted.set(0)
    public_submitted.set(0)

    game_state.set(STATE_NOT_STARTED)
    casino_cheat.set(False)
    next_order_id.set(1)
    call_lock.set(False)

# -----------------------------------------------------------------------------
# Views
# -----------------------------------------------------------------------------

@export
def get_metadata():
    return {
        'operator': metadata['operator'],
        'token': metadata['token'],
        'stake': metadata['stake'],
        'coverage_factor': metadata['coverage_factor'],
        'reveal_window': metadata['reveal_window'],
        'threshold': metadata['threshold']
    }

@export
def get_public_key():
    n = metadata['n']
    return {
        'n': n,
        'g': n + 1,
        'n_squared': metadata['n_squared']
    }

@export
def get_game():
    return {
        'state': game_state.get(),
        'seed_phase': seed_phase.get(),
        'controlled_submitted': controlled_submitted.get(),
        'public_submitted': public_submitted.get(),
        'casino_cheat': casino_cheat.get(),
        'reveal_deadline': reveal_deadline.get(),
        'order_count': next_order_id.get() - 1
    }

@export
def get_order(order_id: int):
    order = orders[order_id]
    assert order is not None, 'NotFound: unknown order'
    return order

@export
def list_bets(address: str):
    bets = []
    for order_id in range(1, next_order_id.get()):
        order = orders[order_id]
        if order['player'] == address:
            bets.append([order['choice'], order['stake']])
    return bets

# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

# Every mutating export starts with no_reentry(); the lock is held only while
# the token contract has control.

def no_reentry():
    assert not call_lock.get(), 'ProtocolViolation: reentrant call'

def lock_calls():
    call_lock.set(True)

def unlock_calls():
    call_lock.set(False)

def require_operator():
    assert ctx.caller == metadata['operator'], 'Unauthorized: dealer only'

def require_state(state: str):
    assert game_state.get() == state, 'ProtocolViolation: game is not ' + state

def require_before_deadline():
    assert block_num < reveal_deadline.get(), 'DeadlineExpired: dispute window closed'

def token():
    return importlib.import_module(metadata['token'])

def reserve():
    return token().balance_of(address=ctx.this)

def pay(to: str, amount: int, kind: str):
    # state must be final before this runs
    lock_calls()
    token().transfer(amount=amount, to=to)
    unlock_calls()
    PayoutEvent({'to': to, 'kind': kind, 'amount': amount})

def flag_cheat(reason: str, order_id: int):
    casino_cheat.set(True)
    CheatDetectedEvent({'reason': reason, 'order_id': order_id})

# -----------------------------------------------------------------------------
# Seed commitment protocol
# -----------------------------------------------------------------------------

@export
def submit_seed(ciphertext: int):
    no_reentry()
    require_state(STATE_NOT_STARTED)

    phase = seed_phase.get()
    assert phase != SEED_COMPLETE, 'ProtocolViolation: seed already complete'
    assert is_ciphertext(ciphertext), 'InvalidInput: ciphertext out of range'
    assert seed_submissions[ctx.caller] is None, 'ProtocolViolation: participant already submitted'

    is_controlled = controlled[ctx.caller]
    threshold = metadata['threshold']
    t_now = controlled_submitted.get()
    p_now = public_submitted.get()

    if phase == SEED_AWAITING_FIRST:
        assert ctx.caller == metadata['operator'], 'ProtocolViolation: dealer must submit first'
    elif threshold - t_now == 1:
        assert is_controlled, 'ProtocolViolation: last slot reserved for a controlled participant'
    elif not is_controlled:
        assert p_now <= threshold - 2, 'ProtocolViolation: public slots exhausted'

    seed_submissions[ctx.caller] = ciphertext
    if phase == SEED_AWAITING_FIRST:
        encrypted_seed_sum.set(ciphertext)
    else:
        encrypted_seed_sum.set(homomorphic_add(encrypted_seed_sum.get(), ciphertext))

    if is_controlled:
        t_now += 1
        controlled_submitted.set(t_now)
    else:
        public_submitted.set(p_now + 1)

    if t_now == threshold:
        phase = SEED_COMPLETE
        result = 'seed_ready'
    else:
        phase = SEED_COLLECTING
        result = 'accepted'
    seed_phase.set(phase)

    SeedSubmittedEvent({
        'participant': ctx.caller,
        'kind': 'controlled' if is_controlled else 'public',
        'phase': phase
    })

    return result

@export
def set_commitment(ciphertext: int):
    no_reentry()
    require_operator()
    require_state(STATE_NOT_STARTED)
    assert seed_phase.get() == SEED_COMPLETE, 'ProtocolViolation: seed not complete'
    assert dealer_commitment.get() is None, 'ProtocolViolation: commitment already set'
    assert is_ciphertext(ciphertext), 'InvalidInput: ciphertext out of range'

    dealer_commitment.set(ciphertext)
    CommitmentSetEvent({'dealer': ctx.caller})

@export
def open_betting():
    no_reentry()
    require_operator()
    require_state(STATE_NOT_STARTED)
    assert seed_phase.get() == SEED_COMPLETE, 'ProtocolViolation: seed not complete'
    assert dealer_commitment.get() is not None, 'ProtocolViolation: commitment not set'

    game_state.set(STATE_IN_PROGRESS)
    BettingOpenedEvent({'dealer': ctx.caller})

# -----------------------------------------------------------------------------
# Betting
# -----------------------------------------------------------------------------

@export
def bet(choice: int, stake: int):
    no_reentry()
    require_state(STATE_IN_PROGRESS)
    assert stake == metadata['stake'], 'InvalidInput: wrong stake'
    assert 0 <= choice < metadata['n'], 'InvalidInput: choice out of range'

    order_id = next_order_id.get()
    # reserve must cover worst-case payouts for every order already placed
    assert reserve() > metadata['coverage_factor'] * (order_id - 1), 'InsufficientReserve: house cannot cover bet'

    entropy = ctx.caller + "|" + str(order_id) + "|" + str(block_num)
    linked = homomorphic_add(encrypt(choice, entropy), dealer_commitment.get())

    orders[order_id] = {
        'player': ctx.caller,
        'choice': choice,
        'stake': stake,
        'status': STATUS_PENDING,
        'settled': False,
        'proof': None,
        'linked': linked,
        'timestamp': block_num,
        'compensated': False
    }
    next_order_id.set(order_id + 1)

    lock_calls()
    token().transfer_from(amount=stake, to=ctx.this, main_account=ctx.caller)
    unlock_calls()

    BetPlacedEvent({
        'player': ctx.caller,
        'order_id': order_id,
        'choice': choice,
        'stake': stake
    })

    return order_id

@export
def upload_result(order_id: int, proof: int, status: str):
    no_reentry()
    require_operator()
    require_state(STATE_IN_PROGRESS)

    order = orders[order_id]
    assert order is not None, 'NotFound: unknown order'
    assert not order['settled'], 'AlreadySettled: result already uploaded'
    assert status == STATUS_LOST or status == STATUS_WON, 'InvalidInput: status must be lost or won'
    assert is_ciphertext(proof), 'InvalidInput: proof out of range'

    order['proof'] = proof
    order['status'] = status
    order['settled'] = True
    orders[order_id] = order

    if status == STATUS_WON:
        pending_claims[order['player']] += PAYOUT_MULTIPLIER * order['stake']

    ResultUploadedEvent({
        'player': order['player'],
        'order_id': order_id,
        'status': status
    })

@export
def claim_winnings():
    no_reentry()
    amount = pending_claims[ctx.caller]
    assert amount > 0, 'NotFound: no winnings to claim'

    pending_claims[ctx.caller] = 0
    pay(ctx.caller, amount, 'winnings')

    return amount

# -----------------------------------------------------------------------------
# Reveal & verification
# -----------------------------------------------------------------------------

@export
def reveal(p: int, q: int, r: int, seed_sum: int):
    no_reentry()
    require_operator()
    require_state(STATE_IN_PROGRESS)

    n = metadata['n']
    assert p > 1 and q > 1, 'InvalidInput: factors must exceed 1'
    assert p != q, 'InvalidInput: factors must be distinct'
    assert p * q == n, 'InvalidInput: factors do not match modulus'

    for order_id in range(1, next_order_id.get()):
        assert orders[order_id]['status'] != STATUS_PENDING, 'ProtocolViolation: unsettled orders'

    lam = lcm(p - 1, q - 1)
    mu = mod_inverse(lam, n)

    private_key['p'] = p
    private_key['q'] = q
    private_key['lambda'] = lam
    private_key['mu'] = mu
    private_key['r'] = r
    private_key['seed_sum'] = seed_sum

    # (a) disclosed sum matches the committed contributions
    if seed_sum != decrypt(encrypted_seed_sum.get()):
        flag_cheat('seed_sum', 0)

    # (b) dealer commitment opens to r = H(seed_sum)
    opened = decrypt(dealer_commitment.get())
    if opened != hash_to_commitment(seed_sum) or r != opened:
        flag_cheat('commitment', 0)

    deadline = block_num + metadata['reveal_window']
    reveal_deadline.set(deadline)
    game_state.set(STATE_REVEALED)

    RevealedEvent({'dealer': ctx.caller, 'deadline': deadline})
    return casino_cheat.get()

def verify_orders():
    secret = private_key['r']
    for order_id in range(1, next_order_id.get()):
        order = orders[order_id]

        x = decrypt(order['proof'])
        if x != order_binding(order['choice'], secret, order['timestamp']):
            flag_cheat('binding', order_id)
            return True

        expected = STATUS_WON if x % 2 == 0 else STATUS_LOST
        if order['status'] != expected:
            flag_cheat('status', order_id)
            return True

    return casino_cheat.get()

@export
def verify():
    no_reentry()
    require_state(STATE_REVEALED)
    require_before_deadline()
    return verify_orders()

# -----------------------------------------------------------------------------
# Disputes & compensation
# -----------------------------------------------------------------------------

@export
def report():
    no_reentry()
    require_state(STATE_REVEALED)
    require_before_deadline()

    cheat = casino_cheat.get()
    if not cheat:
        cheat = verify_orders()

    return cheat

@export
def claim_compensation():
    no_reentry()
    require_state(STATE_REVEALED)
    assert casino_cheat.get(), 'ProtocolViolation: no cheating detected'
    require_before_deadline()

    found = False
    owed = 0
    for order_id in range(1, next_order_id.get()):
        order = orders[order_id]
        if order['player'] != ctx.caller:
            continue
        found = True
        if not order['compensated']:
            order['compensated'] = True
            orders[order_id] = order
            owed += PAYOUT_MULTIPLIER * order['stake']

    assert found, 'NotFound: caller has no orders'
    assert owed > 0, 'AlreadyCompensated: orders already compensated'

    pay(ctx.caller, owed, 'compensation')

    return owed

@export
def owner_withdraw():
    no_reentry()
    require_operator()
    require_state(STATE_REVEALED)
    assert block_num >= reveal_deadline.get(), 'DeadlineExpired: dispute window still open'
    assert not casino_cheat.get(), 'ProtocolViolation: cheating was detected'

    amount = reserve()
    assert amount > 0, 'InsufficientReserve: nothing to withdraw'

    pay(ctx.caller, amount, 'withdrawal')

    return amount
