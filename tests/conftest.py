import hashlib
import importlib.util
from pathlib import Path

import contracting
import pytest
from contracting.client import ContractingClient
from contracting.compilation import whitelists

PROJECT_ROOT = Path(__file__).resolve().parents[1]
CONTRACT_PATH = PROJECT_ROOT / "con_fair_casino.py"
CONTRACTS_DIR = Path(__file__).resolve().parent / "contracts"
TOKEN_PATH = CONTRACTS_DIR / "con_test_token.py"
REENTRANT_TOKEN_PATH = CONTRACTS_DIR / "con_reentrant_token.py"
HELPER_PATH = PROJECT_ROOT / "client_helper.py"
SUBMISSION_PATH = (
    Path(contracting.__file__).resolve().parent / "contracts" / "submission.s.py"
)

CASINO = "con_fair_casino"
TOKEN = "con_test_token"
REENTRANT_TOKEN = "con_reentrant_token"

# Mersenne primes M521 and M607; n is ~1128 bits
P = 2**521 - 1
Q = 2**607 - 1

STAKE = 10
REVEAL_WINDOW = 10
HOUSE_FUNDS = 1000
PLAYERS = ("alice", "bob", "carol", "pat", "pia")


@pytest.fixture(scope="session", autouse=True)
def enable_sha3_and_whitelist():
    whitelists.ALLOWED_BUILTINS.update({"hashlib", "importlib"})

    if not hasattr(hashlib, "sha3"):
        def _sha3(data):
            if isinstance(data, str):
                data = data.encode("utf-8")
            return hashlib.sha3_256(data).hexdigest()

        setattr(hashlib, "sha3", _sha3)


@pytest.fixture(scope="session")
def helper_module():
    spec = importlib.util.spec_from_file_location("client_helper_tests", HELPER_PATH)
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


@pytest.fixture(scope="session")
def keypair(helper_module):
    return helper_module.PaillierKeyPair(P, Q)


@pytest.fixture
def public_key(keypair):
    return keypair.public_key


@pytest.fixture
def session(helper_module, keypair):
    return helper_module.DealerSession(keypair)


@pytest.fixture
def client():
    client = ContractingClient(signer="dealer", metering=False)
    client.flush()
    client.set_submission_contract(str(SUBMISSION_PATH))
    return client


def submit_token(client, path, name):
    client.submit(path.read_text(), name=name, owner=None)
    token = client.get_contract(name)
    for player in PLAYERS:
        token.transfer(amount=1000, to=player)
        token.approve(amount=10000, to=CASINO, signer=player)
    return token


@pytest.fixture
def token(client):
    return submit_token(client, TOKEN_PATH, TOKEN)


@pytest.fixture
def reentrant_token(client):
    """Ledger whose transfers call back into the casino once armed."""
    return submit_token(client, REENTRANT_TOKEN_PATH, REENTRANT_TOKEN)


@pytest.fixture
def deploy(client, token, keypair):
    def _deploy(controlled=("ctrl_a", "ctrl_b"), funds=HOUSE_FUNDS, ledger=None, **kwargs):
        if ledger is None:
            ledger = token
        constructor_args = {
            "n": keypair.n,
            "controlled_participants": list(controlled),
            "token_contract": TOKEN,
            "bet_stake": STAKE,
            "reveal_window": REVEAL_WINDOW,
        }
        constructor_args.update(kwargs)
        client.submit(
            CONTRACT_PATH.read_text(),
            name=CASINO,
            owner=None,
            constructor_args=constructor_args,
        )
        if funds:
            ledger.transfer(amount=funds, to=CASINO)
        return client.get_contract(CASINO)

    return _deploy


def start_game(casino, helper_module, public_key, session):
    for participant, value in (("dealer", 11), ("pat", 22), ("ctrl_a", 33), ("ctrl_b", 44)):
        plan = helper_module.build_seed_contribution(public_key, value)
        casino.submit_seed(ciphertext=plan["ciphertext"], signer=participant, environment={"block_num": 1})

    commitment = session.commit(casino.encrypted_seed_sum.get())
    casino.set_commitment(ciphertext=commitment["ciphertext"], environment={"block_num": 1})
    casino.open_betting(environment={"block_num": 1})
    return casino


@pytest.fixture
def casino(deploy):
    return deploy()


@pytest.fixture
def live_casino(casino, public_key, session, helper_module):
    """Seed phase done (dealer, pat, ctrl_a, ctrl_b), commitment set, betting open."""
    return start_game(casino, helper_module, public_key, session)


@pytest.fixture
def reentrant_casino(deploy, reentrant_token, public_key, session, helper_module):
    """Live game whose payouts and stake pulls go through the reentrant token."""
    casino = deploy(ledger=reentrant_token, token_contract=REENTRANT_TOKEN)
    return start_game(casino, helper_module, public_key, session)
