import hashlib
import logging
import secrets

log = logging.getLogger(__name__)

# ---- Chain-constant parameters & helpers (mirror contract) ----

DOMAIN = "FAIRCASINO:v1|"

STATUS_PENDING = 'pending'
STATUS_LOST = 'lost'
STATUS_WON = 'won'

PAYOUT_MULTIPLIER = 2


class InvalidInput(ValueError):
    pass


class NoInverseExists(ValueError):
    pass


def sha3_hex(s: str) -> str:
    # Matches Xian env semantics: hex strings are hashed as bytes, anything else as utf-8
    try:
        data = bytes.fromhex(s)
    except ValueError:
        data = s.encode("utf-8")
    return hashlib.sha3_256(data).hexdigest()

def domain_hash(*parts) -> str:
    s = "|".join(str(x) for x in parts)
    return sha3_hex(DOMAIN + s)

def mod_exp(base: int, exponent: int, modulus: int) -> int:
    if modulus == 0:
        raise InvalidInput("Modulus must be non-zero")
    if exponent == 0:
        return 1
    result = 1
    base = base % modulus
    e = exponent
    while e > 0:
        if e & 1:
            result = (result * base) % modulus
        e >>= 1
        base = (base * base) % modulus
    return result

def extended_gcd(a: int, b: int):
    """Iterative extended Euclid. Returns (g, x, y) with a*x + b*y == g."""
    old_r, r = a, b
    old_x, x = 1, 0
    old_y, y = 0, 1
    while r != 0:
        quotient = old_r // r
        old_r, r = r, old_r - quotient * r
        old_x, x = x, old_x - quotient * x
        old_y, y = y, old_y - quotient * y
    return old_r, old_x, old_y

def gcd(a: int, b: int) -> int:
    return abs(extended_gcd(a, b)[0])

def lcm(a: int, b: int) -> int:
    return abs(a // gcd(a, b) * b)

def mod_inverse(x: int, modulus: int) -> int:
    g, inverse, _ = extended_gcd(x % modulus, modulus)
    if g != 1:
        raise NoInverseExists(f"{x} has no inverse modulo {modulus}")
    return inverse % modulus

# ---- Paillier keys -----------------------------------------------------------

class PaillierPublicKey:
    """Public half of the dealer's key: n, g = n + 1 and n^2."""

    def __init__(self, n: int):
        if n <= 3:
            raise InvalidInput("Modulus too small")
        self.n = n
        self.g = n + 1
        self.n_squared = n * n

    def is_ciphertext(self, value: int) -> bool:
        return isinstance(value, int) and not isinstance(value, bool) and 0 < value < self.n_squared

    def random_randomizer(self) -> int:
        r = secrets.randbelow(self.n - 1) + 1
        if gcd(r, self.n_squared) != 1:
            # Same fallback the contract applies
            log.warning("Randomizer shares a factor with n^2, falling back to r = 1")
            r = 1
        return r

    def encrypt(self, plaintext: int, randomizer: int = None) -> int:
        if not 0 <= plaintext < self.n:
            raise InvalidInput("Plaintext must lie in [0, n)")
        if randomizer is None:
            randomizer = self.random_randomizer()
        elif randomizer == 0 or gcd(randomizer, self.n_squared) != 1:
            randomizer = 1
        return (mod_exp(self.g, plaintext, self.n_squared)
                * mod_exp(randomizer, self.n, self.n_squared)) % self.n_squared

    def homomorphic_add(self, c1: int, c2: int) -> int:
        return (c1 * c2) % self.n_squared

    def hash_to_commitment(self, value: int) -> int:
        return int(domain_hash("commit", value), 16) % self.n

    def order_binding(self, choice: int, secret: int, timestamp: int) -> int:
        return self.hash_to_commitment(choice + secret + timestamp)


class PaillierKeyPair:
    """
    Dealer key material built from supplied factors.
    Key generation is out of scope; p and q come from the dealer.
    """

    def __init__(self, p: int, q: int):
        if p <= 1 or q <= 1 or p == q:
            raise InvalidInput("Factors must be distinct and greater than 1")
        self.p = p
        self.q = q
        self.public_key = PaillierPublicKey(p * q)
        self.lam = lcm(p - 1, q - 1)
        self.mu = mod_inverse(self.lam, self.public_key.n)

    @property
    def n(self) -> int:
        return self.public_key.n

    def decrypt(self, ciphertext: int) -> int:
        n = self.public_key.n
        u = mod_exp(ciphertext, self.lam, self.public_key.n_squared)
        return (((u - 1) // n) * self.mu) % n

# ---- High-level builders -----------------------------------------------------

def outcome_status(x: int) -> str:
    # Even proofs win, odd proofs lose
    return STATUS_WON if x % 2 == 0 else STATUS_LOST

def build_seed_contribution(public_key: PaillierPublicKey, value: int, randomizer: int = None):
    """
    Returns args for contract.submit_seed():
        (ciphertext)
    Keep `value` if you want to audit the seed sum later.
    """
    return {
        'ciphertext': public_key.encrypt(value, randomizer),
        'value': value
    }

def build_dealer_commitment(keypair: PaillierKeyPair, seed_sum: int, randomizer: int = None):
    """
    Returns args for contract.set_commitment():
        (ciphertext)
    `r` is the dealer's secret H(seed_sum); it is disclosed at reveal.
    """
    r = keypair.public_key.hash_to_commitment(seed_sum)
    return {
        'ciphertext': keypair.public_key.encrypt(r, randomizer),
        'r': r
    }

def build_outcome(public_key: PaillierPublicKey, secret: int, choice: int, timestamp: int,
                  randomizer: int = None):
    """
    Returns args for contract.upload_result():
        (proof, status)
    You still supply `order_id` when calling the chain method.
    """
    x = public_key.order_binding(choice, secret, timestamp)
    return {
        'proof': public_key.encrypt(x, randomizer),
        'status': outcome_status(x),
        'x': x
    }

def build_reveal(keypair: PaillierKeyPair, secret: int, seed_sum: int):
    """
    Returns args for contract.reveal():
        (p, q, r, seed_sum)
    """
    return {
        'p': keypair.p,
        'q': keypair.q,
        'r': secret,
        'seed_sum': seed_sum
    }

def audit_orders(keypair: PaillierKeyPair, secret: int, orders):
    """
    Off-chain mirror of contract.verify().
    `orders` yields (order_id, order) pairs as stored on-chain. Returns the id
    of the first inconsistent order, or None when every order checks out.
    """
    public_key = keypair.public_key
    for order_id, order in orders:
        if order['status'] == STATUS_PENDING or order['proof'] is None:
            return order_id
        x = keypair.decrypt(order['proof'])
        if x != public_key.order_binding(order['choice'], secret, order['timestamp']):
            return order_id
        if order['status'] != outcome_status(x):
            return order_id
    return None

# ---- Convenience: dealer-side state tracker ---------------------------------

class DealerSession:
    """
    Keeps what the dealer needs between the seed phase and the reveal:
    the decrypted seed sum and the secret r = H(seed_sum).
    """
    def __init__(self, keypair: PaillierKeyPair):
        self.keypair = keypair
        self.seed_sum = None
        self.secret = None

    def commit(self, encrypted_seed_sum: int):
        self.seed_sum = self.keypair.decrypt(encrypted_seed_sum)
        plan = build_dealer_commitment(self.keypair, self.seed_sum)
        self.secret = plan['r']
        log.debug("Dealer committed to seed sum of %d bits", self.seed_sum.bit_length())
        return plan

    def outcome(self, choice: int, timestamp: int, randomizer: int = None):
        if self.secret is None:
            raise ValueError("Dealer has not committed to a seed yet")
        return build_outcome(self.keypair.public_key, self.secret, choice, timestamp, randomizer)

    def reveal(self):
        if self.secret is None:
            raise ValueError("Dealer has not committed to a seed yet")
        log.info("Revealing key material for n of %d bits", self.keypair.n.bit_length())
        return build_reveal(self.keypair, self.secret, self.seed_sum)
