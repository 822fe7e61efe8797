"""
One-way hashing helpers for passwords and security answers.

bcrypt with a configurable cost factor. The default of 12 puts a single
hash well above 100ms on current hardware.

bcrypt only reads the first 72 bytes of a secret and bcrypt>=5 refuses
longer input outright, so secrets are cut to that limit before hashing
and before every comparison.
"""

import bcrypt

DEFAULT_BCRYPT_COST = 12
BCRYPT_MAX_BYTES = 72


def _secret_bytes(secret: str) -> bytes:
    return secret.encode()[:BCRYPT_MAX_BYTES]


# Compared against when no identity matched, so login timing does not
# reveal whether an account exists.
_DUMMY_BCRYPT_HASH = bcrypt.hashpw(b"dummy_password_for_timing_safety", bcrypt.gensalt(10)).decode()


def hash_secret(secret: str, cost: int = DEFAULT_BCRYPT_COST) -> str:
    """Hash a password or security answer."""
    return bcrypt.hashpw(_secret_bytes(secret), bcrypt.gensalt(rounds=cost)).decode()


def check_secret(secret: str, secret_hash: str | None) -> bool:
    """
    Constant-time comparison of a secret against its stored hash.

    A missing hash still costs one bcrypt comparison and always fails.
    """
    if secret_hash is None:
        bcrypt.checkpw(_secret_bytes(secret), _DUMMY_BCRYPT_HASH.encode())
        return False
    return bcrypt.checkpw(_secret_bytes(secret), secret_hash.encode())


def normalize_security_answer(answer: str) -> str:
    """Security answers are matched case-insensitively."""
    return answer.strip().lower()
