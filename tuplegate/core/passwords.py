"""
Hashing of user secrets. These are only ever checked against the stored
hash of a known user, never looked up by it, so they are salted and hashed
with argon2id rather than with the deterministic checksums used for things.
"""

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError

PASSWORD_ALGORITHM = "argon2id"

hasher = PasswordHasher()


def hash_password(secret: str) -> str:
    """
    Hash a user secret. Two calls with the same secret give different hashes.
    """
    return hasher.hash(secret)


def verify_password(secret: str, password_hash: str) -> bool:
    """
    Check `secret` against a hash produced by `hash_password`. A malformed
    hash never verifies.
    """
    try:
        return hasher.verify(password_hash, secret)
    except (VerificationError, InvalidHashError):
        return False
