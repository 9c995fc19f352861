"""
auth/passwords.py -- bcrypt password hashing.

bcrypt is used directly, not through a passlib CryptContext.

Every digest is self-describing ($2b$<cost>$<salt><hash>), so the work factor
(PASSWORD_HASH_ROUNDS) can be raised at any time. Existing digests keep
verifying at their original cost.

bcrypt only reads the first 72 bytes of input and current releases raise on
anything longer, so both functions cut the encoded password to 72 bytes.

Layer rule: no imports from api/ or media/.
"""

from __future__ import annotations

import bcrypt

from core.config import get_settings

_settings = get_settings()

_BCRYPT_MAX_BYTES = 72


def _encode(plain: str) -> bytes:
    return plain.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain: str) -> str:
    """Return a salted bcrypt hash of the given plaintext password.

    The API layer caps password fields at 128 characters (Pydantic max_length).
    """
    salt = bcrypt.gensalt(rounds=_settings.password_hash_rounds)
    return bcrypt.hashpw(_encode(plain), salt).decode("utf-8")


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the bcrypt hash.

    Never raises: a malformed or empty digest simply does not match.
    """
    if not plain or not hashed:
        return False
    try:
        return bcrypt.checkpw(_encode(plain), hashed.encode("utf-8"))
    except ValueError:
        return False
