"""
Password hashing for locally stored credentials (bcrypt).

Seed admins and dashboard users are stored with bcrypt hashes. bcrypt is used
directly; it only looks at the first 72 bytes of a password, so longer input
is truncated before hashing and before checking.
"""

import bcrypt

BCRYPT_MAX_PASSWORD_BYTES = 72
DEFAULT_BCRYPT_ROUNDS = 12


def _password_bytes(password: str) -> bytes:
    return password.encode("utf-8")[:BCRYPT_MAX_PASSWORD_BYTES]


def hash_password(password: str, rounds: int = DEFAULT_BCRYPT_ROUNDS) -> str:
    """Return the bcrypt hash of ``password`` as an ASCII string."""
    return bcrypt.hashpw(_password_bytes(password), bcrypt.gensalt(rounds=rounds)).decode("ascii")


def verify_password(plain_password: str, password_hash: str | None) -> bool:
    """Return True if ``plain_password`` matches ``password_hash``. False for a missing or malformed hash."""
    if not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), password_hash.encode("ascii"))
    except ValueError:
        return False
