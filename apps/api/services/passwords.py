"""Password hashing helpers (bcrypt)."""

import hashlib

import bcrypt

# bcrypt only hashes the first 72 bytes and newer releases reject anything longer.
MAX_PASSWORD_BYTES = 72


def hash_password(password: str) -> str:
    return bcrypt.hashpw(password.encode("utf-8"), bcrypt.gensalt()).decode("utf-8")


def verify_password(password: str, password_hash: str) -> bool:
    if not password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(password.encode("utf-8"), password_hash.encode("utf-8"))
    except ValueError:
        return False


def hash_reset_token(token: str) -> str:
    """Deterministic digest so reset tokens can be looked up without storing them."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()
