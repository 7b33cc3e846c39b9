"""Password hashing and OTP code helpers."""

from __future__ import annotations

import hashlib
import hmac
import secrets
from functools import lru_cache

import bcrypt

# bcrypt only looks at the first 72 bytes of its input
_BCRYPT_MAX_BYTES = 72


def _password_bytes(plain_password: str) -> bytes:
    return plain_password.encode("utf-8")[:_BCRYPT_MAX_BYTES]


def hash_password(plain_password: str, rounds: int = 12) -> str:
    salt = bcrypt.gensalt(rounds=rounds)
    return bcrypt.hashpw(_password_bytes(plain_password), salt).decode("utf-8")


def verify_password(plain_password: str, password_hash: str) -> bool:
    if not plain_password or not password_hash:
        return False
    try:
        return bcrypt.checkpw(_password_bytes(plain_password), password_hash.encode("utf-8"))
    except ValueError:
        # Malformed stored hash
        return False


@lru_cache
def dummy_password_hash(rounds: int) -> str:
    """Hash verified against when the account does not exist.

    Built at the same bcrypt cost as real hashes so a miss costs the same
    work as a wrong password.
    """
    return hash_password(secrets.token_urlsafe(16), rounds=rounds)


def generate_otp_code(length: int = 6) -> str:
    """Return a numeric code of *length* digits drawn from the OS CSPRNG."""
    return "".join(secrets.choice("0123456789") for _ in range(length))


def hash_otp_code(code: str, mobile: str, secret: str) -> str:
    """Keyed one-way hash of *code*, bound to the mobile it was issued for."""
    message = f"{mobile}:{code}".encode("utf-8")
    return hmac.new(secret.encode("utf-8"), message, hashlib.sha256).hexdigest()


def otp_code_matches(code: str, mobile: str, code_hash: str, secret: str) -> bool:
    """Constant-time comparison of a submitted *code* against a stored hash."""
    return hmac.compare_digest(hash_otp_code(code, mobile, secret), code_hash)
