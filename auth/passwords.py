"""
auth/passwords.py -- Password hashing and reset-token utilities.

Security design decisions:
  Passwords: argon2id via pwdlib. Argon2id is memory-hard, so GPU/ASIC
       brute-force is expensive even for low-entropy secrets. Every call to
       hash_password() draws a fresh random salt; the PHC output string embeds
       the salt and cost parameters, so verify_password() needs nothing else.

  Reset tokens: secrets.token_urlsafe(32) gives 256 bits of entropy in a
       URL-safe alphabet. The token is an opaque lookup key -- it carries no
       structure and is only meaningful while its Token Store entry lives.

Both hashing functions are CPU-bound. Async callers must offload them with
asyncio.to_thread() so a login does not stall the event loop.

Layer rule: no imports from api/ or cache/.
"""

from __future__ import annotations

import secrets

from pwdlib import PasswordHash
from pwdlib.hashers.argon2 import Argon2Hasher

_password_hash = PasswordHash((Argon2Hasher(),))


def hash_password(plain: str) -> str:
    """Return an argon2id PHC string for the given plaintext password."""
    return _password_hash.hash(plain)


def verify_password(plain: str, hashed: str) -> bool:
    """Return True if the plaintext password matches the hash.

    Never raises: an empty, truncated or non-argon2 hash is simply a mismatch.
    The digest comparison inside argon2 is constant-time.
    """
    try:
        return _password_hash.verify(plain, hashed)
    except Exception:
        return False


def generate_reset_token() -> str:
    """Return a fresh opaque, URL-safe password-reset token."""
    return secrets.token_urlsafe(32)
