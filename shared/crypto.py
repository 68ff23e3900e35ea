"""
Cryptographic helpers — password hashing and verification-code hashing.

Uses argon2id for passwords (via argon2-cffi) and SHA-256 for one-time
codes. Both hashes are persisted as bytes; raw codes never reach storage.
"""

from __future__ import annotations

import asyncio
import hashlib
from typing import Optional

from argon2 import PasswordHasher
from argon2.exceptions import InvalidHashError, VerificationError, VerifyMismatchError

_password_hasher = PasswordHasher()


def configure_password_hasher(
    time_cost: int, memory_cost: int, parallelism: int
) -> None:
    """Replace the module hasher with one using the configured cost parameters."""
    global _password_hasher
    _password_hasher = PasswordHasher(
        time_cost=time_cost, memory_cost=memory_cost, parallelism=parallelism
    )


def hash_password(plain_password: str) -> bytes:
    """Hash *plain_password* with argon2id.

    Returns:
        Argon2 encoded hash (algorithm parameters and salt included) as bytes.
    """
    return _password_hasher.hash(plain_password).encode("utf-8")


def verify_password(plain_password: str, password_hash: Optional[bytes]) -> bool:
    """Verify *plain_password* against a stored argon2 hash.

    The comparison inside argon2 is constant time. Returns ``False`` for a
    mismatch or for a hash argon2 cannot parse.
    """
    if not password_hash:
        return False
    try:
        return _password_hasher.verify(password_hash.decode("utf-8"), plain_password)
    except (VerifyMismatchError, VerificationError, InvalidHashError, UnicodeDecodeError):
        return False


async def hash_password_async(plain_password: str) -> bytes:
    """Run the KDF in a worker thread so the event loop keeps serving."""
    return await asyncio.to_thread(hash_password, plain_password)


async def verify_password_async(
    plain_password: str, password_hash: Optional[bytes]
) -> bool:
    return await asyncio.to_thread(verify_password, plain_password, password_hash)


def hash_code(code: str) -> bytes:
    """Return the 32-byte SHA-256 digest of a one-time verification code."""
    return hashlib.sha256(code.encode("utf-8")).digest()
