"""
bcrypt password hashing.

Passwords are pre-hashed with SHA-256 before bcrypt. This handles bcrypt's
72-byte limit and gives consistent behavior across all password lengths.
bcrypt work runs in a worker thread so it never stalls the event loop.

Example:
    hasher = PasswordHasher(rounds=12)

    password_hash = await hasher.hash("Secr3t!9x")
    assert await hasher.verify("Secr3t!9x", password_hash)

    # Unknown user: spend the same time as a real check, always False
    await hasher.verify_dummy("whatever")
"""

import asyncio
import base64
import hashlib
import logging
import secrets
from typing import Optional

import bcrypt as bcrypt_lib

logger = logging.getLogger(__name__)


class CredentialHashError(Exception):
    """Raised when a password cannot be hashed or a stored hash is unusable."""


class PasswordHasher:
    """
    One-way, salted, cost-tunable password hashing.

    bcrypt.checkpw compares in constant time.
    """

    def __init__(self, rounds: int = 12):
        """
        Args:
            rounds: bcrypt cost factor (log2 of iterations). Tests use 4.
        """
        self._rounds = rounds
        self._dummy_hash: Optional[bytes] = None

    @staticmethod
    def _prehash_password(password: str) -> bytes:
        sha256_hash = hashlib.sha256(password.encode("utf-8")).digest()
        return base64.b64encode(sha256_hash)

    def _hash_sync(self, password: str) -> bytes:
        salt = bcrypt_lib.gensalt(rounds=self._rounds)
        return bcrypt_lib.hashpw(self._prehash_password(password), salt)

    async def hash(self, password: str) -> str:
        """
        Hash a password.

        Raises:
            CredentialHashError: If bcrypt rejects the input
        """
        if not isinstance(password, str):
            raise CredentialHashError("Password must be a string")
        try:
            hashed = await asyncio.to_thread(self._hash_sync, password)
        except ValueError as e:
            logger.error(f"Password hashing failed: {e}")
            raise CredentialHashError("Password hashing failed") from e
        return hashed.decode("utf-8")

    async def verify(self, password: str, password_hash: str) -> bool:
        """
        Verify a password against its stored hash.

        Raises:
            CredentialHashError: If the stored hash is malformed
        """
        if not password or not password_hash:
            return False
        try:
            return await asyncio.to_thread(
                bcrypt_lib.checkpw,
                self._prehash_password(password),
                password_hash.encode("utf-8"),
            )
        except ValueError as e:
            logger.error(f"Stored password hash is unusable: {e}")
            raise CredentialHashError("Stored password hash is invalid") from e

    async def verify_dummy(self, password: str) -> bool:
        """
        Burn one bcrypt comparison for a non-existent account.

        Keeps response time of "unknown identifier" equal to "wrong password".
        Always returns False.
        """
        if self._dummy_hash is None:
            self._dummy_hash = await asyncio.to_thread(
                self._hash_sync, secrets.token_urlsafe(16)
            )
        await asyncio.to_thread(
            bcrypt_lib.checkpw,
            self._prehash_password(password or ""),
            self._dummy_hash,
        )
        return False
