"""
Token generation and hashing utilities.

Provides secure token operations for sessions and one-time links.
"""

import hashlib
import secrets


class TokenHasher:
    """
    Handles token generation and hashing.
    """

    @staticmethod
    def generate_token(length: int = 32) -> str:
        """
        Generate a cryptographically secure, URL-safe random token.

        Args:
            length: Number of random bytes (32 bytes = 256 bits)

        Returns:
            Base64url-encoded random string
        """
        return secrets.token_urlsafe(length)

    @staticmethod
    def hash_token(token: str) -> str:
        """
        Create SHA-256 hash of a token.
        Only the hash is ever stored.

        Args:
            token: Plain token string

        Returns:
            Hex-encoded SHA-256 hash (64 characters)
        """
        return hashlib.sha256(token.encode("utf-8")).hexdigest()
