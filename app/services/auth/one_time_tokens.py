"""
One-time capability tokens.

A token is a random URL-safe string handed to its owner exactly once. Only
its SHA-256 hash is stored, together with an expiry, in the document field
named by its purpose. Consuming a token clears that field in the same
conditional update that applies the state change it authorises, so a token
grants at most one success.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum
from typing import Any, Dict, Optional, Tuple

from common.utils.clock import Clock, utcnow
from app.models.account import TokenPurpose
from app.services.auth.token_hasher import TokenHasher

logger = logging.getLogger(__name__)


class TokenFailure(str, Enum):
    MISSING = "MISSING"
    INVALID = "INVALID"
    EXPIRED = "EXPIRED"


@dataclass(frozen=True)
class TokenValidation:
    """Outcome of consuming a token. `document` is the updated record on success."""

    ok: bool
    reason: Optional[TokenFailure] = None
    document: Optional[dict] = None


class OneTimeTokenService:
    """
    Issues and consumes one-time tokens against a repository.

    The repository must provide `set_token`, `consume_token`,
    `find_by_token_hash` and `clear_token`; both the account and the
    subscriber repositories do.
    """

    def __init__(
        self,
        repository: Any,
        ttls: Dict[TokenPurpose, timedelta],
        clock: Clock = utcnow,
    ):
        self._repository = repository
        self._ttls = ttls
        self._clock = clock

    def mint(self, purpose: TokenPurpose, **extra: Any) -> Tuple[str, dict]:
        """
        Create a raw token and the subdocument to store for it.

        Args:
            purpose: Field the token is bound to
            **extra: Values stored alongside the hash (e.g. target=email)

        Returns:
            tuple of (raw_token, {"hash", "expiresAt", **extra})
        """
        raw_token = TokenHasher.generate_token()
        stored = {
            "hash": TokenHasher.hash_token(raw_token),
            "expiresAt": self._clock() + self._ttls[purpose],
            **extra,
        }
        return raw_token, stored

    async def issue(
        self,
        document_id: Any,
        purpose: TokenPurpose,
        conditions: Optional[dict] = None,
        **extra: Any,
    ) -> Optional[str]:
        """
        Store a fresh token for a document, superseding any earlier one.

        Returns:
            The raw token, or None if the document no longer matches `conditions`
        """
        raw_token, stored = self.mint(purpose, **extra)
        updated = await self._repository.set_token(
            document_id, purpose, stored, self._clock(), conditions=conditions
        )
        if updated is None:
            return None
        logger.debug(f"Issued {purpose.value} for {document_id}")
        return raw_token

    async def is_live(self, purpose: TokenPurpose, raw_token: Optional[str]) -> bool:
        """Whether an unexpired token with this value is stored. Consumes nothing."""
        if not raw_token:
            return False
        holder = await self._repository.find_by_token_hash(
            purpose, TokenHasher.hash_token(raw_token)
        )
        stored = (holder or {}).get(purpose.value) or {}
        expires_at = stored.get("expiresAt")
        return expires_at is not None and expires_at > self._clock()

    async def validate(
        self,
        purpose: TokenPurpose,
        raw_token: Optional[str],
        set_fields: Optional[dict] = None,
        conditions: Optional[dict] = None,
        **consume_options: Any,
    ) -> TokenValidation:
        """
        Consume a token and apply `set_fields` atomically.

        On failure the lookup is repeated by hash alone, only to tell an
        expired token (which is then cleared) from an unknown one.
        """
        if not raw_token:
            return TokenValidation(ok=False, reason=TokenFailure.MISSING)

        token_hash = TokenHasher.hash_token(raw_token)
        now = self._clock()

        document = await self._repository.consume_token(
            purpose,
            token_hash,
            now,
            set_fields=set_fields,
            conditions=conditions,
            **consume_options,
        )
        if document is not None:
            return TokenValidation(ok=True, document=document)

        holder = await self._repository.find_by_token_hash(purpose, token_hash)
        if holder is None:
            return TokenValidation(ok=False, reason=TokenFailure.INVALID)

        stored = holder.get(purpose.value) or {}
        expires_at = stored.get("expiresAt")
        if expires_at is not None and expires_at <= now:
            await self._repository.clear_token(holder["_id"], purpose, token_hash)
            logger.info(f"Expired {purpose.value} presented for {holder['_id']}")
            return TokenValidation(ok=False, reason=TokenFailure.EXPIRED)

        return TokenValidation(ok=False, reason=TokenFailure.INVALID)
