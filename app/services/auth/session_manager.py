"""
Session management for account authentication.

Manages refresh sessions within the account document's embedded sessions
array and mints the short-lived access tokens that accompany them.
"""

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Optional, Tuple

from common.auth.jwt_auth import AccessTokenSigner
from common.utils.clock import Clock, utcnow
from app.repositories.account_repository import AccountRepository
from app.repositories.errors import RepositoryError
from app.services.auth.one_time_tokens import TokenFailure
from app.services.auth.token_hasher import TokenHasher

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class SessionGrant:
    """Credentials returned to the client after login, register or refresh."""

    access_token: str
    refresh_token: str
    expires_in: int
    refresh_expires_at: datetime
    account: dict

    def to_dict(self) -> dict:
        return {
            "accessToken": self.access_token,
            "refreshToken": self.refresh_token,
            "expiresIn": self.expires_in,
            "refreshExpiresAt": self.refresh_expires_at,
        }


class SessionManager:
    """
    Handles session issuance, rotation, and revocation.
    Sessions are stored as embedded array in account document.
    """

    # Attempts at drawing a refresh token whose hash no account holds yet
    TOKEN_ATTEMPTS = 3

    def __init__(
        self,
        repository: AccountRepository,
        signer: AccessTokenSigner,
        refresh_ttl: timedelta = timedelta(days=7),
        max_sessions: int = 10,
        clock: Clock = utcnow,
    ):
        """
        Initialize SessionManager.

        Args:
            repository: Account persistence
            signer: Access token signer
            refresh_ttl: Lifetime of a refresh session
            max_sessions: Sessions kept per account, oldest dropped first
            clock: Source of the current UTC time
        """
        self._repository = repository
        self._signer = signer
        self._refresh_ttl = refresh_ttl
        self._max_sessions = max_sessions
        self._clock = clock

    async def _new_refresh_token(self) -> Tuple[str, str]:
        for _ in range(self.TOKEN_ATTEMPTS):
            token = TokenHasher.generate_token()
            token_hash = TokenHasher.hash_token(token)
            if await self._repository.find_by_session_token_hash(token_hash) is None:
                return token, token_hash
        raise RepositoryError("Could not allocate a unique refresh token")

    def _session_entry(self, token_hash: str, device: Optional[dict], now: datetime) -> dict:
        return {
            "tokenHash": token_hash,
            "expiresAt": now + self._refresh_ttl,
            "createdAt": now,
            "device": {
                "userAgent": (device or {}).get("userAgent", ""),
                "ip": (device or {}).get("ip", ""),
            },
        }

    def create_access_token(self, account: dict) -> str:
        return self._signer.create_token(
            str(account["_id"]),
            handle=account["handle"],
            email=account.get("email"),
        )

    def _grant(self, account: dict, refresh_token: str, session: dict) -> SessionGrant:
        return SessionGrant(
            access_token=self.create_access_token(account),
            refresh_token=refresh_token,
            expires_in=self._signer.expires_in,
            refresh_expires_at=session["expiresAt"],
            account=account,
        )

    async def issue_session(
        self,
        account: dict,
        device: Optional[dict] = None,
        set_fields: Optional[dict] = None,
    ) -> Optional[SessionGrant]:
        """
        Store a new refresh session and mint an access token.

        Args:
            account: Account document
            device: {"userAgent", "ip"} of the client
            set_fields: Extra fields written in the same update (e.g. lastLoginAt)

        Returns:
            SessionGrant, or None if the account no longer exists
        """
        now = self._clock()
        refresh_token, token_hash = await self._new_refresh_token()
        session = self._session_entry(token_hash, device, now)

        updated = await self._repository.add_session(
            account["_id"], session, now, self._max_sessions, set_fields=set_fields
        )
        if updated is None:
            logger.warning(f"Session not created, account {account['_id']} is gone")
            return None

        logger.info(f"Session created for account {updated['_id']}")
        return self._grant(updated, refresh_token, session)

    async def rotate(
        self,
        refresh_token: Optional[str],
        device: Optional[dict] = None,
    ) -> Tuple[Optional[SessionGrant], Optional[TokenFailure]]:
        """
        Exchange a live refresh token for a new one.

        The old entry is removed and the new one stored in a single update,
        so of two concurrent rotations of the same token only one succeeds.

        Returns:
            tuple of (grant, None) on success or (None, failure reason)
        """
        if not refresh_token:
            return None, TokenFailure.MISSING

        now = self._clock()
        old_hash = TokenHasher.hash_token(refresh_token)
        new_token, new_hash = await self._new_refresh_token()
        session = self._session_entry(new_hash, device, now)

        updated = await self._repository.replace_session(
            old_hash, session, now, self._max_sessions
        )
        if updated is not None:
            logger.info(f"Session rotated for account {updated['_id']}")
            return self._grant(updated, new_token, session), None

        holder = await self._repository.find_by_session_token_hash(old_hash)
        entry = next(
            (s for s in (holder or {}).get("sessions", []) if s.get("tokenHash") == old_hash),
            None,
        )
        if entry is None or entry["expiresAt"] > now:
            return None, TokenFailure.INVALID

        await self._repository.remove_session(old_hash)
        logger.info(f"Expired session presented for account {holder['_id']}")
        return None, TokenFailure.EXPIRED

    async def revoke_one(self, refresh_token: str) -> bool:
        """Remove the session matching a refresh token (logout)."""
        removed = await self._repository.remove_session(TokenHasher.hash_token(refresh_token))
        if removed:
            logger.info("Session revoked")
        return removed

    async def revoke_all(self, account_id: str) -> None:
        """Remove every session of an account."""
        await self._repository.clear_sessions(account_id)
        logger.info(f"All sessions revoked for account {account_id}")
