"""
Signed, short-lived access credentials (JWT).

Access tokens are stateless: nothing is stored server-side and they cannot
be revoked individually. Revocable, long-lived sessions are handled by the
refresh-token store instead.

Example:
    signer = AccessTokenSigner(secret="your-secret-key", expire_minutes=15)

    token = signer.create_token("65f0c3...", handle="alice", email=None)
    claims = signer.verify_token(token)
    print(claims["sub"])
"""

from datetime import datetime, timedelta, timezone
from typing import Any, Dict, Optional

from jose import jwt, JWTError

ACCESS_TOKEN_TYPE = "access"


class AccessTokenSigner:
    """Creates and verifies HMAC-signed access tokens."""

    def __init__(
        self,
        secret: str,
        algorithm: str = "HS256",
        expire_minutes: int = 15,
        issuer: Optional[str] = None,
    ):
        """
        Args:
            secret: Secret key for JWT signing (keep this secure!)
            algorithm: JWT algorithm (default: HS256)
            expire_minutes: Access token lifetime
            issuer: Optional "iss" claim, checked on verify when set
        """
        if not secret:
            raise ValueError("JWT secret must not be empty")
        self.secret = secret
        self.algorithm = algorithm
        self.access_token_expire = timedelta(minutes=expire_minutes)
        self.issuer = issuer

    @property
    def expires_in(self) -> int:
        """Access token lifetime in seconds."""
        return int(self.access_token_expire.total_seconds())

    def create_token(
        self,
        subject: str,
        now: Optional[datetime] = None,
        **claims: Any,
    ) -> str:
        """
        Create a signed access token.

        Args:
            subject: Account ID stored in the "sub" claim
            now: Issue time (defaults to current UTC time)
            **claims: Extra claims (handle, email, ...)

        Returns:
            Encoded JWT string
        """
        issued_at = now or datetime.now(timezone.utc)
        payload: Dict[str, Any] = {
            **claims,
            "sub": subject,
            "type": ACCESS_TOKEN_TYPE,
            "iat": issued_at,
            "exp": issued_at + self.access_token_expire,
        }
        if self.issuer:
            payload["iss"] = self.issuer
        return jwt.encode(payload, self.secret, algorithm=self.algorithm)

    def verify_token(self, token: str) -> Dict[str, Any]:
        """
        Verify and decode an access token.

        Raises:
            ValueError: If the token is malformed, expired, or not an access token
        """
        try:
            payload = jwt.decode(
                token,
                self.secret,
                algorithms=[self.algorithm],
                issuer=self.issuer,
            )
        except JWTError as e:
            raise ValueError(f"Invalid token: {e}") from e

        if payload.get("type") != ACCESS_TOKEN_TYPE:
            raise ValueError("Invalid token: not an access token")

        return payload
