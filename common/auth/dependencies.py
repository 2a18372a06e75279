"""
FastAPI authentication dependencies.

Provides factory functions to create auth dependencies that can be
injected into route handlers. Tokens are verified with an AccessTokenSigner.

Example:
    from common.auth import AccessTokenSigner, create_auth_dependency

    signer = AccessTokenSigner(secret="your-secret")
    get_current_account_id = create_auth_dependency(lambda: signer)

    @app.get("/profile")
    async def get_profile(account_id: str = Depends(get_current_account_id)):
        return {"account_id": account_id}
"""

from typing import Callable, Optional

from fastapi import Header

from common.auth.jwt_auth import AccessTokenSigner
from common.utils.exceptions import UnauthorizedException


def _extract_bearer(authorization: Optional[str], scheme: str) -> Optional[str]:
    prefix = f"{scheme} "
    if not authorization or not authorization.startswith(prefix):
        return None
    return authorization[len(prefix):].strip() or None


def create_auth_dependency(
    get_signer: Callable[[], AccessTokenSigner],
    header_name: str = "Authorization",
    scheme: str = "Bearer",
):
    """
    Factory to create FastAPI auth dependencies.

    Args:
        get_signer: Callable that returns the AccessTokenSigner instance
        header_name: Header to extract token from (default: Authorization)
        scheme: Auth scheme prefix (default: Bearer)

    Returns:
        A FastAPI dependency function that returns the verified account ID
    """

    async def get_current_account_id(
        authorization: Optional[str] = Header(None, alias=header_name),
    ) -> str:
        """
        Extract and verify the account ID from the authorization header.

        Raises:
            UnauthorizedException: If token is missing, invalid, or expired
        """
        token = _extract_bearer(authorization, scheme)
        if not token:
            raise UnauthorizedException(
                message="Missing or malformed authorization header",
                code="UNAUTHORIZED",
            )

        try:
            payload = get_signer().verify_token(token)
        except ValueError:
            raise UnauthorizedException(message="Invalid or expired token", code="INVALID_TOKEN")

        account_id = payload.get("sub")
        if not account_id:
            raise UnauthorizedException(message="Token missing subject", code="INVALID_TOKEN")

        return account_id

    return get_current_account_id


def create_optional_auth_dependency(
    get_signer: Callable[[], AccessTokenSigner],
    header_name: str = "Authorization",
    scheme: str = "Bearer",
):
    """
    Factory to create optional auth dependency.

    Unlike create_auth_dependency, this returns None instead of raising
    when no valid token is provided. Useful for endpoints that work for
    both authenticated and anonymous callers.
    """

    async def get_optional_account_id(
        authorization: Optional[str] = Header(None, alias=header_name),
    ) -> Optional[str]:
        token = _extract_bearer(authorization, scheme)
        if not token:
            return None
        try:
            return get_signer().verify_token(token).get("sub")
        except ValueError:
            return None

    return get_optional_account_id
