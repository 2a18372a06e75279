from app.services.auth.one_time_tokens import OneTimeTokenService, TokenFailure, TokenValidation
from app.services.auth.session_manager import SessionGrant, SessionManager
from app.services.auth.token_hasher import TokenHasher

__all__ = [
    "OneTimeTokenService",
    "TokenFailure",
    "TokenValidation",
    "SessionGrant",
    "SessionManager",
    "TokenHasher",
]
