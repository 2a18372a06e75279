"""
Authentication module - password hashing, access tokens, FastAPI dependencies.
"""

from common.auth.jwt_auth import AccessTokenSigner
from common.auth.password_hasher import PasswordHasher, CredentialHashError
from common.auth.dependencies import create_auth_dependency, create_optional_auth_dependency

__all__ = [
    "AccessTokenSigner",
    "PasswordHasher",
    "CredentialHashError",
    "create_auth_dependency",
    "create_optional_auth_dependency",
]
