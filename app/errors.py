"""
Error codes for account, session, and subscription operations.

Every code belongs to one ErrorCategory. Token failures deliberately share
a single code (INVALID_TOKEN) so callers cannot tell a missing, unknown,
or expired token apart.
"""

import functools
import logging
from enum import Enum
from typing import Any, Awaitable, Callable, Optional, TypeVar

from common.auth.password_hasher import CredentialHashError
from common.utils.result import ErrorCategory, OperationError, Result
from app.repositories.errors import RepositoryError

logger = logging.getLogger(__name__)

F = TypeVar("F", bound=Callable[..., Awaitable[Result]])


class ErrorCode(str, Enum):
    # Validation
    INVALID_INPUT = "INVALID_INPUT"
    INVALID_HANDLE = "INVALID_HANDLE"
    INVALID_EMAIL = "INVALID_EMAIL"
    WEAK_PASSWORD = "WEAK_PASSWORD"
    SAME_EMAIL = "SAME_EMAIL"

    # Conflict
    HANDLE_TAKEN = "HANDLE_TAKEN"
    EMAIL_TAKEN = "EMAIL_TAKEN"
    EMAIL_ALREADY_SET = "EMAIL_ALREADY_SET"

    # Unauthorized
    INVALID_CREDENTIALS = "INVALID_CREDENTIALS"
    INVALID_TOKEN = "INVALID_TOKEN"
    INVALID_REFRESH_TOKEN = "INVALID_REFRESH_TOKEN"

    # Forbidden
    CHECKBOX_REQUIRED = "CHECKBOX_REQUIRED"
    EMAIL_NOT_VERIFIED = "EMAIL_NOT_VERIFIED"
    NO_EMAIL = "NO_EMAIL"
    NO_PENDING_EMAIL = "NO_PENDING_EMAIL"

    # Not found
    ACCOUNT_NOT_FOUND = "ACCOUNT_NOT_FOUND"

    # Internal
    INTERNAL_ERROR = "INTERNAL_ERROR"

    @property
    def category(self) -> ErrorCategory:
        return _CATEGORIES[self]

    @property
    def default_message(self) -> str:
        return _MESSAGES[self]


_CATEGORIES = {
    ErrorCode.INVALID_INPUT: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_HANDLE: ErrorCategory.VALIDATION,
    ErrorCode.INVALID_EMAIL: ErrorCategory.VALIDATION,
    ErrorCode.WEAK_PASSWORD: ErrorCategory.VALIDATION,
    ErrorCode.SAME_EMAIL: ErrorCategory.VALIDATION,
    ErrorCode.HANDLE_TAKEN: ErrorCategory.CONFLICT,
    ErrorCode.EMAIL_TAKEN: ErrorCategory.CONFLICT,
    ErrorCode.EMAIL_ALREADY_SET: ErrorCategory.CONFLICT,
    ErrorCode.INVALID_CREDENTIALS: ErrorCategory.UNAUTHORIZED,
    ErrorCode.INVALID_TOKEN: ErrorCategory.UNAUTHORIZED,
    ErrorCode.INVALID_REFRESH_TOKEN: ErrorCategory.UNAUTHORIZED,
    ErrorCode.CHECKBOX_REQUIRED: ErrorCategory.FORBIDDEN,
    ErrorCode.EMAIL_NOT_VERIFIED: ErrorCategory.FORBIDDEN,
    ErrorCode.NO_EMAIL: ErrorCategory.FORBIDDEN,
    ErrorCode.NO_PENDING_EMAIL: ErrorCategory.FORBIDDEN,
    ErrorCode.ACCOUNT_NOT_FOUND: ErrorCategory.NOT_FOUND,
    ErrorCode.INTERNAL_ERROR: ErrorCategory.INTERNAL,
}

_MESSAGES = {
    ErrorCode.INVALID_INPUT: "Invalid input",
    ErrorCode.INVALID_HANDLE: "Invalid name",
    ErrorCode.INVALID_EMAIL: "Invalid email address",
    ErrorCode.WEAK_PASSWORD: "Password does not meet the requirements",
    ErrorCode.SAME_EMAIL: "New email must differ from the current one",
    ErrorCode.HANDLE_TAKEN: "This name is already taken",
    ErrorCode.EMAIL_TAKEN: "This email is already registered",
    ErrorCode.EMAIL_ALREADY_SET: "Account already has an email address, use email change instead",
    ErrorCode.INVALID_CREDENTIALS: "Invalid credentials",
    ErrorCode.INVALID_TOKEN: "Invalid or expired token",
    ErrorCode.INVALID_REFRESH_TOKEN: "Invalid or expired refresh token",
    ErrorCode.CHECKBOX_REQUIRED: (
        "Please confirm that you understand password reset is impossible without an email"
    ),
    ErrorCode.EMAIL_NOT_VERIFIED: "Email not verified. Please confirm your email address.",
    ErrorCode.NO_EMAIL: "Account has no email address",
    ErrorCode.NO_PENDING_EMAIL: "No pending email confirmation",
    ErrorCode.ACCOUNT_NOT_FOUND: "Account not found",
    ErrorCode.INTERNAL_ERROR: "Internal server error",
}


def fail(code: ErrorCode, message: Optional[str] = None) -> Result:
    """Build a failed Result for an error code."""
    return Result.failure(
        OperationError(
            code=code.value,
            message=message or code.default_message,
            category=code.category,
        )
    )


def ok(value: Any = None) -> Result:
    """Build a successful Result."""
    return Result.success(value)


def internal_errors_as_result(operation: str) -> Callable[[F], F]:
    """
    Turn infrastructure faults of an operation into INTERNAL_ERROR results.

    Storage and hashing failures are logged with their traceback; the
    caller only sees a generic message.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        async def wrapper(*args, **kwargs):
            try:
                return await func(*args, **kwargs)
            except (RepositoryError, CredentialHashError):
                logger.exception(f"{operation} failed with an internal error")
                return fail(ErrorCode.INTERNAL_ERROR)

        return wrapper  # type: ignore[return-value]

    return decorator
