"""
HTTP exceptions with error codes.

Extends FastAPI's HTTPException with standardized error codes and maps
failed operation Results onto them, so routers can stay free of
status-code decisions.

Example:
    from common.utils.exceptions import raise_for_result

    @router.post("/login")
    async def login(body: LoginRequest):
        result = await login_pipeline(...)
        raise_for_result(result)
        return success_response(result.value)
"""

from typing import Any, Dict, Optional, Type

from fastapi import HTTPException

from common.utils.result import ErrorCategory, OperationError, Result


class APIException(HTTPException):
    """
    Base API exception with error code support.

    Provides consistent error response format across the API.
    """

    def __init__(
        self,
        status_code: int,
        message: str,
        code: Optional[str] = None,
        details: Optional[Any] = None,
        headers: Optional[Dict[str, str]] = None,
    ):
        """
        Create an API exception.

        Args:
            status_code: HTTP status code
            message: Human-readable error message
            code: Machine-readable error code
            details: Additional error details
            headers: Optional response headers
        """
        detail: Dict[str, Any] = {"message": message}

        if code:
            detail["code"] = code

        if details is not None:
            detail["details"] = details

        super().__init__(
            status_code=status_code,
            detail=detail,
            headers=headers,
        )


class UnauthorizedException(APIException):
    """401 Unauthorized - Missing or invalid authentication."""

    def __init__(
        self,
        message: str = "Unauthorized",
        code: str = "UNAUTHORIZED",
        details: Optional[Any] = None,
    ):
        super().__init__(401, message, code, details, headers={"WWW-Authenticate": "Bearer"})


class ForbiddenException(APIException):
    """403 Forbidden - Valid auth but the current state disallows the operation."""

    def __init__(
        self,
        message: str = "Forbidden",
        code: str = "FORBIDDEN",
        details: Optional[Any] = None,
    ):
        super().__init__(403, message, code, details)


class NotFoundException(APIException):
    """404 Not Found - Resource doesn't exist."""

    def __init__(
        self,
        message: str = "Not found",
        code: str = "NOT_FOUND",
        details: Optional[Any] = None,
    ):
        super().__init__(404, message, code, details)


class ConflictException(APIException):
    """409 Conflict - Resource already exists or state conflict."""

    def __init__(
        self,
        message: str = "Conflict",
        code: str = "CONFLICT",
        details: Optional[Any] = None,
    ):
        super().__init__(409, message, code, details)


class ValidationException(APIException):
    """422 Validation Error - Request validation failed."""

    def __init__(
        self,
        message: str = "Validation error",
        code: str = "VALIDATION_ERROR",
        details: Optional[Any] = None,
    ):
        super().__init__(422, message, code, details)


class InternalServerException(APIException):
    """500 Internal Server Error - Unexpected server error."""

    def __init__(
        self,
        message: str = "Internal server error",
        code: str = "INTERNAL_ERROR",
        details: Optional[Any] = None,
    ):
        super().__init__(500, message, code, details)


_CATEGORY_EXCEPTIONS: Dict[ErrorCategory, Type[APIException]] = {
    ErrorCategory.VALIDATION: ValidationException,
    ErrorCategory.CONFLICT: ConflictException,
    ErrorCategory.UNAUTHORIZED: UnauthorizedException,
    ErrorCategory.FORBIDDEN: ForbiddenException,
    ErrorCategory.NOT_FOUND: NotFoundException,
    ErrorCategory.INTERNAL: InternalServerException,
}


def exception_for(error: OperationError) -> APIException:
    """Build the HTTP exception matching an operation error's category."""
    exception_class = _CATEGORY_EXCEPTIONS.get(error.category, InternalServerException)
    return exception_class(message=error.message, code=error.code)


def raise_for_result(result: Result) -> None:
    """
    Raise the matching APIException if a Result failed.

    Args:
        result: Result returned by a service operation

    Raises:
        APIException: When result.ok is False
    """
    if not result.ok:
        raise exception_for(result.error)
