"""
Utilities module - Common helpers for API responses, exceptions, results, and validation.
"""

from common.utils.responses import success_response, error_response
from common.utils.exceptions import (
    APIException,
    UnauthorizedException,
    ForbiddenException,
    NotFoundException,
    ConflictException,
    ValidationException,
    InternalServerException,
    exception_for,
    raise_for_result,
)
from common.utils.result import ErrorCategory, OperationError, Result
from common.utils.clock import Clock, utcnow
from common.utils.password import validate_password, check_common_passwords

__all__ = [
    "success_response",
    "error_response",
    "APIException",
    "UnauthorizedException",
    "ForbiddenException",
    "NotFoundException",
    "ConflictException",
    "ValidationException",
    "InternalServerException",
    "exception_for",
    "raise_for_result",
    "ErrorCategory",
    "OperationError",
    "Result",
    "Clock",
    "utcnow",
    "validate_password",
    "check_common_passwords",
]
