"""
Tagged operation results.

Service operations return a Result instead of raising for expected
outcomes (bad credentials, taken handles, expired tokens). Exceptions are
reserved for infrastructure faults.

Example:
    from common.utils.result import Result, ErrorCategory, OperationError

    async def do_something() -> Result:
        if not allowed:
            return Result.failure(OperationError(
                code="FORBIDDEN", message="Not allowed", category=ErrorCategory.FORBIDDEN
            ))
        return Result.success({"done": True})

    result = await do_something()
    if result.ok:
        print(result.value)
    else:
        print(result.error.code)
"""

from dataclasses import dataclass
from enum import Enum
from typing import Any, Dict, Generic, Optional, TypeVar

T = TypeVar("T")


class ErrorCategory(str, Enum):
    """Coarse error classes shared by every operation."""

    VALIDATION = "VALIDATION"
    CONFLICT = "CONFLICT"
    UNAUTHORIZED = "UNAUTHORIZED"
    FORBIDDEN = "FORBIDDEN"
    NOT_FOUND = "NOT_FOUND"
    INTERNAL = "INTERNAL"


@dataclass(frozen=True)
class OperationError:
    """Machine-readable failure of an operation."""

    code: str
    message: str
    category: ErrorCategory

    def to_dict(self) -> Dict[str, Any]:
        return {
            "code": self.code,
            "message": self.message,
            "category": self.category.value,
        }


@dataclass(frozen=True)
class Result(Generic[T]):
    """
    Either a success value or an OperationError, never both.

    Use Result.success() / Result.failure() instead of the constructor.
    """

    value: Optional[T] = None
    error: Optional[OperationError] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    @classmethod
    def success(cls, value: Optional[T] = None) -> "Result[T]":
        return cls(value=value)

    @classmethod
    def failure(cls, error: OperationError) -> "Result[T]":
        return cls(error=error)
