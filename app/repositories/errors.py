"""Persistence errors raised by repositories."""

from contextlib import contextmanager
from typing import Iterator, Optional

from pymongo.errors import DuplicateKeyError, PyMongoError


class RepositoryError(Exception):
    """A storage operation failed for an infrastructure reason."""


class UniquenessViolation(RepositoryError):
    """
    A write collided with a unique index.

    Attributes:
        field: Name of the unique field that collided ("handle", "email", ...),
            or None when the index could not be identified.
    """

    def __init__(self, field: Optional[str] = None):
        self.field = field
        super().__init__(f"Duplicate value for unique field: {field or 'unknown'}")


def duplicate_key_field(error: DuplicateKeyError) -> Optional[str]:
    """Name of the first field of the index a DuplicateKeyError refers to."""
    details = error.details or {}
    key_pattern = details.get("keyPattern") or details.get("keyValue") or {}
    for field in key_pattern:
        return field
    return None


@contextmanager
def storage_errors() -> Iterator[None]:
    """Re-raise driver errors as repository errors."""
    try:
        yield
    except DuplicateKeyError as e:
        raise UniquenessViolation(duplicate_key_field(e)) from e
    except PyMongoError as e:
        raise RepositoryError(str(e)) from e
