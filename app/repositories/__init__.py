"""MongoDB repositories."""

from app.repositories.account_repository import AccountRepository
from app.repositories.errors import RepositoryError, UniquenessViolation
from app.repositories.subscriber_repository import SubscriberRepository

__all__ = [
    "AccountRepository",
    "SubscriberRepository",
    "RepositoryError",
    "UniquenessViolation",
]
