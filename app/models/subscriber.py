"""Newsletter subscriber document model (double opt-in)."""

from datetime import datetime
from typing import Optional

from bson import ObjectId

SUPPORTED_LANGUAGES = ("de", "en", "ar", "ka")
DEFAULT_LANGUAGE = "de"


def normalize_language(language: Optional[str]) -> str:
    if language in SUPPORTED_LANGUAGES:
        return language
    return DEFAULT_LANGUAGE


def new_subscriber_fields(
    language: str,
    confirmation_token: dict,
    unsubscribe_hash: str,
    now: datetime,
    owner_account_id: Optional[str] = None,
) -> dict:
    """Fields written when an unconfirmed subscriber is created or refreshed."""
    fields = {
        "language": language,
        "confirmationToken": confirmation_token,
        "unsubscribeToken": {"hash": unsubscribe_hash},
        "updatedAt": now,
    }
    if owner_account_id:
        fields["ownerAccountId"] = ObjectId(owner_account_id)
    return fields


def format_subscriber_status(subscriber: Optional[dict]) -> dict:
    if not subscriber:
        return {"subscribed": False, "pending": False, "subscribedAt": None}
    confirmed = bool(subscriber.get("confirmed"))
    return {
        "subscribed": confirmed,
        "pending": not confirmed,
        "subscribedAt": subscriber.get("subscribedAt"),
    }
