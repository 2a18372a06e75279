"""
Account document model.

Accounts are stored as plain dicts in the `accounts` collection with
camelCase keys. One-time tokens are subdocuments of the form
`{"hash": str, "expiresAt": datetime}` so that the hash and its expiry are
always written and unset together.
"""

import re
from datetime import datetime
from enum import Enum
from typing import Optional

from bson import ObjectId
from email_validator import EmailNotValidError, validate_email


class TokenPurpose(str, Enum):
    """One-time token purposes. Each value is the document field it occupies."""

    EMAIL_VERIFICATION = "emailVerificationToken"
    PASSWORD_RESET = "passwordResetToken"
    EMAIL_CHANGE = "emailChangeToken"
    NEWSLETTER_CONFIRMATION = "confirmationToken"


HANDLE_MIN_LENGTH = 3
HANDLE_MAX_LENGTH = 50
HANDLE_PATTERN = re.compile(r"^[a-zA-ZäöüÄÖÜß0-9\s-]+$")


def new_account_document(
    handle: str,
    credential_hash: str,
    email: Optional[str],
    now: datetime,
    email_verification_token: Optional[dict] = None,
) -> dict:
    """
    Build the document for a freshly registered account.

    An account without an email has nothing to verify, so it starts out
    verified and with the no-recovery acknowledgement recorded.
    """
    return {
        "_id": ObjectId(),
        "handle": handle,
        "email": email,
        "credentialHash": credential_hash,
        "emailVerified": email is None,
        "acknowledgedNoRecoveryEmail": email is None,
        "emailVerificationToken": email_verification_token,
        "passwordResetToken": None,
        "emailChangeToken": None,
        "sessions": [],
        "createdAt": now,
        "updatedAt": now,
        "lastLoginAt": None,
        "lastCredentialChangeAt": now,
    }


def has_email(account: dict) -> bool:
    return bool(account.get("email"))


def can_reset_password(account: dict) -> bool:
    """Password recovery needs a verified email address."""
    return has_email(account) and bool(account.get("emailVerified"))


def pending_email(account: dict) -> Optional[str]:
    token = account.get("emailChangeToken")
    return token.get("target") if token else None


def format_account_response(account: dict) -> dict:
    """Public view of an account. Never exposes hashes or sessions."""
    return {
        "id": str(account["_id"]),
        "handle": account["handle"],
        "email": account.get("email"),
        "emailVerified": bool(account.get("emailVerified")),
        "hasEmail": has_email(account),
        "canResetPassword": can_reset_password(account),
        "acknowledgedNoRecoveryEmail": bool(account.get("acknowledgedNoRecoveryEmail")),
        "createdAt": account.get("createdAt"),
        "updatedAt": account.get("updatedAt"),
        "lastLoginAt": account.get("lastLoginAt"),
    }


def format_email_status(account: dict) -> dict:
    return {
        "hasEmail": has_email(account),
        "email": account.get("email"),
        "emailVerified": bool(account.get("emailVerified")),
        "pendingEmail": pending_email(account),
        "canResetPassword": can_reset_password(account),
        "acknowledgedNoRecoveryEmail": bool(account.get("acknowledgedNoRecoveryEmail")),
    }


# =============================================================================
# Field normalisation
# =============================================================================

def normalize_handle(handle: Optional[str]) -> Optional[str]:
    """
    Trim a handle and check its shape.

    Returns:
        The trimmed handle, or None if it is not acceptable
    """
    if not isinstance(handle, str):
        return None
    handle = handle.strip()
    if not HANDLE_MIN_LENGTH <= len(handle) <= HANDLE_MAX_LENGTH:
        return None
    if not HANDLE_PATTERN.match(handle):
        return None
    return handle


def normalize_email(email: Optional[str]) -> Optional[str]:
    """
    Validate an email address and return it lowercased.

    Returns:
        The normalised address, or None if it is not a valid address
    """
    if not isinstance(email, str) or not email.strip():
        return None
    try:
        validated = validate_email(email.strip(), check_deliverability=False)
    except EmailNotValidError:
        return None
    return validated.normalized.lower()
