"""
Email verification and email address management pipelines.

Verifying, changing and adding an email all go through one-time tokens.
Change and add share the `emailChangeToken` field, which also carries the
pending target address; confirming adopts that target in the same update
that consumes the token.
"""

import logging
from typing import Optional

from common.auth.password_hasher import PasswordHasher
from common.utils.clock import Clock, utcnow
from common.utils.result import Result
from app.errors import ErrorCode, fail, internal_errors_as_result, ok
from app.models.account import (
    TokenPurpose,
    format_account_response,
    format_email_status,
    has_email,
    normalize_email,
    pending_email,
)
from app.repositories.account_repository import AccountRepository
from app.repositories.errors import UniquenessViolation
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.auth.token_hasher import TokenHasher
from app.services.notifications.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

VERIFICATION_REQUESTED = {"sent": True}


@internal_errors_as_result("verify_email")
async def verify_email_pipeline(
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    token: Optional[str],
) -> Result:
    """Mark an account's email as verified. Sends the welcome email."""
    validation = await token_service.validate(
        TokenPurpose.EMAIL_VERIFICATION,
        token,
        set_fields={"emailVerified": True},
        conditions={"email": {"$ne": None}},
    )
    if not validation.ok:
        logger.info(f"Email verification rejected: {validation.reason.value}")
        return fail(ErrorCode.INVALID_TOKEN)

    account = validation.document
    logger.info(f"Email verified for account {account['_id']}")
    notifier.send_welcome(account)

    return ok({"account": format_account_response(account)})


@internal_errors_as_result("resend_verification")
async def resend_verification_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    email: Optional[str],
) -> Result:
    """
    Re-issue the verification token for an unverified account.

    Returns the same success shape whether or not the email is known.
    """
    normalized_email = normalize_email(email)
    if normalized_email is None:
        return fail(ErrorCode.INVALID_EMAIL)

    account = await repository.find_by_email(normalized_email)
    if account is None:
        logger.info("Verification resend requested for unknown email")
        return ok(dict(VERIFICATION_REQUESTED))

    if account.get("emailVerified"):
        logger.info(f"Verification resend requested for verified account {account['_id']}")
        return ok(dict(VERIFICATION_REQUESTED))

    raw_token = await token_service.issue(
        account["_id"],
        TokenPurpose.EMAIL_VERIFICATION,
        conditions={"email": normalized_email, "emailVerified": False},
    )
    if raw_token:
        notifier.send_verification(account, raw_token)
        logger.info(f"Verification email resent for account {account['_id']}")

    return ok(dict(VERIFICATION_REQUESTED))


# =============================================================================
# Change email
# =============================================================================

@internal_errors_as_result("change_email")
async def change_email_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    account_id: str,
    new_email: Optional[str],
) -> Result:
    """
    Start replacing the email of an account that already has one.

    The new address only takes effect once the link sent to it is confirmed.
    """
    normalized_email = normalize_email(new_email)
    if normalized_email is None:
        return fail(ErrorCode.INVALID_EMAIL)

    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)

    if not has_email(account):
        return fail(ErrorCode.NO_EMAIL, "Account has no email address, add one instead")

    if normalized_email == account["email"]:
        return fail(ErrorCode.SAME_EMAIL)

    if await repository.find_by_email(normalized_email):
        return fail(ErrorCode.EMAIL_TAKEN)

    raw_token = await token_service.issue(
        account["_id"],
        TokenPurpose.EMAIL_CHANGE,
        conditions={"email": {"$ne": None}},
        target=normalized_email,
    )
    if raw_token is None:
        return fail(ErrorCode.NO_EMAIL)

    notifier.send_email_change_verification(account, raw_token, normalized_email)
    logger.info(f"Email change requested for account {account['_id']}")

    return ok({"pendingEmail": normalized_email, "sent": True})


@internal_errors_as_result("confirm_email_change")
async def confirm_email_change_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    token: Optional[str],
) -> Result:
    """
    Swap the account email to the pending target.

    The previous address is read beforehand to alert its owner, and the
    swap only applies while the account still has that address. Reset and
    verification tokens mailed to the previous address are cleared with it.
    """
    previous_email = None
    if token:
        holder = await repository.find_by_token_hash(
            TokenPurpose.EMAIL_CHANGE, TokenHasher.hash_token(token)
        )
        previous_email = holder.get("email") if holder else None

    try:
        validation = await token_service.validate(
            TokenPurpose.EMAIL_CHANGE,
            token,
            set_fields={
                "emailVerified": True,
                "passwordResetToken": None,
                "emailVerificationToken": None,
            },
            conditions={"email": previous_email if previous_email else {"$ne": None}},
            adopt_pending_email=True,
        )
    except UniquenessViolation:
        logger.info("Email change lost a uniqueness race on the target address")
        return fail(ErrorCode.EMAIL_TAKEN)

    if not validation.ok:
        logger.info(f"Email change rejected: {validation.reason.value}")
        return fail(ErrorCode.INVALID_TOKEN)

    account = validation.document
    logger.info(f"Email changed for account {account['_id']}")
    notifier.send_security_alert(
        account,
        "email_change",
        meta={"newEmail": account["email"]},
        to_email=previous_email,
    )

    return ok({"account": format_account_response(account)})


# =============================================================================
# Add / remove email
# =============================================================================

@internal_errors_as_result("add_email")
async def add_email_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    account_id: str,
    email: Optional[str],
) -> Result:
    """Start adding an email to an account registered without one."""
    normalized_email = normalize_email(email)
    if normalized_email is None:
        return fail(ErrorCode.INVALID_EMAIL)

    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)

    if has_email(account):
        return fail(ErrorCode.EMAIL_ALREADY_SET)

    if await repository.find_by_email(normalized_email):
        return fail(ErrorCode.EMAIL_TAKEN)

    raw_token = await token_service.issue(
        account["_id"],
        TokenPurpose.EMAIL_CHANGE,
        conditions={"email": None},
        target=normalized_email,
    )
    if raw_token is None:
        return fail(ErrorCode.EMAIL_ALREADY_SET)

    notifier.send_email_change_verification(account, raw_token, normalized_email, adding=True)
    logger.info(f"Email add requested for account {account['_id']}")

    return ok({"pendingEmail": normalized_email, "sent": True})


@internal_errors_as_result("confirm_add_email")
async def confirm_add_email_pipeline(
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    token: Optional[str],
) -> Result:
    """Set the pending address as the account's first email, verified."""
    try:
        validation = await token_service.validate(
            TokenPurpose.EMAIL_CHANGE,
            token,
            set_fields={"emailVerified": True, "acknowledgedNoRecoveryEmail": False},
            conditions={"email": None},
            adopt_pending_email=True,
        )
    except UniquenessViolation:
        logger.info("Email add lost a uniqueness race on the target address")
        return fail(ErrorCode.EMAIL_TAKEN)

    if not validation.ok:
        logger.info(f"Email add rejected: {validation.reason.value}")
        return fail(ErrorCode.INVALID_TOKEN)

    account = validation.document
    logger.info(f"Email added for account {account['_id']}")
    notifier.send_welcome(account)

    return ok({"account": format_account_response(account)})


@internal_errors_as_result("resend_add_email")
async def resend_add_email_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    account_id: str,
) -> Result:
    """Re-send the confirmation link for a pending first email."""
    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)

    if has_email(account):
        return fail(ErrorCode.EMAIL_ALREADY_SET)

    target = pending_email(account)
    if not target:
        return fail(ErrorCode.NO_PENDING_EMAIL)

    raw_token = await token_service.issue(
        account["_id"],
        TokenPurpose.EMAIL_CHANGE,
        conditions={"email": None},
        target=target,
    )
    if raw_token is None:
        return fail(ErrorCode.EMAIL_ALREADY_SET)

    notifier.send_email_change_verification(account, raw_token, target, adding=True)

    return ok({"pendingEmail": target, "sent": True})


@internal_errors_as_result("remove_email")
async def remove_email_pipeline(
    repository: AccountRepository,
    hasher: PasswordHasher,
    notifier: NotificationDispatcher,
    account_id: str,
    password: str,
    acknowledged_no_recovery_email: bool,
    clock: Clock = utcnow,
) -> Result:
    """
    Remove the email of an account after re-authentication.

    The caller must acknowledge that password recovery becomes impossible.
    Pending tokens tied to the old address are cleared with it.
    """
    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)

    if not has_email(account):
        return fail(ErrorCode.NO_EMAIL)

    if not acknowledged_no_recovery_email:
        return fail(ErrorCode.CHECKBOX_REQUIRED)

    if not await hasher.verify(password, account["credentialHash"]):
        return fail(ErrorCode.INVALID_CREDENTIALS, "Password is incorrect")

    previous_email = account["email"]
    updated = await repository.update(
        account["_id"],
        {
            "email": None,
            "emailVerified": True,
            "acknowledgedNoRecoveryEmail": True,
            "emailVerificationToken": None,
            "passwordResetToken": None,
            "emailChangeToken": None,
            "updatedAt": clock(),
        },
        conditions={"email": previous_email},
    )
    if updated is None:
        return fail(ErrorCode.NO_EMAIL)

    logger.info(f"Email removed from account {account['_id']}")
    notifier.send_security_alert(updated, "email_removed", to_email=previous_email)

    return ok({"account": format_account_response(updated)})


@internal_errors_as_result("email_status")
async def email_status_pipeline(
    repository: AccountRepository,
    account_id: str,
) -> Result:
    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)
    return ok(format_email_status(account))
