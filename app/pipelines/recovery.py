"""
Password recovery and password change pipelines.

Password reset initiation is enumeration-safe: the caller gets the same
answer for unknown, ineligible and eligible emails. The true outcome is
only logged.
"""

import logging
from typing import Optional

from common.auth.password_hasher import PasswordHasher
from common.utils.clock import Clock, utcnow
from common.utils.password import validate_password
from common.utils.result import Result
from app.errors import ErrorCode, fail, internal_errors_as_result, ok
from app.models.account import TokenPurpose, can_reset_password, normalize_email
from app.repositories.account_repository import AccountRepository
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.notifications.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

RESET_REQUESTED = {"sent": True}


@internal_errors_as_result("initiate_password_reset")
async def initiate_password_reset_pipeline(
    repository: AccountRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    email: Optional[str],
) -> Result:
    """
    Issue a password reset token if the email belongs to an eligible account.

    Returns:
        Result with {"sent": True} in every non-malformed case
    """
    normalized_email = normalize_email(email)
    if normalized_email is None:
        return fail(ErrorCode.INVALID_EMAIL)

    account = await repository.find_by_email(normalized_email)
    if account is None:
        logger.info("Password reset requested for unknown email")
        return ok(dict(RESET_REQUESTED))

    if not can_reset_password(account):
        logger.info(f"Password reset requested for ineligible account {account['_id']}")
        return ok(dict(RESET_REQUESTED))

    raw_token = await token_service.issue(
        account["_id"],
        TokenPurpose.PASSWORD_RESET,
        conditions={"email": normalized_email, "emailVerified": True},
    )
    if raw_token:
        notifier.send_password_reset(account, raw_token)
        logger.info(f"Password reset sent for account {account['_id']}")
    else:
        logger.info(f"Password reset skipped, account {account['_id']} changed meanwhile")

    return ok(dict(RESET_REQUESTED))


@internal_errors_as_result("complete_password_reset")
async def complete_password_reset_pipeline(
    hasher: PasswordHasher,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    token: Optional[str],
    new_password: str,
    clock: Clock = utcnow,
) -> Result:
    """
    Set a new password with a reset token.

    The token is consumed, the credential replaced and every session
    revoked in one update.

    Errors:
        WEAK_PASSWORD: new password rejected
        INVALID_TOKEN: missing, unknown or expired token
    """
    is_valid, errors = validate_password(new_password)
    if not is_valid:
        return fail(ErrorCode.WEAK_PASSWORD, "; ".join(errors))

    # Cheap lookup before bcrypt; the consume below stays authoritative.
    if not await token_service.is_live(TokenPurpose.PASSWORD_RESET, token):
        logger.info("Password reset rejected before hashing: no live token")
        return fail(ErrorCode.INVALID_TOKEN)

    credential_hash = await hasher.hash(new_password)
    now = clock()

    validation = await token_service.validate(
        TokenPurpose.PASSWORD_RESET,
        token,
        set_fields={
            "credentialHash": credential_hash,
            "sessions": [],
            "lastCredentialChangeAt": now,
        },
    )
    if not validation.ok:
        logger.info(f"Password reset rejected: {validation.reason.value}")
        return fail(ErrorCode.INVALID_TOKEN)

    account = validation.document
    logger.info(f"Password reset completed for account {account['_id']}")
    notifier.send_security_alert(account, "password_reset")

    return ok({"passwordReset": True})


@internal_errors_as_result("change_password")
async def change_password_pipeline(
    repository: AccountRepository,
    hasher: PasswordHasher,
    notifier: NotificationDispatcher,
    account_id: str,
    current_password: str,
    new_password: str,
    clock: Clock = utcnow,
) -> Result:
    """
    Change the password of a signed-in account and revoke all its sessions.

    The write is conditional on the credential hash that was verified, so a
    concurrent change makes this one fail instead of overwriting it.
    """
    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)

    if not await hasher.verify(current_password, account["credentialHash"]):
        return fail(ErrorCode.INVALID_CREDENTIALS, "Current password is incorrect")

    is_valid, errors = validate_password(new_password)
    if not is_valid:
        return fail(ErrorCode.WEAK_PASSWORD, "; ".join(errors))

    credential_hash = await hasher.hash(new_password)
    now = clock()

    updated = await repository.update(
        account["_id"],
        {
            "credentialHash": credential_hash,
            "sessions": [],
            "lastCredentialChangeAt": now,
            "updatedAt": now,
        },
        conditions={"credentialHash": account["credentialHash"]},
    )
    if updated is None:
        return fail(ErrorCode.INVALID_CREDENTIALS, "Password was changed concurrently")

    logger.info(f"Password changed for account {account['_id']}")
    notifier.send_security_alert(updated, "password_change")

    return ok({"passwordChanged": True})
