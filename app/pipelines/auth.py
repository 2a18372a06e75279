"""
Auth system pipeline functions.

Stateless orchestration logic for registration, login, refresh and logout.
Each pipeline returns a Result; infrastructure faults become INTERNAL_ERROR.
"""

import logging
from typing import Optional

from common.auth.password_hasher import PasswordHasher
from common.utils.clock import Clock, utcnow
from common.utils.password import validate_password
from common.utils.result import Result
from app.errors import ErrorCode, fail, internal_errors_as_result, ok
from app.models.account import (
    TokenPurpose,
    format_account_response,
    has_email,
    new_account_document,
    normalize_email,
    normalize_handle,
)
from app.repositories.account_repository import AccountRepository
from app.repositories.errors import UniquenessViolation
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.auth.session_manager import SessionGrant, SessionManager
from app.services.notifications.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

_CONFLICT_CODES = {
    "handle": ErrorCode.HANDLE_TAKEN,
    "email": ErrorCode.EMAIL_TAKEN,
}


def _session_response(grant: SessionGrant) -> dict:
    return {"account": format_account_response(grant.account), **grant.to_dict()}


@internal_errors_as_result("registration")
async def registration_pipeline(
    repository: AccountRepository,
    hasher: PasswordHasher,
    token_service: OneTimeTokenService,
    session_manager: SessionManager,
    notifier: NotificationDispatcher,
    handle: str,
    password: str,
    email: Optional[str] = None,
    acknowledged_no_recovery_email: bool = False,
    device: Optional[dict] = None,
    clock: Clock = utcnow,
) -> Result:
    """
    Orchestrates the account registration flow.

    Args:
        repository: Account persistence
        hasher: Password hasher
        token_service: One-time token service bound to accounts
        session_manager: For the initial session
        notifier: Sends the verification email
        handle: Unique account name
        password: Plain password
        email: Optional recovery/login email
        acknowledged_no_recovery_email: Required when no email is given
        device: {"userAgent", "ip"} of the client
        clock: Current-time source

    Returns:
        Result with account view and session credentials

    Errors:
        INVALID_HANDLE, INVALID_EMAIL, WEAK_PASSWORD: malformed input
        HANDLE_TAKEN, EMAIL_TAKEN: uniqueness conflicts, including races
        CHECKBOX_REQUIRED: no email and no acknowledgement
    """
    normalized_handle = normalize_handle(handle)
    if normalized_handle is None:
        return fail(
            ErrorCode.INVALID_HANDLE,
            "Name must be 3-50 characters: letters, digits, spaces and hyphens",
        )

    is_valid, errors = validate_password(password)
    if not is_valid:
        return fail(ErrorCode.WEAK_PASSWORD, "; ".join(errors))

    normalized_email = None
    if email is not None and email.strip():
        normalized_email = normalize_email(email)
        if normalized_email is None:
            return fail(ErrorCode.INVALID_EMAIL)

    if await repository.find_by_handle(normalized_handle):
        return fail(ErrorCode.HANDLE_TAKEN)

    if normalized_email:
        if await repository.find_by_email(normalized_email):
            return fail(ErrorCode.EMAIL_TAKEN)
    elif not acknowledged_no_recovery_email:
        return fail(ErrorCode.CHECKBOX_REQUIRED)

    credential_hash = await hasher.hash(password)

    verification_token = None
    stored_token = None
    if normalized_email:
        verification_token, stored_token = token_service.mint(TokenPurpose.EMAIL_VERIFICATION)

    document = new_account_document(
        handle=normalized_handle,
        credential_hash=credential_hash,
        email=normalized_email,
        now=clock(),
        email_verification_token=stored_token,
    )

    try:
        account = await repository.create(document)
    except UniquenessViolation as e:
        code = _CONFLICT_CODES.get(e.field)
        if code is None:
            raise
        logger.info(f"Registration lost a uniqueness race on {e.field}")
        return fail(code)

    logger.info(f"Account registered: {account['_id']}")

    if verification_token:
        notifier.send_verification(account, verification_token)

    grant = await session_manager.issue_session(account, device)
    if grant is None:
        return fail(ErrorCode.INTERNAL_ERROR)

    return ok({**_session_response(grant), "verificationRequired": normalized_email is not None})


@internal_errors_as_result("login")
async def login_pipeline(
    repository: AccountRepository,
    hasher: PasswordHasher,
    session_manager: SessionManager,
    notifier: NotificationDispatcher,
    identifier: str,
    password: str,
    device: Optional[dict] = None,
    allow_unverified: bool = False,
    clock: Clock = utcnow,
) -> Result:
    """
    Orchestrates the login flow.

    The identifier is an email when it contains "@", a handle otherwise.
    Unknown identifiers cost one bcrypt comparison like a wrong password.

    Errors:
        INVALID_INPUT: identifier or password missing
        INVALID_CREDENTIALS: unknown identifier or wrong password
        EMAIL_NOT_VERIFIED: account has an unverified email
    """
    if not identifier or not identifier.strip() or not password:
        return fail(ErrorCode.INVALID_INPUT, "Name or email and password are required")

    identifier = identifier.strip()
    if "@" in identifier:
        account = await repository.find_by_email(identifier.lower())
    else:
        account = await repository.find_by_handle(identifier)

    if account is None:
        await hasher.verify_dummy(password)
        return fail(ErrorCode.INVALID_CREDENTIALS)

    if not await hasher.verify(password, account["credentialHash"]):
        logger.info(f"Failed login for account {account['_id']}")
        return fail(ErrorCode.INVALID_CREDENTIALS)

    if has_email(account) and not account.get("emailVerified") and not allow_unverified:
        return fail(ErrorCode.EMAIL_NOT_VERIFIED)

    grant = await session_manager.issue_session(
        account, device, set_fields={"lastLoginAt": clock()}
    )
    if grant is None:
        return fail(ErrorCode.INVALID_CREDENTIALS)

    logger.info(f"Account logged in: {account['_id']}")

    if grant.account.get("emailVerified") and has_email(grant.account):
        notifier.send_security_alert(grant.account, "login", meta=device)

    return ok(_session_response(grant))


@internal_errors_as_result("refresh")
async def refresh_pipeline(
    session_manager: SessionManager,
    refresh_token: Optional[str],
    device: Optional[dict] = None,
) -> Result:
    """
    Rotate a refresh token.

    Missing, unknown and expired tokens all fail with INVALID_REFRESH_TOKEN.
    """
    grant, failure = await session_manager.rotate(refresh_token, device)
    if grant is None:
        logger.info(f"Refresh rejected: {failure.value if failure else 'unknown'}")
        return fail(ErrorCode.INVALID_REFRESH_TOKEN)
    return ok(_session_response(grant))


@internal_errors_as_result("logout")
async def logout_pipeline(
    session_manager: SessionManager,
    refresh_token: Optional[str] = None,
) -> Result:
    """Revoke one session. Idempotent: a missing or unknown token still succeeds."""
    if refresh_token:
        await session_manager.revoke_one(refresh_token)
    return ok({"loggedOut": True})


@internal_errors_as_result("logout_all")
async def logout_all_pipeline(
    session_manager: SessionManager,
    account_id: str,
) -> Result:
    await session_manager.revoke_all(account_id)
    return ok({"loggedOut": True})


@internal_errors_as_result("get_account")
async def get_account_pipeline(
    repository: AccountRepository,
    account_id: str,
) -> Result:
    account = await repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)
    return ok({"account": format_account_response(account)})
