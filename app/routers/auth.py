"""
FastAPI router for Auth system endpoints.

Provides registration, login, token refresh, logout, email verification
and password recovery. Business rules live in the pipelines.
"""

import logging
from typing import Annotated, Optional

from fastapi import APIRouter, Depends, Request

from common.utils import raise_for_result, success_response
from app.dependencies import (
    get_account_repository,
    get_account_token_service,
    get_device,
    get_notifier,
    get_password_hasher,
    get_session_manager,
    get_settings,
    require_account_id,
)
from app.pipelines import auth as auth_pipelines
from app.pipelines import email as email_pipelines
from app.pipelines import recovery as recovery_pipelines
from app.schemas.auth import (
    EmailRequest,
    LoginRequest,
    LogoutRequest,
    RefreshRequest,
    RegisterRequest,
    ResetPasswordRequest,
)

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/auth", tags=["auth"])


@router.post("/register", status_code=201)
async def register(request: Request, body: RegisterRequest):
    """
    Register a new account.

    An email is optional; without one the caller must acknowledge that
    password recovery is impossible.
    """
    result = await auth_pipelines.registration_pipeline(
        repository=get_account_repository(),
        hasher=get_password_hasher(),
        token_service=get_account_token_service(),
        session_manager=get_session_manager(),
        notifier=get_notifier(),
        handle=body.handle,
        password=body.password,
        email=body.email,
        acknowledged_no_recovery_email=body.acknowledgedNoRecoveryEmail,
        device=get_device(request),
    )
    raise_for_result(result)

    message = (
        "Registration successful. Please verify your email."
        if result.value["verificationRequired"]
        else "Registration successful."
    )
    return success_response(result.value, message=message)


@router.post("/login")
async def login(request: Request, body: LoginRequest):
    """Log in with account name or email and password."""
    result = await auth_pipelines.login_pipeline(
        repository=get_account_repository(),
        hasher=get_password_hasher(),
        session_manager=get_session_manager(),
        notifier=get_notifier(),
        identifier=body.identifier,
        password=body.password,
        device=get_device(request),
        allow_unverified=get_settings().allows_unverified_login(),
    )
    raise_for_result(result)
    return success_response(result.value)


@router.post("/refresh")
async def refresh(request: Request, body: RefreshRequest):
    """Exchange a refresh token for a new token pair."""
    result = await auth_pipelines.refresh_pipeline(
        session_manager=get_session_manager(),
        refresh_token=body.refreshToken,
        device=get_device(request),
    )
    raise_for_result(result)
    return success_response(result.value)


@router.post("/logout")
async def logout(body: Optional[LogoutRequest] = None):
    """End the session of a refresh token. Always succeeds."""
    result = await auth_pipelines.logout_pipeline(
        session_manager=get_session_manager(),
        refresh_token=body.refreshToken if body else None,
    )
    raise_for_result(result)
    return success_response(result.value, message="Logged out")


@router.post("/logout-all")
async def logout_all(account_id: Annotated[str, Depends(require_account_id)]):
    """End every session of the signed-in account."""
    result = await auth_pipelines.logout_all_pipeline(
        session_manager=get_session_manager(),
        account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value, message="Logged out on all devices")


@router.get("/verify-email")
async def verify_email(token: Optional[str] = None):
    result = await email_pipelines.verify_email_pipeline(
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        token=token,
    )
    raise_for_result(result)
    return success_response(result.value, message="Email verified")


@router.post("/resend-verification")
async def resend_verification(body: EmailRequest):
    """Re-send the verification email. Same response for any address."""
    result = await email_pipelines.resend_verification_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        email=body.email,
    )
    raise_for_result(result)
    return success_response(
        result.value,
        message="If the address belongs to an unverified account, a new link has been sent.",
    )


@router.post("/forgot-password")
async def forgot_password(body: EmailRequest):
    """Request a password reset link. Same response for any address."""
    result = await recovery_pipelines.initiate_password_reset_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        email=body.email,
    )
    raise_for_result(result)
    return success_response(
        result.value,
        message="If the address belongs to an eligible account, a reset link has been sent.",
    )


@router.post("/reset-password")
async def reset_password(body: ResetPasswordRequest):
    result = await recovery_pipelines.complete_password_reset_pipeline(
        hasher=get_password_hasher(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        token=body.token,
        new_password=body.newPassword,
    )
    raise_for_result(result)
    return success_response(result.value, message="Password reset. Please log in again.")
