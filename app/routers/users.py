"""
FastAPI router for the signed-in account: profile view, password change
and email address management.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from common.utils import raise_for_result, success_response
from app.dependencies import (
    get_account_repository,
    get_account_token_service,
    get_notifier,
    get_password_hasher,
    require_account_id,
)
from app.pipelines import auth as auth_pipelines
from app.pipelines import email as email_pipelines
from app.pipelines import recovery as recovery_pipelines
from app.schemas.auth import (
    ChangeEmailRequest,
    ChangePasswordRequest,
    EmailRequest,
    RemoveEmailRequest,
    TokenRequest,
)

router = APIRouter(prefix="/users", tags=["users"])

AccountId = Annotated[str, Depends(require_account_id)]


@router.get("/me")
async def get_me(account_id: AccountId):
    result = await auth_pipelines.get_account_pipeline(
        repository=get_account_repository(),
        account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value)


@router.post("/change-password")
async def change_password(account_id: AccountId, body: ChangePasswordRequest):
    """Change the password. Every session is revoked afterwards."""
    result = await recovery_pipelines.change_password_pipeline(
        repository=get_account_repository(),
        hasher=get_password_hasher(),
        notifier=get_notifier(),
        account_id=account_id,
        current_password=body.currentPassword,
        new_password=body.newPassword,
    )
    raise_for_result(result)
    return success_response(result.value, message="Password changed. Please log in again.")


# =============================================================================
# Email management
# =============================================================================

@router.get("/email-status")
async def email_status(account_id: AccountId):
    result = await email_pipelines.email_status_pipeline(
        repository=get_account_repository(),
        account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value)


@router.post("/change-email")
async def change_email(account_id: AccountId, body: ChangeEmailRequest):
    result = await email_pipelines.change_email_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        account_id=account_id,
        new_email=body.newEmail,
    )
    raise_for_result(result)
    return success_response(result.value, message="Confirmation link sent to the new address")


@router.get("/verify-email-change")
async def verify_email_change(token: Optional[str] = None):
    result = await email_pipelines.confirm_email_change_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        token=token,
    )
    raise_for_result(result)
    return success_response(result.value, message="Email changed")


@router.post("/add-email")
async def add_email(account_id: AccountId, body: EmailRequest):
    result = await email_pipelines.add_email_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        account_id=account_id,
        email=body.email,
    )
    raise_for_result(result)
    return success_response(result.value, message="Confirmation link sent")


async def _confirm_add_email(token: Optional[str]):
    result = await email_pipelines.confirm_add_email_pipeline(
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        token=token,
    )
    raise_for_result(result)
    return success_response(result.value, message="Email added")


@router.get("/verify-add-email")
async def verify_add_email_get(token: Optional[str] = None):
    return await _confirm_add_email(token)


@router.post("/verify-add-email")
async def verify_add_email_post(body: TokenRequest):
    return await _confirm_add_email(body.token)


@router.post("/resend-add-email-verification")
async def resend_add_email_verification(account_id: AccountId):
    result = await email_pipelines.resend_add_email_pipeline(
        repository=get_account_repository(),
        token_service=get_account_token_service(),
        notifier=get_notifier(),
        account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value, message="Confirmation link sent")


@router.delete("/remove-email")
async def remove_email(account_id: AccountId, body: RemoveEmailRequest):
    """Remove the account email. Requires the password and an acknowledgement."""
    result = await email_pipelines.remove_email_pipeline(
        repository=get_account_repository(),
        hasher=get_password_hasher(),
        notifier=get_notifier(),
        account_id=account_id,
        password=body.password,
        acknowledged_no_recovery_email=body.acknowledgedNoRecoveryEmail,
    )
    raise_for_result(result)
    return success_response(result.value, message="Email removed")
