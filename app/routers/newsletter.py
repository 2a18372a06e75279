"""
FastAPI router for the newsletter double opt-in.

Confirm and unsubscribe are GET endpoints because they are opened from
email links.
"""

from typing import Annotated, Optional

from fastapi import APIRouter, Depends

from common.utils import raise_for_result, success_response
from app.dependencies import (
    get_account_repository,
    get_notifier,
    get_subscriber_repository,
    get_subscriber_token_service,
    optional_account_id,
    require_account_id,
)
from app.pipelines import newsletter as newsletter_pipelines
from app.schemas.newsletter import SubscribeRequest

router = APIRouter(prefix="/newsletter", tags=["newsletter"])


@router.post("/subscribe")
async def subscribe(
    body: SubscribeRequest,
    account_id: Annotated[Optional[str], Depends(optional_account_id)],
):
    """Request a subscription. Same response whether or not the address is known."""
    result = await newsletter_pipelines.subscribe_pipeline(
        repository=get_subscriber_repository(),
        token_service=get_subscriber_token_service(),
        notifier=get_notifier(),
        email=body.email,
        language=body.language,
        owner_account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value, message="Confirmation email sent")


@router.get("/confirm")
async def confirm(token: Optional[str] = None):
    result = await newsletter_pipelines.confirm_subscription_pipeline(
        token_service=get_subscriber_token_service(),
        notifier=get_notifier(),
        token=token,
    )
    raise_for_result(result)
    return success_response(result.value, message="Subscription confirmed")


@router.get("/unsubscribe")
async def unsubscribe(token: Optional[str] = None):
    result = await newsletter_pipelines.unsubscribe_pipeline(
        repository=get_subscriber_repository(),
        notifier=get_notifier(),
        token=token,
    )
    raise_for_result(result)
    return success_response(result.value, message="Unsubscribed")


@router.get("/status")
async def status(account_id: Annotated[str, Depends(require_account_id)]):
    result = await newsletter_pipelines.newsletter_status_pipeline(
        account_repository=get_account_repository(),
        repository=get_subscriber_repository(),
        account_id=account_id,
    )
    raise_for_result(result)
    return success_response(result.value)
