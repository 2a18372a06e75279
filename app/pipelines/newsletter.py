"""
Newsletter double opt-in pipelines.

Subscribing is enumeration-safe: known, unknown and already confirmed
addresses all get the same answer.
"""

import logging
from datetime import timedelta
from typing import Optional

from common.utils.clock import Clock, utcnow
from common.utils.result import Result
from app.errors import ErrorCode, fail, internal_errors_as_result, ok
from app.models.account import TokenPurpose, has_email, normalize_email
from app.models.subscriber import (
    format_subscriber_status,
    new_subscriber_fields,
    normalize_language,
)
from app.repositories.account_repository import AccountRepository
from app.repositories.errors import UniquenessViolation
from app.repositories.subscriber_repository import SubscriberRepository
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.auth.token_hasher import TokenHasher
from app.services.notifications.notification_dispatcher import NotificationDispatcher

logger = logging.getLogger(__name__)

SUBSCRIPTION_REQUESTED = {"sent": True}


@internal_errors_as_result("newsletter_subscribe")
async def subscribe_pipeline(
    repository: SubscriberRepository,
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    email: Optional[str],
    language: Optional[str] = None,
    owner_account_id: Optional[str] = None,
    clock: Clock = utcnow,
) -> Result:
    """
    Create or refresh an unconfirmed subscription and mail the confirm link.

    Args:
        repository: Subscriber persistence
        token_service: One-time token service bound to subscribers
        notifier: Sends the confirmation email
        email: Address to subscribe
        language: Preferred newsletter language
        owner_account_id: Signed-in account subscribing, if any
        clock: Current-time source
    """
    normalized_email = normalize_email(email)
    if normalized_email is None:
        return fail(ErrorCode.INVALID_EMAIL)

    existing = await repository.find_by_email(normalized_email)
    if existing and existing.get("confirmed"):
        logger.info("Newsletter subscribe for an already confirmed address")
        return ok(dict(SUBSCRIPTION_REQUESTED))

    confirm_token, stored_token = token_service.mint(TokenPurpose.NEWSLETTER_CONFIRMATION)
    unsubscribe_token = TokenHasher.generate_token()
    now = clock()

    fields = new_subscriber_fields(
        language=normalize_language(language or (existing or {}).get("language")),
        confirmation_token=stored_token,
        unsubscribe_hash=TokenHasher.hash_token(unsubscribe_token),
        now=now,
        owner_account_id=owner_account_id,
    )

    try:
        subscriber = await repository.upsert_pending(normalized_email, fields, now)
    except UniquenessViolation:
        logger.info("Newsletter subscribe raced with a confirmation")
        return ok(dict(SUBSCRIPTION_REQUESTED))

    notifier.send_newsletter_confirmation(subscriber, confirm_token, unsubscribe_token)
    logger.info(f"Newsletter subscription requested: {subscriber['_id']}")

    return ok(dict(SUBSCRIPTION_REQUESTED))


@internal_errors_as_result("newsletter_confirm")
async def confirm_subscription_pipeline(
    token_service: OneTimeTokenService,
    notifier: NotificationDispatcher,
    token: Optional[str],
    clock: Clock = utcnow,
) -> Result:
    """Confirm a subscription; issues a fresh unsubscribe token for the welcome mail."""
    unsubscribe_token = TokenHasher.generate_token()

    validation = await token_service.validate(
        TokenPurpose.NEWSLETTER_CONFIRMATION,
        token,
        set_fields={
            "confirmed": True,
            "subscribedAt": clock(),
            "unsubscribeToken": {"hash": TokenHasher.hash_token(unsubscribe_token)},
        },
        conditions={"confirmed": False},
    )
    if not validation.ok:
        logger.info(f"Newsletter confirmation rejected: {validation.reason.value}")
        return fail(ErrorCode.INVALID_TOKEN)

    subscriber = validation.document
    logger.info(f"Newsletter confirmed: {subscriber['_id']}")
    notifier.send_newsletter_welcome(subscriber, unsubscribe_token)

    return ok({"confirmed": True, "language": subscriber.get("language")})


@internal_errors_as_result("newsletter_unsubscribe")
async def unsubscribe_pipeline(
    repository: SubscriberRepository,
    notifier: NotificationDispatcher,
    token: Optional[str],
) -> Result:
    if not token:
        return fail(ErrorCode.INVALID_TOKEN)

    subscriber = await repository.delete_by_unsubscribe_hash(TokenHasher.hash_token(token))
    if subscriber is None:
        return fail(ErrorCode.INVALID_TOKEN)

    logger.info(f"Newsletter unsubscribed: {subscriber['_id']}")
    if subscriber.get("confirmed"):
        notifier.send_newsletter_goodbye(subscriber)

    return ok({"unsubscribed": True, "language": subscriber.get("language")})


@internal_errors_as_result("newsletter_status")
async def newsletter_status_pipeline(
    account_repository: AccountRepository,
    repository: SubscriberRepository,
    account_id: str,
) -> Result:
    """Subscription state of the signed-in account's email address."""
    account = await account_repository.find_by_id(account_id)
    if account is None:
        return fail(ErrorCode.ACCOUNT_NOT_FOUND)
    if not has_email(account):
        return ok(format_subscriber_status(None))
    subscriber = await repository.find_by_email(account["email"])
    return ok(format_subscriber_status(subscriber))


@internal_errors_as_result("newsletter_purge")
async def purge_unconfirmed_pipeline(
    repository: SubscriberRepository,
    ttl: timedelta,
    clock: Clock = utcnow,
) -> Result:
    """Delete subscribers left unconfirmed for longer than `ttl`."""
    removed = await repository.purge_unconfirmed(clock() - ttl)
    return ok({"removed": removed})
