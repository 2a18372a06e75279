"""
Fire-and-forget notification dispatch.

Every send is scheduled as its own asyncio task after the state change it
reports has been stored. Failures are logged and never reach the caller.
The email transport is created lazily, once, from an injected factory.
"""

import asyncio
import logging
from typing import Awaitable, Callable, Optional, Set

from app.services.email.email_service import EmailService

logger = logging.getLogger(__name__)

SendFn = Callable[[EmailService], Awaitable[dict]]


class NotificationDispatcher:
    """Schedules account and newsletter emails in the background."""

    def __init__(self, email_service_factory: Callable[[], EmailService]):
        self._email_service_factory = email_service_factory
        self._email_service: Optional[EmailService] = None
        self._tasks: Set[asyncio.Task] = set()

    @property
    def email_service(self) -> EmailService:
        if self._email_service is None:
            self._email_service = self._email_service_factory()
        return self._email_service

    @property
    def pending(self) -> int:
        return len(self._tasks)

    def _dispatch(self, kind: str, send: SendFn) -> asyncio.Task:
        task = asyncio.create_task(self._run(kind, send))
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)
        return task

    async def _run(self, kind: str, send: SendFn) -> Optional[dict]:
        try:
            result = await send(self.email_service)
        except Exception:
            logger.exception(f"Notification '{kind}' failed")
            return None

        if not result or not result.get("success"):
            error = (result or {}).get("error", "unknown error")
            logger.warning(f"Notification '{kind}' was not delivered: {error}")
        return result

    async def drain(self) -> None:
        """Wait for every scheduled notification to finish."""
        while self._tasks:
            await asyncio.gather(*list(self._tasks), return_exceptions=True)

    # =========================================================================
    # Account notifications
    # =========================================================================

    def send_verification(self, account: dict, raw_token: str) -> Optional[asyncio.Task]:
        email = account.get("email")
        if not email:
            return None
        return self._dispatch(
            "verification",
            lambda svc: svc.send_verification_email(email, account["handle"], raw_token),
        )

    def send_password_reset(self, account: dict, raw_token: str) -> Optional[asyncio.Task]:
        email = account.get("email")
        if not email:
            return None
        return self._dispatch(
            "password_reset",
            lambda svc: svc.send_password_reset_email(email, account["handle"], raw_token),
        )

    def send_email_change_verification(
        self,
        account: dict,
        raw_token: str,
        target_email: str,
        adding: bool = False,
    ) -> asyncio.Task:
        return self._dispatch(
            "email_add" if adding else "email_change",
            lambda svc: svc.send_email_change_verification(
                target_email, account["handle"], raw_token, adding=adding
            ),
        )

    def send_security_alert(
        self,
        account: dict,
        event_type: str,
        meta: Optional[dict] = None,
        to_email: Optional[str] = None,
    ) -> Optional[asyncio.Task]:
        """
        Args:
            to_email: Address to alert instead of the account's current one
                (e.g. the previous address after an email change)
        """
        email = to_email or account.get("email")
        if not email:
            return None
        return self._dispatch(
            f"security_alert:{event_type}",
            lambda svc: svc.send_security_alert(email, account["handle"], event_type, meta),
        )

    def send_welcome(self, account: dict) -> Optional[asyncio.Task]:
        email = account.get("email")
        if not email:
            return None
        return self._dispatch(
            "welcome",
            lambda svc: svc.send_welcome_email(email, account["handle"]),
        )

    # =========================================================================
    # Newsletter notifications
    # =========================================================================

    def send_newsletter_confirmation(
        self, subscriber: dict, confirm_token: str, unsubscribe_token: str
    ) -> asyncio.Task:
        return self._dispatch(
            "newsletter_confirmation",
            lambda svc: svc.send_newsletter_confirmation(
                subscriber["email"], confirm_token, unsubscribe_token, subscriber.get("language", "de")
            ),
        )

    def send_newsletter_welcome(self, subscriber: dict, unsubscribe_token: str) -> asyncio.Task:
        return self._dispatch(
            "newsletter_welcome",
            lambda svc: svc.send_newsletter_welcome(
                subscriber["email"], unsubscribe_token, subscriber.get("language", "de")
            ),
        )

    def send_newsletter_goodbye(self, subscriber: dict) -> asyncio.Task:
        return self._dispatch(
            "newsletter_goodbye",
            lambda svc: svc.send_newsletter_goodbye(
                subscriber["email"], subscriber.get("language", "de")
            ),
        )
