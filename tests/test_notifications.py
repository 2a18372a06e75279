"""Unit tests for the email service and the notification dispatcher."""

import json
import logging

import aiosmtplib
import httpx
import pytest
from unittest.mock import AsyncMock, MagicMock
from urllib.parse import parse_qs, urlparse

from app.services.email import email_service as email_module
from app.services.email.email_service import EmailService
from app.services.notifications.notification_dispatcher import NotificationDispatcher


def _link(text: str) -> str:
    return next(word for word in text.split() if word.startswith("http"))


# ─────────────────────────────────────────────────────────────────
# EmailService
# ─────────────────────────────────────────────────────────────────


class TestEmailServiceContent:
    @pytest.fixture
    def service(self):
        svc = EmailService(
            mode="console",
            app_url="https://app.finora.test/",
            api_url="https://api.finora.test",
        )
        svc._send = AsyncMock(return_value={"success": True})
        return svc

    @pytest.mark.asyncio
    async def test_verification_link_carries_token(self, service):
        await service.send_verification_email("a@example.com", "alice", "tok/en+1")

        to, subject, html, text = service._send.await_args.args
        link = urlparse(_link(text))
        assert to == "a@example.com"
        assert link.netloc == "app.finora.test"
        assert link.path == "/verify-email"
        assert parse_qs(link.query)["token"] == ["tok/en+1"]

    @pytest.mark.asyncio
    async def test_add_and_change_use_different_pages(self, service):
        await service.send_email_change_verification("n@example.com", "alice", "t1")
        change_text = service._send.await_args.args[3]
        await service.send_email_change_verification("n@example.com", "alice", "t2", adding=True)
        add_text = service._send.await_args.args[3]

        assert urlparse(_link(change_text)).path == "/verify-email-change"
        assert urlparse(_link(add_text)).path == "/verify-add-email"

    @pytest.mark.asyncio
    async def test_newsletter_links_point_at_api(self, service):
        await service.send_newsletter_confirmation("r@example.com", "confirm-tok", "unsub-tok", "en")

        text = service._send.await_args.args[3]
        links = [urlparse(w) for w in text.split() if w.startswith("http")]
        assert {l.path for l in links} == {"/api/newsletter/confirm", "/api/newsletter/unsubscribe"}
        assert all(l.netloc == "api.finora.test" for l in links)

    @pytest.mark.asyncio
    async def test_html_escapes_handle(self, service):
        await service.send_welcome_email("a@example.com", "<b>alice</b>")

        html = service._send.await_args.args[2]
        assert "<b>alice</b>" not in html
        assert "&lt;b&gt;alice&lt;/b&gt;" in html

    @pytest.mark.asyncio
    async def test_security_alert_subject(self, service):
        await service.send_security_alert("a@example.com", "alice", "password_change", None)

        assert service._send.await_args.args[1] == "Your password was changed"


class TestEmailServiceTransport:
    @pytest.mark.asyncio
    async def test_console_mode(self):
        result = await EmailService(mode="console").send_welcome_email("a@example.com", "alice")

        assert result["success"] is True
        assert result["mode"] == "console"

    def test_missing_config_falls_back_to_console(self):
        assert EmailService(mode="resend").mode == "console"
        assert EmailService(mode="smtp").mode == "console"

    @pytest.mark.asyncio
    async def test_resend_posts_message(self, monkeypatch):
        captured = []
        real_client = httpx.AsyncClient

        def handler(request):
            captured.append(request)
            return httpx.Response(200, json={"id": "msg_123"})

        monkeypatch.setattr(
            email_module.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(transport=httpx.MockTransport(handler), **kwargs),
        )
        service = EmailService(mode="resend", resend_api_key="re_test")

        result = await service.send_welcome_email("a@example.com", "alice")

        assert result == {"success": True, "mode": "resend", "messageId": "msg_123"}
        body = json.loads(captured[0].content)
        assert body["to"] == ["a@example.com"]
        assert captured[0].headers["Authorization"] == "Bearer re_test"

    @pytest.mark.asyncio
    async def test_resend_error_reported(self, monkeypatch):
        real_client = httpx.AsyncClient
        monkeypatch.setattr(
            email_module.httpx,
            "AsyncClient",
            lambda **kwargs: real_client(
                transport=httpx.MockTransport(
                    lambda request: httpx.Response(422, json={"message": "Invalid to"})
                ),
                **kwargs,
            ),
        )
        service = EmailService(mode="resend", resend_api_key="re_test")

        result = await service.send_welcome_email("a@example.com", "alice")

        assert result == {"success": False, "error": "Invalid to"}

    @pytest.mark.asyncio
    async def test_smtp_failure_reported(self, monkeypatch):
        monkeypatch.setattr(
            email_module.aiosmtplib,
            "send",
            AsyncMock(side_effect=aiosmtplib.SMTPException("relay denied")),
        )
        service = EmailService(mode="smtp", smtp_host="smtp.example.com")

        result = await service.send_welcome_email("a@example.com", "alice")

        assert result["success"] is False
        assert "relay denied" in result["error"]


# ─────────────────────────────────────────────────────────────────
# NotificationDispatcher
# ─────────────────────────────────────────────────────────────────


class TestNotificationDispatcher:
    @pytest.mark.asyncio
    async def test_transport_created_once_and_lazily(self, mock_email_service):
        factory = MagicMock(return_value=mock_email_service)
        dispatcher = NotificationDispatcher(factory)

        factory.assert_not_called()
        dispatcher.send_welcome({"handle": "alice", "email": "a@example.com"})
        dispatcher.send_welcome({"handle": "bob", "email": "b@example.com"})
        await dispatcher.drain()

        factory.assert_called_once()
        assert mock_email_service.send_welcome_email.await_count == 2
        assert dispatcher.pending == 0

    @pytest.mark.asyncio
    async def test_failures_are_logged_not_raised(self, mock_email_service, caplog):
        mock_email_service.send_welcome_email.side_effect = RuntimeError("boom")
        dispatcher = NotificationDispatcher(lambda: mock_email_service)

        with caplog.at_level(logging.ERROR):
            task = dispatcher.send_welcome({"handle": "alice", "email": "a@example.com"})
            await dispatcher.drain()

        assert task.result() is None
        assert "Notification 'welcome' failed" in caplog.text

    @pytest.mark.asyncio
    async def test_undelivered_result_logged(self, mock_email_service, caplog):
        mock_email_service.send_welcome_email.return_value = {"success": False, "error": "bounced"}
        dispatcher = NotificationDispatcher(lambda: mock_email_service)

        with caplog.at_level(logging.WARNING):
            dispatcher.send_welcome({"handle": "alice", "email": "a@example.com"})
            await dispatcher.drain()

        assert "bounced" in caplog.text

    @pytest.mark.asyncio
    async def test_accounts_without_email_are_skipped(self, notifier, mock_email_service):
        account = {"handle": "alice", "email": None}

        assert notifier.send_verification(account, "tok") is None
        assert notifier.send_security_alert(account, "login") is None
        assert notifier.send_welcome(account) is None
        mock_email_service.send_verification_email.assert_not_called()

    @pytest.mark.asyncio
    async def test_alert_can_target_previous_address(self, notifier, mock_email_service):
        notifier.send_security_alert(
            {"handle": "alice", "email": None}, "email_removed", to_email="old@example.com"
        )
        await notifier.drain()

        mock_email_service.send_security_alert.assert_awaited_once_with(
            "old@example.com", "alice", "email_removed", None
        )
