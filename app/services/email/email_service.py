"""
Email service for sending transactional emails.

Supports SMTP, Resend API, and console logging modes.
Bodies are short plain-text messages with a minimal HTML rendition.
"""

import html as html_lib
import logging
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from typing import Optional
from urllib.parse import urlencode

import aiosmtplib
import httpx

from config.email_config import (
    ACCOUNT_LINK_PATHS,
    EMAIL_DEFAULTS,
    NEWSLETTER_LINK_PATHS,
    RESEND_API_URL,
    RESEND_TIMEOUT_SECONDS,
    SECURITY_EVENT_SUBJECTS,
)

logger = logging.getLogger(__name__)


class EmailService:
    """
    Email service with multi-mode support.

    Modes:
        - console: Log emails to console (development)
        - smtp: Send via SMTP
        - resend: Send via Resend HTTP API
    """

    def __init__(
        self,
        mode: Optional[str] = None,
        resend_api_key: Optional[str] = None,
        from_email: Optional[str] = None,
        from_name: Optional[str] = None,
        team_name: Optional[str] = None,
        app_url: str = "http://localhost:3000",
        api_url: str = "http://localhost:8000",
        smtp_host: Optional[str] = None,
        smtp_port: int = 587,
        smtp_user: Optional[str] = None,
        smtp_password: Optional[str] = None,
    ):
        """
        Initialize email service.

        Args:
            mode: "console", "smtp", or "resend"
            resend_api_key: Resend API key
            from_email: Sender email address
            from_name: Sender display name
            team_name: Team name for email signatures
            app_url: Base URL for frontend links in emails
            api_url: Base URL for API links in emails (newsletter)
            smtp_host: SMTP server host
            smtp_port: SMTP server port
            smtp_user: SMTP username
            smtp_password: SMTP password
        """
        self._mode = mode or EMAIL_DEFAULTS["mode"]
        self._from_email = from_email or EMAIL_DEFAULTS["from_email"]
        self._from_name = from_name or EMAIL_DEFAULTS["from_name"]
        self._team_name = team_name or EMAIL_DEFAULTS["team_name"]
        self._app_url = app_url.rstrip("/")
        self._api_url = api_url.rstrip("/")
        self._resend_api_key = resend_api_key

        self._smtp_host = smtp_host
        self._smtp_port = smtp_port
        self._smtp_user = smtp_user
        self._smtp_password = smtp_password

        if self._mode == "resend" and not self._resend_api_key:
            logger.warning("Resend API key not configured, falling back to console mode")
            self._mode = "console"
        elif self._mode == "smtp" and not self._smtp_host:
            logger.warning("SMTP host not configured, falling back to console mode")
            self._mode = "console"

        logger.info(f"Email service initialized in {self._mode} mode")

    @property
    def mode(self) -> str:
        return self._mode

    # =========================================================================
    # Links & rendering
    # =========================================================================

    def _app_link(self, name: str, token: str) -> str:
        return f"{self._app_url}{ACCOUNT_LINK_PATHS[name]}?{urlencode({'token': token})}"

    def _api_link(self, name: str, token: str, language: Optional[str] = None) -> str:
        params = {"token": token}
        if language:
            params["lang"] = language
        return f"{self._api_url}{NEWSLETTER_LINK_PATHS[name]}?{urlencode(params)}"

    def _render(
        self,
        greeting: str,
        paragraphs: list,
        action_label: Optional[str] = None,
        action_url: Optional[str] = None,
        footer: Optional[str] = None,
    ) -> tuple:
        """
        Build (html, text) bodies from a greeting, paragraphs and an optional link.
        """
        text_lines = [greeting, ""]
        html_parts = [f"<p>{html_lib.escape(greeting)}</p>"]

        for paragraph in paragraphs:
            text_lines.extend([paragraph, ""])
            html_parts.append(f"<p>{html_lib.escape(paragraph)}</p>")

        if action_url:
            text_lines.extend([f"{action_label}: {action_url}", ""])
            html_parts.append(
                f'<p><a href="{html_lib.escape(action_url, quote=True)}">'
                f"{html_lib.escape(action_label or action_url)}</a></p>"
            )

        if footer:
            text_lines.extend([footer, ""])
            html_parts.append(f'<p style="color:#888888;font-size:12px;">{html_lib.escape(footer)}</p>')

        text_lines.append(self._team_name)
        html_parts.append(f"<p>{html_lib.escape(self._team_name)}</p>")

        html = (
            '<!DOCTYPE html><html><head><meta charset="utf-8"></head>'
            '<body style="font-family: Arial, Helvetica, sans-serif; color: #333333;">'
            + "".join(html_parts)
            + "</body></html>"
        )
        return html, "\n".join(text_lines)

    # =========================================================================
    # Account emails
    # =========================================================================

    async def send_verification_email(self, to_email: str, handle: str, token: str) -> dict:
        """
        Send email verification email.

        Args:
            to_email: Recipient email address
            handle: Account name used in the greeting
            token: Raw verification token

        Returns:
            dict with success status and message
        """
        html, text = self._render(
            f"Hi {handle},",
            [
                "Please confirm your email address to finish setting up your Finora account.",
                "The link is valid for 24 hours.",
            ],
            "Confirm email",
            self._app_link("verify_email", token),
            "If you did not create an account, you can ignore this email.",
        )
        return await self._send(to_email, "Confirm your email address", html, text)

    async def send_password_reset_email(self, to_email: str, handle: str, token: str) -> dict:
        """Send password reset email. The link is valid for one hour."""
        html, text = self._render(
            f"Hi {handle},",
            [
                "We received a request to reset your password.",
                "The link is valid for 1 hour.",
            ],
            "Reset password",
            self._app_link("reset_password", token),
            "If you did not request this, you can ignore this email. Your password stays unchanged.",
        )
        return await self._send(to_email, "Reset your password", html, text)

    async def send_email_change_verification(
        self,
        to_email: str,
        handle: str,
        token: str,
        adding: bool = False,
    ) -> dict:
        """
        Send the confirmation link for a new email address.

        Args:
            to_email: The pending (new) address
            handle: Account name used in the greeting
            token: Raw email-change token
            adding: True when the account had no email before
        """
        link_name = "verify_add_email" if adding else "verify_email_change"
        intro = (
            "Please confirm this address to add it to your Finora account."
            if adding
            else "Please confirm this address to use it as your new Finora login email."
        )
        html, text = self._render(
            f"Hi {handle},",
            [intro, "The link is valid for 24 hours."],
            "Confirm email",
            self._app_link(link_name, token),
        )
        return await self._send(to_email, "Confirm your new email address", html, text)

    async def send_security_alert(
        self,
        to_email: str,
        handle: str,
        event_type: str,
        meta: Optional[dict] = None,
    ) -> dict:
        """Notify the account owner of a security-relevant event."""
        subject = SECURITY_EVENT_SUBJECTS.get(event_type, "Security notice for your account")
        paragraphs = [f"{subject}."]
        for key, value in sorted((meta or {}).items()):
            if value:
                paragraphs.append(f"{key}: {value}")
        paragraphs.append("If this was not you, reset your password immediately.")

        html, text = self._render(f"Hi {handle},", paragraphs)
        return await self._send(to_email, subject, html, text)

    async def send_welcome_email(self, to_email: str, handle: str) -> dict:
        html, text = self._render(
            f"Welcome to Finora, {handle}!",
            ["Your email address is confirmed. You can now recover your account if you forget your password."],
            "Open Finora",
            self._app_url,
        )
        return await self._send(to_email, "Welcome to Finora", html, text)

    # =========================================================================
    # Newsletter emails
    # =========================================================================

    async def send_newsletter_confirmation(
        self,
        to_email: str,
        confirm_token: str,
        unsubscribe_token: str,
        language: str = "de",
    ) -> dict:
        """Double opt-in: ask the subscriber to confirm the subscription."""
        html, text = self._render(
            "Hello,",
            [
                "Please confirm your subscription to the Finora newsletter.",
                "The link is valid for 24 hours.",
            ],
            "Confirm subscription",
            self._api_link("confirm", confirm_token, language),
            f"Not you? Unsubscribe: {self._api_link('unsubscribe', unsubscribe_token, language)}",
        )
        return await self._send(to_email, "Confirm your newsletter subscription", html, text)

    async def send_newsletter_welcome(
        self,
        to_email: str,
        unsubscribe_token: str,
        language: str = "de",
    ) -> dict:
        html, text = self._render(
            "Hello,",
            ["Your subscription to the Finora newsletter is confirmed."],
            footer=f"Unsubscribe: {self._api_link('unsubscribe', unsubscribe_token, language)}",
        )
        return await self._send(to_email, "Welcome to the Finora newsletter", html, text)

    async def send_newsletter_goodbye(self, to_email: str, language: str = "de") -> dict:
        html, text = self._render(
            "Hello,",
            ["You have been unsubscribed from the Finora newsletter. You will not receive further issues."],
        )
        return await self._send(to_email, "You have been unsubscribed", html, text)

    # =========================================================================
    # Transport
    # =========================================================================

    async def _send(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """
        Send email via configured provider.

        Returns:
            dict with success status and details
        """
        if self._mode == "console":
            return self._send_console(to, subject, text)
        elif self._mode == "smtp":
            return await self._send_smtp(to, subject, html, text)
        elif self._mode == "resend":
            return await self._send_resend(to, subject, html, text)
        else:
            logger.error(f"Unknown email mode: {self._mode}")
            return {"success": False, "error": f"Unknown email mode: {self._mode}"}

    def _send_console(self, to: str, subject: str, text: str) -> dict:
        """Log email to console (development mode)."""
        logger.info("=" * 60)
        logger.info("EMAIL (console mode)")
        logger.info(f"To: {to}")
        logger.info(f"Subject: {subject}")
        logger.info("-" * 60)
        logger.info(text)
        logger.info("=" * 60)

        return {
            "success": True,
            "mode": "console",
            "message": "Email logged to console",
        }

    async def _send_smtp(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via SMTP."""
        message = MIMEMultipart("alternative")
        message["Subject"] = subject
        message["From"] = f"{self._from_name} <{self._from_email}>"
        message["To"] = to
        message.attach(MIMEText(text, "plain"))
        message.attach(MIMEText(html, "html"))

        # SSL on 465, STARTTLS otherwise
        use_tls = self._smtp_port == 465

        try:
            await aiosmtplib.send(
                message,
                hostname=self._smtp_host,
                port=self._smtp_port,
                username=self._smtp_user,
                password=self._smtp_password,
                use_tls=use_tls,
                start_tls=not use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            logger.error(f"Failed to send email via SMTP: {e}")
            return {"success": False, "error": str(e)}

        logger.info(f"Email sent via SMTP to {to}")
        return {
            "success": True,
            "mode": "smtp",
            "message": "Email sent via SMTP",
        }

    async def _send_resend(
        self,
        to: str,
        subject: str,
        html: str,
        text: str,
    ) -> dict:
        """Send email via Resend API."""
        async with httpx.AsyncClient(timeout=RESEND_TIMEOUT_SECONDS) as client:
            try:
                response = await client.post(
                    RESEND_API_URL,
                    headers={
                        "Authorization": f"Bearer {self._resend_api_key}",
                        "Content-Type": "application/json",
                    },
                    json={
                        "from": f"{self._from_name} <{self._from_email}>",
                        "to": [to],
                        "subject": subject,
                        "html": html,
                        "text": text,
                    },
                )
            except httpx.HTTPError as e:
                logger.error(f"Failed to send email via Resend: {e}")
                return {"success": False, "error": str(e)}

        if response.status_code == 200:
            data = response.json()
            return {
                "success": True,
                "mode": "resend",
                "messageId": data.get("id"),
            }

        try:
            error_msg = response.json().get("message", "Unknown error")
        except ValueError:
            error_msg = response.text or "Unknown error"
        logger.error(f"Resend API error ({response.status_code}): {error_msg}")
        return {"success": False, "error": error_msg}
