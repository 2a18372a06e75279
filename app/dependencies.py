"""
FastAPI dependencies.

Holds the service instances built once at startup and exposes them to
routers. Also extracts client device metadata from requests.
"""

from datetime import timedelta
from typing import Callable, Optional

from fastapi import Request

from common.auth import (
    AccessTokenSigner,
    PasswordHasher,
    create_auth_dependency,
    create_optional_auth_dependency,
)
from common.utils.clock import Clock, utcnow
from app.config import Settings, settings
from app.models.account import TokenPurpose
from app.repositories.account_repository import AccountRepository
from app.repositories.subscriber_repository import SubscriberRepository
from app.services.auth.one_time_tokens import OneTimeTokenService
from app.services.auth.session_manager import SessionManager
from app.services.email.email_service import EmailService
from app.services.notifications.notification_dispatcher import NotificationDispatcher


_settings: Optional[Settings] = None
_account_repository: Optional[AccountRepository] = None
_subscriber_repository: Optional[SubscriberRepository] = None
_password_hasher: Optional[PasswordHasher] = None
_access_token_signer: Optional[AccessTokenSigner] = None
_account_tokens: Optional[OneTimeTokenService] = None
_subscriber_tokens: Optional[OneTimeTokenService] = None
_session_manager: Optional[SessionManager] = None
_notifier: Optional[NotificationDispatcher] = None


def build_email_service(app_settings: Settings) -> EmailService:
    """Create the email transport configured by settings."""
    return EmailService(
        mode=app_settings.EMAIL_MODE,
        resend_api_key=app_settings.RESEND_API_KEY,
        from_email=app_settings.EMAIL_FROM_ADDRESS,
        from_name=app_settings.EMAIL_FROM_NAME,
        app_url=app_settings.APP_URL,
        api_url=app_settings.API_URL,
        smtp_host=app_settings.SMTP_HOST,
        smtp_port=app_settings.SMTP_PORT,
        smtp_user=app_settings.SMTP_USER,
        smtp_password=app_settings.SMTP_PASSWORD,
    )


def token_ttls(app_settings: Settings) -> dict:
    return {
        TokenPurpose.EMAIL_VERIFICATION: timedelta(hours=app_settings.EMAIL_VERIFICATION_EXPIRE_HOURS),
        TokenPurpose.PASSWORD_RESET: timedelta(hours=app_settings.PASSWORD_RESET_EXPIRE_HOURS),
        TokenPurpose.EMAIL_CHANGE: timedelta(hours=app_settings.EMAIL_CHANGE_EXPIRE_HOURS),
        TokenPurpose.NEWSLETTER_CONFIRMATION: timedelta(
            hours=app_settings.NEWSLETTER_CONFIRMATION_EXPIRE_HOURS
        ),
    }


def init_auth_services(
    account_repository: AccountRepository,
    subscriber_repository: SubscriberRepository,
    app_settings: Optional[Settings] = None,
    email_service_factory: Optional[Callable[[], EmailService]] = None,
    clock: Clock = utcnow,
) -> None:
    """
    Initialize account services.

    Called once at application startup.

    Args:
        account_repository: Account persistence
        subscriber_repository: Newsletter subscriber persistence
        app_settings: Settings to use (defaults to the global settings)
        email_service_factory: Builds the email transport on first use
        clock: Current-time source shared by all services
    """
    global _settings, _account_repository, _subscriber_repository, _password_hasher
    global _access_token_signer, _account_tokens, _subscriber_tokens, _session_manager, _notifier

    app_settings = app_settings or settings
    ttls = token_ttls(app_settings)

    _settings = app_settings
    _account_repository = account_repository
    _subscriber_repository = subscriber_repository
    _password_hasher = PasswordHasher(rounds=app_settings.BCRYPT_ROUNDS)
    _access_token_signer = AccessTokenSigner(
        secret=app_settings.JWT_SECRET,
        algorithm=app_settings.JWT_ALGORITHM,
        expire_minutes=app_settings.JWT_ACCESS_TOKEN_EXPIRE_MINUTES,
        issuer=app_settings.JWT_ISSUER,
    )
    _account_tokens = OneTimeTokenService(account_repository, ttls, clock=clock)
    _subscriber_tokens = OneTimeTokenService(subscriber_repository, ttls, clock=clock)
    _session_manager = SessionManager(
        repository=account_repository,
        signer=_access_token_signer,
        refresh_ttl=app_settings.refresh_token_ttl,
        max_sessions=app_settings.MAX_SESSIONS_PER_ACCOUNT,
        clock=clock,
    )
    _notifier = NotificationDispatcher(
        email_service_factory or (lambda: build_email_service(app_settings))
    )


def _require(service):
    if service is None:
        raise RuntimeError("Auth services not initialized. Call init_auth_services first.")
    return service


def get_settings() -> Settings:
    return _require(_settings)


def get_account_repository() -> AccountRepository:
    return _require(_account_repository)


def get_subscriber_repository() -> SubscriberRepository:
    return _require(_subscriber_repository)


def get_password_hasher() -> PasswordHasher:
    return _require(_password_hasher)


def get_access_token_signer() -> AccessTokenSigner:
    return _require(_access_token_signer)


def get_account_token_service() -> OneTimeTokenService:
    return _require(_account_tokens)


def get_subscriber_token_service() -> OneTimeTokenService:
    return _require(_subscriber_tokens)


def get_session_manager() -> SessionManager:
    return _require(_session_manager)


def get_notifier() -> NotificationDispatcher:
    return _require(_notifier)


# Route dependencies resolving the account ID from a Bearer access token
require_account_id = create_auth_dependency(get_access_token_signer)
optional_account_id = create_optional_auth_dependency(get_access_token_signer)


def get_client_ip(request: Request) -> str:
    """Extract client IP address from request."""
    forwarded = request.headers.get("X-Forwarded-For")
    if forwarded:
        return forwarded.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-IP")
    if real_ip:
        return real_ip

    if request.client:
        return request.client.host

    return "0.0.0.0"


def get_device(request: Request) -> dict:
    """Opaque device metadata stored with a session."""
    return {
        "userAgent": request.headers.get("User-Agent", ""),
        "ip": get_client_ip(request),
    }
