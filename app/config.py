"""
Finora account service settings.

Extends the base settings with token lifetimes, session limits, and
outbound email configuration.
"""

from datetime import timedelta
from typing import Optional

from common.config import BaseAppSettings


class Settings(BaseAppSettings):
    """Finora-specific settings."""

    # ==========================================================================
    # One-time token lifetimes
    # ==========================================================================
    EMAIL_VERIFICATION_EXPIRE_HOURS: int = 24
    PASSWORD_RESET_EXPIRE_HOURS: int = 1
    EMAIL_CHANGE_EXPIRE_HOURS: int = 24
    NEWSLETTER_CONFIRMATION_EXPIRE_HOURS: int = 24

    # Unconfirmed newsletter subscribers are removed after this long
    NEWSLETTER_UNCONFIRMED_TTL_HOURS: int = 48

    # ==========================================================================
    # Sessions & credentials
    # ==========================================================================
    MAX_SESSIONS_PER_ACCOUNT: int = 10
    BCRYPT_ROUNDS: int = 12

    # Lets unverified accounts log in. Ignored in production.
    SKIP_EMAIL_VERIFICATION: bool = False

    # ==========================================================================
    # Email Settings
    # ==========================================================================
    EMAIL_MODE: str = "console"  # console, smtp, resend
    RESEND_API_KEY: Optional[str] = None
    SMTP_HOST: Optional[str] = None
    SMTP_PORT: int = 587
    SMTP_USER: Optional[str] = None
    SMTP_PASSWORD: Optional[str] = None
    EMAIL_FROM_ADDRESS: str = "noreply@finora.app"
    EMAIL_FROM_NAME: str = "Finora"

    # ==========================================================================
    # Link targets
    # ==========================================================================
    APP_URL: str = "http://localhost:3000"
    API_URL: str = "http://localhost:8000"

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.JWT_REFRESH_TOKEN_EXPIRE_DAYS)

    def allows_unverified_login(self) -> bool:
        """Email-verification bypass, never honoured in production."""
        return self.SKIP_EMAIL_VERIFICATION and not self.is_production()


# Global settings instance
settings = Settings()
