"""
Configuration module - App-wide constants.
"""

from config.email_config import (
    RESEND_API_URL,
    RESEND_TIMEOUT_SECONDS,
    EMAIL_DEFAULTS,
    ACCOUNT_LINK_PATHS,
    NEWSLETTER_LINK_PATHS,
    SECURITY_EVENT_SUBJECTS,
)

__all__ = [
    "RESEND_API_URL",
    "RESEND_TIMEOUT_SECONDS",
    "EMAIL_DEFAULTS",
    "ACCOUNT_LINK_PATHS",
    "NEWSLETTER_LINK_PATHS",
    "SECURITY_EVENT_SUBJECTS",
]
