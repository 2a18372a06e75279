"""
Email service configuration constants.

These are fixed values that don't change per environment.
Environment-specific values (API keys, URLs) come from Settings.
"""

# Resend API endpoint
RESEND_API_URL = "https://api.resend.com/emails"
RESEND_TIMEOUT_SECONDS = 10.0

# Default values (can be overridden by env vars)
EMAIL_DEFAULTS = {
    "mode": "console",
    "from_email": "noreply@finora.app",
    "from_name": "Finora",
    "team_name": "The Finora Team",
}

# Frontend paths that consume one-time tokens (relative to APP_URL)
ACCOUNT_LINK_PATHS = {
    "verify_email": "/verify-email",
    "reset_password": "/reset-password",
    "verify_email_change": "/verify-email-change",
    "verify_add_email": "/verify-add-email",
}

# API paths for newsletter links (relative to API_URL)
NEWSLETTER_LINK_PATHS = {
    "confirm": "/api/newsletter/confirm",
    "unsubscribe": "/api/newsletter/unsubscribe",
}

# Human-readable subjects for security alert event types
SECURITY_EVENT_SUBJECTS = {
    "login": "New sign-in to your account",
    "password_change": "Your password was changed",
    "password_reset": "Your password was reset",
    "email_change": "Your email address was changed",
    "email_removed": "Your email address was removed",
}
