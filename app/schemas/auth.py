"""
Pydantic models for account request validation.

Only shape is checked here; field rules (handle format, password strength,
email validity) are enforced by the pipelines.
"""

from typing import Optional

from pydantic import BaseModel, Field


class RegisterRequest(BaseModel):
    """Request body for account registration."""
    handle: str = Field(..., description="Unique account name, 3-50 characters")
    password: str
    email: Optional[str] = Field(None, description="Optional recovery email")
    acknowledgedNoRecoveryEmail: bool = Field(
        default=False,
        description="Required without email: password reset will be impossible",
    )


class LoginRequest(BaseModel):
    """Request body for login with handle or email."""
    identifier: str = Field(..., description="Account name or email address")
    password: str


class RefreshRequest(BaseModel):
    refreshToken: Optional[str] = None


class LogoutRequest(BaseModel):
    refreshToken: Optional[str] = None


class TokenRequest(BaseModel):
    """Request body carrying a one-time token from an email link."""
    token: Optional[str] = None


class EmailRequest(BaseModel):
    email: Optional[str] = None


class ResetPasswordRequest(BaseModel):
    token: Optional[str] = None
    newPassword: str


class ChangePasswordRequest(BaseModel):
    currentPassword: str
    newPassword: str


class ChangeEmailRequest(BaseModel):
    newEmail: str


class RemoveEmailRequest(BaseModel):
    password: str
    acknowledgedNoRecoveryEmail: bool = False
