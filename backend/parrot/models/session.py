from typing import Optional
from datetime import datetime, timezone
from pydantic import BaseModel, Field


class SessionUser(BaseModel):
    """Identity attached to a live session."""
    id: str = Field(..., min_length=1, description="Unique identifier issued by the credential store")
    email: Optional[str] = Field(None, description="User's email address")


class Session(BaseModel):
    """A live authenticated session for one client context.

    Attributes:
        access_token: Short-lived token presented on every request
        refresh_token: Token used to obtain a new access token
        user: The signed-in user
        expires_at: When the access token stops being valid (UTC)
    """
    access_token: str = Field(..., min_length=1)
    refresh_token: Optional[str] = None
    user: SessionUser
    expires_at: datetime

    def is_expired(self, now: Optional[datetime] = None) -> bool:
        now = now or datetime.now(timezone.utc)
        expires_at = self.expires_at
        if expires_at.tzinfo is None:
            expires_at = expires_at.replace(tzinfo=timezone.utc)
        return now >= expires_at


class AuthResult(BaseModel):
    """Outcome of a sign-in or sign-up attempt."""
    success: bool = Field(..., description="Whether the attempt succeeded")
    message: str = Field("", description="User-facing message, empty on success")
    session: Optional[Session] = Field(None, description="The new session on success")


class SignInRequest(BaseModel):
    """Request model for email/password sign-in.

    The email is not format-checked: any address sign-up accepted must be able
    to sign in, and unknown addresses get the generic credentials message.
    """
    email: str = Field(..., description="Account email address")
    password: str = Field(..., min_length=1, description="Account password")


class SignUpRequest(BaseModel):
    """Request model for registering a new account.

    Format rules are checked by the validation service so the caller gets the
    same first-failure message the forms show.
    """
    email: str = Field(..., description="Account email address")
    password: str = Field(..., description="Account password")


class AuthResponse(BaseModel):
    """Response model for sign-in and sign-up endpoints."""
    success: bool = Field(..., description="Whether the attempt succeeded")
    message: str = Field("", description="Response message")
    accessToken: Optional[str] = Field(None, description="Access token for the new session")
    expiresAt: Optional[datetime] = Field(None, description="Access token expiry")
    user: Optional[SessionUser] = None
