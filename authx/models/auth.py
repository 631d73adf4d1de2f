"""Auth request and response models with validation."""

import re
from dataclasses import dataclass
from datetime import datetime
from typing import Optional
from uuid import UUID

from pydantic import BaseModel, Field, field_validator

from authx.models.user import RefreshTokenRecord, Role, User

EMAIL_PATTERN = re.compile(r"^[A-Za-z0-9._%+-]+@[A-Za-z0-9.-]+\.[A-Za-z]{2,}$")


class RegisterRequest(BaseModel):
    """Registration credentials.

    Password strength is not checked here; the credential service reports
    every violated rule at once.
    """

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def email_format(cls, v: str) -> str:
        """Ensure the email looks like an address."""
        v = v.strip()
        if not EMAIL_PATTERN.match(v):
            raise ValueError("Email must be a valid email address")
        return v


class LoginRequest(BaseModel):
    """Login credentials for authentication."""

    email: str = Field(..., max_length=255)
    password: str = Field(..., min_length=1, max_length=128)

    @field_validator("email")
    @classmethod
    def email_not_blank(cls, v: str) -> str:
        if not v.strip():
            raise ValueError("Email cannot be empty")
        return v


class RefreshRequest(BaseModel):
    """Request to exchange a refresh token for a new token pair."""

    refresh_token: str = Field(..., min_length=1)


class LogoutRequest(BaseModel):
    """Logout from the current device or from every device.

    Attributes:
        refresh_token: Token of the session to end (single-device logout)
        all_devices: End every session of the authenticated user
    """

    refresh_token: Optional[str] = None
    all_devices: bool = False


class UpdateRoleRequest(BaseModel):
    role: Role


class UpdateActiveRequest(BaseModel):
    is_active: bool


class SessionCountResponse(BaseModel):
    user_id: UUID
    active_sessions: int


class UserSummary(BaseModel):
    """Public user projection for API responses."""

    id: UUID
    email: str
    role: Role
    is_active: bool
    created_at: datetime


class AuthResponse(BaseModel):
    """Register/login response with token pair.

    Attributes:
        access_token: Short-lived JWT for API access
        refresh_token: Long-lived token for obtaining new access tokens
        token_type: Always "bearer"
        expires_in: Access token lifetime in seconds
        user: Summary of the authenticated user
    """

    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")
    user: UserSummary


class TokenPairResponse(BaseModel):
    access_token: str
    refresh_token: str
    token_type: str = "bearer"
    expires_in: int = Field(ge=1, description="Access token lifetime in seconds")


class LogoutResponse(BaseModel):
    success: bool
    message: str


# Service-level results. Plain dataclasses: they carry bearer strings that
# must never end up in a serialized model by accident.


@dataclass
class AccessClaims:
    """Decoded access token payload."""

    user_id: UUID
    email: str
    role: Role


@dataclass
class TokenValidation:
    """Successful refresh token validation."""

    user: User
    record: RefreshTokenRecord


@dataclass
class TokenPair:
    access_token: str
    refresh_token: str


@dataclass
class AuthResult:
    user: User
    access_token: str
    refresh_token: str


def user_summary(user: User) -> UserSummary:
    """Convert a User model to a UserSummary response."""
    return UserSummary(
        id=user.id,
        email=user.email,
        role=user.role,
        is_active=user.is_active,
        created_at=user.created_at,
    )
