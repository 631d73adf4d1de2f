"""User and refresh token models."""

from datetime import datetime
from enum import Enum
from typing import Optional
from uuid import UUID

from pydantic import BaseModel


class Role(str, Enum):
    """Closed set of user roles."""

    USER = "USER"
    ADMIN = "ADMIN"


class RevocationReason(str, Enum):
    """Why a refresh token record stopped being active."""

    ROTATED = "ROTATED"
    LOGOUT = "LOGOUT"
    REUSE = "REUSE"


class User(BaseModel):
    """A registered account. Never carries the password hash."""

    id: UUID
    email: str
    role: Role = Role.USER
    is_active: bool = True
    created_at: datetime
    updated_at: datetime


class RefreshTokenRecord(BaseModel):
    """Stored state of one issued refresh token.

    Only the SHA-256 hash of the bearer value is kept; the bearer itself is
    handed to the client once and never persisted.
    """

    id: UUID
    user_id: UUID
    token_hash: str
    family_id: UUID
    expires_at: datetime
    is_revoked: bool = False
    revoked_at: Optional[datetime] = None
    revoked_reason: Optional[RevocationReason] = None
    created_at: datetime

    def is_expired(self, now: datetime) -> bool:
        return self.expires_at <= now


def normalize_email(email: str) -> str:
    """Canonical form used for storage and lookups."""
    return email.strip().lower()
