"""Models package exports."""

from authx.models.auth import (
    AccessClaims,
    AuthResponse,
    AuthResult,
    LoginRequest,
    LogoutRequest,
    LogoutResponse,
    RefreshRequest,
    RegisterRequest,
    SessionCountResponse,
    TokenPair,
    TokenPairResponse,
    TokenValidation,
    UpdateActiveRequest,
    UpdateRoleRequest,
    UserSummary,
)
from authx.models.user import RefreshTokenRecord, RevocationReason, Role, User

__all__ = [
    "AccessClaims",
    "AuthResponse",
    "AuthResult",
    "LoginRequest",
    "LogoutRequest",
    "LogoutResponse",
    "RefreshRequest",
    "RefreshTokenRecord",
    "RegisterRequest",
    "RevocationReason",
    "Role",
    "SessionCountResponse",
    "TokenPair",
    "TokenPairResponse",
    "TokenValidation",
    "UpdateActiveRequest",
    "UpdateRoleRequest",
    "User",
    "UserSummary",
]
