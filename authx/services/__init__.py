"""Services package exports."""

from authx.services.credential_service import CredentialService
from authx.services.jwt_service import JWTService
from authx.services.logging_service import configure_logging, get_logger
from authx.services.redis_service import AttemptCounterStore
from authx.services.session_service import SessionService
from authx.services.throttle_service import ThrottleService
from authx.services.token_service import TokenService
from authx.services.token_store import RefreshTokenStore
from authx.services.user_service import UserService

__all__ = [
    "AttemptCounterStore",
    "CredentialService",
    "JWTService",
    "RefreshTokenStore",
    "SessionService",
    "ThrottleService",
    "TokenService",
    "UserService",
    "configure_logging",
    "get_logger",
]
