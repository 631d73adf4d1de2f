"""User-visible session operations: register, login, refresh, logout."""

from contextlib import asynccontextmanager
from typing import AsyncIterator, Optional
from uuid import UUID

import asyncpg
import structlog

from authx.errors import (
    AuthenticationRequired,
    InvalidCredentials,
    NotFound,
    StoreUnavailable,
)
from authx.models.auth import AccessClaims, AuthResult, TokenPair
from authx.models.user import Role, User
from authx.services.credential_service import CredentialService
from authx.services.jwt_service import JWTService, hash_token
from authx.services.throttle_service import ThrottleService
from authx.services.token_service import TokenService
from authx.services.user_service import UserService

logger = structlog.get_logger(__name__)


@asynccontextmanager
async def _durable_operation(operation: str) -> AsyncIterator[None]:
    """Surface unexpected database errors as a fatal StoreUnavailable."""
    try:
        yield
    except asyncpg.PostgresError as e:
        logger.error("durable_operation_failed", operation=operation, error=str(e))
        raise StoreUnavailable(f"{operation} failed") from e


class SessionService:
    """Orchestrates credential checks and the refresh token lifecycle.

    Args:
        credentials: Email/password verifier
        tokens: Refresh token lifecycle engine
        users: Credential store, for profile reads and admin changes
        jwt_service: Access token encoder
        throttle: Optional guard notified of login success/failure
    """

    def __init__(
        self,
        credentials: CredentialService,
        tokens: TokenService,
        users: UserService,
        jwt_service: JWTService,
        throttle: Optional[ThrottleService] = None,
    ):
        self.credentials = credentials
        self.tokens = tokens
        self.users = users
        self.jwt_service = jwt_service
        self.throttle = throttle

    @property
    def access_token_expires_in(self) -> int:
        return int(self.jwt_service.access_token_ttl.total_seconds())

    async def _start_session(self, user: User) -> AuthResult:
        access_token = self.jwt_service.create_access_token(user.id, user.email, user.role)
        refresh_token = await self.tokens.issue(user.id)
        return AuthResult(user=user, access_token=access_token, refresh_token=refresh_token)

    async def register(self, email: str, password: str) -> AuthResult:
        """Create an account and log it in on a fresh token family."""
        async with _durable_operation("register"):
            user = await self.credentials.register(email, password)
            result = await self._start_session(user)

        logger.info("user_registered_session_started", user_id=str(user.id))
        return result

    async def login(self, email: str, password: str, client_ip: str) -> AuthResult:
        """Verify credentials and start a new session (new token family).

        A credential failure is counted against ``client_ip``; success clears
        that client's failure history.

        Raises:
            InvalidCredentials: Unknown email or wrong password
            InactiveAccount: Correct password for a deactivated account
        """
        async with _durable_operation("login"):
            try:
                user = await self.credentials.verify(email, password)
            except InvalidCredentials:
                if self.throttle is not None:
                    await self.throttle.record_failure(client_ip)
                raise

            if self.throttle is not None:
                await self.throttle.reset_failures(client_ip)

            result = await self._start_session(user)

        logger.info("user_logged_in", user_id=str(user.id))
        return result

    async def refresh(self, refresh_token: str) -> TokenPair:
        """Rotate a refresh token and mint a new access token.

        The access token is built from the user row read during validation,
        so role changes take effect on the next refresh.

        Raises:
            TokenReuseDetected: The token was already rotated; every session
                of its family has been revoked
            MalformedToken, TokenNotFound, RevokedToken, ExpiredToken,
            InactiveAccount: The token cannot be refreshed
        """
        async with _durable_operation("refresh"):
            validation = await self.tokens.validate(refresh_token)
            new_refresh = await self.tokens.rotate(refresh_token, validation.record)

        user = validation.user
        access_token = self.jwt_service.create_access_token(user.id, user.email, user.role)
        logger.debug("tokens_refreshed", user_id=str(user.id))
        return TokenPair(access_token=access_token, refresh_token=new_refresh)

    async def logout(
        self,
        refresh_token: Optional[str] = None,
        all_devices: bool = False,
        current_user: Optional[AccessClaims] = None,
    ) -> bool:
        """End one session, or every session of the authenticated user.

        Logging out everywhere needs an authenticated caller: a refresh token
        alone is not enough, otherwise a stolen one could sign the real user
        out of all devices.

        Returns:
            True if anything was revoked

        Raises:
            AuthenticationRequired: ``all_devices`` without ``current_user``
        """
        async with _durable_operation("logout"):
            if all_devices:
                if current_user is None:
                    raise AuthenticationRequired(
                        "Authentication required for logout from all devices"
                    )
                revoked = await self.tokens.revoke_all_for_user(current_user.user_id)
                logger.info(
                    "user_logged_out_all_devices",
                    user_id=str(current_user.user_id),
                    tokens_revoked=revoked,
                )
                return revoked > 0

            if not refresh_token:
                return False
            return await self.tokens.revoke_single(hash_token(refresh_token))

    def authenticate(self, access_token: str) -> AccessClaims:
        """Decode an access token presented on a protected call."""
        return self.jwt_service.decode_access_token(access_token)

    async def get_user(self, user_id: UUID) -> User:
        async with _durable_operation("get_user"):
            user = await self.users.get_by_id(user_id)
        if user is None:
            raise NotFound()
        return user

    async def update_role(self, user_id: UUID, role: Role) -> User:
        """Administrative role change, picked up by the user's next refresh."""
        async with _durable_operation("update_role"):
            return await self.users.update_role(user_id, role)

    async def set_active(self, user_id: UUID, is_active: bool) -> User:
        """Soft (de)activation. Refresh tokens of an inactive user stop validating."""
        async with _durable_operation("set_active"):
            return await self.users.set_active(user_id, is_active)

    async def active_session_count(self, user_id: UUID) -> int:
        async with _durable_operation("active_session_count"):
            return await self.tokens.active_token_count(user_id)
