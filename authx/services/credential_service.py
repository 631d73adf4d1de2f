"""Credential verification: registration and email/password checks."""

import asyncio
import secrets

import structlog

from authx.config import Settings
from authx.errors import AlreadyExists, InactiveAccount, InvalidCredentials, WeakCredential
from authx.models.user import Role, User, normalize_email
from authx.services.password_service import (
    check_password_strength,
    hash_password,
    verify_password,
)
from authx.services.user_service import UserService

logger = structlog.get_logger(__name__)


class CredentialService:
    """Authenticate email+password pairs against the credential store."""

    def __init__(self, users: UserService, settings: Settings):
        self.users = users
        self.settings = settings
        # Unknown emails are verified against this hash
        self._dummy_hash = hash_password(secrets.token_urlsafe(16), settings.bcrypt_rounds)

    async def _hash(self, password: str) -> str:
        return await asyncio.to_thread(hash_password, password, self.settings.bcrypt_rounds)

    async def _dummy_verify(self, password: str) -> None:
        await asyncio.to_thread(verify_password, password, self._dummy_hash)

    async def register(self, email: str, password: str, role: Role = Role.USER) -> User:
        """Create an account.

        Args:
            email: Email address (normalized before storage)
            password: Plain-text password, only its hash is stored
            role: Initial role

        Returns:
            Public user projection

        Raises:
            AlreadyExists: Normalized email already registered
            WeakCredential: Password violates one or more policy rules
        """
        email = normalize_email(email)

        if await self.users.find_by_email(email) is not None:
            logger.info("registration_rejected_duplicate")
            raise AlreadyExists()

        violations = check_password_strength(password)
        if violations:
            logger.info("registration_rejected_weak_password", violations=len(violations))
            raise WeakCredential(violations)

        password_hash = await self._hash(password)
        # The unique constraint still guards against a concurrent registration
        user = await self.users.insert(email, password_hash, role)

        logger.info("user_registered", user_id=str(user.id))
        return user

    async def verify(self, email: str, password: str) -> User:
        """Check an email/password pair.

        Unknown email and wrong password raise the same InvalidCredentials
        after the same amount of hashing work.

        Raises:
            InvalidCredentials: Email unknown or password wrong
            InactiveAccount: Password matched but the account is deactivated
        """
        found = await self.users.find_by_email(email)

        if found is None:
            await self._dummy_verify(password)
            logger.info("login_failed", reason="invalid_credentials")
            raise InvalidCredentials()

        user, password_hash = found

        if not await asyncio.to_thread(verify_password, password, password_hash):
            logger.info("login_failed", reason="invalid_credentials", user_id=str(user.id))
            raise InvalidCredentials()

        if not user.is_active:
            logger.info("login_failed", reason="inactive", user_id=str(user.id))
            raise InactiveAccount()

        return user
