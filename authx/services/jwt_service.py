"""Signed bearer token encoding for access and refresh tokens."""

import hashlib
from datetime import datetime, timedelta, timezone
from typing import Optional
from uuid import UUID

import jwt
import structlog

from authx.config import Settings
from authx.errors import ExpiredToken, MalformedToken
from authx.models.auth import AccessClaims
from authx.models.user import Role

logger = structlog.get_logger(__name__)

JWT_ALGORITHM = "HS256"
TOKEN_TYPE_ACCESS = "access"
TOKEN_TYPE_REFRESH = "refresh"


def hash_token(token: str) -> str:
    """SHA-256 hex digest used as the storage key of a refresh token."""
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


class JWTService:
    """Encode and verify HS256 JWTs.

    Access and refresh tokens are signed with different secrets and carry a
    ``type`` claim, so one can never be accepted in place of the other.
    """

    def __init__(self, settings: Settings):
        self.settings = settings

    @property
    def access_token_ttl(self) -> timedelta:
        return timedelta(minutes=self.settings.access_token_expire_minutes)

    @property
    def refresh_token_ttl(self) -> timedelta:
        return timedelta(days=self.settings.refresh_token_expire_days)

    def create_access_token(self, user_id: UUID, email: str, role: Role) -> str:
        """Create a signed JWT access token.

        Args:
            user_id: User UUID (placed in 'sub' claim)
            email: User email at time of issue
            role: User role at time of issue

        Returns:
            Encoded JWT string
        """
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "email": email,
            "role": role.value,
            "type": TOKEN_TYPE_ACCESS,
            "iat": now,
            "exp": now + self.access_token_ttl,
        }
        return jwt.encode(
            payload, self.settings.access_token_secret, algorithm=JWT_ALGORITHM
        )

    def create_refresh_token(
        self,
        user_id: UUID,
        token_id: UUID,
        family_id: UUID,
        expires_at: Optional[datetime] = None,
    ) -> str:
        """Create a signed JWT refresh token embedding its id and family."""
        now = datetime.now(timezone.utc)
        payload = {
            "sub": str(user_id),
            "tokenId": str(token_id),
            "familyId": str(family_id),
            "type": TOKEN_TYPE_REFRESH,
            "iat": now,
            "exp": expires_at or now + self.refresh_token_ttl,
        }
        return jwt.encode(
            payload, self.settings.refresh_token_secret, algorithm=JWT_ALGORITHM
        )

    def _decode(self, token: str, secret: str, expected_type: str) -> dict:
        try:
            payload = jwt.decode(
                token,
                secret,
                algorithms=[JWT_ALGORITHM],
                options={"require": ["exp", "sub", "type"]},
            )
        except jwt.ExpiredSignatureError:
            raise ExpiredToken(f"{expected_type.capitalize()} token expired")
        except jwt.InvalidTokenError as e:
            logger.debug("jwt_decode_failed", token_type=expected_type, error=str(e))
            raise MalformedToken(f"Invalid {expected_type} token")

        if payload.get("type") != expected_type:
            raise MalformedToken("Invalid token type")
        return payload

    def decode_access_token(self, token: str) -> AccessClaims:
        """Verify an access token and return its claims.

        Raises:
            ExpiredToken: If the token lifetime has passed
            MalformedToken: If the signature, structure or type is wrong
        """
        payload = self._decode(token, self.settings.access_token_secret, TOKEN_TYPE_ACCESS)
        try:
            return AccessClaims(
                user_id=UUID(payload["sub"]),
                email=payload["email"],
                role=Role(payload["role"]),
            )
        except (KeyError, ValueError):
            raise MalformedToken("Invalid token payload")

    def decode_refresh_token(self, token: str) -> dict:
        """Verify a refresh token's signature and type.

        Returns:
            Payload with ``sub``, ``tokenId`` and ``familyId`` parsed to UUIDs

        Raises:
            ExpiredToken: If the token lifetime has passed
            MalformedToken: If the signature, structure or type is wrong
        """
        payload = self._decode(token, self.settings.refresh_token_secret, TOKEN_TYPE_REFRESH)
        try:
            return {
                "sub": UUID(payload["sub"]),
                "tokenId": UUID(payload["tokenId"]),
                "familyId": UUID(payload["familyId"]),
            }
        except (KeyError, ValueError, TypeError):
            raise MalformedToken("Invalid token payload")
