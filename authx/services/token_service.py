"""Refresh token lifecycle: issue, validate, rotate, revoke.

Tokens descending from one login share a ``family_id``. Rotation revokes the
presented token and issues its successor in the same family, atomically.
Presenting a token that rotation (or an earlier breach response) already
killed means two parties hold the lineage, so the whole family is revoked
before the caller sees the error.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID, uuid4

import structlog

from authx.config import Settings
from authx.errors import (
    ExpiredToken,
    InactiveAccount,
    RevokedToken,
    TokenNotFound,
    TokenReuseDetected,
)
from authx.models.auth import TokenValidation
from authx.models.user import RefreshTokenRecord, RevocationReason
from authx.services.jwt_service import JWTService, hash_token
from authx.services.token_store import RefreshTokenStore

logger = structlog.get_logger(__name__)


class TokenService:
    """Service for the refresh token state machine.

    Record states: ACTIVE -> ROTATED_OUT | LOGGED_OUT | EXPIRED. Every
    terminal state is absorbing; expiry is detected lazily on validation.
    """

    def __init__(self, store: RefreshTokenStore, jwt_service: JWTService, settings: Settings):
        self.store = store
        self.jwt_service = jwt_service
        self.settings = settings

    def _new_token(self, user_id: UUID, family_id: UUID) -> tuple[str, RefreshTokenRecord]:
        token_id = uuid4()
        now = datetime.now(timezone.utc)
        expires_at = now + self.jwt_service.refresh_token_ttl
        bearer = self.jwt_service.create_refresh_token(
            user_id=user_id,
            token_id=token_id,
            family_id=family_id,
            expires_at=expires_at,
        )
        record = RefreshTokenRecord(
            id=token_id,
            user_id=user_id,
            token_hash=hash_token(bearer),
            family_id=family_id,
            expires_at=expires_at,
            created_at=now,
        )
        return bearer, record

    async def issue(self, user_id: UUID, family_id: Optional[UUID] = None) -> str:
        """Issue and persist a refresh token.

        Args:
            user_id: Owner of the token
            family_id: Existing family to join; a new family is minted if None

        Returns:
            The bearer value. Only its hash is stored, so this is the one
            and only time it is available.
        """
        bearer, record = self._new_token(user_id, family_id or uuid4())
        await self.store.insert(record)

        logger.info(
            "refresh_token_issued",
            user_id=str(user_id),
            token_id=str(record.id),
            family_id=str(record.family_id),
            new_family=family_id is None,
            expires_at=record.expires_at.isoformat(),
        )
        return bearer

    async def validate(self, bearer: str) -> TokenValidation:
        """Validate a refresh token against its signature and stored state.

        The reuse branch is not a pure read: when a rotated-out token is
        presented the family is revoked before TokenReuseDetected is raised.

        Raises:
            MalformedToken: Signature, structure or type check failed
            TokenNotFound: Well-formed but no stored record
            TokenReuseDetected: Record was rotated out or breach-revoked
            RevokedToken: Record was ended by logout
            ExpiredToken: Record (or JWT) lifetime has passed
            InactiveAccount: Owning user is deactivated
        """
        claims = self.jwt_service.decode_refresh_token(bearer)
        token_hash = hash_token(bearer)

        found = await self.store.find_with_owner(token_hash)
        if found is None:
            logger.warning("refresh_token_not_found", token_id=str(claims["tokenId"]))
            raise TokenNotFound()

        record, owner = found

        if record.is_revoked:
            if record.revoked_reason == RevocationReason.LOGOUT:
                logger.info(
                    "refresh_token_revoked_presented",
                    user_id=str(record.user_id),
                    token_id=str(record.id),
                )
                raise RevokedToken()
            await self._respond_to_reuse(record)

        if record.is_expired(datetime.now(timezone.utc)):
            logger.debug("refresh_token_expired", token_id=str(record.id))
            raise ExpiredToken()

        if not owner.is_active:
            logger.debug("refresh_token_owner_inactive", user_id=str(owner.id))
            raise InactiveAccount()

        return TokenValidation(user=owner, record=record)

    async def rotate(
        self, old_bearer: str, record: Optional[RefreshTokenRecord] = None
    ) -> str:
        """Replace a refresh token with a new one in the same family.

        The conditional revoke and the insert commit together or not at all.
        Losing the race to a concurrent rotation of the same token is itself
        reuse and is handled as such.

        Args:
            old_bearer: Token being rotated
            record: Its stored record from ``validate``; validated here if None

        Returns:
            The new bearer value

        Raises:
            TokenReuseDetected: The old token was already revoked
        """
        if record is None:
            record = (await self.validate(old_bearer)).record

        bearer, new_record = self._new_token(record.user_id, record.family_id)
        committed = await self.store.rotate(hash_token(old_bearer), new_record)

        if not committed:
            logger.warning(
                "refresh_token_rotation_lost",
                user_id=str(record.user_id),
                token_id=str(record.id),
                family_id=str(record.family_id),
            )
            await self._respond_to_reuse(record)

        logger.info(
            "refresh_token_rotated",
            user_id=str(record.user_id),
            family_id=str(record.family_id),
            old_token_id=str(record.id),
            new_token_id=str(new_record.id),
        )
        return bearer

    async def _respond_to_reuse(self, record: RefreshTokenRecord) -> None:
        revoked = await self.store.revoke_family(record.family_id, RevocationReason.REUSE)
        logger.warning(
            "token_reuse_detected",
            user_id=str(record.user_id),
            token_id=str(record.id),
            family_id=str(record.family_id),
            tokens_revoked=revoked,
        )
        raise TokenReuseDetected(family_id=str(record.family_id), revoked_count=revoked)

    async def revoke_family(self, family_id: UUID) -> int:
        """Revoke every live token in a family.

        Returns:
            Count of records revoked (for audit logging)
        """
        revoked = await self.store.revoke_family(family_id, RevocationReason.REUSE)
        logger.warning("token_family_revoked", family_id=str(family_id), tokens_revoked=revoked)
        return revoked

    async def revoke_single(self, token_hash: str) -> bool:
        """End one device session."""
        revoked = await self.store.revoke(token_hash, RevocationReason.LOGOUT)
        if revoked:
            logger.info("refresh_token_revoked", token_hash_prefix=token_hash[:10])
        return revoked

    async def revoke_all_for_user(self, user_id: UUID) -> int:
        """End every session of a user regardless of family."""
        revoked = await self.store.revoke_all_for_user(user_id, RevocationReason.LOGOUT)
        logger.info("all_refresh_tokens_revoked", user_id=str(user_id), tokens_revoked=revoked)
        return revoked

    async def active_token_count(self, user_id: UUID) -> int:
        return await self.store.count_active(user_id)

    async def list_family(self, family_id: UUID) -> list[RefreshTokenRecord]:
        return await self.store.list_family(family_id)

    async def purge_expired(self, retention_days: Optional[int] = None) -> int:
        """Reclaim storage held by dead tokens.

        Never required for correctness. The retention window is clamped to
        the refresh lifetime so a revoked row outlives its JWT.
        """
        days = max(
            retention_days or self.settings.revoked_token_retention_days,
            self.settings.refresh_token_expire_days,
        )
        deleted = await self.store.purge(days)
        logger.info("refresh_tokens_purged", deleted=deleted, retention_days=days)
        return deleted
