"""Refresh token persistence.

Every issued refresh token has one row here, keyed by the SHA-256 hash of
its bearer value. Rows are only ever mutated to flip ``is_revoked`` to true;
the rotation sequence is the one multi-statement unit and runs in a single
transaction.
"""

from datetime import datetime, timezone
from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from authx.database import acquire
from authx.models.user import RefreshTokenRecord, RevocationReason, Role, User

logger = structlog.get_logger(__name__)

_TOKEN_COLUMNS = (
    "id, user_id, token_hash, family_id, expires_at, "
    "is_revoked, revoked_at, revoked_reason, created_at"
)

_INSERT_SQL = """
    INSERT INTO refresh_tokens (id, user_id, token_hash, family_id, expires_at, created_at)
    VALUES ($1, $2, $3, $4, $5, $6)
"""


def _affected_rows(status: str) -> int:
    """Row count from an asyncpg command tag such as ``UPDATE 1``."""
    try:
        return int(status.split()[-1])
    except (AttributeError, IndexError, ValueError):
        return 0


def _row_to_record(row) -> RefreshTokenRecord:
    reason = row["revoked_reason"]
    return RefreshTokenRecord(
        id=row["id"],
        user_id=row["user_id"],
        token_hash=row["token_hash"],
        family_id=row["family_id"],
        expires_at=row["expires_at"],
        is_revoked=row["is_revoked"],
        revoked_at=row["revoked_at"],
        revoked_reason=RevocationReason(reason) if reason else None,
        created_at=row["created_at"],
    )


class _RotationLost(Exception):
    """Internal signal that aborts the rotation transaction."""


class RefreshTokenStore:
    """asyncpg-backed store for ``refresh_tokens`` rows."""

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def insert(self, record: RefreshTokenRecord) -> None:
        async with acquire(self.pool) as conn:
            await conn.execute(
                _INSERT_SQL,
                record.id,
                record.user_id,
                record.token_hash,
                record.family_id,
                record.expires_at,
                record.created_at,
            )

    async def find_with_owner(
        self, token_hash: str
    ) -> Optional[tuple[RefreshTokenRecord, User]]:
        """Look up a token by hash joined with the user who owns it.

        Returns:
            Tuple of (record, owner) or None if no row matches
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                """
                SELECT
                    rt.id, rt.user_id, rt.token_hash, rt.family_id, rt.expires_at,
                    rt.is_revoked, rt.revoked_at, rt.revoked_reason, rt.created_at,
                    u.email, u.role, u.is_active,
                    u.created_at AS user_created_at,
                    u.updated_at AS user_updated_at
                FROM refresh_tokens rt
                JOIN users u ON rt.user_id = u.id
                WHERE rt.token_hash = $1
                """,
                token_hash,
            )

        if row is None:
            return None

        owner = User(
            id=row["user_id"],
            email=row["email"],
            role=Role(row["role"]),
            is_active=row["is_active"],
            created_at=row["user_created_at"],
            updated_at=row["user_updated_at"],
        )
        return _row_to_record(row), owner

    async def rotate(self, old_token_hash: str, new_record: RefreshTokenRecord) -> bool:
        """Revoke the old token and insert its replacement as one transaction.

        The revoke is conditional on the old row still being live. If another
        caller already revoked it, nothing is written and False is returned.

        Returns:
            True if the rotation committed, False if the old token was
            already revoked
        """
        now = datetime.now(timezone.utc)

        async with acquire(self.pool) as conn:
            try:
                async with conn.transaction():
                    status = await conn.execute(
                        """
                        UPDATE refresh_tokens
                        SET is_revoked = TRUE, revoked_at = $1, revoked_reason = $2
                        WHERE token_hash = $3 AND is_revoked = FALSE
                        """,
                        now,
                        RevocationReason.ROTATED.value,
                        old_token_hash,
                    )
                    if _affected_rows(status) == 0:
                        raise _RotationLost()

                    await conn.execute(
                        _INSERT_SQL,
                        new_record.id,
                        new_record.user_id,
                        new_record.token_hash,
                        new_record.family_id,
                        new_record.expires_at,
                        new_record.created_at,
                    )
            except _RotationLost:
                return False

        return True

    async def revoke(
        self, token_hash: str, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> bool:
        """Revoke a single live token.

        Returns:
            True if a live row was revoked
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                """
                UPDATE refresh_tokens
                SET is_revoked = TRUE, revoked_at = $1, revoked_reason = $2
                WHERE token_hash = $3 AND is_revoked = FALSE
                RETURNING id
                """,
                datetime.now(timezone.utc),
                reason.value,
                token_hash,
            )
        return row is not None

    async def revoke_family(
        self, family_id: UUID, reason: RevocationReason = RevocationReason.REUSE
    ) -> int:
        """Revoke every live token in a family.

        Returns:
            Number of rows revoked
        """
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                """
                UPDATE refresh_tokens
                SET is_revoked = TRUE, revoked_at = $1, revoked_reason = $2
                WHERE family_id = $3 AND is_revoked = FALSE
                RETURNING id
                """,
                datetime.now(timezone.utc),
                reason.value,
                family_id,
            )
        return len(rows)

    async def revoke_all_for_user(
        self, user_id: UUID, reason: RevocationReason = RevocationReason.LOGOUT
    ) -> int:
        """Revoke every live token of a user across all families.

        Returns:
            Number of rows revoked
        """
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                """
                UPDATE refresh_tokens
                SET is_revoked = TRUE, revoked_at = $1, revoked_reason = $2
                WHERE user_id = $3 AND is_revoked = FALSE
                RETURNING id
                """,
                datetime.now(timezone.utc),
                reason.value,
                user_id,
            )
        return len(rows)

    async def list_family(self, family_id: UUID) -> list[RefreshTokenRecord]:
        """Return the audit trail of one session lineage, oldest first."""
        async with acquire(self.pool) as conn:
            rows = await conn.fetch(
                f"""
                SELECT {_TOKEN_COLUMNS}
                FROM refresh_tokens
                WHERE family_id = $1
                ORDER BY created_at ASC
                """,
                family_id,
            )
        return [_row_to_record(row) for row in rows]

    async def count_active(self, user_id: UUID) -> int:
        async with acquire(self.pool) as conn:
            count = await conn.fetchval(
                """
                SELECT COUNT(*)
                FROM refresh_tokens
                WHERE user_id = $1
                  AND is_revoked = FALSE
                  AND expires_at > NOW()
                """,
                user_id,
            )
        return int(count or 0)

    async def purge(self, retention_days: int) -> int:
        """Delete rows that expired or were revoked before the retention window.

        A row revoked at least ``retention_days`` ago belongs to a JWT that has
        already expired (lifetime <= retention), so reuse detection is not
        weakened by deleting it.

        Returns:
            Number of rows deleted
        """
        async with acquire(self.pool) as conn:
            status = await conn.execute(
                """
                DELETE FROM refresh_tokens
                WHERE expires_at < NOW() - make_interval(days => $1)
                   OR (is_revoked = TRUE AND revoked_at < NOW() - make_interval(days => $1))
                """,
                retention_days,
            )
        return _affected_rows(status)
