"""User persistence (the credential store)."""

from typing import Optional
from uuid import UUID

import asyncpg
import structlog

from authx.database import acquire
from authx.errors import AlreadyExists, NotFound
from authx.models.user import Role, User, normalize_email

logger = structlog.get_logger(__name__)

_USER_COLUMNS = "id, email, role, is_active, created_at, updated_at"


def _row_to_user(row) -> User:
    return User(
        id=row["id"],
        email=row["email"],
        role=Role(row["role"]),
        is_active=row["is_active"],
        created_at=row["created_at"],
        updated_at=row["updated_at"],
    )


class UserService:
    """Service for user CRUD operations against the ``users`` table.

    This is the only component that writes user rows. Email uniqueness is
    enforced by the table's unique constraint.
    """

    def __init__(self, pool: asyncpg.Pool):
        self.pool = pool

    async def find_by_email(self, email: str) -> Optional[tuple[User, str]]:
        """Get a user by normalized email.

        Args:
            email: Email to look up (normalized before querying)

        Returns:
            Tuple of (User, password_hash) or None if not found
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                SELECT {_USER_COLUMNS}, password_hash
                FROM users
                WHERE email = $1
                """,
                normalize_email(email),
            )

        if row is None:
            return None
        return _row_to_user(row), row["password_hash"]

    async def get_by_id(self, user_id: UUID) -> Optional[User]:
        """Get a user by UUID.

        Args:
            user_id: User UUID

        Returns:
            User model or None if not found
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"SELECT {_USER_COLUMNS} FROM users WHERE id = $1",
                user_id,
            )

        if row is None:
            return None
        return _row_to_user(row)

    async def insert(self, email: str, password_hash: str, role: Role = Role.USER) -> User:
        """Create a new user row.

        Args:
            email: Email address (normalized before insert)
            password_hash: One-way hash of the password
            role: Initial role

        Returns:
            Created User model

        Raises:
            AlreadyExists: If the normalized email is already registered
        """
        try:
            async with acquire(self.pool) as conn:
                row = await conn.fetchrow(
                    f"""
                    INSERT INTO users (email, password_hash, role)
                    VALUES ($1, $2, $3)
                    RETURNING {_USER_COLUMNS}
                    """,
                    normalize_email(email),
                    password_hash,
                    role.value,
                )
        except asyncpg.UniqueViolationError as e:
            raise AlreadyExists() from e

        user = _row_to_user(row)
        logger.info("user_created", user_id=str(user.id), role=user.role.value)
        return user

    async def update_role(self, user_id: UUID, role: Role) -> User:
        """Change a user's role.

        Raises:
            NotFound: If no user has this id
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET role = $1
                WHERE id = $2
                RETURNING {_USER_COLUMNS}
                """,
                role.value,
                user_id,
            )

        if row is None:
            raise NotFound()

        logger.info("user_role_updated", user_id=str(user_id), role=role.value)
        return _row_to_user(row)

    async def set_active(self, user_id: UUID, is_active: bool) -> User:
        """Soft-(de)activate a user. Rows are never deleted.

        Raises:
            NotFound: If no user has this id
        """
        async with acquire(self.pool) as conn:
            row = await conn.fetchrow(
                f"""
                UPDATE users
                SET is_active = $1
                WHERE id = $2
                RETURNING {_USER_COLUMNS}
                """,
                is_active,
                user_id,
            )

        if row is None:
            raise NotFound()

        logger.info("user_active_updated", user_id=str(user_id), is_active=is_active)
        return _row_to_user(row)
