"""Unit tests for UserService with mocked asyncpg."""

from datetime import datetime, timezone
from unittest.mock import AsyncMock
from uuid import uuid4

import asyncpg
import pytest

from authx.errors import AlreadyExists, NotFound
from authx.models.user import Role
from authx.services.user_service import UserService


class MockConnection:
    """Mock asyncpg connection with common query methods."""

    def __init__(self):
        self.execute = AsyncMock()
        self.fetchrow = AsyncMock()
        self.fetchval = AsyncMock()
        self.fetch = AsyncMock()


class MockPool:
    """Mock asyncpg pool with acquire() context manager."""

    def __init__(self, conn: MockConnection):
        self._conn = conn

    def acquire(self):
        return _MockPoolAcquire(self._conn)


class _MockPoolAcquire:
    def __init__(self, conn):
        self._conn = conn

    async def __aenter__(self):
        return self._conn

    async def __aexit__(self, *args):
        pass


@pytest.fixture
def conn():
    return MockConnection()


@pytest.fixture
def user_service(conn):
    return UserService(MockPool(conn))


def _user_row(**overrides) -> dict:
    now = datetime.now(timezone.utc)
    row = {
        "id": uuid4(),
        "email": "alice@example.com",
        "role": "USER",
        "is_active": True,
        "created_at": now,
        "updated_at": now,
        "password_hash": "$2b$04$abcdefghijklmnopqrstuu",
    }
    row.update(overrides)
    return row


class TestFindByEmail:
    """Tests for UserService.find_by_email."""

    async def test_returns_user_and_hash(self, user_service, conn):
        row = _user_row()
        conn.fetchrow.return_value = row

        user, password_hash = await user_service.find_by_email("alice@example.com")

        assert user.id == row["id"]
        assert user.role == Role.USER
        assert password_hash == row["password_hash"]
        assert not hasattr(user, "password_hash")

    async def test_lookup_is_normalized(self, user_service, conn):
        conn.fetchrow.return_value = None

        await user_service.find_by_email("  Alice@EXAMPLE.com ")

        assert conn.fetchrow.call_args.args[1] == "alice@example.com"

    async def test_not_found(self, user_service, conn):
        conn.fetchrow.return_value = None

        assert await user_service.find_by_email("nobody@example.com") is None


class TestGetById:
    """Tests for UserService.get_by_id."""

    async def test_found(self, user_service, conn):
        row = _user_row(role="ADMIN")
        conn.fetchrow.return_value = row

        user = await user_service.get_by_id(row["id"])

        assert user.role == Role.ADMIN

    async def test_not_found(self, user_service, conn):
        conn.fetchrow.return_value = None

        assert await user_service.get_by_id(uuid4()) is None


class TestInsert:
    """Tests for UserService.insert."""

    async def test_insert(self, user_service, conn):
        conn.fetchrow.return_value = _user_row()

        user = await user_service.insert("Alice@Example.com", "hash", Role.USER)

        assert user.email == "alice@example.com"
        args = conn.fetchrow.call_args.args
        assert args[1:] == ("alice@example.com", "hash", "USER")

    async def test_unique_violation(self, user_service, conn):
        conn.fetchrow.side_effect = asyncpg.UniqueViolationError("duplicate key")

        with pytest.raises(AlreadyExists):
            await user_service.insert("alice@example.com", "hash")


class TestUpdates:
    """Tests for update_role and set_active."""

    async def test_update_role(self, user_service, conn):
        row = _user_row(role="ADMIN")
        conn.fetchrow.return_value = row

        user = await user_service.update_role(row["id"], Role.ADMIN)

        assert user.role == Role.ADMIN
        assert conn.fetchrow.call_args.args[1:] == ("ADMIN", row["id"])

    async def test_update_role_missing_user(self, user_service, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFound):
            await user_service.update_role(uuid4(), Role.ADMIN)

    async def test_set_active(self, user_service, conn):
        row = _user_row(is_active=False)
        conn.fetchrow.return_value = row

        user = await user_service.set_active(row["id"], False)

        assert user.is_active is False

    async def test_set_active_missing_user(self, user_service, conn):
        conn.fetchrow.return_value = None

        with pytest.raises(NotFound):
            await user_service.set_active(uuid4(), True)
