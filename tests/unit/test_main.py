"""Unit tests for application wiring and the token cleanup task."""

import asyncio
from unittest.mock import AsyncMock, MagicMock, patch

from fastapi import FastAPI

from authx.main import build_services, purge_tokens_periodically
from authx.services.redis_service import AttemptCounterStore
from authx.services.session_service import SessionService
from authx.services.throttle_service import ThrottleService
from authx.services.token_service import TokenService


class TestBuildServices:
    """Tests for build_services."""

    def test_wires_state(self, settings):
        app = FastAPI()
        pool = MagicMock()

        build_services(app, settings, pool, None)

        assert app.state.pool is pool
        assert isinstance(app.state.counter_store, AttemptCounterStore)
        assert app.state.counter_store.client is None
        assert isinstance(app.state.token_service, TokenService)
        assert isinstance(app.state.throttle_service, ThrottleService)
        assert isinstance(app.state.session_service, SessionService)
        assert app.state.session_service.throttle is app.state.throttle_service
        assert app.state.session_service.tokens is app.state.token_service


class TestPurgeLoop:
    """Tests for purge_tokens_periodically."""

    async def test_purges_each_interval_until_cancelled(self):
        tokens = MagicMock()
        tokens.purge_expired = AsyncMock(return_value=2)

        with patch(
            "authx.main.asyncio.sleep",
            new_callable=AsyncMock,
            side_effect=[None, None, asyncio.CancelledError()],
        ) as sleep:
            await purge_tokens_periodically(tokens, 60)

        assert tokens.purge_expired.await_count == 2
        sleep.assert_awaited_with(60)

    async def test_survives_store_errors(self):
        tokens = MagicMock()
        tokens.purge_expired = AsyncMock(side_effect=[RuntimeError("db down"), 0])

        with patch(
            "authx.main.asyncio.sleep",
            new_callable=AsyncMock,
            side_effect=[None, None, asyncio.CancelledError()],
        ):
            await purge_tokens_periodically(tokens, 60)

        assert tokens.purge_expired.await_count == 2
