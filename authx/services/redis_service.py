"""Redis-backed attempt counters for rate limiting and brute-force tracking."""

import asyncio
from typing import Optional

import redis.asyncio as redis
import structlog
from redis.exceptions import RedisError

from authx.config import Settings
from authx.errors import StoreUnavailable

logger = structlog.get_logger(__name__)

# INCR and EXPIRE in one atomic step. The TTL is set when the key is created
# (fixed window) or on every hit when ARGV[2] == "1" (idle timeout).
_INCR_WITH_EXPIRY_SCRIPT = """
local count = redis.call('INCR', KEYS[1])
if count == 1 or ARGV[2] == '1' then
  redis.call('EXPIRE', KEYS[1], ARGV[1])
end
local ttl = redis.call('TTL', KEYS[1])
if ttl < 0 then
  redis.call('EXPIRE', KEYS[1], ARGV[1])
  ttl = tonumber(ARGV[1])
end
return {count, ttl}
"""

_REDIS_ERRORS = (RedisError, OSError, asyncio.TimeoutError)


async def create_redis(settings: Settings) -> Optional[redis.Redis]:
    """Create and ping the Redis client.

    Returns:
        Redis client or None if connection fails (graceful degradation)
    """
    client = redis.from_url(
        settings.redis_url,
        encoding="utf-8",
        decode_responses=True,
        socket_timeout=settings.redis_socket_timeout,
        socket_connect_timeout=settings.redis_socket_timeout,
    )
    try:
        await client.ping()
        logger.info("redis_connected", url=settings.redis_url.split("@")[-1])
        return client
    except _REDIS_ERRORS as e:
        logger.warning("redis_connection_failed", error=str(e))
        await client.aclose()
        return None


async def close_redis(client: Optional[redis.Redis]) -> None:
    """Close the Redis connection."""
    if client is not None:
        await client.aclose()
        logger.info("redis_connection_closed")


class AttemptCounterStore:
    """Ephemeral TTL'd counters.

    Nothing here is durable. Every failure to reach Redis, including a client
    that never connected, is raised as StoreUnavailable so the caller can
    decide to fail open.
    """

    def __init__(self, client: Optional[redis.Redis]):
        self.client = client

    def _require_client(self) -> redis.Redis:
        if self.client is None:
            raise StoreUnavailable("Attempt counter store not connected")
        return self.client

    async def incr_with_expiry(
        self, key: str, ttl_seconds: int, refresh_ttl: bool = False
    ) -> tuple[int, int]:
        """Atomically increment a counter and make sure it expires.

        Args:
            key: Counter key
            ttl_seconds: Window length
            refresh_ttl: Restart the TTL on every increment instead of only
                when the key is created

        Returns:
            Tuple of (count after increment, remaining TTL in seconds)
        """
        client = self._require_client()
        try:
            count, ttl = await client.eval(
                _INCR_WITH_EXPIRY_SCRIPT,
                1,
                key,
                ttl_seconds,
                "1" if refresh_ttl else "0",
            )
        except _REDIS_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return int(count), int(ttl)

    async def get(self, key: str) -> Optional[int]:
        client = self._require_client()
        try:
            value = await client.get(key)
        except _REDIS_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return int(value) if value is not None else None

    async def get_ttl(self, key: str) -> int:
        """Remaining TTL in seconds, 0 if the key is missing or has none."""
        client = self._require_client()
        try:
            ttl = await client.ttl(key)
        except _REDIS_ERRORS as e:
            raise StoreUnavailable(str(e)) from e
        return max(0, int(ttl))

    async def set(self, key: str, value: int, ttl_seconds: int) -> None:
        client = self._require_client()
        try:
            await client.set(key, str(value), ex=ttl_seconds)
        except _REDIS_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

    async def delete(self, *keys: str) -> None:
        client = self._require_client()
        try:
            await client.delete(*keys)
        except _REDIS_ERRORS as e:
            raise StoreUnavailable(str(e)) from e

    async def ping(self) -> bool:
        if self.client is None:
            return False
        try:
            return bool(await self.client.ping())
        except _REDIS_ERRORS:
            return False
