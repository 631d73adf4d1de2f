"""Attempt throttling for the credential entry points.

Two independent policies share the attempt counter store:

* a fixed-window counter per (endpoint, client key), and
* a progressive delay after repeated login failures per client address.

Both fail open. If Redis cannot be reached the request is let through and
the degradation is logged; throttling never blocks the auth path on its own
outage.
"""

import math
import time
from dataclasses import dataclass
from typing import Callable, Optional

import structlog

from authx.config import Settings
from authx.errors import StoreUnavailable, ThrottledRequest
from authx.models.user import normalize_email
from authx.services.redis_service import AttemptCounterStore

logger = structlog.get_logger(__name__)

BRUTE_FORCE_PREFIX = "bf:login"


@dataclass(frozen=True)
class RateLimitPolicy:
    """Ceiling of ``limit`` requests per ``window_seconds`` for one endpoint class."""

    name: str
    limit: int
    window_seconds: int


@dataclass
class RateLimitStatus:
    limit: int
    remaining: int
    reset_after: int
    enforced: bool = True

    def headers(self) -> dict[str, str]:
        """X-RateLimit-* response headers."""
        if not self.enforced:
            return {}
        return {
            "X-RateLimit-Limit": str(self.limit),
            "X-RateLimit-Remaining": str(self.remaining),
            "X-RateLimit-Reset": str(math.ceil(time.time()) + self.reset_after),
        }


def build_policies(settings: Settings) -> dict[str, RateLimitPolicy]:
    """Per-endpoint-class policies; registration and login are the strictest."""
    return {
        "register": RateLimitPolicy(
            "register", settings.register_rate_limit, settings.register_rate_window
        ),
        "login": RateLimitPolicy("login", settings.login_rate_limit, settings.login_rate_window),
        "refresh": RateLimitPolicy(
            "refresh", settings.refresh_rate_limit, settings.refresh_rate_window
        ),
        "api": RateLimitPolicy("api", settings.api_rate_limit, settings.api_rate_window),
    }


def login_client_key(client_ip: str, email: Optional[str]) -> str:
    """Rate-limit key for login: address plus the targeted account.

    The brute-force delay deliberately keys on the address alone, so one
    client probing many accounts is still slowed down.
    """
    return f"{client_ip}:{normalize_email(email) if email else 'unknown'}"


class ThrottleService:
    """Fixed-window rate limiter plus progressive brute-force delay."""

    def __init__(
        self,
        counters: AttemptCounterStore,
        settings: Settings,
        clock: Callable[[], float] = time.time,
    ):
        self.counters = counters
        self.settings = settings
        self.policies = build_policies(settings)
        self.delays = settings.brute_force_delays_list
        self.clock = clock

    # -- fixed-window limiter -------------------------------------------------

    async def check_rate_limit(self, policy_name: str, client_key: str) -> RateLimitStatus:
        """Count this request against the endpoint's window.

        Args:
            policy_name: Endpoint class ("register", "login", "refresh", "api")
            client_key: Client identity (address, or address+email for login)

        Returns:
            Current window status for response headers

        Raises:
            ThrottledRequest: The window ceiling has been reached; carries the
                remaining window TTL as retry-after
        """
        policy = self.policies[policy_name]
        key = f"rl:{policy.name}:{client_key}"

        try:
            count, ttl = await self.counters.incr_with_expiry(key, policy.window_seconds)
        except StoreUnavailable as e:
            logger.warning(
                "throttle_store_unavailable",
                guard="rate_limit",
                policy=policy.name,
                error=str(e),
            )
            return RateLimitStatus(policy.limit, policy.limit, 0, enforced=False)

        if count > policy.limit:
            logger.warning(
                "rate_limit_exceeded",
                policy=policy.name,
                client_key=client_key,
                attempts=count,
                ttl_seconds=ttl,
            )
            raise ThrottledRequest(retry_after=ttl)

        return RateLimitStatus(
            limit=policy.limit,
            remaining=max(0, policy.limit - count),
            reset_after=ttl,
        )

    # -- progressive brute-force delay ----------------------------------------

    def required_delay(self, failures: int) -> int:
        """Delay in seconds owed after ``failures`` consecutive failures.

        Failure counts past the end of the table keep the last (largest) delay.
        """
        if failures <= 0 or not self.delays:
            return 0
        return self.delays[min(failures, len(self.delays) - 1)]

    @staticmethod
    def _keys(client_ip: str) -> tuple[str, str]:
        key = f"{BRUTE_FORCE_PREFIX}:{client_ip}"
        return key, f"{key}:last_attempt"

    async def check_brute_force(self, client_ip: str) -> None:
        """Reject the attempt if the client has not waited out its delay.

        Raises:
            ThrottledRequest: With the remaining wait as retry-after
        """
        key, last_key = self._keys(client_ip)
        now = self.clock()

        try:
            failures = await self.counters.get(key) or 0
            delay = self.required_delay(failures)

            if delay > 0:
                last_attempt_ms = await self.counters.get(last_key)
                if last_attempt_ms is not None:
                    elapsed = now - last_attempt_ms / 1000
                    if elapsed < delay:
                        wait = math.ceil(delay - elapsed)
                        logger.warning(
                            "brute_force_throttled",
                            client_ip=client_ip,
                            failures=failures,
                            wait_seconds=wait,
                        )
                        raise ThrottledRequest(retry_after=wait)

            await self.counters.set(last_key, int(now * 1000), self.settings.brute_force_ttl)
        except StoreUnavailable as e:
            logger.warning("throttle_store_unavailable", guard="brute_force", error=str(e))

    async def record_failure(self, client_ip: str) -> int:
        """Count a failed credential check.

        The failure counter expires after an hour without failures.

        Returns:
            Failure count after this one, or 0 if the store is unavailable
        """
        key, last_key = self._keys(client_ip)
        ttl = self.settings.brute_force_ttl

        try:
            failures, _ = await self.counters.incr_with_expiry(key, ttl, refresh_ttl=True)
            await self.counters.set(last_key, int(self.clock() * 1000), ttl)
        except StoreUnavailable as e:
            logger.warning("throttle_store_unavailable", guard="brute_force", error=str(e))
            return 0

        logger.info("login_failure_recorded", client_ip=client_ip, failures=failures)
        return failures

    async def reset_failures(self, client_ip: str) -> None:
        """Forget the failure history after a successful login."""
        key, last_key = self._keys(client_ip)
        try:
            await self.counters.delete(key, last_key)
        except StoreUnavailable as e:
            logger.warning("throttle_store_unavailable", guard="brute_force", error=str(e))

    async def failure_count(self, client_ip: str) -> int:
        key, _ = self._keys(client_ip)
        try:
            return await self.counters.get(key) or 0
        except StoreUnavailable:
            return 0
