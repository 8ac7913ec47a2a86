"""Client-side rate limiting for the Zenodo API.

Zenodo enforces two quotas per token: a general one covering every request
and a stricter one covering search/list endpoints.  :class:`RateLimiter`
models each with a :class:`TokenBucket` and corrects the local estimate from
the ``X-RateLimit-*`` headers the server returns.
"""

from __future__ import annotations

import asyncio
import logging
import math
import time
from collections import defaultdict
from typing import Awaitable, Callable, Dict, Mapping, Optional

import httpx

logger = logging.getLogger(__name__)

# Documented Zenodo limits, requests per minute
GENERAL_PER_MINUTE = 100
SEARCH_PER_MINUTE = 30

SEARCH_PREFIXES = ("/records", "/communities", "/licenses")

Clock = Callable[[], float]
Sleeper = Callable[[float], Awaitable[None]]


def is_search_path(path: str) -> bool:
    """Return True if ``path`` hits a search-limited endpoint."""
    path = path.split("?", 1)[0]
    return path.startswith(SEARCH_PREFIXES)


class TokenBucket:
    """A capped, continuously replenished counter of request permits."""

    def __init__(
        self,
        max_tokens: float,
        per_minute: float,
        clock: Clock = time.monotonic,
    ) -> None:
        """Initialize token bucket.

        Args:
            max_tokens: Capacity of the bucket
            per_minute: Tokens added per minute
            clock: Monotonic time source in seconds
        """
        if per_minute <= 0:
            raise ValueError("per_minute must be positive")
        self.max_tokens = float(max_tokens)
        self.refill_rate = per_minute / 60.0
        self.tokens = float(max_tokens)
        self._clock = clock
        self.last_refill = clock()

    def refill(self) -> None:
        """Add tokens for the time elapsed since the last refill."""
        now = self._clock()
        elapsed = max(0.0, now - self.last_refill)
        self.tokens = min(self.max_tokens, max(0.0, self.tokens + elapsed * self.refill_rate))
        self.last_refill = max(now, self.last_refill)

    def wait_duration(self) -> float:
        """Seconds until one token is available, in whole milliseconds."""
        if self.tokens >= 1:
            return 0.0
        deficit = 1.0 - self.tokens
        return math.ceil(deficit / self.refill_rate * 1000) / 1000

    def consume(self) -> None:
        """Spend one token. Callers must have waited for it first."""
        self.tokens -= 1


class RateLimiter:
    """Dual token bucket limiter matching Zenodo's general and search quotas.

    All bucket reads and writes happen under one ``asyncio.Lock`` owned by
    the instance.  The lock is released while sleeping so that other tasks
    can refill and inspect the buckets in the meantime.
    """

    def __init__(
        self,
        general_per_minute: float = GENERAL_PER_MINUTE,
        search_per_minute: float = SEARCH_PER_MINUTE,
        clock: Clock = time.monotonic,
        sleep: Sleeper = asyncio.sleep,
        wall_clock: Clock = time.time,
    ) -> None:
        """Initialize rate limiter.

        Args:
            general_per_minute: Quota for every request
            search_per_minute: Additional quota for search-scoped paths
            clock: Monotonic time source used by the buckets
            sleep: Coroutine used to wait for tokens
            wall_clock: Epoch time source used to interpret reset headers
        """
        self.general = TokenBucket(general_per_minute, general_per_minute, clock=clock)
        self.search = TokenBucket(search_per_minute, search_per_minute, clock=clock)
        self._sleep = sleep
        self._wall_clock = wall_clock
        self._lock = asyncio.Lock()
        self._stats: Dict[str, Dict[str, float]] = defaultdict(
            lambda: {"requests": 0, "total_wait": 0.0}
        )

    async def _sleep_unlocked(self, bucket_name: str, delay: float) -> None:
        logger.info("Rate limiting: waiting %.3fs for %s bucket", delay, bucket_name)
        self._lock.release()
        try:
            await self._sleep(delay)
        finally:
            await self._lock.acquire()

    async def wait(self, path: str) -> float:
        """Block until one request to ``path`` is allowed.

        Consumes one general token, plus one search token when the path is
        search-scoped.

        Returns:
            Seconds spent sleeping
        """
        waited = 0.0
        search_scoped = is_search_path(path)

        await self._lock.acquire()
        try:
            self.general.refill()
            self.search.refill()

            delay = self.general.wait_duration()
            if delay > 0:
                await self._sleep_unlocked("general", delay)
                waited += delay
                self._stats["general"]["total_wait"] += delay
                self.general.refill()

            if search_scoped:
                delay = self.search.wait_duration()
                if delay > 0:
                    await self._sleep_unlocked("search", delay)
                    waited += delay
                    self._stats["search"]["total_wait"] += delay
                    self.search.refill()
                self.search.consume()
                self._stats["search"]["requests"] += 1

            self.general.consume()
            self._stats["general"]["requests"] += 1
        finally:
            self._lock.release()

        return waited

    def update_from_headers(self, headers: Optional[Mapping[str, str]], path: str) -> None:
        """Lower the local token estimate from server rate-limit headers.

        Only ever decreases a bucket: a reported ``X-RateLimit-Remaining``
        below the local count replaces it, a higher one is ignored.  Missing
        or malformed headers are ignored.
        """
        if not headers:
            return
        headers = httpx.Headers(headers)

        remaining_raw = headers.get("X-RateLimit-Remaining")
        if not remaining_raw:
            return
        try:
            remaining = float(remaining_raw)
        except ValueError:
            return
        if math.isnan(remaining):
            return
        remaining = max(0.0, remaining)

        # Plain attribute updates, no awaits: atomic with respect to wait()
        if is_search_path(path) and remaining < self.search.tokens:
            logger.debug("Rate limit: server reports lower search remaining (%.0f)", remaining)
            self.search.tokens = remaining

        if remaining < self.general.tokens:
            logger.debug("Rate limit: server reports lower general remaining (%.0f)", remaining)
            self.general.tokens = remaining

        reset_raw = headers.get("X-RateLimit-Reset")
        if not reset_raw:
            return
        try:
            reset_at = int(reset_raw)
        except ValueError:
            return
        until_reset = reset_at - self._wall_clock()
        if until_reset > 0 and remaining <= 5:
            logger.warning(
                "Rate limit: approaching limit (%.0f remaining), server resets in %.0fs",
                remaining,
                until_reset,
            )

    def get_stats(self) -> Dict[str, Dict[str, float]]:
        """Get rate limiting statistics per bucket."""
        stats = {}
        for bucket, data in self._stats.items():
            stats[bucket] = {
                "requests": data["requests"],
                "total_wait_seconds": round(data["total_wait"], 3),
                "avg_wait_seconds": (
                    round(data["total_wait"] / data["requests"], 3) if data["requests"] > 0 else 0
                ),
            }
        return stats

    def reset_stats(self) -> None:
        """Reset statistics."""
        self._stats.clear()
