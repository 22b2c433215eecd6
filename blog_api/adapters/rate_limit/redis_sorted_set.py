"""Redis sorted-set sliding-window strategy.

Each limiter key maps to a sorted set whose members are individual events
scored by their timestamp (microseconds since the epoch). Pruning, insertion,
expiry refresh and counting run inside one Lua script, so concurrent requests
for the same key are serialized by Redis itself and no count is lost.
"""

from __future__ import annotations

import asyncio
import hashlib
import logging
import math
import time
import uuid
from typing import Any, Callable

from redis.exceptions import RedisError

from blog_api.adapters.rate_limit.base import (
    AbstractStrategy,
    Decision,
    RateLimitRequest,
    decide,
)
from blog_api.core.errors import RateLimitStoreError

logger = logging.getLogger(__name__)


# KEYS[1]  sorted set for the client
# ARGV[1]  event score (now, microseconds)
# ARGV[2]  window start (microseconds); older scores are removed
# ARGV[3]  key time-to-live in milliseconds
# ARGV[4]  unique event member
SLIDING_WINDOW_SCRIPT = """
local key = KEYS[1]
redis.call('ZREMRANGEBYSCORE', key, '-inf', '(' .. ARGV[2])
redis.call('ZADD', key, ARGV[1], ARGV[4])
redis.call('PEXPIRE', key, ARGV[3])
return redis.call('ZCARD', key)
"""


class SortedSetCounterStrategy(AbstractStrategy):
    """Distributed sliding-window log backed by Redis sorted sets."""

    def __init__(
        self,
        redis_client: Any,
        *,
        clock: Callable[[], float] = time.time,
        key_prefix: str = "rate_limit",
        timeout_seconds: float | None = None,
    ) -> None:
        """Initialize the strategy.

        Args:
            redis_client: ``redis.asyncio.Redis`` compatible client.
            clock: Time source function returning UNIX time in seconds.
            key_prefix: Namespace for sorted-set keys in Redis.
            timeout_seconds: Bound for one script round-trip; None disables it.
        """
        self._redis = redis_client
        self._clock = clock
        self._key_prefix = key_prefix
        self._timeout = timeout_seconds

    def store_key(self, key: str) -> str:
        """Redis key holding the events of ``key``.

        Limiter keys usually carry credentials, so only a digest is stored.
        """
        digest = hashlib.sha256(key.encode()).hexdigest()
        return f"{self._key_prefix}:sliding:{digest}"

    async def _eval(self, *args: Any) -> Any:
        call = self._redis.eval(SLIDING_WINDOW_SCRIPT, 1, *args)
        if self._timeout is None:
            return await call
        return await asyncio.wait_for(call, timeout=self._timeout)

    async def run(self, request: RateLimitRequest) -> Decision:
        if not request.key:
            raise ValueError("key must be a non-empty string")

        now = self._clock()
        now_us = int(now * 1_000_000)
        window_us = int(request.duration.total_seconds() * 1_000_000)
        ttl_ms = max(1, math.ceil(request.duration.total_seconds() * 1000))
        member = f"{now_us}-{uuid.uuid4().hex}"

        try:
            result = await self._eval(
                self.store_key(request.key),
                now_us,
                now_us - window_us,
                ttl_ms,
                member,
            )
        except asyncio.TimeoutError as exc:
            logger.error(
                "rate_limit.store_timeout",
                extra={"timeout_seconds": self._timeout},
            )
            raise RateLimitStoreError(
                code="rate_limit_store_timeout",
                message="Rate limit store did not answer in time",
                details={"timeout_seconds": self._timeout or 0.0},
            ) from exc
        except RedisError as exc:
            logger.error(
                "rate_limit.store_error",
                extra={"error_type": type(exc).__name__, "error_msg": str(exc)},
            )
            raise RateLimitStoreError(
                code="rate_limit_store_unavailable",
                message="Rate limit store failed to execute the counting script",
                details={"error_type": type(exc).__name__},
            ) from exc

        if isinstance(result, bool) or not isinstance(result, int):
            logger.error(
                "rate_limit.store_bad_reply",
                extra={"reply_type": type(result).__name__},
            )
            raise RateLimitStoreError(
                code="rate_limit_store_bad_reply",
                message="Rate limit store returned a malformed count",
                details={"error_type": type(result).__name__},
            )

        return decide(result, request, now)

    async def ping(self) -> bool:
        try:
            return bool(await self._redis.ping())
        except RedisError as exc:
            logger.warning(
                "rate_limit.store_ping_failed",
                extra={"error_type": type(exc).__name__},
            )
            return False

    async def close(self) -> None:
        await self._redis.aclose()
