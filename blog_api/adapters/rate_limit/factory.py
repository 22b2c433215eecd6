"""Factory pattern for creating rate limiting strategies."""

from __future__ import annotations

from typing import Any

import redis.asyncio as aioredis

from blog_api.adapters.rate_limit.base import AbstractStrategy
from blog_api.adapters.rate_limit.in_memory import InMemorySlidingWindowStrategy
from blog_api.adapters.rate_limit.redis_sorted_set import SortedSetCounterStrategy
from blog_api.core.config import Settings, settings as default_settings
from blog_api.core.errors import ValidationAppError


def create_redis_client(cfg: Settings | None = None) -> aioredis.Redis:
    """Build an asyncio Redis client from configuration.

    The client connects lazily, so building it never touches the network.
    """
    cfg = cfg or default_settings
    return aioredis.from_url(
        cfg.redis.url,
        socket_timeout=cfg.redis.socket_timeout_seconds,
        socket_connect_timeout=cfg.redis.socket_timeout_seconds,
    )


def create_strategy(
    cfg: Settings | None = None,
    *,
    redis_client: Any | None = None,
) -> AbstractStrategy:
    """Instantiate the counting strategy selected by ``RATE_LIMIT_BACKEND``.

    Args:
        cfg: Settings to read; defaults to the global settings.
        redis_client: Optional pre-built client (tests, shared pools).

    Returns:
        AbstractStrategy: Configured strategy instance.

    Raises:
        ValidationAppError: If the backend name is unknown.
    """
    cfg = cfg or default_settings
    backend = cfg.rate_limit.backend.strip().lower()

    if backend == "redis":
        return SortedSetCounterStrategy(
            redis_client if redis_client is not None else create_redis_client(cfg),
            key_prefix=cfg.rate_limit.key_prefix,
            timeout_seconds=cfg.rate_limit.store_timeout_seconds,
        )

    if backend == "memory":
        return InMemorySlidingWindowStrategy()

    raise ValidationAppError(
        code="rate_limit_unknown_backend",
        message=(
            f"Unknown rate limit backend: '{backend}'. Supported backends: redis, memory"
        ),
        details={"backend": backend},
    )
