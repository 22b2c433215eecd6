"""Tests for strategy selection and settings parsing."""

import pytest
import redis.asyncio as aioredis

from blog_api.adapters.rate_limit import (
    InMemorySlidingWindowStrategy,
    SortedSetCounterStrategy,
    create_redis_client,
    create_strategy,
)
from blog_api.core.config import RateLimitSettings, RedisSettings, Settings, split_csv
from blog_api.core.errors import ValidationAppError


def _settings(backend: str) -> Settings:
    return Settings(
        rate_limit=RateLimitSettings(backend=backend, key_prefix="blog", store_timeout_seconds=0.5),
        redis=RedisSettings(url="redis://cache:6379/1"),
    )


def test_memory_backend() -> None:
    assert isinstance(create_strategy(_settings("memory")), InMemorySlidingWindowStrategy)


def test_redis_backend_uses_given_client(fake_redis) -> None:
    strategy = create_strategy(_settings("Redis "), redis_client=fake_redis)

    assert isinstance(strategy, SortedSetCounterStrategy)
    assert strategy.store_key("tok1").startswith("blog:sliding:")


def test_unknown_backend_is_rejected() -> None:
    with pytest.raises(ValidationAppError) as exc_info:
        create_strategy(_settings("memcached"))

    assert exc_info.value.code == "rate_limit_unknown_backend"
    assert exc_info.value.details == {"backend": "memcached"}


def test_redis_client_is_built_lazily() -> None:
    client = create_redis_client(_settings("redis"))

    assert isinstance(client, aioredis.Redis)
    kwargs = client.connection_pool.connection_kwargs
    assert kwargs["host"] == "cache"
    assert kwargs["db"] == 1


@pytest.mark.parametrize(
    ("raw", "expected"),
    [
        ("POST, PUT ,,DELETE", ["POST", "PUT", "DELETE"]),
        ("Authorization", ["Authorization"]),
        ("", []),
        (None, []),
    ],
)
def test_split_csv(raw, expected) -> None:
    assert split_csv(raw) == expected


def test_rate_limit_defaults() -> None:
    cfg = RateLimitSettings()

    assert cfg.max_requests >= 1
    assert cfg.window_seconds > 0


@pytest.mark.parametrize("field", [{"max_requests": 0}, {"window_seconds": 0}])
def test_rate_limit_settings_reject_empty_budget(field) -> None:
    with pytest.raises(ValueError):
        RateLimitSettings(**field)
