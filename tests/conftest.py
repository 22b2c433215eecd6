"""Pytest configuration and fixtures shared across all test modules.

This file is automatically loaded by pytest before running any tests.
It sets the TESTING environment variable so no .env file is loaded, and
switches the default counting backend to the in-process strategy so the
suite never needs a Redis server.
"""

import os

# CRITICAL: Set this before any imports that might load settings
os.environ["TESTING"] = "true"
os.environ.setdefault("RATE_LIMIT_BACKEND", "memory")
os.environ.setdefault("LOG_LEVEL", "WARNING")

from typing import Any

import pytest
from starlette.requests import Request


class FakeRedis:
    """In-process stand-in for ``redis.asyncio.Redis``.

    ``eval`` mimics the sliding-window script: prune scores below the window
    start, add the member, record the TTL, return the set size.
    """

    def __init__(self) -> None:
        self.zsets: dict[str, dict[str, int]] = {}
        self.ttls_ms: dict[str, int] = {}
        self.eval_calls: list[tuple[Any, ...]] = []
        self.closed = False

    async def eval(self, script: str, numkeys: int, *args: Any) -> int:
        self.eval_calls.append((script, numkeys, *args))
        key, score, window_start, ttl_ms, member = args
        zset = self.zsets.setdefault(key, {})
        for existing, existing_score in list(zset.items()):
            if existing_score < window_start:
                del zset[existing]
        zset[member] = score
        self.ttls_ms[key] = ttl_ms
        return len(zset)

    async def ping(self) -> bool:
        return True

    async def aclose(self) -> None:
        self.closed = True


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


def build_request(
    headers: dict[str, str] | None = None,
    *,
    method: str = "POST",
    path: str = "/posts",
    body: bytes = b"",
) -> Request:
    """Build a bare Starlette request from raw headers."""
    raw_headers = [
        (name.lower().encode("latin-1"), value.encode("latin-1"))
        for name, value in (headers or {}).items()
    ]

    async def receive():
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "scheme": "http",
        "server": ("testserver", 80),
        "path": path,
        "root_path": "",
        "query_string": b"",
        "headers": raw_headers,
    }
    return Request(scope, receive)


@pytest.fixture
def make_request():
    return build_request
