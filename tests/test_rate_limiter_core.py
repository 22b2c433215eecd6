"""Unit tests for the rate limiter core (extract, count, decide, gate)."""

import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock, Mock

import pytest
from fastapi.responses import JSONResponse

from blog_api.adapters.rate_limit.base import AbstractStrategy, Decision, State
from blog_api.adapters.rate_limit.in_memory import InMemorySlidingWindowStrategy
from blog_api.core.errors import KeyExtractionError, RateLimitStoreError
from blog_api.services.key_extraction import HTTPHeadersExtractor
from blog_api.services.rate_limiter import (
    EXPIRES_AT_HEADER,
    STATE_HEADER,
    TOTAL_REQUESTS_HEADER,
    RateLimiter,
    RateLimiterConfig,
    format_expires_at,
    rate_limit_headers,
)


class UnreachableStore(AbstractStrategy):
    """Strategy whose store is always down."""

    def __init__(self) -> None:
        self.calls = 0

    async def run(self, request):
        self.calls += 1
        raise RateLimitStoreError(
            code="rate_limit_store_unavailable",
            message="connection refused",
        )


def _limiter(strategy: AbstractStrategy, *, limit: int = 2, seconds: float = 10) -> RateLimiter:
    return RateLimiter(
        RateLimiterConfig(
            extractor=HTTPHeadersExtractor("Authorization"),
            strategy=strategy,
            expiration=timedelta(seconds=seconds),
            max_requests=limit,
        )
    )


def _delegate() -> AsyncMock:
    return AsyncMock(return_value=JSONResponse({"ok": True}, status_code=201))


def _body(response) -> dict:
    return json.loads(bytes(response.body).decode())


@pytest.mark.asyncio
async def test_allowed_request_reaches_delegate_with_headers(make_request) -> None:
    limiter = _limiter(InMemorySlidingWindowStrategy(clock=Mock(return_value=1000.0)))
    delegate = _delegate()

    response = await limiter.wrap(delegate)(make_request({"Authorization": "tok1"}))

    delegate.assert_awaited_once()
    assert response.status_code == 201
    assert response.headers[TOTAL_REQUESTS_HEADER] == "1"
    assert response.headers[STATE_HEADER] == "Allow"
    assert response.headers[EXPIRES_AT_HEADER] == "1970-01-01T00:16:50Z"


@pytest.mark.asyncio
async def test_denied_request_never_reaches_delegate(make_request) -> None:
    limiter = _limiter(InMemorySlidingWindowStrategy(clock=Mock(return_value=1000.0)), limit=1)
    delegate = _delegate()
    handler = limiter.wrap(delegate)

    await handler(make_request({"Authorization": "tok1"}))
    response = await handler(make_request({"Authorization": "tok1"}))

    assert delegate.await_count == 1
    assert response.status_code == 429
    assert response.headers[STATE_HEADER] == "Deny"
    assert response.headers[TOTAL_REQUESTS_HEADER] == "2"
    body = _body(response)
    assert body["status"] == 429
    assert body["message"] == "you have sent too many requests to this service, slow down please"


@pytest.mark.asyncio
async def test_missing_key_is_a_client_error(make_request) -> None:
    strategy = Mock(spec=AbstractStrategy)
    strategy.run = AsyncMock()
    delegate = _delegate()

    response = await _limiter(strategy).wrap(delegate)(make_request({}))

    assert response.status_code == 400
    body = _body(response)
    assert body["status"] == 400
    assert body["message"] == (
        "failed to collect rate limiting key from request: "
        "the header Authorization must have a value set"
    )
    assert STATE_HEADER not in response.headers
    strategy.run.assert_not_awaited()
    delegate.assert_not_awaited()


@pytest.mark.asyncio
async def test_store_failure_fails_closed(make_request) -> None:
    strategy = UnreachableStore()
    delegate = _delegate()

    response = await _limiter(strategy).wrap(delegate)(make_request({"Authorization": "tok1"}))

    assert strategy.calls == 1
    assert response.status_code == 500
    body = _body(response)
    assert body["status"] == 500
    assert body["message"] == "Internal server error."
    assert "connection refused" not in json.dumps(body)
    delegate.assert_not_awaited()


@pytest.mark.asyncio
async def test_delegate_cannot_overwrite_rate_limit_headers(make_request) -> None:
    limiter = _limiter(InMemorySlidingWindowStrategy(clock=Mock(return_value=1000.0)))
    delegate = AsyncMock(
        return_value=JSONResponse({"ok": True}, headers={STATE_HEADER: "Spoofed"})
    )

    response = await limiter.wrap(delegate)(make_request({"Authorization": "tok1"}))

    assert response.headers[STATE_HEADER] == "Allow"


@pytest.mark.asyncio
async def test_strategy_receives_configured_budget(make_request) -> None:
    decision = Decision(
        state=State.ALLOW,
        total_requests=1,
        expires_at=datetime(2026, 1, 1, tzinfo=timezone.utc),
    )
    strategy = Mock(spec=AbstractStrategy)
    strategy.run = AsyncMock(return_value=decision)
    limiter = _limiter(strategy, limit=30, seconds=10)

    result = await limiter.evaluate(make_request({"Authorization": "tok1"}))

    assert result is decision
    sent = strategy.run.await_args.args[0]
    assert sent.key == "tok1"
    assert sent.limit == 30
    assert sent.duration == timedelta(seconds=10)


@pytest.mark.asyncio
async def test_evaluate_propagates_extraction_errors(make_request) -> None:
    limiter = _limiter(InMemorySlidingWindowStrategy())

    with pytest.raises(KeyExtractionError):
        await limiter.evaluate(make_request({}))


@pytest.mark.parametrize(
    "kwargs",
    [
        {"max_requests": 0, "expiration": timedelta(seconds=10)},
        {"max_requests": 1, "expiration": timedelta(0)},
    ],
)
def test_invalid_config(kwargs: dict) -> None:
    with pytest.raises(ValueError):
        RateLimiterConfig(
            extractor=HTTPHeadersExtractor("Authorization"),
            strategy=InMemorySlidingWindowStrategy(),
            **kwargs,
        )


def test_headers_describe_the_decision() -> None:
    decision = Decision(
        state=State.DENY,
        total_requests=31,
        expires_at=datetime(2026, 10, 19, 12, 30, 5, 999000, tzinfo=timezone.utc),
    )

    assert rate_limit_headers(decision) == {
        TOTAL_REQUESTS_HEADER: "31",
        STATE_HEADER: "Deny",
        EXPIRES_AT_HEADER: "2026-10-19T12:30:05Z",
    }


def test_expiry_is_rendered_in_utc() -> None:
    plus_two = timezone(timedelta(hours=2))

    assert format_expires_at(datetime(2026, 1, 1, 2, 0, tzinfo=plus_two)) == "2026-01-01T00:00:00Z"
