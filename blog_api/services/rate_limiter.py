"""Rate limiter core: extract a key, count, decide, gate the wrapped handler.

The limiter wraps an ASGI-style request handler (``async (Request) -> Response``)
and returns a handler with the same signature. Three outcomes are possible:

- the request cannot be keyed → 400, nothing else runs;
- the counting store fails → 500, the wrapped handler never runs (fail closed);
- a decision is reached → metadata headers are set, then Deny answers 429
  and Allow forwards to the wrapped handler.

Deny is a normal outcome and is never raised as an exception.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable

from fastapi import Request, Response, status

from blog_api.adapters.rate_limit.base import (
    AbstractStrategy,
    Decision,
    RateLimitRequest,
    State,
)
from blog_api.core.errors import KeyExtractionError, RateLimitStoreError
from blog_api.core.exception_handlers import INTERNAL_ERROR_MESSAGE, error_response
from blog_api.core.logging import hash_identifier
from blog_api.services.key_extraction import AbstractExtractor

logger = logging.getLogger(__name__)

Handler = Callable[[Request], Awaitable[Response]]

TOTAL_REQUESTS_HEADER = "Rate-Limiting-Total-Requests"
STATE_HEADER = "Rate-Limiting-State"
EXPIRES_AT_HEADER = "Rate-Limiting-Expires-At"

TOO_MANY_REQUESTS_MESSAGE = (
    "you have sent too many requests to this service, slow down please"
)


def format_expires_at(value: datetime) -> str:
    """Render a window expiry as an RFC 3339 UTC timestamp (second precision)."""
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ")


def rate_limit_headers(decision: Decision) -> dict[str, str]:
    """Response headers describing a decision."""
    return {
        TOTAL_REQUESTS_HEADER: str(decision.total_requests),
        STATE_HEADER: decision.state.value,
        EXPIRES_AT_HEADER: format_expires_at(decision.expires_at),
    }


@dataclass(frozen=True)
class RateLimiterConfig:
    """Everything a limiter needs: how to key, how to count, and the budget.

    Attributes:
        extractor: Builds the limiter key from a request.
        strategy: Counts events per key and decides.
        expiration: Length of the trailing window.
        max_requests: Events allowed per window before denying.
    """

    extractor: AbstractExtractor
    strategy: AbstractStrategy
    expiration: timedelta
    max_requests: int

    def __post_init__(self) -> None:
        if self.max_requests < 1:
            raise ValueError("max_requests must be >= 1")
        if self.expiration <= timedelta(0):
            raise ValueError("expiration must be a positive duration")


class RateLimiter:
    """Composes an extractor and a counting strategy into request gating."""

    def __init__(self, config: RateLimiterConfig) -> None:
        self._config = config

    @property
    def config(self) -> RateLimiterConfig:
        return self._config

    async def evaluate(self, request: Request) -> Decision:
        """Record the request against its key and return the decision.

        Raises:
            KeyExtractionError: If the request cannot be keyed.
            RateLimitStoreError: If the strategy cannot reach its store.
        """
        return await self.count(self._config.extractor.extract(request))

    async def count(self, key: str) -> Decision:
        """Record one event for an already extracted key and decide."""
        return await self._config.strategy.run(
            RateLimitRequest(
                key=key,
                limit=self._config.max_requests,
                duration=self._config.expiration,
            )
        )

    def wrap(self, handler: Handler) -> Handler:
        """Return ``handler`` guarded by this limiter."""

        async def rate_limited(request: Request) -> Response:
            try:
                key = self._config.extractor.extract(request)
                decision = await self.count(key)
            except KeyExtractionError as exc:
                logger.debug(
                    "rate_limit.key_missing",
                    extra={"reason": exc.message, "path": request.url.path},
                )
                return error_response(
                    status.HTTP_400_BAD_REQUEST,
                    code=exc.code,
                    message=f"failed to collect rate limiting key from request: {exc.message}",
                )
            except RateLimitStoreError as exc:
                logger.error(
                    "rate_limit.failed_closed",
                    extra={"error_code": exc.code, "error_message": exc.message},
                )
                return error_response(
                    status.HTTP_500_INTERNAL_SERVER_ERROR,
                    code=exc.code,
                    message=INTERNAL_ERROR_MESSAGE,
                )

            headers = rate_limit_headers(decision)
            log_extra = {
                "key_hash": hash_identifier(key),
                "total_requests": decision.total_requests,
                "limit": self._config.max_requests,
                "window_s": self._config.expiration.total_seconds(),
            }

            if decision.state is State.DENY:
                logger.warning("rate_limit.denied", extra=log_extra)
                return error_response(
                    status.HTTP_429_TOO_MANY_REQUESTS,
                    code="rate_limit_exceeded",
                    message=TOO_MANY_REQUESTS_MESSAGE,
                    headers=headers,
                )

            logger.debug("rate_limit.allowed", extra=log_extra)
            response = await handler(request)
            # Applied last so the wrapped handler cannot overwrite them
            response.headers.update(headers)
            return response

        return rate_limited
