"""HTTP wiring for the rate limiter.

This module marshals settings into a limiter configuration and mounts the
limiter as Starlette function middleware in front of authenticated write
endpoints.

Design goals:
- Minimal coupling: routes know nothing about rate limiting.
- Swap-friendly: the counting strategy is chosen by configuration and can be
  injected directly (tests, alternate stores).
- Anonymous reads pass through: only configured write methods under the
  configured path prefixes are limited.
"""

from __future__ import annotations

import logging
from datetime import timedelta
from typing import Awaitable, Callable, Iterable

from fastapi import FastAPI, Request, Response

from blog_api.adapters.rate_limit.base import AbstractStrategy
from blog_api.adapters.rate_limit.factory import create_strategy
from blog_api.core.config import Settings, settings as default_settings, split_csv
from blog_api.services.key_extraction import HTTPHeadersExtractor
from blog_api.services.rate_limiter import RateLimiter, RateLimiterConfig

logger = logging.getLogger(__name__)

CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]

DEFAULT_PROTECTED_METHODS = ("POST", "PUT", "PATCH", "DELETE")


def build_rate_limiter(
    cfg: Settings | None = None,
    *,
    strategy: AbstractStrategy | None = None,
) -> RateLimiter:
    """Build a limiter from settings.

    Args:
        cfg: Settings to read; defaults to the global settings.
        strategy: Counting strategy override; built from settings if omitted.

    Returns:
        RateLimiter: Limiter keyed on the configured headers.
    """
    cfg = cfg or default_settings
    rl = cfg.rate_limit

    headers = split_csv(rl.key_headers)
    if not headers:
        raise ValueError("RATE_LIMIT_KEY_HEADERS must name at least one header")

    return RateLimiter(
        RateLimiterConfig(
            extractor=HTTPHeadersExtractor(*headers),
            strategy=strategy if strategy is not None else create_strategy(cfg),
            expiration=timedelta(seconds=rl.window_seconds),
            max_requests=rl.max_requests,
        )
    )


def protected_scope(cfg: Settings) -> tuple[list[str], list[str]]:
    """Methods and path prefixes the limiter applies to, from settings."""
    rl = cfg.rate_limit
    methods = split_csv(rl.protected_methods) or list(DEFAULT_PROTECTED_METHODS)
    prefixes = split_csv(rl.protected_path_prefixes) or ["/"]
    return methods, prefixes


def matches_path_prefix(path: str, prefixes: Iterable[str]) -> bool:
    """Whether ``path`` equals a prefix or lies below it on a segment boundary.

    Examples:
        "/posts/1" matches "/posts"; "/postscript" does not.
    """
    for prefix in prefixes:
        base = prefix.rstrip("/")
        if path == base or path.startswith(base + "/"):
            return True
    return False


def is_protected(
    request: Request,
    *,
    methods: frozenset[str],
    path_prefixes: tuple[str, ...],
) -> bool:
    """Whether ``request`` targets a rate limited endpoint."""
    if request.method.upper() not in methods:
        return False
    return matches_path_prefix(request.url.path, path_prefixes)


def rate_limit_middleware(
    limiter: RateLimiter,
    *,
    methods: Iterable[str] = DEFAULT_PROTECTED_METHODS,
    path_prefixes: Iterable[str] = ("/",),
) -> Middleware:
    """Create HTTP middleware that runs protected requests through ``limiter``.

    Usage:
        app.middleware("http")(rate_limit_middleware(limiter))
    """
    protected_methods = frozenset(m.upper() for m in methods)
    prefixes = tuple(path_prefixes)

    async def middleware(request: Request, call_next: CallNext) -> Response:
        if not is_protected(request, methods=protected_methods, path_prefixes=prefixes):
            return await call_next(request)
        return await limiter.wrap(call_next)(request)

    return middleware


def setup_rate_limiting(
    app: FastAPI,
    cfg: Settings | None = None,
    *,
    strategy: AbstractStrategy | None = None,
) -> RateLimiter | None:
    """Mount the limiter on ``app`` when enabled.

    The limiter is kept on ``app.state.rate_limiter`` so readiness checks and
    shutdown hooks can reach its strategy.

    Returns:
        The mounted limiter, or None when rate limiting is disabled.
    """
    cfg = cfg or default_settings
    rl = cfg.rate_limit

    if not rl.enabled:
        logger.info("rate_limit.disabled")
        app.state.rate_limiter = None
        app.state.rate_limit_backend = None
        return None

    limiter = build_rate_limiter(cfg, strategy=strategy)
    methods, prefixes = protected_scope(cfg)

    app.middleware("http")(
        rate_limit_middleware(limiter, methods=methods, path_prefixes=prefixes)
    )
    app.state.rate_limiter = limiter
    app.state.rate_limit_backend = rl.backend.lower()

    logger.info(
        "rate_limit.enabled",
        extra={
            "backend": rl.backend,
            "max_requests": rl.max_requests,
            "window_s": rl.window_seconds,
            "key_headers": split_csv(rl.key_headers),
            "methods": methods,
            "path_prefixes": prefixes,
        },
    )
    return limiter
