"""Application factory for the FastAPI app.

Centralizes app construction (metadata, middleware, handlers, routers) so
tests can build isolated apps with their own settings and counting strategy.
"""

from __future__ import annotations

import logging
from contextlib import asynccontextmanager
from typing import AsyncIterator, Iterable

from fastapi import APIRouter, FastAPI
from fastapi.middleware.cors import CORSMiddleware

from blog_api.adapters.rate_limit.base import AbstractStrategy
from blog_api.api.routes import health_router
from blog_api.core.config import Settings, settings as default_settings
from blog_api.core.exception_handlers import setup_exception_handlers
from blog_api.core.logging import configure_logging
from blog_api.core.middleware import access_log_middleware, request_id_middleware
from blog_api.core.openapi import apply_openapi_customizations
from blog_api.core.rate_limit import protected_scope, setup_rate_limiting
from blog_api.services.rate_limiter import (
    EXPIRES_AT_HEADER,
    STATE_HEADER,
    TOTAL_REQUESTS_HEADER,
)

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncIterator[None]:
    """Release the rate limit store connection on shutdown."""
    yield
    limiter = getattr(app.state, "rate_limiter", None)
    if limiter is not None:
        await limiter.config.strategy.close()
        logger.info("rate_limit.store_closed")


def create_app(
    cfg: Settings | None = None,
    *,
    strategy: AbstractStrategy | None = None,
    routers: Iterable[APIRouter] = (),
) -> FastAPI:
    """Create and configure the FastAPI application instance.

    Args:
        cfg: Settings to use; defaults to the global settings.
        strategy: Counting strategy override for the rate limiter.
        routers: Content routers (posts, authors, pages) to mount; their write
            operations sit behind the rate limiter.

    Returns:
        Configured FastAPI app with middleware, handlers, routers and docs.
    """
    cfg = cfg or default_settings

    # Logging first so subsequent init logs are formatted as desired
    configure_logging(cfg.log)

    app = FastAPI(
        title="Blog API",
        description=(
            "Blog content backend. Posts and pages are readable anonymously; "
            "authenticated write endpoints are protected by a per-client "
            "sliding-window rate limiter."
        ),
        version="0.1.0",
        debug=cfg.app.debug,
        lifespan=lifespan,
    )

    # Middleware: the last registered runs first (outermost)
    setup_rate_limiting(app, cfg, strategy=strategy)
    app.middleware("http")(access_log_middleware)
    app.middleware("http")(request_id_middleware(cfg.log.request_id_header))
    app.add_middleware(
        CORSMiddleware,
        allow_origin_regex=cfg.app.cors_allow_origin_regex,
        allow_methods=["GET", "POST", "PUT", "DELETE", "OPTIONS"],
        allow_headers=["Accept", "Authorization", "Content-Type"],
        allow_credentials=True,
        expose_headers=[TOTAL_REQUESTS_HEADER, STATE_HEADER, EXPIRES_AT_HEADER],
        max_age=300,
    )

    setup_exception_handlers(app)

    app.include_router(health_router)
    for router in routers:
        app.include_router(router)

    methods, prefixes = protected_scope(cfg) if cfg.rate_limit.enabled else ([], [])
    apply_openapi_customizations(app, methods, prefixes)

    return app
