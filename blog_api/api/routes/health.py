from __future__ import annotations

import logging

from fastapi import APIRouter, Request, status
from fastapi.responses import JSONResponse

logger = logging.getLogger(__name__)

router = APIRouter(tags=["Health"])


@router.get("/health")
def health_check() -> dict:
    """Liveness check.

    Returns:
        dict: A dictionary with a single "status" key set to "ok".
    """

    return {"status": "ok"}


@router.get("/health/ready")
async def readiness_check(request: Request) -> JSONResponse:
    """Readiness check: the rate limit store must be reachable.

    Write endpoints fail closed when the store is down, so the instance is
    reported unavailable (503) until it answers again.
    """

    limiter = getattr(request.app.state, "rate_limiter", None)
    if limiter is None:
        return JSONResponse({"status": "ok", "store": "disabled"})

    store = getattr(request.app.state, "rate_limit_backend", None) or "unknown"
    if await limiter.config.strategy.ping():
        return JSONResponse({"status": "ok", "store": store})

    logger.warning("health.store_unavailable", extra={"store": store})
    return JSONResponse(
        {"status": "unavailable", "store": store},
        status_code=status.HTTP_503_SERVICE_UNAVAILABLE,
    )
