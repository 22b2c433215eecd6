"""HTTP middleware for request correlation and access logging.

The request id middleware:
- Accepts incoming X-Request-ID header or generates a UUID
- Stores request_id in contextvars for access throughout the request lifecycle
- Injects request_id and total duration into response headers
- Clears context after request completion to prevent context leaks

The access log middleware writes one ``http.request`` record per request with
method, uri, client ip, status code, duration and user agent.

Usage:
    app.middleware("http")(access_log_middleware)
    app.middleware("http")(request_id_middleware("X-Request-ID"))
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Awaitable, Callable

from fastapi import Request, Response

from blog_api.core.logging import clear_request_id, set_request_id

logger = logging.getLogger("blog_api.access")

CallNext = Callable[[Request], Awaitable[Response]]
Middleware = Callable[[Request, CallNext], Awaitable[Response]]

DEFAULT_REQUEST_ID_HEADER = "X-Request-ID"


def client_ip(request: Request) -> str:
    """Return the IP address of the client, taking HTTP proxies into account.

    Precedence: first entry of ``X-Forwarded-For``, then ``X-Real-Ip``, then
    the socket peer.

    Examples:
        X-Forwarded-For: "203.0.113.7, 10.0.0.2" -> "203.0.113.7"
    """
    forwarded_for = request.headers.get("X-Forwarded-For", "")
    if forwarded_for.strip():
        return forwarded_for.split(",")[0].strip()

    real_ip = request.headers.get("X-Real-Ip", "").strip()
    if real_ip:
        return real_ip

    return request.client.host if request.client else "unknown"


def request_id_middleware(header_name: str = DEFAULT_REQUEST_ID_HEADER) -> Middleware:
    """Create HTTP middleware for request ID generation and propagation.

    If the client provides ``header_name``, that value is used. Otherwise, a
    new UUID is generated. The ID is propagated back in the response headers
    and stored in contextvars for log correlation.

    Args:
        header_name: Header carrying the request id in both directions.

    Returns:
        Middleware adding request_id and duration headers to every response.
    """

    async def middleware(request: Request, call_next: CallNext) -> Response:
        request_id = request.headers.get(header_name) or str(uuid.uuid4())
        set_request_id(request_id)
        start = time.perf_counter()
        try:
            response: Response = await call_next(request)
        finally:
            clear_request_id()

        duration_ms = (time.perf_counter() - start) * 1000
        response.headers[header_name] = request_id
        response.headers.setdefault("X-Request-Duration-ms", f"{duration_ms:.2f}")
        return response

    return middleware


async def access_log_middleware(request: Request, call_next) -> Response:
    """Log one line per HTTP request once the response is produced."""

    start = time.perf_counter()
    response: Response = await call_next(request)
    duration_ms = (time.perf_counter() - start) * 1000

    extra = {
        "method": request.method,
        "uri": str(request.url.path) + (f"?{request.url.query}" if request.url.query else ""),
        "ip": client_ip(request),
        "code": response.status_code,
        "duration_ms": round(duration_ms, 2),
        "ua": request.headers.get("User-Agent", ""),
    }
    referer = request.headers.get("Referer")
    if referer:
        extra["referer"] = referer

    logger.info("http.request", extra=extra)
    return response
