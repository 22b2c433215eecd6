"""OpenAPI metadata and customization utilities.

Provides a helper to enrich the generated OpenAPI schema with:
- Tags metadata
- Bearer token security scheme (``Authorization`` header, issued by the
  external identity provider)
- Documentation of the rate limiting headers and the 429 response on
  write operations
"""

from __future__ import annotations

from typing import Any, Dict, Iterable

from fastapi import FastAPI

from blog_api.core.rate_limit import matches_path_prefix
from blog_api.services.rate_limiter import (
    EXPIRES_AT_HEADER,
    STATE_HEADER,
    TOTAL_REQUESTS_HEADER,
)

_ERROR_SCHEMA = {
    "type": "object",
    "properties": {
        "status": {"type": "integer"},
        "message": {"type": "string"},
        "code": {"type": "string"},
        "request_id": {"type": "string", "nullable": True},
    },
    "required": ["status", "message"],
}

_RATE_LIMIT_HEADERS = {
    TOTAL_REQUESTS_HEADER: {
        "description": "Requests counted for this client in the current window.",
        "schema": {"type": "integer"},
    },
    STATE_HEADER: {
        "description": "Rate limiting decision.",
        "schema": {"type": "string", "enum": ["Allow", "Deny"]},
    },
    EXPIRES_AT_HEADER: {
        "description": "End of the current window (RFC 3339, UTC).",
        "schema": {"type": "string", "format": "date-time"},
    },
}


def apply_openapi_customizations(
    app: FastAPI,
    protected_methods: Iterable[str] = (),
    path_prefixes: Iterable[str] = ("/",),
) -> None:
    """Patch FastAPI's OpenAPI generation to add metadata and security.

    - Injects a bearer security scheme and requires it on rate limited
      (write) operations under the limited path prefixes; reads stay anonymous
    - Documents the 400/429/500 responses produced by the limiter
    - Adds tags metadata if not present
    """

    original_openapi = app.openapi
    protected = {m.lower() for m in protected_methods}
    prefixes = tuple(path_prefixes)

    def custom_openapi() -> Dict[str, Any]:
        if app.openapi_schema:
            return app.openapi_schema

        schema = original_openapi()

        components = schema.setdefault("components", {})
        components.setdefault("securitySchemes", {}).setdefault(
            "BearerAuth",
            {
                "type": "http",
                "scheme": "bearer",
                "bearerFormat": "JWT",
                "description": "Access token issued by the identity provider.",
            },
        )
        components.setdefault("schemas", {}).setdefault("ErrorResponse", _ERROR_SCHEMA)
        error_ref = {"$ref": "#/components/schemas/ErrorResponse"}

        tags = schema.setdefault("tags", [])
        existing_tag_names = {t.get("name") for t in tags}
        if "Health" not in existing_tag_names:
            tags.append({"name": "Health", "description": "Liveness and readiness checks."})

        for path, methods in schema.get("paths", {}).items():
            if not matches_path_prefix(path, prefixes):
                continue
            for method, operation in methods.items():
                if method not in protected or not isinstance(operation, dict):
                    continue
                operation["security"] = [{"BearerAuth": []}]
                responses = operation.setdefault("responses", {})
                for code, description in (
                    ("400", "Missing rate limiting key"),
                    ("429", "Rate limit exceeded"),
                    ("500", "Rate limiting store failure"),
                ):
                    responses.setdefault(
                        code,
                        {
                            "description": description,
                            "content": {"application/json": {"schema": error_ref}},
                        },
                    )
                responses["429"].setdefault("headers", dict(_RATE_LIMIT_HEADERS))

        app.openapi_schema = schema
        return schema

    app.openapi = custom_openapi  # type: ignore[assignment]
