"""Rate limiting key extraction.

An extractor turns an inbound request into the partition key the limiter
counts against. It may look at anything available without side effects
(headers, method, path) but never reads the request body.
"""

from __future__ import annotations

from abc import ABC, abstractmethod

from starlette.requests import HTTPConnection

from blog_api.core.errors import KeyExtractionError

KEY_SEPARATOR = "-"


class AbstractExtractor(ABC):
    """Interface for limiter key extractors."""

    @abstractmethod
    def extract(self, request: HTTPConnection) -> str:
        """Return the limiter key for ``request``.

        Raises:
            KeyExtractionError: If a required request attribute is missing.
        """
        raise NotImplementedError


class HTTPHeadersExtractor(AbstractExtractor):
    """Join the values of a fixed list of headers into a key.

    Use headers that are unique per client, such as ``Authorization``.
    Values are joined in the configured header order.
    """

    def __init__(self, *headers: str) -> None:
        if not headers:
            raise ValueError("at least one header name is required")
        self._headers = tuple(headers)

    @property
    def headers(self) -> tuple[str, ...]:
        return self._headers

    def extract(self, request: HTTPConnection) -> str:
        values: list[str] = []
        for name in self._headers:
            value = (request.headers.get(name) or "").strip()
            if not value:
                raise KeyExtractionError(
                    code="rate_limit_key_missing",
                    message=f"the header {name} must have a value set",
                    details={"header": name},
                )
            values.append(value)
        return KEY_SEPARATOR.join(values)
