"""
RuleMock Request

Read-only request value handed to matchers and responders.

Holds the HTTP method, the path (without query string), headers with
case-insensitive lookup, and the already-parsed body.
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, Optional
from urllib.parse import urlsplit, parse_qsl

from ..common import safe_json_parse


class BodyTooLargeError(ValueError):
    """Raised when an incoming body exceeds the configured size limit."""

    def __init__(self, size: int, limit: int):
        super().__init__(f"Request body of {size} bytes exceeds limit of {limit} bytes")
        self.size = size
        self.limit = limit


@dataclass(frozen=True)
class MockRequest:
    """
    HTTP request as seen by the rule engine.

    Headers keep their original casing in ``headers``; use ``header()`` for
    case-insensitive lookup. The core never mutates a request.

    Example:
        req = MockRequest(method='GET', path='/api/42', headers={'Accept': 'text/xml'})
        req.header('accept')  # 'text/xml'
    """

    method: str = "GET"
    path: str = "/"
    headers: Dict[str, str] = field(default_factory=dict)
    body: Any = None
    query: Dict[str, str] = field(default_factory=dict)

    _lower_headers: Dict[str, str] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(
            self,
            "_lower_headers",
            {k.lower(): v for k, v in self.headers.items()},
        )

    def header(self, name: str) -> Optional[str]:
        """Get a header value by name (case-insensitive), or None if absent."""
        return self._lower_headers.get(name.lower())

    def has_header(self, name: str) -> bool:
        """Check header presence (case-insensitive), empty values included."""
        return name.lower() in self._lower_headers

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'method': self.method,
            'path': self.path,
            'headers': dict(self.headers),
            'query': dict(self.query),
            'body': self.body
        }

    @classmethod
    def from_url(
        cls,
        method: str,
        url: str,
        headers: Optional[Dict[str, str]] = None,
        body: Any = None
    ) -> MockRequest:
        """
        Build a request from a path or full URL, splitting off the query string.

        Args:
            method: HTTP method
            url: Path (``/api/1?x=2``) or absolute URL
            headers: Request headers
            body: Already-parsed body value

        Returns:
            MockRequest instance
        """
        parts = urlsplit(url)
        return cls(
            method=method.upper(),
            path=parts.path or '/',
            headers=dict(headers or {}),
            body=body,
            query=dict(parse_qsl(parts.query, keep_blank_values=True))
        )

    @classmethod
    async def from_starlette(cls, request: Any, max_body_bytes: Optional[int] = None) -> MockRequest:
        """
        Build a request from a FastAPI/Starlette request.

        Args:
            request: Incoming Starlette request
            max_body_bytes: Reject bodies larger than this (None = unlimited)

        Returns:
            MockRequest with the body parsed

        Raises:
            BodyTooLargeError: If the body exceeds max_body_bytes
        """
        raw_body = await request.body()
        if max_body_bytes is not None and len(raw_body) > max_body_bytes:
            raise BodyTooLargeError(len(raw_body), max_body_bytes)

        return cls(
            method=request.method.upper(),
            path=request.url.path,
            headers=dict(request.headers),
            body=parse_body(raw_body, request.headers.get('content-type', '')),
            query=dict(request.query_params)
        )


def parse_body(raw_body: bytes, content_type: str = '') -> Any:
    """
    Parse a raw request body.

    JSON content types are decoded to Python values; anything else is
    returned as text. Empty bodies become None.

    Args:
        raw_body: Body bytes as received
        content_type: Value of the Content-Type header

    Returns:
        Parsed body value
    """
    if not raw_body:
        return None

    text = raw_body.decode('utf-8', errors='replace')
    if 'json' in content_type.lower():
        return safe_json_parse(text, default=text)
    return text
