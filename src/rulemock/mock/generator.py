"""
RuleMock Response Generator

Helpers for building rule responders.

Features:
- MockResponse: response payload carrying its own status code and headers
- Static responders
- Template responders with {{ctx.path}} substitution from matcher context
- Context echo responders
"""

import copy
import re
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, List, Optional, Union

from .matcher import Context
from .http_request import MockRequest

_PLACEHOLDER = re.compile(r'\{\{\s*([^{}]+?)\s*\}\}')


@dataclass
class MockResponse:
    """
    Response with explicit status and headers.

    Responders may return a plain object (serialized as JSON with the
    server's default status) or a MockResponse when the status or headers
    matter.
    """

    body: Any = None
    status: int = 200
    headers: Dict[str, str] = field(default_factory=dict)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            'status': self.status,
            'headers': dict(self.headers),
            'body': self.body
        }


def static(body: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> Callable[[MockRequest, Context], MockResponse]:
    """
    Responder that always returns the same response.

    The body is deep-copied per request so responders never share state.

    Example:
        MockRule(match=path('/health'), respond=static({'ok': True}))
    """
    def respond(request: MockRequest, ctx: Context) -> MockResponse:
        return MockResponse(body=copy.deepcopy(body), status=status, headers=dict(headers or {}))

    return respond


def template(body_template: Any, status: int = 200, headers: Optional[Dict[str, str]] = None) -> Callable[[MockRequest, Context], MockResponse]:
    """
    Responder that renders ``{{dotted.path}}`` placeholders.

    Placeholders are looked up in the matcher context first, then under
    ``request.`` in the request fields. Strings inside dicts and lists are
    rendered recursively. A string that is exactly one placeholder keeps
    the raw value's type; unknown placeholders render as ''.

    Example:
        MockRule(
            match=request('get', '/api/users/:id'),
            respond=template({'id': '{{params.id}}', 'via': '{{request.method}}'})
        )
    """
    def respond(request: MockRequest, ctx: Context) -> MockResponse:
        variables = {**ctx, 'request': request.to_dict()}
        rendered_headers = {k: str(render(v, variables)) for k, v in (headers or {}).items()}
        return MockResponse(body=render(body_template, variables), status=status, headers=rendered_headers)

    return respond


def echo_context(**extra: Any) -> Callable[[MockRequest, Context], Dict[str, Any]]:
    """Responder returning the matcher context merged with ``extra``."""
    def respond(request: MockRequest, ctx: Context) -> Dict[str, Any]:
        return {**ctx, **extra}

    return respond


def render(value: Union[str, Dict, List, Any], variables: Dict[str, Any]) -> Any:
    """
    Render placeholders in value, recursively handling dicts and lists.

    Args:
        value: String, dict, list or scalar
        variables: Lookup root for dotted placeholder paths

    Returns:
        Rendered value
    """
    if isinstance(value, str):
        return _render_string(value, variables)
    elif isinstance(value, dict):
        return {k: render(v, variables) for k, v in value.items()}
    elif isinstance(value, list):
        return [render(item, variables) for item in value]
    else:
        return value


def _render_string(text: str, variables: Dict[str, Any]) -> Any:
    whole = _PLACEHOLDER.fullmatch(text)
    if whole:
        value = lookup(variables, whole.group(1))
        return '' if value is None else value

    def replacer(match):
        value = lookup(variables, match.group(1))
        return '' if value is None else str(value)

    return _PLACEHOLDER.sub(replacer, text)


def lookup(variables: Dict[str, Any], dotted: str) -> Optional[Any]:
    """Get a value by dotted path (``params.id``, ``items.0``); None if missing."""
    current: Any = variables
    for part in dotted.split('.'):
        if isinstance(current, dict):
            current = current.get(part)
        elif isinstance(current, list):
            try:
                current = current[int(part)]
            except (ValueError, IndexError):
                return None
        else:
            return None
        if current is None:
            return None
    return current
