"""
Tests for RuleMock Request

Tests MockRequest construction, header lookup and body parsing.
"""

import asyncio
import dataclasses
from types import SimpleNamespace

import pytest

from rulemock.mock.http_request import BodyTooLargeError, MockRequest, parse_body


class FakeStarletteRequest:
    """Minimal stand-in exposing the attributes from_starlette reads."""

    def __init__(self, method, path, headers, raw_body=b'', query=None):
        self.method = method
        self.url = SimpleNamespace(path=path)
        self.headers = headers
        self.query_params = query or {}
        self._raw_body = raw_body

    async def body(self):
        return self._raw_body


class TestMockRequest:
    """Test MockRequest value object."""

    def test_defaults(self):
        req = MockRequest()

        assert req.method == 'GET'
        assert req.path == '/'
        assert req.headers == {}
        assert req.body is None

    def test_header_lookup_case_insensitive(self):
        """Test header() ignores case and keeps original headers intact."""
        req = MockRequest(headers={'Content-Type': 'application/json'})

        assert req.header('content-type') == 'application/json'
        assert req.header('CONTENT-TYPE') == 'application/json'
        assert req.header('accept') is None
        assert req.headers == {'Content-Type': 'application/json'}

    def test_has_header_with_empty_value(self):
        """Test empty header values still count as present."""
        req = MockRequest(headers={'X-Empty': ''})

        assert req.has_header('x-empty') is True
        assert req.has_header('x-missing') is False

    def test_immutable(self):
        req = MockRequest()

        with pytest.raises(dataclasses.FrozenInstanceError):
            req.path = '/other'

    def test_from_url(self):
        """Test query strings are split off the path."""
        req = MockRequest.from_url('post', '/api/items?page=2&sort=', headers={'A': 'b'}, body={'x': 1})

        assert req.method == 'POST'
        assert req.path == '/api/items'
        assert req.query == {'page': '2', 'sort': ''}
        assert req.body == {'x': 1}

    def test_from_absolute_url(self):
        req = MockRequest.from_url('GET', 'https://example.com/api/x')

        assert req.path == '/api/x'

    def test_to_dict(self):
        req = MockRequest(method='GET', path='/a', headers={'H': 'v'}, query={'q': '1'})

        assert req.to_dict() == {'method': 'GET', 'path': '/a', 'headers': {'H': 'v'}, 'query': {'q': '1'}, 'body': None}


class TestFromStarlette:
    """Test building requests from the web framework."""

    def test_json_body_parsed(self):
        fake = FakeStarletteRequest('post', '/api/x', {'content-type': 'application/json'}, b'{"status": "open"}')

        req = asyncio.run(MockRequest.from_starlette(fake))

        assert req.method == 'POST'
        assert req.path == '/api/x'
        assert req.body == {'status': 'open'}
        assert req.header('Content-Type') == 'application/json'

    def test_body_too_large(self):
        """Test oversized bodies raise BodyTooLargeError."""
        fake = FakeStarletteRequest('POST', '/api/x', {}, b'x' * 20)

        with pytest.raises(BodyTooLargeError) as exc_info:
            asyncio.run(MockRequest.from_starlette(fake, max_body_bytes=10))

        assert exc_info.value.size == 20
        assert exc_info.value.limit == 10


class TestParseBody:
    """Test parse_body()."""

    def test_empty(self):
        assert parse_body(b'', 'application/json') is None

    def test_json(self):
        assert parse_body(b'[1, 2]', 'application/json; charset=utf-8') == [1, 2]

    def test_vendor_json(self):
        assert parse_body(b'{"a": 1}', 'application/vnd.api+json') == {'a': 1}

    def test_invalid_json_falls_back_to_text(self):
        """Test malformed JSON is kept as text."""
        assert parse_body(b'{oops', 'application/json') == '{oops'

    def test_text(self):
        assert parse_body(b'<xml/>', 'text/xml') == '<xml/>'
