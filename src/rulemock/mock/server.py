"""
RuleMock Server

FastAPI-based HTTP mock server that answers requests from mock rules and
forwards everything else to a real backend.

Features:
- Ordered rule dispatch (first match wins)
- Passthrough proxy for unmatched requests under a path prefix
- Admin API for metrics, rules and live match diagnostics
- Explicit start/serve/stop lifecycle
"""

from __future__ import annotations  # Enable forward references for type hints

import time
import logging
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Dict, List, Optional, Sequence
from urllib.parse import urlsplit

import httpx
import uvicorn
from fastapi import FastAPI, Request, Response
from fastapi.encoders import jsonable_encoder
from fastapi.responses import JSONResponse

from .config import MockConfig
from .dispatcher import Dispatcher, DispatchResult
from .generator import MockResponse
from .http_request import BodyTooLargeError, MockRequest
from .rules import MockRule

# Headers that must not be forwarded by a proxy (RFC 7230 section 6.1)
HOP_BY_HOP_HEADERS = {
    'connection',
    'keep-alive',
    'proxy-authenticate',
    'proxy-authorization',
    'te',
    'trailers',
    'transfer-encoding',
    'upgrade',
}


@dataclass
class MockMetrics:
    """Track mock server metrics."""

    total_requests: int = 0
    matched_requests: int = 0
    passthrough_requests: int = 0
    unmatched_requests: int = 0
    error_requests: int = 0
    start_time: str = field(default_factory=lambda: datetime.now().isoformat())

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        uptime_seconds = (datetime.now() - datetime.fromisoformat(self.start_time)).total_seconds()
        return {
            'total_requests': self.total_requests,
            'matched_requests': self.matched_requests,
            'passthrough_requests': self.passthrough_requests,
            'unmatched_requests': self.unmatched_requests,
            'error_requests': self.error_requests,
            'match_rate': round((self.matched_requests / self.total_requests * 100) if self.total_requests > 0 else 0, 2),
            'uptime_seconds': round(uptime_seconds, 2),
            'start_time': self.start_time
        }


class MockServer:
    """
    FastAPI-based mock server driven by mock rules.

    Every request is evaluated against the rules in order. The first
    matching rule's response is returned; otherwise the request is proxied
    to ``config.proxy_target`` (when under ``config.proxy_prefix``) or
    answered with the fallback response.

    Example:
        rules = [
            MockRule(match=request('get', '/api/users/:id'),
                     respond=lambda req, ctx: {'id': ctx['params']['id']}),
        ]
        server = MockServer(rules, MockConfig(proxy_target='https://staging.example.com'))
        server.start(port=3535)
    """

    def __init__(
        self,
        rules: Sequence[MockRule],
        config: Optional[MockConfig] = None,
        http_client: Optional[httpx.AsyncClient] = None
    ):
        """
        Initialize mock server.

        Args:
            rules: Mock rules in priority order
            config: Optional MockConfig for server behavior
            http_client: Optional httpx client for passthrough (created lazily if None)
        """
        self.config = config or MockConfig()
        self.metrics = MockMetrics()
        self.live_requests: List[Dict[str, Any]] = []

        self.logger = logging.getLogger("rulemock.mock")
        self.logger.setLevel(self.config.logging_level)

        self.rules = list(rules)
        self.dispatcher = Dispatcher(self.rules, passthrough=self._passthrough)

        self._http_client = http_client
        self._owns_client = http_client is None
        self._server: Optional[uvicorn.Server] = None

        self.logger.info(f"Loaded {len(self.rules)} mock rules")

        self.app = self._create_app()

    @asynccontextmanager
    async def _lifespan(self, app: FastAPI):
        yield
        await self.aclose()

    def _create_app(self) -> FastAPI:
        """Create FastAPI application with routes."""
        app = FastAPI(
            title="RuleMock Server",
            description="Rule-based HTTP mock server with passthrough proxy",
            version="1.0.0",
            lifespan=self._lifespan
        )

        if self.config.admin_enabled:
            @app.get(f"{self.config.admin_prefix}/metrics")
            async def get_metrics():
                """Get server metrics."""
                return JSONResponse(content=self.metrics.to_dict())

            @app.get(f"{self.config.admin_prefix}/rules")
            async def list_rules():
                """List rules in evaluation order."""
                return JSONResponse(content={
                    'total': len(self.rules),
                    'rules': [rule.describe(i) for i, rule in enumerate(self.rules)]
                })

            @app.get(f"{self.config.admin_prefix}/live")
            async def get_live_requests():
                """Get recent requests with matcher diagnostics."""
                return JSONResponse(content=jsonable_encoder({
                    'total': len(self.live_requests),
                    'limit': self.config.live_requests_limit,
                    'requests': list(reversed(self.live_requests))  # Most recent first
                }))

            @app.get(f"{self.config.admin_prefix}/config")
            async def get_config():
                """Get current configuration."""
                return JSONResponse(content={
                    'proxy_prefix': self.config.proxy_prefix,
                    'proxy_target': self.config.proxy_target,
                    'change_origin': self.config.change_origin,
                    'mock_status': self.config.mock_status,
                    'fallback_status': self.config.fallback_status,
                    'total_rules': len(self.rules)
                })

            @app.post(f"{self.config.admin_prefix}/reset")
            async def reset_metrics():
                """Reset metrics and the live request log."""
                self.metrics = MockMetrics()
                self.live_requests.clear()
                return JSONResponse(content={'status': 'reset'})

        # Main catch-all route for mocking
        @app.api_route("/{path:path}", methods=["GET", "POST", "PUT", "DELETE", "PATCH", "HEAD", "OPTIONS"])
        async def mock_request(request: Request, path: str):
            """Handle incoming requests and serve mock responses."""
            return await self._handle_request(request)

        return app

    async def _handle_request(self, request: Request) -> Response:
        """
        Handle incoming request: dispatch to rules, serve or pass through.

        Args:
            request: FastAPI Request object

        Returns:
            FastAPI Response
        """
        start_time = time.time()
        self.metrics.total_requests += 1
        method = request.method
        path = request.url.path

        self.logger.debug(f"Incoming: {method} {request.url}")

        try:
            mock_request = await MockRequest.from_starlette(request, self.config.max_body_bytes)
        except BodyTooLargeError as e:
            self.metrics.error_requests += 1
            self.logger.warning(f"Rejected {method} {path}: {e}")
            return JSONResponse(content={'error': str(e)}, status_code=413)

        outcome: Optional[DispatchResult] = None
        try:
            outcome = await self.dispatcher.dispatch(mock_request, request)
        except Exception as e:
            # A broken predicate or responder fails this request only
            self.metrics.error_requests += 1
            self.logger.exception(f"Rule evaluation failed for {method} {path}")
            response = JSONResponse(
                content={'error': 'Mock rule evaluation failed', 'detail': f"{type(e).__name__}: {e}"},
                status_code=500
            )
        else:
            if self.config.verbose_mode:
                for result in outcome.results:
                    self.logger.info(f"{method} {path}\n{result.matcher.format_tree()}")

            if outcome.matched:
                self.metrics.matched_requests += 1
                label = outcome.rule.label(outcome.rule_index)
                self.logger.info(f"Mocked {method} {path} with {label}")
                response = self._create_response(outcome.response, label)
            else:
                response = outcome.response

        elapsed_ms = (time.time() - start_time) * 1000
        self._track_live(method, path, outcome, response.status_code, elapsed_ms)
        return response

    def _create_response(self, payload: Any, rule_label: str) -> Response:
        """
        Serialize a rule's response payload.

        Args:
            payload: Plain object, MockResponse, or ready-made Response
            rule_label: Name of the matching rule

        Returns:
            FastAPI Response
        """
        headers = {
            'X-RuleMock-Matched': 'true',
            'X-RuleMock-Rule': rule_label
        }

        if isinstance(payload, Response):
            for key, value in headers.items():
                payload.headers[key] = value
            return payload

        if isinstance(payload, MockResponse):
            headers.update(payload.headers)
            if isinstance(payload.body, (str, bytes)):
                return Response(
                    content=payload.body,
                    status_code=payload.status,
                    headers=headers,
                    media_type="text/plain"
                )
            return JSONResponse(
                content=jsonable_encoder(payload.body),
                status_code=payload.status,
                headers=headers
            )

        return JSONResponse(
            content=jsonable_encoder(payload),
            status_code=self.config.mock_status,
            headers=headers
        )

    def _under_proxy_prefix(self, path: str) -> bool:
        """Check whether path is the proxy prefix or below it (segment boundary)."""
        prefix = self.config.proxy_prefix.rstrip('/')
        return not prefix or path == prefix or path.startswith(prefix + '/')

    async def _passthrough(self, mock_request: MockRequest, request: Request) -> Response:
        """
        Handle a request no rule matched.

        Proxies to the configured target when the path is under the proxy
        prefix, otherwise returns the fallback response.
        """
        if self.config.proxy_target and self._under_proxy_prefix(mock_request.path):
            return await self._proxy(request)

        self.metrics.unmatched_requests += 1
        self.logger.warning(f"No rule matched {mock_request.method} {mock_request.path}")
        return Response(
            content=self.config.fallback_body,
            status_code=self.config.fallback_status,
            media_type="application/json",
            headers={'X-RuleMock-Matched': 'false'}
        )

    async def _proxy(self, request: Request) -> Response:
        """
        Forward a request to the proxy target and relay the answer.

        Args:
            request: Original FastAPI request

        Returns:
            Upstream response, or 502 if the upstream URL is invalid or unreachable
        """
        target = self.config.proxy_target.rstrip('/')
        url = f"{target}{request.url.path}"
        if request.url.query:
            url = f"{url}?{request.url.query}"

        headers = {
            k: v for k, v in request.headers.items()
            if k.lower() not in HOP_BY_HOP_HEADERS and k.lower() != 'content-length'
        }
        if self.config.change_origin:
            headers['host'] = urlsplit(target).netloc

        client = self._get_client()
        try:
            upstream = await client.request(
                method=request.method,
                url=url,
                headers=headers,
                content=await request.body()
            )
        except (httpx.HTTPError, httpx.InvalidURL) as e:
            self.metrics.error_requests += 1
            self.logger.error(f"Passthrough to {url} failed: {e}")
            return JSONResponse(
                content={'error': 'Upstream request failed', 'detail': str(e)},
                status_code=502,
                headers={'X-RuleMock-Matched': 'false'}
            )

        self.metrics.passthrough_requests += 1
        self.logger.info(f"Proxied {request.method} {request.url.path} -> {upstream.status_code}")

        response = Response(content=upstream.content, status_code=upstream.status_code)
        for key, value in upstream.headers.multi_items():
            # httpx already decoded the body, so length/encoding no longer apply
            if key.lower() in HOP_BY_HOP_HEADERS or key.lower() in ('content-length', 'content-encoding'):
                continue
            response.headers.append(key, value)
        response.headers['X-RuleMock-Matched'] = 'false'
        return response

    def _get_client(self) -> httpx.AsyncClient:
        if self._http_client is None:
            self._http_client = httpx.AsyncClient(timeout=self.config.proxy_timeout)
            self._owns_client = True
        return self._http_client

    def _track_live(
        self,
        method: str,
        path: str,
        outcome: Optional[DispatchResult],
        response_status: int,
        elapsed_ms: float
    ):
        """Track request for live dashboard (FIFO with limit)."""
        limit = self.config.live_requests_limit
        if limit <= 0:
            return

        entry = {
            'timestamp': datetime.now().isoformat(),
            'method': method,
            'path': path,
            'response_status': response_status,
            'response_time_ms': round(elapsed_ms, 2)
        }
        if outcome is not None:
            entry.update(outcome.to_dict())
        else:
            entry['matched'] = False
            entry['error'] = True

        self.live_requests.append(entry)
        if len(self.live_requests) > limit:
            self.live_requests.pop(0)

    async def aclose(self):
        """Close the passthrough HTTP client if this server created it."""
        if self._http_client is not None and self._owns_client:
            await self._http_client.aclose()
            self._http_client = None

    def start(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        access_log: bool = True
    ):
        """
        Start the mock server (blocking).

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
            access_log: Enable access logging
        """
        actual_host = host if host is not None else self.config.host
        actual_port = port if port is not None else self.config.port

        self.logger.info(f"RuleMock server starting on {actual_host}:{actual_port}")
        self.logger.info(f"Rules loaded: {len(self.rules)}")
        if self.config.proxy_target:
            self.logger.info(f"Passthrough: {self.config.proxy_prefix} -> {self.config.proxy_target}")
        if self.config.admin_enabled:
            self.logger.info(f"Admin API: http://{actual_host}:{actual_port}{self.config.admin_prefix}/metrics")

        uvicorn.run(
            self.app,
            host=actual_host,
            port=actual_port,
            log_level=self.config.log_level,
            access_log=access_log
        )

    async def serve(self, host: Optional[str] = None, port: Optional[int] = None):
        """
        Run the server inside an existing event loop until ``stop()`` is called.

        Args:
            host: Host to bind to (overrides config)
            port: Port to bind to (overrides config)
        """
        server_config = uvicorn.Config(
            self.app,
            host=host if host is not None else self.config.host,
            port=port if port is not None else self.config.port,
            log_level=self.config.log_level
        )
        self._server = uvicorn.Server(server_config)
        try:
            await self._server.serve()
        finally:
            self._server = None

    def stop(self):
        """Ask a server started with ``serve()`` to shut down."""
        if self._server is not None:
            self._server.should_exit = True

    @property
    def running(self) -> bool:
        return self._server is not None

    def get_app(self) -> FastAPI:
        """
        Get the FastAPI app instance for testing or custom deployment.

        Returns:
            FastAPI application instance
        """
        return self.app


def create_mock_server(
    rules: Sequence[MockRule],
    host: str = "127.0.0.1",
    port: int = 3535,
    proxy_target: Optional[str] = None,
    proxy_prefix: str = "/api",
    verbose_mode: bool = False,
    log_level: str = "info",
    admin_enabled: bool = True
) -> MockServer:
    """
    Convenience function to create and configure a mock server.

    Args:
        rules: Mock rules in priority order
        host: Host to bind to
        port: Port to bind to
        proxy_target: Upstream base URL for unmatched requests
        proxy_prefix: Only unmatched paths under this prefix are proxied
        verbose_mode: Log matcher trees for every request
        log_level: Logging level name
        admin_enabled: Expose the admin API

    Returns:
        Configured MockServer instance

    Example:
        server = create_mock_server(rules, port=3535, proxy_target='https://www.google.com/')
        server.start()
    """
    config = MockConfig(
        host=host,
        port=port,
        proxy_target=proxy_target,
        proxy_prefix=proxy_prefix,
        verbose_mode=verbose_mode,
        log_level=log_level,
        admin_enabled=admin_enabled
    )

    return MockServer(rules, config=config)

