"""
RuleMock Mock Server Module

Rule-based request matching and response synthesis for a development-time
mock/proxy server.

This module provides:
- Composable request matchers and combinators
- Mock rules and their evaluators
- Ordered dispatch with passthrough fallback
- FastAPI-based mock server
- Response helpers
"""

from .http_request import MockRequest, BodyTooLargeError
from .matcher import (
    MatcherResult,
    PathPatternError,
    path,
    method,
    header,
    body,
    all_of,
    any_of,
    not_,
    request,
    rename,
    deep_merge,
    run_matcher,
    describe_matcher
)
from .rules import MockRule, RuleResult, create_evaluator, compile_rules
from .dispatcher import Dispatcher, DispatchResult
from .generator import MockResponse, static, template, echo_context
from .config import MockConfig
from .server import MockServer, MockMetrics, create_mock_server

__all__ = [
    # Request
    'MockRequest',
    'BodyTooLargeError',

    # Matchers
    'MatcherResult',
    'PathPatternError',
    'path',
    'method',
    'header',
    'body',
    'all_of',
    'any_of',
    'not_',
    'request',
    'rename',
    'deep_merge',
    'run_matcher',
    'describe_matcher',

    # Rules
    'MockRule',
    'RuleResult',
    'create_evaluator',
    'compile_rules',

    # Dispatch
    'Dispatcher',
    'DispatchResult',

    # Responses
    'MockResponse',
    'static',
    'template',
    'echo_context',

    # Server
    'MockConfig',
    'MockServer',
    'MockMetrics',
    'create_mock_server',
]

__version__ = '1.0.0'
