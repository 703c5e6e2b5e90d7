"""
RuleMock Request Matchers

Composable request predicates used by mock rules to decide whether a rule
applies to an incoming request.

Features:
- Field matchers: path (with named segments), method, header, body
- Boolean combinators: all_of, any_of, not_
- Structured results with nested diagnostic trees
- Context extraction (path params, headers, method) deep-merged upward
- Sync or async matchers, normalized to a single async contract
"""

import asyncio
import re
from dataclasses import dataclass, field, replace
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Pattern, Tuple, Union

from ..common import maybe_await
from .http_request import MockRequest

# Facts extracted by successful matchers. Built-in matchers only produce
# str values, str->str mappings ("params", "headers") and nested mappings.
Context = Dict[str, Any]


class PathPatternError(ValueError):
    """Raised when a path pattern cannot be compiled."""


@dataclass
class MatcherResult:
    """Result of evaluating a matcher against a request."""

    found: bool
    name: str = ""
    children: Optional[List['MatcherResult']] = None
    ctx: Optional[Context] = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (recursively, for diagnostics)."""
        data: Dict[str, Any] = {
            'found': self.found,
            'name': self.name
        }
        if self.children is not None:
            data['children'] = [child.to_dict() for child in self.children]
        if self.ctx is not None:
            data['ctx'] = self.ctx
        return data

    def format_tree(self, indent: int = 0) -> str:
        """
        Render the result tree as indented text for logs.

        Example:
            ✓ allOf {'method': 'GET', ...}
              ✓ method::GET {'method': 'GET'}
              ✗ path::/api/:id
        """
        mark = '✓' if self.found else '✗'
        line = f"{'  ' * indent}{mark} {self.name}"
        if self.ctx:
            line += f" {self.ctx}"
        lines = [line]
        for child in self.children or []:
            lines.append(child.format_tree(indent + 1))
        return '\n'.join(lines)


Matcher = Callable[[MockRequest], Union[MatcherResult, bool, Awaitable[Union[MatcherResult, bool]]]]


# ---------------------------------------------------------------------------
# Evaluation helpers
# ---------------------------------------------------------------------------

def matcher_name(matcher: Any) -> str:
    """Human-readable name of a matcher for diagnostics."""
    name = getattr(matcher, 'name', None)
    if isinstance(name, str) and name:
        return name
    return getattr(matcher, '__name__', None) or type(matcher).__name__


async def run_matcher(matcher: Matcher, request: MockRequest) -> MatcherResult:
    """
    Invoke a matcher and normalize whatever it returns into a MatcherResult.

    Matchers may be plain functions or coroutines, and may return either a
    MatcherResult or a bare bool (wrapped into a leaf result named after the
    matcher).

    Args:
        matcher: Matcher callable
        request: Request to evaluate

    Returns:
        MatcherResult for this matcher

    Raises:
        TypeError: If the matcher returns anything else
    """
    value = await maybe_await(matcher(request))

    if isinstance(value, MatcherResult):
        return value
    if isinstance(value, bool):
        return MatcherResult(found=value, name=matcher_name(matcher))

    raise TypeError(
        f"Matcher {matcher_name(matcher)} returned {type(value).__name__}, "
        f"expected MatcherResult or bool"
    )


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    Recursively merge two mappings into a new dict.

    Conflict rule: when both sides hold a mapping under the same key the two
    mappings are merged recursively; in every other case (scalars, lists,
    mapping vs. non-mapping) the value from ``override`` wins. Lists are
    replaced, never concatenated. Neither input is mutated.

    Args:
        base: Earlier mapping
        override: Later mapping (wins on conflicts)

    Returns:
        Merged dictionary
    """
    merged = {key: _copy_value(value) for key, value in base.items()}
    for key, value in override.items():
        current = merged.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            merged[key] = deep_merge(current, value)
        else:
            merged[key] = _copy_value(value)
    return merged


def _copy_value(value: Any) -> Any:
    if isinstance(value, dict):
        return deep_merge({}, value)
    return value


def merge_contexts(results: Iterable[MatcherResult]) -> Optional[Context]:
    """Deep-merge the contexts of results left to right (None if none carry ctx)."""
    merged: Optional[Context] = None
    for result in results:
        if result.ctx is None:
            continue
        merged = deep_merge(merged or {}, result.ctx)
    return merged


# ---------------------------------------------------------------------------
# Path patterns
# ---------------------------------------------------------------------------

_NAME_CHARS = re.compile(r'[A-Za-z0-9_]')
_DEFAULT_SEGMENT = r'[^/]+?'


def compile_path_pattern(pattern: str) -> Tuple[Pattern, List[str]]:
    """
    Compile an Express-style path pattern into a regex.

    Supported syntax:
    - ``/users/:id``          named segment
    - ``/users/:id(\\d+)``    named segment with custom regex
    - ``/users/:id?``         optional segment (leading slash included)
    - ``/files/*``            wildcard, captured under numeric key "0"
    - ``/items/(\\d+)``       unnamed group, captured under a numeric key

    Matching is case-insensitive and tolerates one trailing slash.

    Args:
        pattern: Path pattern

    Returns:
        Tuple of (compiled regex, parameter keys in group order)

    Raises:
        PathPatternError: If the pattern is malformed
    """
    if not isinstance(pattern, str) or not pattern.startswith('/'):
        raise PathPatternError(f"Path pattern must start with '/': {pattern!r}")

    parts: List[str] = []
    keys: List[str] = []
    unnamed = 0
    i = 0

    while i < len(pattern):
        char = pattern[i]

        if char == '\\' and i + 1 < len(pattern):
            parts.append(re.escape(pattern[i + 1]))
            i += 2
            continue

        if char == ':':
            start = i + 1
            i = start
            while i < len(pattern) and _NAME_CHARS.match(pattern[i]):
                i += 1
            key = pattern[start:i]
            if not key:
                raise PathPatternError(f"Missing parameter name at position {start} in {pattern!r}")
            segment = _DEFAULT_SEGMENT
            if i < len(pattern) and pattern[i] == '(':
                segment, i = _read_group(pattern, i)
        elif char == '(':
            key = str(unnamed)
            unnamed += 1
            segment, i = _read_group(pattern, i)
        elif char == '*':
            key = str(unnamed)
            unnamed += 1
            segment = '.*'
            i += 1
        elif char == ')':
            raise PathPatternError(f"Unbalanced ')' at position {i} in {pattern!r}")
        else:
            parts.append(re.escape(char))
            i += 1
            continue

        if key in keys:
            raise PathPatternError(f"Duplicate parameter name '{key}' in {pattern!r}")

        optional = i < len(pattern) and pattern[i] == '?'
        if optional:
            i += 1

        group = f'(?P<p{len(keys)}>{segment})'
        keys.append(key)

        if optional:
            prefix = ''
            if parts and parts[-1] == '/':
                prefix = parts.pop()
            parts.append(f'(?:{prefix}{group})?')
        else:
            parts.append(group)

    body = ''.join(parts)
    if not body.endswith('/'):
        body += '/?'

    try:
        regex = re.compile(f'^{body}$', re.IGNORECASE)
    except re.error as e:
        raise PathPatternError(f"Invalid path pattern {pattern!r}: {e}") from e

    return regex, keys


def _read_group(pattern: str, start: int) -> Tuple[str, int]:
    """Read a balanced ``(...)`` group starting at ``start``; return (inner, next index)."""
    depth = 0
    i = start
    while i < len(pattern):
        char = pattern[i]
        if char == '\\':
            i += 2
            continue
        if char == '(':
            depth += 1
        elif char == ')':
            depth -= 1
            if depth == 0:
                inner = pattern[start + 1:i]
                if not inner:
                    raise PathPatternError(f"Empty group at position {start} in {pattern!r}")
                if inner.startswith('?') and not inner.startswith('?:'):
                    raise PathPatternError(f"Unsupported group syntax '({inner})' in {pattern!r}")
                try:
                    re.compile(inner)
                except re.error as e:
                    raise PathPatternError(f"Invalid group regex '{inner}' in {pattern!r}: {e}") from e
                return inner, i + 1
        i += 1
    raise PathPatternError(f"Unbalanced '(' at position {start} in {pattern!r}")


# ---------------------------------------------------------------------------
# Field matchers
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class PathMatcher:
    """Match the request path against a parametrized pattern."""

    pattern: str
    _regex: Pattern = field(init=False, repr=False, compare=False)
    _keys: Tuple[str, ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        regex, keys = compile_path_pattern(self.pattern)
        object.__setattr__(self, '_regex', regex)
        object.__setattr__(self, '_keys', tuple(keys))

    @property
    def name(self) -> str:
        return f"path::{self.pattern}"

    def __call__(self, request: MockRequest) -> MatcherResult:
        match = self._regex.match(request.path)
        if match is None:
            return MatcherResult(found=False, name=self.name)

        params = {
            key: match.group(f'p{index}')
            for index, key in enumerate(self._keys)
            if match.group(f'p{index}') is not None
        }
        return MatcherResult(
            found=True,
            name=self.name,
            ctx={'path': request.path, 'params': params}
        )

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name}


@dataclass(frozen=True)
class MethodMatcher:
    """Match the HTTP method, case-insensitively."""

    verb: str

    def __post_init__(self) -> None:
        object.__setattr__(self, 'verb', self.verb.upper())

    @property
    def name(self) -> str:
        return f"method::{self.verb}"

    def __call__(self, request: MockRequest) -> MatcherResult:
        normalized = request.method.upper()
        if normalized != self.verb:
            return MatcherResult(found=False, name=self.name)
        return MatcherResult(found=True, name=self.name, ctx={'method': normalized})

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name}


@dataclass(frozen=True)
class HeaderMatcher:
    """
    Match a header by name (case-insensitive).

    Without ``value`` any present header matches, even an empty one; with
    ``value`` the header must be exactly equal.
    """

    key: str
    value: Optional[str] = None

    @property
    def name(self) -> str:
        if self.value is None:
            return f"header::{self.key}"
        return f"header::{self.key}={self.value}"

    def __call__(self, request: MockRequest) -> MatcherResult:
        if not request.has_header(self.key):
            return MatcherResult(found=False, name=self.name)

        actual = request.header(self.key)
        if self.value is not None and actual != self.value:
            return MatcherResult(found=False, name=self.name)

        return MatcherResult(found=True, name=self.name, ctx={'headers': {self.key: actual}})

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name}


@dataclass(frozen=True)
class BodyMatcher:
    """
    Match the parsed body with a user predicate.

    Exceptions raised by the predicate are not caught: a broken predicate is
    an authoring error, not a non-match.
    """

    predicate: Callable[[Any], Union[bool, Awaitable[bool]]]

    @property
    def name(self) -> str:
        return f"body::{getattr(self.predicate, '__name__', 'predicate')}"

    async def __call__(self, request: MockRequest) -> MatcherResult:
        found = await maybe_await(self.predicate(request.body))
        return MatcherResult(found=bool(found), name=self.name)

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name}


# ---------------------------------------------------------------------------
# Combinators
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Junction:
    """
    Evaluate child matchers concurrently and fold their results.

    ``policy`` reduces the children's ``found`` flags (``all`` for AND,
    ``any`` for OR). Children are kept in argument order and their contexts
    are deep-merged left to right.
    """

    name: str
    matchers: Tuple[Matcher, ...]
    policy: Callable[[Iterable[bool]], bool]

    async def __call__(self, request: MockRequest) -> MatcherResult:
        results = await asyncio.gather(
            *(run_matcher(matcher, request) for matcher in self.matchers)
        )
        return MatcherResult(
            found=self.policy(result.found for result in results),
            name=self.name,
            children=list(results),
            ctx=merge_contexts(results)
        )

    def describe(self) -> Dict[str, Any]:
        return {
            'name': self.name,
            'children': [describe_matcher(m) for m in self.matchers]
        }


@dataclass(frozen=True)
class Not:
    """Negate a single matcher. No context passes through."""

    matcher: Matcher
    name: str = field(default='not', init=False)

    async def __call__(self, request: MockRequest) -> MatcherResult:
        child = await run_matcher(self.matcher, request)
        return MatcherResult(found=not child.found, name=self.name, children=[child])

    def describe(self) -> Dict[str, Any]:
        return {'name': self.name, 'children': [describe_matcher(self.matcher)]}


@dataclass(frozen=True)
class Renamed:
    """Identical to the wrapped matcher except for the result name."""

    name: str
    matcher: Matcher

    async def __call__(self, request: MockRequest) -> MatcherResult:
        result = await run_matcher(self.matcher, request)
        return replace(result, name=self.name)

    def describe(self) -> Dict[str, Any]:
        inner = describe_matcher(self.matcher)
        inner['name'] = self.name
        return inner


def describe_matcher(matcher: Any) -> Dict[str, Any]:
    """Describe the static structure of a matcher tree (no request needed)."""
    describe = getattr(matcher, 'describe', None)
    if callable(describe):
        return describe()
    return {'name': matcher_name(matcher)}


# ---------------------------------------------------------------------------
# Rule authoring surface
# ---------------------------------------------------------------------------

def path(pattern: str) -> PathMatcher:
    """Match the request path; ``ctx.params`` holds named segments, ``ctx.path`` the raw path."""
    return PathMatcher(pattern)


def method(verb: str) -> MethodMatcher:
    """Match the HTTP method case-insensitively; ``ctx.method`` holds the upper-cased method."""
    return MethodMatcher(verb)


def header(key: str, value: Optional[str] = None) -> HeaderMatcher:
    """Match header presence, or exact value when given; ``ctx.headers[key]`` holds the value."""
    return HeaderMatcher(key, value)


def body(predicate: Callable[[Any], Union[bool, Awaitable[bool]]]) -> BodyMatcher:
    """Match when ``predicate(parsed_body)`` is truthy."""
    return BodyMatcher(predicate)


def all_of(matchers: Iterable[Matcher]) -> Junction:
    """Logical AND of matchers. An empty list matches everything."""
    return Junction('allOf', tuple(matchers), all)


def any_of(matchers: Iterable[Matcher]) -> Junction:
    """Logical OR of matchers. An empty list matches nothing."""
    return Junction('anyOf', tuple(matchers), any)


def not_(matcher: Matcher) -> Not:
    """Logical NOT of a matcher."""
    return Not(matcher)


def rename(name: str, matcher: Matcher) -> Renamed:
    """Wrap a matcher so its result carries a different name."""
    return Renamed(name, matcher)


def request(verb: str, pattern: str) -> Renamed:
    """Shorthand for ``all_of([method(verb), path(pattern)])`` named "request"."""
    return rename('request', all_of([method(verb), path(pattern)]))
