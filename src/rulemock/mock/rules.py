"""
RuleMock Rules

A mock rule pairs a matcher with a responder. ``create_evaluator`` compiles
a rule into a single async decision function.
"""

from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..common import maybe_await
from .matcher import Context, Matcher, MatcherResult, all_of, describe_matcher, matcher_name, run_matcher
from .http_request import MockRequest

Responder = Callable[[MockRequest, Context], Union[Any, Awaitable[Any]]]
RuleEvaluator = Callable[[MockRequest], Awaitable['RuleResult']]


@dataclass(frozen=True)
class MockRule:
    """
    One mockable case.

    ``match`` is a matcher or a list of matchers (implicitly AND-ed);
    ``respond(request, ctx)`` builds the response and is only called after a
    successful match.

    Example:
        rule = MockRule(
            match=[method('get'), path('/api/users/:id')],
            respond=lambda req, ctx: {'id': ctx['params']['id']}
        )
    """

    match: Union[Matcher, Sequence[Matcher]]
    respond: Responder
    name: Optional[str] = None

    @property
    def matcher(self) -> Matcher:
        """The rule's matcher with list shorthand normalized to all_of."""
        if isinstance(self.match, (list, tuple)):
            return all_of(self.match)
        return self.match

    def label(self, index: Optional[int] = None) -> str:
        """Name used in logs and headers."""
        if self.name:
            return self.name
        if index is not None:
            return f"rule-{index}"
        return matcher_name(self.matcher)

    def describe(self, index: Optional[int] = None) -> Dict[str, Any]:
        return {
            'name': self.label(index),
            'match': describe_matcher(self.matcher)
        }


@dataclass
class RuleResult:
    """Outcome of evaluating a rule; ``matcher`` is present either way."""

    ok: bool
    matcher: MatcherResult
    response: Any = None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        data = {
            'ok': self.ok,
            'matcher': self.matcher.to_dict()
        }
        if self.ok:
            data['response'] = self.response
        return data


def create_evaluator(rule: MockRule) -> RuleEvaluator:
    """
    Create a function that evaluates a rule against a request and generates
    the response if it matches.

    Exceptions from matchers, predicates and the responder are not caught.

    Args:
        rule: Rule to compile

    Returns:
        Async function taking a request and returning a RuleResult
    """
    matcher = rule.matcher
    respond = rule.respond

    async def evaluate(request: MockRequest) -> RuleResult:
        result = await run_matcher(matcher, request)

        if not result.found:
            return RuleResult(ok=False, matcher=result)

        response = await maybe_await(respond(request, result.ctx or {}))
        return RuleResult(ok=True, matcher=result, response=response)

    return evaluate


def compile_rules(rules: Sequence[MockRule]) -> List[RuleEvaluator]:
    """Compile rules into evaluators, preserving order."""
    return [create_evaluator(rule) for rule in rules]
