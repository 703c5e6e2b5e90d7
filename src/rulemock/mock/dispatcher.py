"""
RuleMock Dispatcher

Tries rules in declaration order and falls back to a passthrough handler
when none of them matches.
"""

import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Union

from ..common import maybe_await
from .http_request import MockRequest
from .rules import MockRule, RuleResult, create_evaluator

logger = logging.getLogger("rulemock.dispatcher")

Passthrough = Callable[..., Union[Any, Awaitable[Any]]]


@dataclass
class DispatchResult:
    """Result of dispatching one request."""

    matched: bool
    response: Any = None
    rule: Optional[MockRule] = None
    rule_index: Optional[int] = None
    results: List[RuleResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary (diagnostics only, response excluded)."""
        return {
            'matched': self.matched,
            'rule_index': self.rule_index,
            'rule': self.rule.label(self.rule_index) if self.rule else None,
            'evaluated': [r.to_dict()['matcher'] for r in self.results]
        }


class Dispatcher:
    """
    Ordered, short-circuiting rule loop.

    Rules are evaluated one at a time in the order given. The first rule
    that matches supplies the response and no later rule is evaluated. If
    nothing matches, ``passthrough(request, *passthrough_args)`` is called
    exactly once and its return value becomes the response.

    Example:
        dispatcher = Dispatcher(rules, passthrough=forward_upstream)
        result = await dispatcher.dispatch(mock_request, raw_request)
    """

    def __init__(self, rules: Sequence[MockRule], passthrough: Passthrough):
        """
        Initialize dispatcher.

        Args:
            rules: Rules in priority order
            passthrough: Called when no rule matches; may be sync or async
        """
        self.rules = list(rules)
        self.passthrough = passthrough
        self.evaluators = [create_evaluator(rule) for rule in self.rules]

    async def dispatch(self, request: MockRequest, *passthrough_args: Any) -> DispatchResult:
        """
        Dispatch a request to the first matching rule or to passthrough.

        Args:
            request: Request to evaluate
            *passthrough_args: Extra arguments forwarded untouched to passthrough

        Returns:
            DispatchResult describing the outcome
        """
        results: List[RuleResult] = []

        for index, evaluate in enumerate(self.evaluators):
            result = await evaluate(request)
            results.append(result)
            rule = self.rules[index]
            logger.debug(f"{rule.label(index)}: {'match' if result.ok else 'no match'} for {request.method} {request.path}")

            if result.ok:
                return DispatchResult(
                    matched=True,
                    response=result.response,
                    rule=rule,
                    rule_index=index,
                    results=results
                )

        response = await maybe_await(self.passthrough(request, *passthrough_args))
        return DispatchResult(matched=False, response=response, results=results)
