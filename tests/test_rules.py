"""
Tests for RuleMock Rules

Tests rule evaluation including:
- List shorthand normalized to all_of
- Responder invocation only on match
- Context handed to responders
- Error propagation from matchers and responders
"""

import asyncio
from unittest.mock import AsyncMock, Mock

import pytest

from rulemock.mock.http_request import MockRequest
from rulemock.mock.matcher import MatcherResult, body, method, path, request
from rulemock.mock.rules import MockRule, RuleResult, compile_rules, create_evaluator


@pytest.fixture
def user_request():
    return MockRequest(method='GET', path='/api/users/42')


class TestMockRule:
    """Test MockRule definition helpers."""

    def test_list_shorthand_becomes_all_of(self):
        """Test a list of matchers is AND-ed."""
        rule = MockRule(match=[method('get'), path('/x')], respond=Mock())

        assert rule.matcher.name == 'allOf'
        assert len(rule.matcher.matchers) == 2

    def test_single_matcher_used_as_is(self):
        """Test a single matcher is not wrapped."""
        matcher = path('/x')
        rule = MockRule(match=matcher, respond=Mock())

        assert rule.matcher is matcher

    def test_label(self):
        """Test label falls back from name to index to matcher name."""
        assert MockRule(match=path('/x'), respond=Mock(), name='named').label(3) == 'named'
        assert MockRule(match=path('/x'), respond=Mock()).label(3) == 'rule-3'
        assert MockRule(match=path('/x'), respond=Mock()).label() == 'path::/x'

    def test_describe(self):
        """Test structural description."""
        rule = MockRule(match=request('get', '/x'), respond=Mock(), name='r')

        assert rule.describe() == {
            'name': 'r',
            'match': {'name': 'request', 'children': [{'name': 'method::GET'}, {'name': 'path::/x'}]}
        }


class TestCreateEvaluator:
    """Test create_evaluator()."""

    def test_no_match_skips_responder(self):
        """Test the responder is never called when the matcher fails."""
        respond = Mock()
        evaluate = create_evaluator(MockRule(match=path('/api/users/:id'), respond=respond))

        result = asyncio.run(evaluate(MockRequest(path='/other')))

        assert result.ok is False
        assert result.response is None
        assert result.matcher.found is False
        respond.assert_not_called()

    def test_match_calls_responder_with_context(self, user_request):
        """Test the responder gets the request and the merged context."""
        respond = Mock(return_value={'hello': 'world'})
        evaluate = create_evaluator(MockRule(match=request('get', '/api/users/:id'), respond=respond))

        result = asyncio.run(evaluate(user_request))

        assert result.ok is True
        assert result.response == {'hello': 'world'}
        respond.assert_called_once()
        req_arg, ctx_arg = respond.call_args[0]
        assert req_arg is user_request
        assert ctx_arg == {'method': 'GET', 'path': '/api/users/42', 'params': {'id': '42'}}
        assert ctx_arg == result.matcher.ctx

    def test_list_match_names_all_of(self, user_request):
        """Test list-matched rules report an allOf result."""
        evaluate = create_evaluator(MockRule(match=[method('get'), path('/api/users/:id')], respond=Mock()))

        result = asyncio.run(evaluate(user_request))

        assert result.matcher.name == 'allOf'
        assert [c.name for c in result.matcher.children] == ['method::GET', 'path::/api/users/:id']

    def test_missing_context_becomes_empty_dict(self, user_request):
        """Test responders get {} when the match produced no context."""
        respond = Mock(return_value='ok')

        def always(req):
            return True

        evaluate = create_evaluator(MockRule(match=always, respond=respond))
        asyncio.run(evaluate(user_request))

        assert respond.call_args[0][1] == {}

    def test_async_responder(self, user_request):
        """Test coroutine responders are awaited."""
        respond = AsyncMock(return_value={'async': True})
        evaluate = create_evaluator(MockRule(match=method('get'), respond=respond))

        result = asyncio.run(evaluate(user_request))

        assert result.response == {'async': True}
        respond.assert_awaited_once()

    def test_responder_error_propagates(self, user_request):
        """Test responder exceptions are not swallowed."""
        evaluate = create_evaluator(MockRule(match=method('get'), respond=Mock(side_effect=RuntimeError('bad'))))

        with pytest.raises(RuntimeError, match='bad'):
            asyncio.run(evaluate(user_request))

    def test_predicate_error_propagates(self, user_request):
        """Test predicate exceptions surface as errors, not non-matches."""
        respond = Mock()
        evaluate = create_evaluator(MockRule(match=body(lambda b: b['status']), respond=respond))

        with pytest.raises(TypeError):
            asyncio.run(evaluate(user_request))
        respond.assert_not_called()

    def test_evaluator_is_reusable(self):
        """Test one evaluator serves many requests independently."""
        evaluate = create_evaluator(MockRule(match=path('/api/users/:id'), respond=lambda req, ctx: ctx['params']['id']))

        first = asyncio.run(evaluate(MockRequest(path='/api/users/1')))
        second = asyncio.run(evaluate(MockRequest(path='/api/users/2')))

        assert first.response == '1'
        assert second.response == '2'
        assert first.matcher is not second.matcher

    def test_compile_rules_preserves_order(self, user_request):
        """Test compiled evaluators follow rule order."""
        rules = [
            MockRule(match=method('post'), respond=Mock(return_value='first')),
            MockRule(match=method('get'), respond=Mock(return_value='second')),
        ]

        evaluators = compile_rules(rules)
        results = [asyncio.run(evaluate(user_request)) for evaluate in evaluators]

        assert [r.ok for r in results] == [False, True]
        assert results[1].response == 'second'


class TestRuleResult:
    """Test RuleResult serialization."""

    def test_to_dict_no_match(self):
        """Test unmatched results omit the response."""
        result = RuleResult(ok=False, matcher=MatcherResult(found=False, name='path::/x'))

        assert result.to_dict() == {'ok': False, 'matcher': {'found': False, 'name': 'path::/x'}}

    def test_to_dict_match(self):
        """Test matched results include the response."""
        result = RuleResult(ok=True, matcher=MatcherResult(found=True, name='m'), response={'a': 1})

        assert result.to_dict()['response'] == {'a': 1}
