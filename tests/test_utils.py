"""
Tests for RuleMock Common Utilities
"""

import asyncio

import pytest

from rulemock.common.utils import import_object, maybe_await, safe_json_parse


class TestSafeJsonParse:
    """Test safe_json_parse()."""

    def test_valid_json(self):
        assert safe_json_parse('{"a": 1}') == {'a': 1}

    def test_bytes(self):
        assert safe_json_parse(b'[1, 2]') == [1, 2]

    def test_invalid_json_returns_default(self):
        """Test invalid input returns the default."""
        assert safe_json_parse('{not json', default='raw') == 'raw'

    def test_empty_returns_default(self):
        assert safe_json_parse('') is None
        assert safe_json_parse(None, default={}) == {}


class TestMaybeAwait:
    """Test maybe_await()."""

    def test_plain_value(self):
        assert asyncio.run(maybe_await(5)) == 5

    def test_coroutine(self):
        async def compute():
            return 'done'

        assert asyncio.run(maybe_await(compute())) == 'done'


class TestImportObject:
    """Test import_object()."""

    def test_import_attribute(self):
        """Test module:attribute references."""
        from rulemock.mock.example_rules import EXAMPLE_RULES

        assert import_object('rulemock.mock.example_rules:EXAMPLE_RULES') is EXAMPLE_RULES

    def test_dotted_attribute(self):
        """Test nested attribute paths."""
        assert import_object('rulemock.mock.config:MockConfig.from_yaml') is not None

    def test_invalid_reference(self):
        """Test references without a colon are rejected."""
        with pytest.raises(ValueError, match='Invalid object reference'):
            import_object('rulemock.mock.example_rules')

    def test_missing_module(self):
        with pytest.raises(ImportError):
            import_object('rulemock.does_not_exist:RULES')

    def test_missing_attribute(self):
        with pytest.raises(AttributeError):
            import_object('rulemock.mock.example_rules:NOPE')
