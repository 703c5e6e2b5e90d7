"""
RuleMock Common Utilities

Shared utilities and helpers used across RuleMock modules.
"""

from .utils import safe_json_parse, maybe_await, import_object

__all__ = [
    'safe_json_parse',
    'maybe_await',
    'import_object'
]
