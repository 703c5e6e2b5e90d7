"""
RuleMock Common Utilities

Shared helpers used by the matcher engine, the server and the CLI.
"""

import importlib
import inspect
import json
from typing import Any, Awaitable, Union


def safe_json_parse(json_string: Union[str, bytes, None], default: Any = None) -> Any:
    """
    Safely parse JSON string with error handling.

    Args:
        json_string: JSON string (or bytes) to parse
        default: Default value to return if parsing fails

    Returns:
        Parsed JSON object, or default if parsing fails

    Example:
        body = safe_json_parse(raw_body, default={})
    """
    if not json_string:
        return default

    try:
        return json.loads(json_string)
    except (json.JSONDecodeError, TypeError, ValueError):
        return default


async def maybe_await(value: Union[Any, Awaitable[Any]]) -> Any:
    """
    Resolve a value that may or may not be awaitable.

    Rule authors can write matchers, predicates and responders as plain
    functions or as coroutines; everything downstream awaits this instead.
    """
    if inspect.isawaitable(value):
        return await value
    return value


def import_object(reference: str) -> Any:
    """
    Import an object from a ``package.module:attribute`` reference.

    Args:
        reference: Dotted module path and attribute name separated by a colon

    Returns:
        The referenced object

    Raises:
        ValueError: If the reference is not in ``module:attribute`` form
        ImportError: If the module cannot be imported
        AttributeError: If the module has no such attribute

    Example:
        rules = import_object("myproject.mocks:RULES")
    """
    module_name, sep, attr_path = reference.partition(':')
    if not sep or not module_name or not attr_path:
        raise ValueError(
            f"Invalid object reference '{reference}'. "
            f"Expected 'package.module:attribute'"
        )

    obj = importlib.import_module(module_name)
    for attr in attr_path.split('.'):
        obj = getattr(obj, attr)
    return obj
