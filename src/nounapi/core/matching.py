"""
Exact-equality filters shared by storage queries and event subscriptions.

Python treats ``True == 1`` and ``False == 0.0`` as equal. Filters compare
JSON-shaped values, where a boolean and a number are different types, so a
boolean only ever matches another boolean.
"""

from __future__ import annotations

from collections.abc import Mapping
from typing import Any


def strict_equals(left: Any, right: Any) -> bool:
    """
    Equality that never conflates booleans with numbers.

    >>> strict_equals(1, 1.0)
    True
    >>> strict_equals(True, 1)
    False
    >>> strict_equals([True], [1])
    False
    """
    if isinstance(left, bool) or isinstance(right, bool):
        return type(left) is type(right) and left == right
    if isinstance(left, list | tuple) and isinstance(right, list | tuple):
        return len(left) == len(right) and all(
            strict_equals(a, b) for a, b in zip(left, right, strict=True)
        )
    if isinstance(left, Mapping) and isinstance(right, Mapping):
        return left.keys() == right.keys() and all(
            strict_equals(value, right[key]) for key, value in left.items()
        )
    return bool(left == right)


def matches_filter(record: Mapping[str, Any], filter: Mapping[str, Any] | None) -> bool:
    """Conjunction of exact matches; a key absent from the record never matches."""
    if not filter:
        return True
    for key, value in filter.items():
        if key not in record or not strict_equals(record[key], value):
            return False
    return True
