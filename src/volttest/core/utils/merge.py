"""Deep merge used for layered configuration.

Lists are replaced by default. An override list whose first element is a
string starting with ``"+"`` appends to the base list; a leading ``"="``
marks an explicit replace.
"""
from __future__ import annotations

from typing import Any, Dict, List


def deep_merge(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """Recursively merge ``override`` into ``base`` without mutating either.

    Example:
        >>> deep_merge({"server": {"host": "127.0.0.1"}}, {"server": {"port": 9000}})
        {'server': {'host': '127.0.0.1', 'port': 9000}}
    """
    result: Dict[str, Any] = dict(base)
    for key, value in (override or {}).items():
        current = result.get(key)
        if isinstance(current, dict) and isinstance(value, dict):
            result[key] = deep_merge(current, value)
        elif isinstance(current, list) and isinstance(value, list):
            result[key] = merge_arrays(current, value)
        else:
            result[key] = value
    return result


def merge_arrays(base: List[Any], override: List[Any]) -> List[Any]:
    """Merge two lists honouring the ``"+"`` / ``"="`` markers.

    Example:
        >>> merge_arrays(["/"], ["+", "/up"])
        ['/', '/up']
    """
    if not override:
        return base
    head = override[0]
    if isinstance(head, str) and head.startswith("+"):
        return [*base, *override[1:]]
    if head == "=":
        return list(override[1:])
    return list(override)


__all__ = ["deep_merge", "merge_arrays"]
