"""
Value-set helpers shared by every backend.
"""

import json
from numbers import Number
from typing import Any, Iterable, List, Tuple


def _sort_key(value: Any) -> Tuple[int, Any]:
    if isinstance(value, Number) and not isinstance(value, bool):
        return (0, value)
    if isinstance(value, str):
        return (1, value)
    return (2, json.dumps(value, sort_keys=True, default=str))


def _plain(value: Any) -> Any:
    # Tuples are stored the way JSON reads them back
    if isinstance(value, (list, tuple)):
        return [_plain(item) for item in value]
    if isinstance(value, dict):
        return {key: _plain(item) for key, item in value.items()}
    return value


def _identity(value: Any) -> Any:
    # Lists and dicts are unhashable; compare them by canonical JSON
    if isinstance(value, (list, tuple, dict)):
        return ("json", json.dumps(value, sort_keys=True, default=str))
    return ("value", type(value) is bool, value)


def normalize_values(values: Iterable[Any] = ()) -> List[Any]:
    """Deduplicate and sort a value-set."""
    unique = {}
    for value in values or ():
        value = _plain(value)
        unique.setdefault(_identity(value), value)
    return sorted(unique.values(), key=_sort_key)


def merge_values(current: Iterable[Any], added: Iterable[Any]) -> List[Any]:
    """Union of two value-sets."""
    return normalize_values(list(current or ()) + list(added or ()))


def subtract_values(current: Iterable[Any], removed: Iterable[Any]) -> List[Any]:
    """Difference of two value-sets."""
    dropped = {_identity(value) for value in removed or ()}
    return normalize_values(value for value in current or () if _identity(value) not in dropped)
