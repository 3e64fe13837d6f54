"""
Rules package.

Holds the pure parts of the toggle store:

- values: value-set normalization, union and difference.
- engine: replay of registered predicates over a feature's rules.

Nothing here performs I/O; every backend shares these helpers so the
value-set semantics stay identical across storage media.
"""

from .engine import enabled_for_actor, breakdown_for_actor
from .values import normalize_values, merge_values, subtract_values

__all__ = [
    "enabled_for_actor",
    "breakdown_for_actor",
    "normalize_values",
    "merge_values",
    "subtract_values",
]
