"""
Rule evaluation for the toggle store.
"""

from typing import Any, Dict, List, Mapping

from ..registry import Predicate


def enabled_for_actor(rules: Mapping[str, List[Any]], actor: Any,
                      registry: Mapping[str, Predicate]) -> bool:
    """Return True if any registered group's predicate accepts ``actor``.

    Groups without a registered predicate are skipped. Exceptions raised by
    a predicate propagate to the caller.
    """
    for group, values in rules.items():
        predicate = registry.get(group)
        if predicate is not None and predicate(actor, values):
            return True

    return False


def breakdown_for_actor(features: Mapping[str, Mapping[str, List[Any]]], actor: Any,
                        registry: Mapping[str, Predicate]) -> Dict[str, bool]:
    """Evaluate every feature of a rules dump for one actor."""
    return {
        feature: enabled_for_actor(rules, actor, registry)
        for feature, rules in features.items()
    }
