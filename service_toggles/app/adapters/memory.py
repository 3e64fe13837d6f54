"""
In-process toggle store backend.
"""

import copy
import threading
from typing import Any, Dict, Iterable, List, Mapping, Optional

from shared.logging import get_logger
from ..rules import normalize_values, merge_values, subtract_values
from .base import ToggleAdapter, Rules


class MemoryAdapter(ToggleAdapter):
    """Dict-backed store guarded by a single lock.

    Every read-modify-write happens under the lock, so the adapter is safe
    to share between tasks and threads. Readers get deep copies and
    predicates are never invoked while the lock is held.
    """

    name = "memory"

    def __init__(self):
        self.logger = get_logger("toggles.adapters.memory")
        self._lock = threading.Lock()
        self._table: Dict[str, Rules] = {}

    async def add(self, feature: str) -> None:
        with self._lock:
            self._table.setdefault(feature, {})

    async def remove(self, feature: str) -> None:
        with self._lock:
            self._table.pop(feature, None)

    async def enable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = normalize_values(values)

        with self._lock:
            rules = self._table.get(feature)
            if rules is None:
                rules = self._table[feature] = {}

            rules[group] = merge_values(rules.get(group, ()), values)

        self.logger.debug("Feature enabled", feature=feature, group=group, values=values)

    async def disable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = list(values or ())

        with self._lock:
            rules = self._table.get(feature)
            if rules is None:
                return

            if not values:
                rules.pop(group, None)
            elif group in rules:
                rules[group] = subtract_values(rules[group], values)

        self.logger.debug("Feature disabled", feature=feature, group=group, values=values)

    async def rename(self, old_name: str, new_name: str) -> None:
        with self._lock:
            if old_name == new_name or old_name not in self._table:
                return

            self._table[new_name] = self._table.pop(old_name)

        self.logger.debug("Feature renamed", old_name=old_name, new_name=new_name)

    async def rules(self, feature: str) -> Rules:
        with self._lock:
            return copy.deepcopy(self._table.get(feature, {}))

    async def exists(self, feature: str, group: Optional[str] = None) -> bool:
        with self._lock:
            if group is None:
                return feature in self._table

            return group in self._table.get(feature, {})

    async def features(self, group: Optional[str] = None) -> List[str]:
        with self._lock:
            if group is None:
                return sorted(self._table)

            return sorted(
                feature for feature, rules in self._table.items()
                if group in rules
            )

    async def dump(self) -> Dict[str, Rules]:
        with self._lock:
            return copy.deepcopy(self._table)

    async def load(self, features: Mapping[str, Mapping[str, Iterable[Any]]]) -> None:
        loaded = {
            feature: {str(group): normalize_values(values) for group, values in rules.items()}
            for feature, rules in features.items()
        }

        with self._lock:
            self._table.update(loaded)

        self.logger.info("Features loaded", count=len(loaded))

    async def clear(self) -> None:
        with self._lock:
            self._table = {}
