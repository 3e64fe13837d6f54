"""
Predicate registry for the toggle store.
"""

import threading
from types import MappingProxyType
from typing import Any, Callable, Dict, List, Mapping, Optional

from shared.logging import get_logger

Predicate = Callable[[Any, List[Any]], bool]


class Registry:
    """Mapping of group name to the predicate deciding membership.

    Writes swap in a fresh dict under a lock; readers always get an
    immutable snapshot, so evaluation never races with registration.
    """

    def __init__(self):
        self.logger = get_logger("toggles.registry")
        self._lock = threading.Lock()
        self._table: Dict[str, Predicate] = {}

    def register(self, group: Any, predicate: Optional[Predicate] = None):
        """Register ``predicate`` for ``group``, replacing any previous one.

        Without a predicate this returns a decorator::

            @registry.register("staff")
            def is_staff(actor, values):
                return actor.is_staff
        """
        if predicate is None:
            def decorator(func: Predicate) -> Predicate:
                self.register(group, func)
                return func

            return decorator

        key = str(group)
        with self._lock:
            table = dict(self._table)
            table[key] = predicate
            self._table = table

        self.logger.debug("Group registered", group=key)
        return predicate

    def registered(self) -> Mapping[str, Predicate]:
        """Read-only view of the registered groups."""
        return MappingProxyType(self._table)

    def is_registered(self, group: Any) -> bool:
        return str(group) in self._table

    def clear(self):
        with self._lock:
            self._table = {}

        self.logger.debug("Registry cleared")
