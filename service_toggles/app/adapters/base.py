"""
Storage contract shared by every toggle store backend.
"""

from abc import ABC, abstractmethod
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from ..registry import Predicate
from ..rules import enabled_for_actor, breakdown_for_actor

Rules = Dict[str, List[Any]]
Breakdown = Union[Dict[str, Rules], Dict[str, bool]]


class ToggleAdapter(ABC):
    """Backend contract.

    Feature names reach adapters already normalized. Every mutation of a
    single (feature, group) value-set is atomic: concurrent ``enable`` and
    ``disable`` calls never lose each other's values.
    """

    name = "abstract"

    async def setup(self) -> None:
        """Create whatever the backend needs before first use."""

    async def close(self) -> None:
        """Release clients owned by the adapter."""

    @abstractmethod
    async def add(self, feature: str) -> None:
        """Ensure ``feature`` exists; keep its rules if it already does."""

    @abstractmethod
    async def remove(self, feature: str) -> None:
        """Delete ``feature`` and its rules; no-op when absent."""

    @abstractmethod
    async def enable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        """Union ``values`` into the group's value-set, creating what is missing."""

    @abstractmethod
    async def disable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        """Drop ``values`` from the group, or the whole group when ``values`` is empty."""

    @abstractmethod
    async def rename(self, old_name: str, new_name: str) -> None:
        """Move all rules of ``old_name`` onto ``new_name``, discarding the latter's rules."""

    @abstractmethod
    async def rules(self, feature: str) -> Rules:
        """Rules stored for ``feature``; empty when the feature is unknown."""

    @abstractmethod
    async def exists(self, feature: str, group: Optional[str] = None) -> bool:
        ...

    @abstractmethod
    async def features(self, group: Optional[str] = None) -> List[str]:
        """Sorted feature names, optionally only those with rules for ``group``."""

    @abstractmethod
    async def dump(self) -> Dict[str, Rules]:
        """Every feature with its rules."""

    @abstractmethod
    async def load(self, features: Mapping[str, Mapping[str, Iterable[Any]]]) -> None:
        """Replace the rules of each listed feature wholesale."""

    @abstractmethod
    async def clear(self) -> None:
        """Delete every feature."""

    async def is_enabled(self, feature: str, actor: Any,
                         registry: Mapping[str, Predicate]) -> bool:
        return enabled_for_actor(await self.rules(feature), actor, registry)

    async def breakdown(self, actor: Any = None,
                        registry: Optional[Mapping[str, Predicate]] = None) -> Breakdown:
        """Full rules dump, or feature -> visibility when ``actor`` is given."""
        dumped = await self.dump()
        if actor is None:
            return dumped

        return breakdown_for_actor(dumped, actor, registry or {})
