"""
Storage backends for the toggle store.

Every backend implements ``ToggleAdapter``:

- memory: in-process dict behind a lock; the zero-configuration default.
- postgres: one JSONB document per feature, merges done server-side.
- redis_store: membership set plus a hash per feature, optimistic locking.
"""

from .base import ToggleAdapter
from .memory import MemoryAdapter

__all__ = ["ToggleAdapter", "MemoryAdapter"]
