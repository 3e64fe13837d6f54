"""
Feature toggle facade.

``FeatureToggles`` is the single entry point applications use. It owns the
active backend, the predicate registry and the serializer, normalizes
feature names, and refuses to enable groups that have no predicate.
Construct one per process and pass it to whoever needs it::

    toggles = FeatureToggles()
    toggles.register("staff", lambda actor, values: actor.is_staff)
    await toggles.enable("search", "staff")
    await toggles.is_enabled("search", user)
"""

from contextlib import contextmanager
from enum import Enum
from typing import Any, Dict, Iterable, List, Mapping, Optional, Union

from shared.errors import UnknownGroupError, ValidationError
from shared.logging import configure_logging, get_logger
from shared.metrics import MetricsCollector, get_metrics_collector
from .adapters.base import ToggleAdapter, Breakdown, Rules
from .adapters.memory import MemoryAdapter
from .adapters.postgres import PostgresAdapter
from .adapters.redis_store import RedisAdapter
from .registry import Predicate, Registry
from .rules import normalize_values
from .serializers import JSONSerializer, Serializer
from .settings import ToggleSettings, get_settings


class ClearScope(str, Enum):
    """What ``FeatureToggles.clear`` wipes."""
    FEATURES = "features"
    GROUPS = "groups"


def normalize_feature(name: Any) -> str:
    """Lowercase and trim a feature name; reject names that end up empty."""
    normalized = str(name).strip().lower()
    if not normalized:
        raise ValidationError("Feature name must not be empty", {"feature": str(name)})
    return normalized


class FeatureToggles:
    """Feature toggle store bound to one backend and one registry."""

    def __init__(self, adapter: Optional[ToggleAdapter] = None,
                 registry: Optional[Registry] = None,
                 serializer: Optional[Serializer] = None,
                 metrics: Optional[MetricsCollector] = None):
        self._adapter = adapter
        self._registry = registry
        self._serializer = serializer
        self.metrics = metrics or get_metrics_collector("toggles")
        self.logger = get_logger("toggles.facade")

    @classmethod
    async def from_settings(cls, settings: Optional[ToggleSettings] = None,
                            registry: Optional[Registry] = None,
                            serializer: Optional[Serializer] = None) -> "FeatureToggles":
        """Build a store for the backend named in ``settings`` and prepare it."""
        settings = settings or get_settings()
        configure_logging(settings.service_name, settings.log_level)
        toggles = cls(registry=registry, serializer=serializer,
                      metrics=get_metrics_collector(settings.service_name))

        if settings.backend == "postgres":
            adapter = await PostgresAdapter.connect(
                settings.postgres_dsn,
                table=settings.postgres_table,
                serializer=toggles.serializer,
                min_size=settings.postgres_pool_min_size,
                max_size=settings.postgres_pool_max_size,
                command_timeout=settings.postgres_command_timeout
            )
        elif settings.backend == "redis":
            adapter = RedisAdapter.from_url(
                settings.redis_url,
                key=settings.redis_key,
                serializer=toggles.serializer,
                retry_config=settings.conflict_retry(),
                metrics=toggles.metrics,
                socket_timeout=settings.redis_socket_timeout
            )
        else:
            adapter = MemoryAdapter()

        await adapter.setup()
        toggles.configure(adapter=adapter)

        toggles.logger.info("Toggle store configured", backend=adapter.name, env=settings.env)
        return toggles

    @property
    def adapter(self) -> ToggleAdapter:
        if self._adapter is None:
            self._adapter = MemoryAdapter()
        return self._adapter

    @property
    def registry(self) -> Registry:
        if self._registry is None:
            self._registry = Registry()
        return self._registry

    @property
    def serializer(self) -> Serializer:
        if self._serializer is None:
            self._serializer = JSONSerializer()
        return self._serializer

    def configure(self, adapter: Optional[ToggleAdapter] = None,
                  registry: Optional[Registry] = None,
                  serializer: Optional[Serializer] = None) -> "FeatureToggles":
        """Swap collaborators; a new serializer is handed to the active adapter too."""
        if adapter is not None:
            self._adapter = adapter
        if registry is not None:
            self._registry = registry
        if serializer is not None:
            self._serializer = serializer
            if hasattr(self._adapter, "serializer"):
                self._adapter.serializer = serializer
        return self

    async def close(self) -> None:
        if self._adapter is not None:
            await self._adapter.close()

    async def __aenter__(self) -> "FeatureToggles":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.close()

    # Registry

    def register(self, group: Any, predicate: Optional[Predicate] = None):
        return self.registry.register(group, predicate)

    def registered(self) -> Mapping[str, Predicate]:
        return self.registry.registered()

    def is_registered(self, group: Any) -> bool:
        return self.registry.is_registered(group)

    # Features

    async def add(self, feature: Any) -> None:
        feature = normalize_feature(feature)
        with self._observe("add"):
            await self.adapter.add(feature)

    async def remove(self, feature: Any) -> None:
        feature = normalize_feature(feature)
        with self._observe("remove"):
            await self.adapter.remove(feature)

    async def enable(self, feature: Any, group: Any, values: Iterable[Any] = ()) -> None:
        feature = normalize_feature(feature)
        group = str(group)
        if not self.registry.is_registered(group):
            raise UnknownGroupError(group)

        with self._observe("enable"):
            await self.adapter.enable(feature, group, normalize_values(values))

    async def disable(self, feature: Any, group: Any, values: Iterable[Any] = ()) -> None:
        feature = normalize_feature(feature)
        with self._observe("disable"):
            await self.adapter.disable(feature, str(group), normalize_values(values))

    async def rename(self, old_name: Any, new_name: Any) -> None:
        old_name = normalize_feature(old_name)
        new_name = normalize_feature(new_name)
        with self._observe("rename"):
            await self.adapter.rename(old_name, new_name)

    async def is_enabled(self, feature: Any, actor: Any) -> bool:
        feature = normalize_feature(feature)
        with self._observe("is_enabled"):
            return await self.adapter.is_enabled(feature, actor, self.registry.registered())

    async def exists(self, feature: Any, group: Any = None) -> bool:
        feature = normalize_feature(feature)
        with self._observe("exists"):
            return await self.adapter.exists(feature, None if group is None else str(group))

    async def features(self, group: Any = None) -> List[str]:
        with self._observe("features"):
            return await self.adapter.features(None if group is None else str(group))

    async def rules(self, feature: Any) -> Rules:
        feature = normalize_feature(feature)
        with self._observe("rules"):
            return await self.adapter.rules(feature)

    async def breakdown(self, actor: Any = None) -> Breakdown:
        with self._observe("breakdown"):
            return await self.adapter.breakdown(actor, self.registry.registered())

    async def load(self, features: Mapping[Any, Mapping[Any, Iterable[Any]]]) -> None:
        """Import a ``breakdown()`` dump, replacing the rules of each listed feature."""
        normalized: Dict[str, Mapping[Any, Iterable[Any]]] = {
            normalize_feature(feature): rules for feature, rules in features.items()
        }
        with self._observe("load"):
            await self.adapter.load(normalized)

    async def clear(self, scope: Union[ClearScope, str, None] = None) -> None:
        """Clear features, registered groups, or (by default) both."""
        if scope is not None:
            try:
                scope = ClearScope(scope)
            except ValueError:
                raise ValidationError("Unknown clear scope", {"scope": str(scope)}) from None

        if scope in (None, ClearScope.FEATURES):
            with self._observe("clear"):
                await self.adapter.clear()
        if scope in (None, ClearScope.GROUPS):
            self.registry.clear()

    @contextmanager
    def _observe(self, operation: str):
        with self.metrics.time_operation(self.adapter.name, operation):
            yield
