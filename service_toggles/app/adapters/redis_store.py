"""
Redis toggle store backend.

Layout: a membership set at ``<key>`` naming every feature, plus one hash
per feature at ``<key>-<feature>`` mapping group -> serialized value-set.
Read-modify-write sequences use WATCH/MULTI/EXEC and are retried with
backoff when another writer touches a watched key.
"""

from typing import Any, Awaitable, Callable, Dict, Iterable, List, Mapping, Optional

import redis.asyncio as redis
from redis.exceptions import WatchError

from shared.errors import ConflictError
from shared.logging import get_logger
from shared.metrics import MetricsCollector
from shared.retry import RetryConfig, RetryError, call_with_retry
from ..rules import normalize_values, merge_values, subtract_values
from ..serializers import JSONSerializer, Serializer
from .base import ToggleAdapter, Rules

DEFAULT_KEY = "features"

DEFAULT_RETRY = RetryConfig(max_attempts=5, base_delay=0.01, max_delay=0.5)


class RedisAdapter(ToggleAdapter):
    """Hash-per-feature backend on top of a ``redis.asyncio`` client.

    The client must be created with ``decode_responses=True``.
    """

    name = "redis"

    def __init__(self, client: redis.Redis, key: str = DEFAULT_KEY,
                 serializer: Optional[Serializer] = None,
                 retry_config: Optional[RetryConfig] = None,
                 metrics: Optional[MetricsCollector] = None,
                 owns_client: bool = False):
        self.client = client
        self.key = key
        self.serializer = serializer or JSONSerializer()
        self.retry_config = retry_config or DEFAULT_RETRY
        self.metrics = metrics
        self.owns_client = owns_client
        self.logger = get_logger("toggles.adapters.redis")

    @classmethod
    def from_url(cls, url: str, key: str = DEFAULT_KEY,
                 serializer: Optional[Serializer] = None,
                 retry_config: Optional[RetryConfig] = None,
                 metrics: Optional[MetricsCollector] = None,
                 socket_timeout: float = 5) -> "RedisAdapter":
        """Create a client for ``url`` and an adapter that owns it."""
        client = redis.from_url(
            url,
            encoding="utf-8",
            decode_responses=True,
            socket_connect_timeout=socket_timeout,
            socket_timeout=socket_timeout,
            health_check_interval=30
        )
        return cls(client, key=key, serializer=serializer, retry_config=retry_config,
                   metrics=metrics, owns_client=True)

    async def close(self) -> None:
        if self.owns_client:
            await self.client.aclose()
            self.logger.info("Redis client closed")

    async def add(self, feature: str) -> None:
        await self.client.sadd(self.key, feature)

    async def remove(self, feature: str) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            pipe.srem(self.key, feature)
            pipe.delete(self._namespace(feature))
            await pipe.execute()

    async def enable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = normalize_values(values)
        namespaced = self._namespace(feature)

        async def merge(pipe) -> bool:
            current = await pipe.hget(namespaced, group)
            merged = merge_values(self._load(current), values)

            pipe.multi()
            pipe.sadd(self.key, feature)
            pipe.hset(namespaced, group, self.serializer.dumps(merged))
            return True

        await self._optimistic("enable", [namespaced], merge)
        self.logger.debug("Feature enabled", feature=feature, group=group, values=values)

    async def disable(self, feature: str, group: str, values: Iterable[Any] = ()) -> None:
        values = list(values or ())
        namespaced = self._namespace(feature)

        if not values:
            await self.client.hdel(namespaced, group)
            self.logger.debug("Feature disabled", feature=feature, group=group, values=values)
            return

        async def difference(pipe) -> bool:
            current = await pipe.hget(namespaced, group)
            if current is None:
                return False

            pipe.multi()
            pipe.hset(namespaced, group,
                      self.serializer.dumps(subtract_values(self._load(current), values)))
            return True

        await self._optimistic("disable", [namespaced], difference)
        self.logger.debug("Feature disabled", feature=feature, group=group, values=values)

    async def rename(self, old_name: str, new_name: str) -> None:
        if old_name == new_name:
            return

        old_key = self._namespace(old_name)
        new_key = self._namespace(new_name)

        async def move(pipe) -> bool:
            if not await pipe.sismember(self.key, old_name):
                return False

            fields = await pipe.hgetall(old_key)

            pipe.multi()
            pipe.delete(new_key)
            if fields:
                pipe.hset(new_key, mapping=fields)
            pipe.delete(old_key)
            pipe.srem(self.key, old_name)
            pipe.sadd(self.key, new_name)
            return True

        await self._optimistic("rename", [self.key, old_key, new_key], move)
        self.logger.debug("Feature renamed", old_name=old_name, new_name=new_name)

    async def rules(self, feature: str) -> Rules:
        return self._decode(await self.client.hgetall(self._namespace(feature)))

    async def exists(self, feature: str, group: Optional[str] = None) -> bool:
        if group is None:
            return bool(await self.client.sismember(self.key, feature))

        return bool(await self.client.hexists(self._namespace(feature), group))

    async def features(self, group: Optional[str] = None) -> List[str]:
        names = sorted(await self.client.smembers(self.key))
        if group is None or not names:
            return names

        async with self.client.pipeline(transaction=False) as pipe:
            for name in names:
                pipe.hexists(self._namespace(name), group)
            flags = await pipe.execute()

        return [name for name, flag in zip(names, flags) if flag]

    async def dump(self) -> Dict[str, Rules]:
        names = sorted(await self.client.smembers(self.key))
        if not names:
            return {}

        async with self.client.pipeline(transaction=False) as pipe:
            for name in names:
                pipe.hgetall(self._namespace(name))
            hashes = await pipe.execute()

        return {name: self._decode(fields) for name, fields in zip(names, hashes)}

    async def load(self, features: Mapping[str, Mapping[str, Iterable[Any]]]) -> None:
        async with self.client.pipeline(transaction=True) as pipe:
            for feature, rules in features.items():
                namespaced = self._namespace(feature)
                pipe.delete(namespaced)
                if rules:
                    pipe.hset(namespaced, mapping={
                        str(group): self.serializer.dumps(normalize_values(values))
                        for group, values in rules.items()
                    })
                pipe.sadd(self.key, feature)
            await pipe.execute()

        self.logger.info("Features loaded", count=len(features))

    async def clear(self) -> None:
        async def wipe(pipe) -> bool:
            names = await pipe.smembers(self.key)

            pipe.multi()
            for name in names:
                pipe.delete(self._namespace(name))
            pipe.delete(self.key)
            return True

        await self._optimistic("clear", [self.key], wipe)

    async def _optimistic(self, operation: str, watched: List[str],
                          body: Callable[[Any], Awaitable[bool]]) -> None:
        """Run ``body`` inside WATCH/MULTI/EXEC, retrying on conflicts.

        ``body`` performs its reads on the watching pipeline, then calls
        ``multi()`` and queues writes; returning False aborts without writing.
        """
        async def attempt() -> None:
            async with self.client.pipeline(transaction=True) as pipe:
                await pipe.watch(*watched)
                if await body(pipe):
                    await pipe.execute()

        try:
            await call_with_retry(
                attempt,
                (WatchError,),
                self.retry_config,
                on_retry=self._on_conflict,
                name=f"redis.{operation}"
            )
        except RetryError as e:
            self._on_conflict(e.attempts, e.last_exception)
            raise ConflictError(
                f"Gave up on {operation} after {e.attempts} conflicting attempts",
                {"operation": operation, "keys": watched, "attempts": e.attempts}
            ) from e

    def _on_conflict(self, attempt: int, error: Exception) -> None:
        if self.metrics is not None:
            self.metrics.record_conflict(self.name)

    def _namespace(self, feature: str) -> str:
        return f"{self.key}-{feature}"

    def _load(self, encoded: Optional[str]) -> List[Any]:
        if encoded is None:
            return []
        return self.serializer.loads(encoded)

    def _decode(self, fields: Mapping[str, str]) -> Rules:
        return {group: self._load(encoded) for group, encoded in fields.items()}
