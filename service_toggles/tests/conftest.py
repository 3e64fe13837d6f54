"""
Shared fixtures for toggle store tests.
"""

import asyncio
from typing import Any, Awaitable, Callable, Dict, Optional

import pytest
from redis.exceptions import WatchError

from shared.metrics import MetricsCollector
from shared.retry import RetryConfig
from service_toggles.app.adapters.memory import MemoryAdapter
from service_toggles.app.adapters.redis_store import RedisAdapter
from service_toggles.app.toggles import FeatureToggles


class FakeRedis:
    """In-memory stand-in for a ``redis.asyncio`` client with decoded responses.

    Implements only the commands the Redis adapter issues. Every write bumps
    a per-key version so WATCH can detect intervening writes, and immediate
    commands yield to the event loop so concurrent tasks interleave.
    """

    def __init__(self):
        self.data: Dict[str, Any] = {}
        self.versions: Dict[str, int] = {}
        self.before_execute: Optional[Callable[["FakePipeline"], Awaitable[None]]] = None
        self.closed = False

    def pipeline(self, transaction: bool = True) -> "FakePipeline":
        return FakePipeline(self, transaction)

    async def aclose(self):
        self.closed = True

    async def sadd(self, key, *members):
        return self._sadd(key, *members)

    async def srem(self, key, *members):
        return self._srem(key, *members)

    async def smembers(self, key):
        return self._smembers(key)

    async def sismember(self, key, member):
        return self._sismember(key, member)

    async def hget(self, key, field):
        return self._hget(key, field)

    async def hset(self, key, field=None, value=None, mapping=None):
        return self._hset(key, field, value, mapping)

    async def hdel(self, key, *fields):
        return self._hdel(key, *fields)

    async def hgetall(self, key):
        return self._hgetall(key)

    async def hexists(self, key, field):
        return self._hexists(key, field)

    async def delete(self, *keys):
        return self._delete(*keys)

    def _touch(self, key):
        self.versions[key] = self.versions.get(key, 0) + 1

    def _sadd(self, key, *members):
        members = set(members)
        current = self.data.setdefault(key, set())
        added = len(members - current)
        current.update(members)
        if added:
            self._touch(key)
        return added

    def _srem(self, key, *members):
        current = self.data.get(key)
        if not current:
            return 0
        removed = len(current & set(members))
        current.difference_update(members)
        if not current:
            del self.data[key]
        if removed:
            self._touch(key)
        return removed

    def _smembers(self, key):
        return set(self.data.get(key, set()))

    def _sismember(self, key, member):
        return int(member in self.data.get(key, set()))

    def _hget(self, key, field):
        return self.data.get(key, {}).get(field)

    def _hset(self, key, field=None, value=None, mapping=None):
        items = dict(mapping or {})
        if field is not None:
            items[field] = value
        current = self.data.setdefault(key, {})
        added = len(set(items) - set(current))
        current.update(items)
        self._touch(key)
        return added

    def _hdel(self, key, *fields):
        current = self.data.get(key)
        if not current:
            return 0
        removed = 0
        for field in fields:
            if current.pop(field, None) is not None:
                removed += 1
        if not current:
            del self.data[key]
        if removed:
            self._touch(key)
        return removed

    def _hgetall(self, key):
        return dict(self.data.get(key, {}))

    def _hexists(self, key, field):
        return field in self.data.get(key, {})

    def _delete(self, *keys):
        removed = 0
        for key in keys:
            if key in self.data:
                del self.data[key]
                self._touch(key)
                removed += 1
        return removed


class FakePipeline:
    """Pipeline with redis-py's WATCH/MULTI/EXEC semantics."""

    def __init__(self, client: FakeRedis, transaction: bool):
        self.client = client
        self.transaction = transaction
        self.watched: Dict[str, int] = {}
        self.watching = False
        self.explicit_transaction = False
        self.command_stack = []

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc, tb):
        await self.reset()

    async def reset(self):
        self.watched = {}
        self.watching = False
        self.explicit_transaction = False
        self.command_stack = []

    async def watch(self, *keys):
        await asyncio.sleep(0)
        self.watching = True
        for key in keys:
            self.watched[key] = self.client.versions.get(key, 0)

    def multi(self):
        self.explicit_transaction = True

    def __getattr__(self, name):
        if name.startswith("_"):
            raise AttributeError(name)
        command = getattr(self.client, f"_{name}")

        def call(*args, **kwargs):
            if self.watching and not self.explicit_transaction:
                async def immediate():
                    await asyncio.sleep(0)
                    return command(*args, **kwargs)

                return immediate()

            self.command_stack.append((command, args, kwargs))
            return self

        return call

    async def execute(self):
        if self.client.before_execute is not None and self.watched:
            await self.client.before_execute(self)
        await asyncio.sleep(0)

        try:
            for key, version in self.watched.items():
                if self.client.versions.get(key, 0) != version:
                    raise WatchError("Watched variable changed.")

            return [command(*args, **kwargs) for command, args, kwargs in self.command_stack]
        finally:
            await self.reset()


@pytest.fixture
def fake_redis():
    """Fake Redis client."""
    return FakeRedis()


@pytest.fixture
def metrics():
    """Metrics collector with its own registry."""
    return MetricsCollector("toggles-test")


@pytest.fixture
def redis_adapter(fake_redis, metrics):
    """Redis adapter over the fake client, retrying without real sleeps."""
    return RedisAdapter(
        fake_redis,
        retry_config=RetryConfig(max_attempts=5, base_delay=0, jitter=False),
        metrics=metrics
    )


@pytest.fixture(params=["memory", "redis"])
def toggles(request, fake_redis, metrics):
    """FeatureToggles over each backend that runs without a server."""
    if request.param == "memory":
        adapter = MemoryAdapter()
    else:
        adapter = RedisAdapter(
            fake_redis,
            retry_config=RetryConfig(max_attempts=5, base_delay=0, jitter=False),
            metrics=metrics
        )

    return FeatureToggles(adapter=adapter, metrics=metrics)
