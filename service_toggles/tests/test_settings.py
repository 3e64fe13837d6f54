"""
Unit tests for settings and building a store from them.
"""

from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from pydantic import ValidationError as SettingsValidationError

from service_toggles.app import FeatureToggles, JSONSerializer, ToggleSettings, get_settings
from service_toggles.app.adapters.memory import MemoryAdapter
from service_toggles.app.adapters.postgres import PostgresAdapter
from service_toggles.app.adapters.redis_store import RedisAdapter


class TestToggleSettings:
    """Test cases for ToggleSettings."""

    def test_defaults(self, monkeypatch):
        """Test the memory backend is the default."""
        monkeypatch.delenv("TOGGLES_BACKEND", raising=False)

        settings = get_settings()

        assert settings.backend == "memory"
        assert settings.redis_key == "features"
        assert settings.postgres_table == "feature_toggles"

    def test_environment_prefix(self, monkeypatch):
        """Test values are read from TOGGLES_* variables."""
        monkeypatch.setenv("TOGGLES_BACKEND", "redis")
        monkeypatch.setenv("TOGGLES_REDIS_URL", "redis://cache:6379/3")
        monkeypatch.setenv("TOGGLES_CONFLICT_MAX_ATTEMPTS", "9")

        settings = get_settings()

        assert settings.backend == "redis"
        assert settings.redis_url == "redis://cache:6379/3"
        assert settings.conflict_max_attempts == 9

    def test_overrides_win(self, monkeypatch):
        """Test explicit keyword overrides beat the environment."""
        monkeypatch.setenv("TOGGLES_BACKEND", "redis")

        assert get_settings(backend="postgres").backend == "postgres"

    def test_unknown_backend_rejected(self):
        """Test an unsupported backend fails at load time."""
        with pytest.raises(SettingsValidationError):
            ToggleSettings(backend="mongo")

    def test_conflict_retry(self):
        """Test the conflict retry policy mirrors the settings."""
        retry = ToggleSettings(conflict_max_attempts=7, conflict_base_delay=0.2,
                               conflict_max_delay=1.5).conflict_retry()

        assert retry.max_attempts == 7
        assert retry.base_delay == 0.2
        assert retry.max_delay == 1.5


class TestFromSettings:
    """Test cases for FeatureToggles.from_settings."""

    @pytest.mark.asyncio
    async def test_memory_backend(self):
        """Test the memory backend needs no external service."""
        toggles = await FeatureToggles.from_settings(ToggleSettings(backend="memory"))

        assert isinstance(toggles.adapter, MemoryAdapter)

    @pytest.mark.asyncio
    async def test_redis_backend(self, fake_redis):
        """Test the redis backend is built from the URL and retry settings."""
        settings = ToggleSettings(backend="redis", redis_url="redis://cache:6379/2",
                                  redis_key="flags", conflict_max_attempts=8)

        with patch("service_toggles.app.adapters.redis_store.redis.from_url",
                   return_value=fake_redis) as from_url:
            toggles = await FeatureToggles.from_settings(settings)

        assert from_url.call_args.args == ("redis://cache:6379/2",)
        assert isinstance(toggles.adapter, RedisAdapter)
        assert toggles.adapter.key == "flags"
        assert toggles.adapter.retry_config.max_attempts == 8
        assert toggles.adapter.metrics is toggles.metrics

        toggles.register("users", lambda actor, values: actor in values)
        await toggles.enable("search", "users", [1])
        assert fake_redis.data["flags"] == {"search"}

        await toggles.close()
        assert fake_redis.closed is True

    @pytest.mark.asyncio
    async def test_postgres_backend(self):
        """Test the postgres backend connects and ensures its table."""
        conn = AsyncMock()
        pool = MagicMock()
        pool.acquire.return_value.__aenter__.return_value = conn
        pool.close = AsyncMock()
        settings = ToggleSettings(backend="postgres", postgres_dsn="postgres://db/flags",
                                  postgres_table="flags", postgres_pool_max_size=3)

        with patch("service_toggles.app.adapters.postgres.asyncpg.create_pool",
                   new_callable=AsyncMock, return_value=pool) as create_pool:
            toggles = await FeatureToggles.from_settings(settings)

        assert create_pool.call_args.args == ("postgres://db/flags",)
        assert create_pool.call_args.kwargs["max_size"] == 3
        assert isinstance(toggles.adapter, PostgresAdapter)
        assert "CREATE TABLE IF NOT EXISTS flags" in conn.execute.call_args.args[0]

        async with toggles:
            pass
        pool.close.assert_awaited_once()


class TestConfigure:
    """Test cases for swapping collaborators on the facade."""

    def test_lazy_defaults(self):
        """Test collaborators are created on first use."""
        toggles = FeatureToggles()

        assert isinstance(toggles.adapter, MemoryAdapter)
        assert isinstance(toggles.serializer, JSONSerializer)
        assert toggles.registered() == {}

    def test_serializer_reaches_adapter(self, fake_redis):
        """Test a new serializer is handed to the active adapter."""
        adapter = RedisAdapter(fake_redis)
        serializer = JSONSerializer()
        toggles = FeatureToggles(adapter=adapter)

        toggles.configure(serializer=serializer)

        assert toggles.serializer is serializer
        assert adapter.serializer is serializer

    @pytest.mark.asyncio
    async def test_adapter_swap(self):
        """Test later operations go to the newly configured adapter."""
        first, second = MemoryAdapter(), MemoryAdapter()
        toggles = FeatureToggles(adapter=first)

        toggles.configure(adapter=second)
        await toggles.add("search")

        assert await first.features() == []
        assert await second.features() == ["search"]
