"""
Configuration for the toggle store.
"""

from typing import Literal

from pydantic import Field

from shared.config import BaseConfig
from shared.retry import RetryConfig


class ToggleSettings(BaseConfig):
    """Toggle store settings, read from ``TOGGLES_*`` environment variables."""

    service_name: str = Field(default="toggles")
    backend: Literal["memory", "postgres", "redis"] = Field(default="memory")

    # PostgreSQL backend
    postgres_table: str = Field(default="feature_toggles")
    postgres_pool_min_size: int = Field(default=2)
    postgres_pool_max_size: int = Field(default=10)
    postgres_command_timeout: float = Field(default=30.0)

    # Redis backend
    redis_key: str = Field(default="features")
    redis_socket_timeout: float = Field(default=5.0)

    # Optimistic lock conflicts (Redis)
    conflict_max_attempts: int = Field(default=5, ge=1)
    conflict_base_delay: float = Field(default=0.01, ge=0)
    conflict_max_delay: float = Field(default=0.5, ge=0)

    def conflict_retry(self) -> RetryConfig:
        return RetryConfig(
            max_attempts=self.conflict_max_attempts,
            base_delay=self.conflict_base_delay,
            max_delay=self.conflict_max_delay
        )


def get_settings(**overrides) -> ToggleSettings:
    """Load settings from the environment, with explicit overrides."""
    return ToggleSettings(**overrides)
