"""
Shared utilities for the feature toggle store.

Common building blocks used by the store package:

- config: Base configuration via pydantic-settings
- logging: Structured logging with structlog
- metrics: Prometheus metrics helpers
- errors: Canonical error types
- retry: Retry helpers with backoff

Do not import from service_toggles into shared/.
"""
