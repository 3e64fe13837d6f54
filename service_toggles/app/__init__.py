"""
Toggle store application package.

- app.toggles: FeatureToggles facade, the entry point for callers.
- app.registry: group name -> predicate registry.
- app.rules: value-set helpers and the rule evaluator.
- app.adapters: memory, PostgreSQL and Redis storage backends.
- app.settings: pydantic-settings configuration.

Guidelines:
- Feature names are normalized by the facade, never by adapters.
- Adapters own atomicity; the facade owns validation.
"""

from .registry import Registry
from .serializers import JSONSerializer
from .settings import ToggleSettings, get_settings
from .toggles import ClearScope, FeatureToggles, normalize_feature

__all__ = [
    "ClearScope",
    "FeatureToggles",
    "JSONSerializer",
    "Registry",
    "ToggleSettings",
    "get_settings",
    "normalize_feature",
]
