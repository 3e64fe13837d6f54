"""
Feature toggle store.

Decides, per feature and per actor, whether a feature is enabled by
replaying predicates registered under group names against the rules
stored for that feature. Rules can live in process memory, PostgreSQL
or Redis; see ``service_toggles.app.adapters``.
"""
