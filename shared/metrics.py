"""
Shared metrics configuration for the feature toggle store.
"""

import time
from contextlib import contextmanager
from typing import Dict, Any, Optional

from prometheus_client import Counter, Histogram, Info, CollectorRegistry, generate_latest


class MetricsCollector:
    """Centralized metrics collector for toggle store operations."""

    def __init__(self, service_name: str, registry: Optional[CollectorRegistry] = None):
        self.service_name = service_name
        # Never the process-wide default registry
        self.registry = registry if registry is not None else CollectorRegistry()
        self._metrics: Dict[str, Any] = {}
        self._setup_metrics()

    def _setup_metrics(self):
        """Set up toggle store metrics."""

        self._metrics["service_info"] = Info(
            "service_info",
            "Service information",
            registry=self.registry
        )
        self._metrics["service_info"].info({
            "service": self.service_name,
            "version": "1.0.0"
        })

        self._metrics["toggle_operations_total"] = Counter(
            "toggle_operations_total",
            "Total toggle store operations",
            ["backend", "operation", "status"],
            registry=self.registry
        )

        self._metrics["toggle_operation_duration_seconds"] = Histogram(
            "toggle_operation_duration_seconds",
            "Toggle store operation duration in seconds",
            ["backend", "operation"],
            registry=self.registry
        )

        self._metrics["toggle_conflicts_total"] = Counter(
            "toggle_conflicts_total",
            "Optimistic lock conflicts detected by a backend",
            ["backend"],
            registry=self.registry
        )

    def record_operation(self, backend: str, operation: str, status: str, duration: float):
        """Record one store operation."""
        self._metrics["toggle_operations_total"].labels(
            backend=backend,
            operation=operation,
            status=status
        ).inc()

        self._metrics["toggle_operation_duration_seconds"].labels(
            backend=backend,
            operation=operation
        ).observe(duration)

    def record_conflict(self, backend: str):
        """Record an optimistic lock conflict."""
        self._metrics["toggle_conflicts_total"].labels(backend=backend).inc()

    @contextmanager
    def time_operation(self, backend: str, operation: str):
        """Context manager to time and count an operation."""
        start_time = time.perf_counter()
        status = "success"
        try:
            yield
        except Exception:
            status = "error"
            raise
        finally:
            self.record_operation(backend, operation, status, time.perf_counter() - start_time)

    def get_sample_value(self, name: str, labels: Optional[Dict[str, str]] = None) -> Optional[float]:
        """Read back a sample from this collector's registry."""
        return self.registry.get_sample_value(name, labels or {})

    def render(self) -> bytes:
        """Render all metrics in the Prometheus text exposition format."""
        return generate_latest(self.registry)


def get_metrics_collector(service_name: str, registry: Optional[CollectorRegistry] = None) -> MetricsCollector:
    """Get a metrics collector for a service."""
    return MetricsCollector(service_name, registry)
