"""Prometheus metrics collection module."""

from typing import Any, List, Optional

from prometheus_client import REGISTRY, CollectorRegistry, Counter, Gauge, Histogram


class MetricsRegistry:
    """Registry for Prometheus metrics.

    Metrics are registered once per collector registry: asking for a name that
    already exists returns the existing collector instead of raising a
    duplicate registration error.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None):
        """Initialize metrics registry.

        Args:
            registry: Prometheus registry to register into, the process-wide
                default registry when omitted
        """
        self.registry = registry if registry is not None else REGISTRY
        self._metrics = {}

    def _existing(self, name: str) -> Any:
        if name in self._metrics:
            return self._metrics[name]
        collector = self.registry._names_to_collectors.get(name)
        if collector is not None:
            self._metrics[name] = collector
        return collector

    def register_counter(self, name: str, description: str, labels: List[str] = None) -> Counter:
        """Register a new counter metric."""
        existing = self._existing(name)
        if existing is not None:
            return existing

        counter = Counter(name, description, labels or [], registry=self.registry)
        self._metrics[name] = counter
        return counter

    def register_gauge(self, name: str, description: str, labels: List[str] = None) -> Gauge:
        """Register a new gauge metric."""
        existing = self._existing(name)
        if existing is not None:
            return existing

        gauge = Gauge(name, description, labels or [], registry=self.registry)
        self._metrics[name] = gauge
        return gauge

    def register_histogram(
        self, name: str, description: str, labels: List[str] = None, buckets=None
    ) -> Histogram:
        """Register a new histogram metric."""
        existing = self._existing(name)
        if existing is not None:
            return existing

        kwargs = {"registry": self.registry}
        if buckets is not None:
            kwargs["buckets"] = buckets
        histogram = Histogram(name, description, labels or [], **kwargs)
        self._metrics[name] = histogram
        return histogram


def start_metrics_server(port: int = 8000, registry: Optional[CollectorRegistry] = None):
    """Start a Prometheus metrics server on the specified port.

    Args:
        port: Port number for metrics server
        registry: Registry to expose, the process-wide default when omitted
    """
    from prometheus_client import start_http_server

    start_http_server(port, registry=registry if registry is not None else REGISTRY)
