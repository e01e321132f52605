"""Metrics collection and tracking for feedcast.

This module provides metrics tracking functionality using Prometheus client.
Each component receives its metrics object at construction time; tests pass
a private ``CollectorRegistry`` so that counters start from zero.
"""

from typing import Optional

from prometheus_client import CollectorRegistry

from .prometheus import MetricsRegistry, start_metrics_server


class CacheMetrics:
    """Metrics for feed cache performance and behavior.

    Tracks hits, misses, invalidations, rejected writes, stale fallbacks,
    stored size and render durations.
    """

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        """Initialize cache metrics.

        Args:
            registry: Prometheus registry to use for metrics
        """
        metrics = MetricsRegistry(registry)
        self.cache_hits = metrics.register_counter(
            "feedcast_cache_hits", "Number of feed cache hits"
        )
        self.cache_misses = metrics.register_counter(
            "feedcast_cache_misses", "Number of feed cache misses"
        )
        self.cache_invalidations = metrics.register_counter(
            "feedcast_cache_invalidated_entries", "Number of cache entries removed by invalidation"
        )
        self.cache_expirations = metrics.register_counter(
            "feedcast_cache_expired_entries", "Number of cache entries removed after their TTL"
        )
        self.cache_evictions = metrics.register_counter(
            "feedcast_cache_evictions", "Number of cache entries evicted to stay under the size limit"
        )
        self.cache_write_rejections = metrics.register_counter(
            "feedcast_cache_write_rejections", "Number of entries too large to cache"
        )
        self.stale_served = metrics.register_counter(
            "feedcast_cache_stale_served", "Number of stale entries served after a render failure"
        )
        self.cache_entries = metrics.register_gauge(
            "feedcast_cache_entries", "Number of entries in the feed cache"
        )
        self.cache_size_bytes = metrics.register_gauge(
            "feedcast_cache_size_bytes", "Total size of cached feed documents in bytes"
        )
        self.render_seconds = metrics.register_histogram(
            "feedcast_render_seconds",
            "Time spent rendering feed documents",
            buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0),
        )


class InvalidationMetrics:
    """Metrics for the invalidation coordinator."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        metrics = MetricsRegistry(registry)
        self.events = metrics.register_counter(
            "feedcast_invalidation_events",
            "Number of episode change events received",
            ["change_kind"],
        )
        self.pending = metrics.register_gauge(
            "feedcast_invalidation_pending", "Number of feeds waiting for scheduled invalidation"
        )
        self.edge_purge_failures = metrics.register_counter(
            "feedcast_edge_purge_failures", "Number of failed edge cache purge requests"
        )


class SubmissionMetrics:
    """Metrics for submission processing."""

    def __init__(self, registry: Optional[CollectorRegistry] = None) -> None:
        metrics = MetricsRegistry(registry)
        self.transitions = metrics.register_counter(
            "feedcast_submission_transitions",
            "Number of submission status transitions",
            ["status"],
        )
        self.processing_seconds = metrics.register_histogram(
            "feedcast_submission_processing_seconds",
            "Time from processing start to a terminal status",
            buckets=(1.0, 5.0, 30.0, 60.0, 300.0, 900.0, 1800.0),
        )


__all__ = [
    "CacheMetrics",
    "InvalidationMetrics",
    "MetricsRegistry",
    "SubmissionMetrics",
    "start_metrics_server",
]
