"""Feed cache store.

This module provides a thread-safe store of rendered feed documents with:
- TTL expiry checked on read and by an explicit ``sweep``
- Fingerprint tagging, so a read can reject an entry built from an older
  episode set
- Size limits per entry and in total
- Continuously tracked statistics

Every individual ``get``/``put``/``invalidate`` is atomic. The two-step
"render then put" sequence done by callers is not: when two writers race on
the same key the last ``put`` wins.
"""

import threading
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Dict, List, Optional

import structlog

from feedcast.config.cache_config import CacheConfig
from feedcast.core.clock import Clock, utc_now
from feedcast.errors import CacheWriteRejected
from feedcast.metrics import CacheMetrics

logger = structlog.get_logger(__name__)

KEY_PREFIX = "rss"


@dataclass(frozen=True)
class CacheKey:
    """Cache key made of the feed slug and a hash of the render options."""

    feed_slug: str
    options_hash: str

    def __str__(self) -> str:
        return f"{KEY_PREFIX}:{self.feed_slug}:{self.options_hash}"


@dataclass(frozen=True)
class CacheEntry:
    """Represents a single rendered feed document with its metadata.

    Attributes:
        key: Key the entry is stored under
        rendered_content: The rendered document
        fingerprint: Fingerprint of the episode set the document was built from
        created_at: When the document was rendered
        ttl_seconds: Lifetime of the entry
        size_bytes: UTF-8 size of the document
        episode_count: Number of episodes the document was built from
    """

    key: CacheKey
    rendered_content: str
    fingerprint: str
    created_at: datetime
    ttl_seconds: int
    size_bytes: int
    episode_count: int = 0

    @classmethod
    def create(
        cls,
        key: CacheKey,
        rendered_content: str,
        fingerprint: str,
        created_at: datetime,
        ttl_seconds: int,
        episode_count: int = 0,
    ) -> "CacheEntry":
        return cls(
            key=key,
            rendered_content=rendered_content,
            fingerprint=fingerprint,
            created_at=created_at,
            ttl_seconds=ttl_seconds,
            size_bytes=len(rendered_content.encode("utf-8")),
            episode_count=episode_count,
        )

    def age_seconds(self, now: datetime) -> float:
        return (now - self.created_at).total_seconds()

    def is_expired(self, now: datetime) -> bool:
        return self.age_seconds(now) >= self.ttl_seconds


@dataclass(frozen=True)
class CacheStats:
    """Read-only snapshot of cache statistics."""

    total_requests: int
    hits: int
    misses: int
    hit_ratio: float
    average_response_ms: float
    total_bytes_served: int
    invalidation_count: int
    last_invalidation: Optional[datetime]
    entry_count: int
    size_bytes: int


@dataclass(frozen=True)
class CacheHealth:
    """Health report of the cache."""

    healthy: bool
    issues: List[str]
    recommendations: List[str]
    memory_usage_percent: float
    entry_count: int


class FeedCacheStore:
    """Thread-safe store of rendered feed documents.

    One lock guards the entry map and is only held for the map mutation
    itself. Statistics have their own lock, so reading them never waits on
    cache writers.
    """

    def __init__(
        self,
        config: Optional[CacheConfig] = None,
        metrics: Optional[CacheMetrics] = None,
        clock: Clock = utc_now,
    ) -> None:
        """Initialize the cache store.

        Args:
            config: Configuration for cache behavior
            metrics: Prometheus metrics to update
            clock: Source of the current time
        """
        self._config = config or CacheConfig()
        self._metrics = metrics or CacheMetrics()
        self._clock = clock
        self._entries: Dict[CacheKey, CacheEntry] = {}
        self._total_bytes = 0
        self._lock = threading.Lock()

        self._stats_lock = threading.Lock()
        self._requests = 0
        self._hits = 0
        self._misses = 0
        self._responses = 0
        self._average_response_ms = 0.0
        self._bytes_served = 0
        self._invalidation_count = 0
        self._last_invalidation: Optional[datetime] = None

    @property
    def config(self) -> CacheConfig:
        return self._config

    def get(self, key: CacheKey, fingerprint: Optional[str] = None) -> Optional[CacheEntry]:
        """Get a valid entry from the cache.

        Args:
            key: Cache key to look up
            fingerprint: Freshly computed fingerprint of the current episode
                set; an entry with a different fingerprint is a miss

        Returns:
            The entry if present, within its TTL and matching, None otherwise
        """
        now = self._clock()
        expired = False
        with self._lock:
            entry = self._entries.get(key)
            if entry is not None and entry.is_expired(now):
                self._remove(key)
                expired = True
                entry = None

        if expired:
            self._metrics.cache_expirations.inc()

        if entry is not None and fingerprint is not None and entry.fingerprint != fingerprint:
            # keep the entry, it may still serve as a fallback if rendering fails
            logger.debug("rss_cache_fingerprint_mismatch", key=str(key))
            entry = None

        self._record_lookup(hit=entry is not None)
        return entry

    def peek(self, key: CacheKey) -> Optional[CacheEntry]:
        """Return the entry for ``key`` if it is within its TTL, ignoring fingerprints.

        Peeking does not count as a request in the statistics.
        """
        now = self._clock()
        with self._lock:
            entry = self._entries.get(key)
        if entry is None or entry.is_expired(now):
            return None
        return entry

    def put(self, key: CacheKey, entry: CacheEntry) -> None:
        """Store an entry, replacing any previous entry for the key.

        Args:
            key: Cache key
            entry: Entry to store

        Raises:
            CacheWriteRejected: If the entry exceeds the configured size limit
        """
        if entry.size_bytes > self._config.max_entry_bytes:
            self._metrics.cache_write_rejections.inc()
            raise CacheWriteRejected(entry.size_bytes, self._config.max_entry_bytes)

        evicted = []
        with self._lock:
            self._remove(key)
            self._entries[key] = entry
            self._total_bytes += entry.size_bytes
            while self._total_bytes > self._config.max_total_bytes and len(self._entries) > 1:
                oldest = min(
                    (k for k in self._entries if k != key),
                    key=lambda k: self._entries[k].created_at,
                )
                self._remove(oldest)
                evicted.append(oldest)
            self._update_gauges()

        if evicted:
            self._metrics.cache_evictions.inc(len(evicted))
            logger.info("rss_cache_evicted", keys=[str(k) for k in evicted])

    def invalidate(self, predicate: Callable[[CacheKey], bool]) -> List[CacheKey]:
        """Remove every entry whose key matches ``predicate``.

        Args:
            predicate: Function selecting the keys to remove

        Returns:
            The removed keys
        """
        with self._lock:
            removed = [key for key in self._entries if predicate(key)]
            for key in removed:
                self._remove(key)
            self._update_gauges()

        with self._stats_lock:
            self._invalidation_count += 1
            self._last_invalidation = self._clock()

        if removed:
            self._metrics.cache_invalidations.inc(len(removed))
        return removed

    def invalidate_feed(self, feed_slug: str) -> List[CacheKey]:
        """Remove every entry of one feed."""
        return self.invalidate(lambda key: key.feed_slug == feed_slug)

    def sweep(self) -> List[CacheKey]:
        """Remove every entry past its TTL.

        Returns:
            The removed keys
        """
        now = self._clock()
        with self._lock:
            expired = [key for key, entry in self._entries.items() if entry.is_expired(now)]
            for key in expired:
                self._remove(key)
            self._update_gauges()

        if expired:
            self._metrics.cache_expirations.inc(len(expired))
            logger.debug("rss_cache_swept", count=len(expired))
        return expired

    def clear(self) -> None:
        """Remove all entries. Statistics are kept."""
        with self._lock:
            self._entries.clear()
            self._total_bytes = 0
            self._update_gauges()
        logger.info("rss_cache_cleared")

    def record_response(self, response_seconds: float, bytes_served: int) -> None:
        """Record the latency and size of one served feed response."""
        response_ms = response_seconds * 1000.0
        alpha = self._config.stats_smoothing
        with self._stats_lock:
            self._responses += 1
            if self._responses == 1:
                self._average_response_ms = response_ms
            else:
                self._average_response_ms = (
                    alpha * response_ms + (1 - alpha) * self._average_response_ms
                )
            self._bytes_served += bytes_served

    def stats(self) -> CacheStats:
        """Return a snapshot of the cache statistics."""
        with self._lock:
            entry_count = len(self._entries)
            size_bytes = self._total_bytes
        with self._stats_lock:
            return CacheStats(
                total_requests=self._requests,
                hits=self._hits,
                misses=self._misses,
                hit_ratio=self._hits / self._requests if self._requests else 0.0,
                average_response_ms=self._average_response_ms,
                total_bytes_served=self._bytes_served,
                invalidation_count=self._invalidation_count,
                last_invalidation=self._last_invalidation,
                entry_count=entry_count,
                size_bytes=size_bytes,
            )

    def health(self) -> CacheHealth:
        """Report memory use, hit ratio, latency and stale entries."""
        now = self._clock()
        with self._lock:
            entries = list(self._entries.values())
            size_bytes = self._total_bytes
        stats = self.stats()

        issues = []
        recommendations = []
        memory_usage = (size_bytes / self._config.max_total_bytes) * 100

        if memory_usage > 90:
            issues.append("Cache memory usage is very high")
            recommendations.append("Reduce the cache TTL or raise max_total_bytes")
        if stats.total_requests and stats.hit_ratio < 0.5:
            issues.append("Cache hit rate is low")
            recommendations.append("Review render options in use and the TTL setting")
        if stats.average_response_ms > 1000:
            issues.append("Average response time is high")
            recommendations.append("Check renderer performance")
        stale = sum(1 for entry in entries if entry.is_expired(now))
        if stale:
            issues.append(f"{stale} stale cache entries found")
            recommendations.append("Run the cache sweep more frequently")

        return CacheHealth(
            healthy=not issues,
            issues=issues,
            recommendations=recommendations,
            memory_usage_percent=memory_usage,
            entry_count=len(entries),
        )

    def keys(self) -> List[CacheKey]:
        with self._lock:
            return list(self._entries)

    def _record_lookup(self, hit: bool) -> None:
        with self._stats_lock:
            self._requests += 1
            if hit:
                self._hits += 1
            else:
                self._misses += 1
        if hit:
            self._metrics.cache_hits.inc()
        else:
            self._metrics.cache_misses.inc()

    def _remove(self, key: CacheKey) -> None:
        """Remove an entry. Caller must hold the lock."""
        entry = self._entries.pop(key, None)
        if entry is not None:
            self._total_bytes -= entry.size_bytes

    def _update_gauges(self) -> None:
        """Caller must hold the lock."""
        self._metrics.cache_entries.set(len(self._entries))
        self._metrics.cache_size_bytes.set(self._total_bytes)

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)
