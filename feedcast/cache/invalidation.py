"""Invalidation of cached feed documents on episode changes.

Three strategies are available, chosen once per deployment:

- ``immediate``: remove every cache entry of the affected feed right away and
  ask the edge cache to purge the public feed paths.
- ``scheduled``: queue the change; :meth:`InvalidationCoordinator.drain`,
  run on a fixed interval, performs one immediate invalidation per feed no
  matter how many changes were queued for it.
- ``lazy``: only mark the feed dirty. Entries stay in place and readers of a
  dirty feed re-validate fingerprints until one of them stores a fresh
  fingerprint under the current mark, or an immediate invalidation clears it.

Processing the same change twice is harmless: removing entries that are
already gone is a no-op, and fingerprints reject anything built from an older
episode set.
"""

import threading
from collections import Counter
from concurrent.futures import Executor
from dataclasses import dataclass
from enum import Enum
from typing import Callable, Dict, List, Optional

import structlog

from feedcast.cache.store import CacheKey, FeedCacheStore
from feedcast.core.clock import Clock, utc_now
from feedcast.edge.purger import NullEdgeCache, feed_paths
from feedcast.errors import ConfigurationError
from feedcast.interfaces import EdgeCache
from feedcast.metrics import InvalidationMetrics
from feedcast.models import InvalidationEvent

logger = structlog.get_logger(__name__)


class InvalidationStrategy(str, Enum):
    """Available invalidation strategies."""

    IMMEDIATE = "immediate"
    SCHEDULED = "scheduled"
    LAZY = "lazy"


@dataclass(frozen=True)
class InvalidationResult:
    """Outcome of invalidating one feed."""

    feed_slug: str
    removed_keys: List[CacheKey]
    reason: str


class InvalidationCoordinator:
    """Applies the configured invalidation strategy to episode change events."""

    def __init__(
        self,
        store: FeedCacheStore,
        strategy: str = InvalidationStrategy.IMMEDIATE,
        edge_cache: Optional[EdgeCache] = None,
        metrics: Optional[InvalidationMetrics] = None,
        executor: Optional[Executor] = None,
        clock: Clock = utc_now,
    ):
        """Initialize the coordinator.

        Args:
            store: Cache store holding the rendered feeds
            strategy: One of immediate, scheduled or lazy
            edge_cache: External cache to purge after local invalidation
            metrics: Prometheus metrics to update
            executor: Optional executor running edge purges in the background;
                purges run on the calling thread when omitted
            clock: Source of the current time
        """
        try:
            self.strategy = InvalidationStrategy(strategy)
        except ValueError:
            raise ConfigurationError(f"Unknown invalidation strategy: {strategy!r}")
        self._store = store
        self._edge_cache = edge_cache or NullEdgeCache()
        self._metrics = metrics or InvalidationMetrics()
        self._executor = executor
        self._clock = clock
        self._lock = threading.Lock()
        self._pending: Dict[str, List[InvalidationEvent]] = {}
        self._dirty: Dict[str, int] = {}
        self._marks = 0
        self._event_counts: Counter = Counter()
        self._listeners: List[Callable[[str], None]] = []

    def add_listener(self, listener: Callable[[str], None]) -> None:
        """Register a callback run with the feed slug whenever its cached state goes stale.

        Listeners run after every immediate invalidation and every lazy mark.
        """
        self._listeners.append(listener)

    def on_episode_change(self, event: InvalidationEvent) -> Optional[InvalidationResult]:
        """Handle an episode change according to the configured strategy.

        Args:
            event: The change that happened

        Returns:
            The invalidation result for the immediate strategy, None otherwise
        """
        self._metrics.events.labels(change_kind=event.change_kind.value).inc()
        with self._lock:
            self._event_counts[event.change_kind.value] += 1

        logger.debug(
            "episode_change_received",
            episode_id=event.episode_id,
            change_kind=event.change_kind.value,
            feed_slug=event.feed_slug,
            strategy=self.strategy.value,
        )

        if self.strategy == InvalidationStrategy.IMMEDIATE:
            return self.invalidate_feed(
                event.feed_slug, reason=f"episode {event.change_kind.value}: {event.episode_id}"
            )

        if self.strategy == InvalidationStrategy.SCHEDULED:
            with self._lock:
                self._pending.setdefault(event.feed_slug, []).append(event)
                self._metrics.pending.set(len(self._pending))
            return None

        with self._lock:
            self._marks += 1
            self._dirty[event.feed_slug] = self._marks
        for listener in self._listeners:
            listener(event.feed_slug)
        logger.debug("feed_marked_dirty", feed_slug=event.feed_slug)
        return None

    def invalidate_feed(self, feed_slug: str, reason: str = "manual") -> InvalidationResult:
        """Immediately invalidate every cache entry of a feed.

        Local entries are removed before the edge cache is contacted, and an
        edge purge failure never undoes or fails the local invalidation.
        """
        removed = self._store.invalidate_feed(feed_slug)
        with self._lock:
            self._dirty.pop(feed_slug, None)

        for listener in self._listeners:
            listener(feed_slug)

        logger.info(
            "rss_cache_invalidated",
            feed_slug=feed_slug,
            invalidated_keys=len(removed),
            reason=reason,
        )
        self._purge_edge(feed_slug, reason)
        return InvalidationResult(feed_slug=feed_slug, removed_keys=removed, reason=reason)

    def drain(self) -> List[InvalidationResult]:
        """Invalidate every feed with queued changes, once per feed."""
        with self._lock:
            pending = self._pending
            self._pending = {}
            self._metrics.pending.set(0)

        results = []
        for feed_slug, events in pending.items():
            results.append(
                self.invalidate_feed(feed_slug, reason=f"scheduled: {len(events)} episode changes")
            )
        return results

    def dirty_mark(self, feed_slug: str) -> Optional[int]:
        """Return the current dirty mark of a feed, or None when it is clean."""
        with self._lock:
            return self._dirty.get(feed_slug)

    def mark_clean(self, feed_slug: str, mark: int) -> bool:
        """Clear a dirty mark once a reader has re-validated the feed.

        The mark is only cleared when no newer change marked the feed dirty
        after ``mark`` was read.
        """
        with self._lock:
            if self._dirty.get(feed_slug) != mark:
                return False
            del self._dirty[feed_slug]
        logger.debug("feed_marked_clean", feed_slug=feed_slug)
        return True

    def pending_count(self) -> int:
        """Number of queued change events waiting for the next drain."""
        with self._lock:
            return sum(len(events) for events in self._pending.values())

    def event_counts(self) -> Dict[str, int]:
        """Rolling count of processed events per change kind."""
        with self._lock:
            return dict(self._event_counts)

    def _purge_edge(self, feed_slug: str, reason: str) -> None:
        paths = feed_paths(feed_slug)
        if self._executor is not None:
            self._executor.submit(self._safe_purge, paths, reason)
        else:
            self._safe_purge(paths, reason)

    def _safe_purge(self, paths: List[str], reason: str) -> None:
        try:
            self._edge_cache.purge(paths)
        except Exception as e:
            # the edge cache client owns retries; nothing is retried here
            self._metrics.edge_purge_failures.inc()
            logger.error("edge_purge_failed", paths=paths, reason=reason, error=str(e))
