"""Feed read path and episode change notification."""

import re
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional, Tuple

import structlog
from cachetools import TTLCache

from feedcast.cache.fingerprint import fingerprint, options_hash
from feedcast.cache.invalidation import InvalidationCoordinator, InvalidationResult
from feedcast.cache.store import CacheEntry, CacheHealth, CacheKey, CacheStats, FeedCacheStore
from feedcast.core.clock import Clock, utc_now
from feedcast.errors import CacheWriteRejected, RendererError, ValidationError
from feedcast.interfaces import EpisodeStore, FeedRenderer
from feedcast.metrics import CacheMetrics
from feedcast.models import DEFAULT_FEED_SLUG, ChangeKind, InvalidationEvent, PodcastEpisode
from feedcast.rss.options import FeedOptions
from feedcast.rss.renderer import order_episodes
from feedcast.schemas import EpisodeListing, EpisodeView

logger = structlog.get_logger(__name__)

FEED_SLUG_PATTERN = re.compile(r"^[a-zA-Z0-9_-]+$")
MAX_PAGE_SIZE = 100


def validate_feed_slug(feed_slug: str) -> str:
    if not feed_slug or not FEED_SLUG_PATTERN.match(feed_slug):
        raise ValidationError(
            "Feed slug may only contain letters, digits, dashes and underscores",
            field="feed_slug",
        )
    return feed_slug


@dataclass(frozen=True)
class FeedResult:
    """A served feed document.

    Attributes:
        content: The RSS document
        from_cache: Whether the document came from the cache
        etag: Fingerprint of the episode set the document was built from
        last_modified: When the document was rendered
        response_time: Seconds spent serving the request
        stale: True when a previous document was served because rendering failed
    """

    content: str
    from_cache: bool
    etag: str
    last_modified: datetime
    response_time: float
    stale: bool = False


class FeedService:
    """Serves feed documents from the cache, rendering them on a miss."""

    def __init__(
        self,
        episode_store: EpisodeStore,
        renderer: FeedRenderer,
        cache_store: FeedCacheStore,
        coordinator: InvalidationCoordinator,
        metrics: Optional[CacheMetrics] = None,
        clock: Clock = utc_now,
        render_workers: int = 4,
    ):
        """Initialize the feed service.

        Args:
            episode_store: Source of truth for episodes
            renderer: Feed renderer
            cache_store: Store of rendered documents
            coordinator: Invalidation coordinator for the same store
            metrics: Prometheus metrics to update
            clock: Source of the current time
            render_workers: Threads available for concurrent renders
        """
        self._episodes = episode_store
        self._renderer = renderer
        self._cache = cache_store
        self._coordinator = coordinator
        self._config = cache_store.config
        self._metrics = metrics or CacheMetrics()
        self._clock = clock
        self._render_pool = ThreadPoolExecutor(
            max_workers=render_workers, thread_name_prefix="feed-render"
        )

        self._lock = threading.Lock()
        self._last_fingerprints: Dict[CacheKey, str] = {}
        self._listings: TTLCache = TTLCache(
            maxsize=self._config.listing_cache_size, ttl=self._config.listing_ttl_seconds
        )

        coordinator.add_listener(self._forget_feed)

    def get_feed(
        self,
        feed_slug: str = DEFAULT_FEED_SLUG,
        options: Optional[FeedOptions] = None,
        force_refresh: bool = False,
    ) -> FeedResult:
        """Return the feed document, from the cache when still valid.

        Args:
            feed_slug: Feed to serve
            options: Render options
            force_refresh: Skip the cache lookup and render a new document

        Returns:
            The served document with its ETag and Last-Modified values

        Raises:
            ValidationError: If the feed slug is malformed
            RendererError: If rendering failed and no previous document is
                available within its TTL
        """
        started = time.perf_counter()
        validate_feed_slug(feed_slug)
        options = options or FeedOptions()
        key = CacheKey(feed_slug, options_hash(options))

        mark = self._coordinator.dirty_mark(feed_slug)
        looked_up = False
        if not force_refresh and mark is None and not self._config.revalidate_every_read:
            with self._lock:
                remembered = self._last_fingerprints.get(key)
            if remembered is not None:
                looked_up = True
                entry = self._cache.get(key, remembered)
                if entry is not None:
                    return self._from_entry(entry, started)

        episodes = self._episodes.list_episodes(feed_slug)
        current = fingerprint(episodes, options)

        if not force_refresh and not looked_up:
            entry = self._cache.get(key, current)
            if entry is not None:
                self._remember(key, current, mark)
                return self._from_entry(entry, started)

        try:
            content = self._render(episodes, options)
        except RendererError as e:
            fallback = self._cache.peek(key)
            if fallback is None:
                logger.error("rss_render_failed", key=str(key), error=str(e))
                raise
            self._metrics.stale_served.inc()
            logger.warning(
                "rss_stale_served",
                key=str(key),
                error=str(e),
                age=fallback.age_seconds(self._clock()),
            )
            return self._from_entry(fallback, started, stale=True)

        entry = CacheEntry.create(
            key=key,
            rendered_content=content,
            fingerprint=current,
            created_at=self._clock(),
            ttl_seconds=self._config.ttl_seconds,
            episode_count=len(episodes),
        )
        try:
            self._cache.put(key, entry)
        except CacheWriteRejected as e:
            logger.warning(
                "rss_cache_write_rejected", key=str(key), size=e.size_bytes, limit=e.max_bytes
            )
        self._remember(key, current, mark)

        elapsed = time.perf_counter() - started
        self._cache.record_response(elapsed, entry.size_bytes)
        logger.debug("rss_rendered_fresh", key=str(key), episodes=len(episodes), seconds=elapsed)
        return FeedResult(
            content=content,
            from_cache=False,
            etag=current,
            last_modified=entry.created_at,
            response_time=elapsed,
        )

    def list_episodes(
        self, feed_slug: str = DEFAULT_FEED_SLUG, limit: int = 50, offset: int = 0
    ) -> EpisodeListing:
        """Return one page of a feed's episodes, newest first.

        Pages are cached separately from the RSS documents and dropped on the
        same invalidations.
        """
        validate_feed_slug(feed_slug)
        if not 1 <= limit <= MAX_PAGE_SIZE:
            raise ValidationError(f"limit must be between 1 and {MAX_PAGE_SIZE}", field="limit")
        if offset < 0:
            raise ValidationError("offset must not be negative", field="offset")

        listing_key: Tuple[str, int, int] = (feed_slug, limit, offset)
        with self._lock:
            cached = self._listings.get(listing_key)
        if cached is not None:
            return cached

        episodes = order_episodes(self._episodes.list_episodes(feed_slug), FeedOptions())
        page = episodes[offset : offset + limit]
        listing = EpisodeListing(
            feed_slug=feed_slug,
            episodes=[EpisodeView.from_episode(episode) for episode in page],
            total=len(episodes),
            limit=limit,
            offset=offset,
            has_more=offset + limit < len(episodes),
        )
        with self._lock:
            self._listings[listing_key] = listing
        return listing

    def update_episode(self, episode_id: str, changes: Dict[str, Any]) -> PodcastEpisode:
        """Edit a published episode and invalidate its feed.

        Raises:
            NotFoundError: If the episode does not exist
        """
        episode = self._episodes.update_episode(episode_id, changes)
        self._notify(episode, ChangeKind.UPDATED)
        return episode

    def delete_episode(self, episode_id: str) -> PodcastEpisode:
        """Remove a published episode and invalidate its feed."""
        episode = self._episodes.delete_episode(episode_id)
        self._notify(episode, ChangeKind.DELETED)
        return episode

    def on_episode_change(self, event: InvalidationEvent) -> Optional[InvalidationResult]:
        return self._coordinator.on_episode_change(event)

    def invalidate_feed(self, feed_slug: str, reason: str = "manual") -> InvalidationResult:
        validate_feed_slug(feed_slug)
        return self._coordinator.invalidate_feed(feed_slug, reason=reason)

    def stats(self) -> CacheStats:
        return self._cache.stats()

    def health(self) -> CacheHealth:
        return self._cache.health()

    def close(self) -> None:
        self._render_pool.shutdown(wait=False)

    def _notify(self, episode: PodcastEpisode, change_kind: ChangeKind) -> None:
        logger.info(
            "episode_changed",
            episode_id=episode.id,
            change_kind=change_kind.value,
            feed_slug=episode.feed_slug,
        )
        self.on_episode_change(
            InvalidationEvent(
                episode_id=episode.id,
                change_kind=change_kind,
                occurred_at=self._clock(),
                feed_slug=episode.feed_slug,
            )
        )

    def _remember(self, key: CacheKey, current: str, mark: Optional[int]) -> None:
        with self._lock:
            self._last_fingerprints[key] = current
        if mark is not None:
            self._coordinator.mark_clean(key.feed_slug, mark)

    def _render(self, episodes, options: FeedOptions) -> str:
        """Render within the configured time limit."""
        timeout = self._config.render_timeout_seconds
        with self._metrics.render_seconds.time():
            future = self._render_pool.submit(self._renderer.render, episodes, options)
            try:
                return future.result(timeout=timeout)
            except FutureTimeoutError:
                future.cancel()
                raise RendererError(
                    f"Feed render timed out after {timeout}s", details={"timeout": timeout}
                )
            except RendererError:
                raise
            except Exception as e:
                raise RendererError(f"Feed render failed: {e}") from e

    def _from_entry(self, entry: CacheEntry, started: float, stale: bool = False) -> FeedResult:
        elapsed = time.perf_counter() - started
        self._cache.record_response(elapsed, entry.size_bytes)
        return FeedResult(
            content=entry.rendered_content,
            from_cache=True,
            etag=entry.fingerprint,
            last_modified=entry.created_at,
            response_time=elapsed,
            stale=stale,
        )

    def _forget_feed(self, feed_slug: str) -> None:
        with self._lock:
            for key in [k for k in self._last_fingerprints if k.feed_slug == feed_slug]:
                del self._last_fingerprints[key]
            for key in [k for k in self._listings if k[0] == feed_slug]:
                self._listings.pop(key, None)
