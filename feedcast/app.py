"""Application container wiring every feedcast component."""

from concurrent.futures import ThreadPoolExecutor
from typing import List, Optional

import structlog
from prometheus_client import CollectorRegistry

from feedcast.cache.invalidation import InvalidationCoordinator, InvalidationStrategy
from feedcast.cache.store import FeedCacheStore
from feedcast.config import FeedcastConfig
from feedcast.core.clock import Clock, utc_now
from feedcast.core.scheduler import PeriodicTask
from feedcast.edge.purger import build_edge_cache
from feedcast.interfaces import (
    ContentPipeline,
    EdgeCache,
    EpisodeStore,
    EpisodeSynthesizer,
    FeedRenderer,
    SubmissionStore,
)
from feedcast.metrics import CacheMetrics, InvalidationMetrics, SubmissionMetrics
from feedcast.rss.renderer import RssFeedRenderer
from feedcast.services.feed_service import FeedService
from feedcast.services.submission_service import SubmissionService
from feedcast.storage import (
    InMemoryEpisodeStore,
    InMemorySubmissionStore,
    SQLiteConfig,
    SQLiteEpisodeStore,
    SQLiteSubmissionStore,
)

logger = structlog.get_logger(__name__)

IN_MEMORY_DATABASE = ":memory:"


class FeedcastApp:
    """Holds the components of one running feedcast instance.

    Components are built once by :func:`build_app` and shared by reference.
    ``start`` launches the background tasks and ``stop`` ends them.
    """

    def __init__(
        self,
        config: FeedcastConfig,
        episode_store: EpisodeStore,
        submission_store: SubmissionStore,
        cache_store: FeedCacheStore,
        coordinator: InvalidationCoordinator,
        feed_service: FeedService,
        submission_service: SubmissionService,
        tasks: List[PeriodicTask],
        purge_executor: Optional[ThreadPoolExecutor] = None,
    ):
        self.config = config
        self.episode_store = episode_store
        self.submission_store = submission_store
        self.cache_store = cache_store
        self.coordinator = coordinator
        self.feed_service = feed_service
        self.submission_service = submission_service
        self.tasks = tasks
        self._purge_executor = purge_executor

    def start(self) -> None:
        for task in self.tasks:
            task.start()
        logger.info("feedcast_started", tasks=[task.name for task in self.tasks])

    def stop(self) -> None:
        for task in self.tasks:
            task.stop(timeout=5)
        if self.coordinator.strategy == InvalidationStrategy.SCHEDULED:
            # apply what is still queued before shutting down
            self.coordinator.drain()
        self.submission_service.shutdown(wait=True)
        self.feed_service.close()
        if self._purge_executor is not None:
            self._purge_executor.shutdown(wait=True)
        logger.info("feedcast_stopped")

    def __enter__(self) -> "FeedcastApp":
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb) -> None:
        self.stop()


def build_app(
    config: Optional[FeedcastConfig] = None,
    episode_store: Optional[EpisodeStore] = None,
    submission_store: Optional[SubmissionStore] = None,
    renderer: Optional[FeedRenderer] = None,
    edge_cache: Optional[EdgeCache] = None,
    pipeline: Optional[ContentPipeline] = None,
    synthesizer: Optional[EpisodeSynthesizer] = None,
    registry: Optional[CollectorRegistry] = None,
    clock: Clock = utc_now,
) -> FeedcastApp:
    """Build a feedcast instance from configuration.

    Collaborators that are not passed in are created from the configuration:
    SQLite stores at ``database_path`` (in-memory stores for ``:memory:``),
    the RSS renderer and the configured edge cache client.

    Args:
        config: Deployment configuration, defaults when omitted
        episode_store: Episode store to use
        submission_store: Submission store to use
        renderer: Feed renderer to use
        edge_cache: Edge cache client to use
        pipeline: Content extraction collaborator
        synthesizer: Speech synthesis collaborator
        registry: Prometheus registry for all metrics
        clock: Source of the current time

    Returns:
        The wired, not yet started application
    """
    config = config or FeedcastConfig()

    if episode_store is None or submission_store is None:
        if config.database_path == IN_MEMORY_DATABASE:
            episode_store = episode_store or InMemoryEpisodeStore(clock=clock)
            submission_store = submission_store or InMemorySubmissionStore()
        else:
            sqlite_config = SQLiteConfig(db_path=config.database_path)
            episode_store = episode_store or SQLiteEpisodeStore(sqlite_config, clock=clock)
            submission_store = submission_store or SQLiteSubmissionStore(sqlite_config)

    cache_metrics = CacheMetrics(registry)
    cache_store = FeedCacheStore(config.cache, metrics=cache_metrics, clock=clock)

    purge_executor = None
    if config.edge.enabled:
        purge_executor = ThreadPoolExecutor(max_workers=2, thread_name_prefix="edge-purge")
    coordinator = InvalidationCoordinator(
        cache_store,
        strategy=config.cache.invalidation_strategy,
        edge_cache=edge_cache or build_edge_cache(config.edge),
        metrics=InvalidationMetrics(registry),
        executor=purge_executor,
        clock=clock,
    )

    feed_service = FeedService(
        episode_store,
        renderer or RssFeedRenderer(config.feed),
        cache_store,
        coordinator,
        metrics=cache_metrics,
        clock=clock,
    )
    submission_service = SubmissionService(
        submission_store,
        episode_store,
        on_episode_change=feed_service.on_episode_change,
        pipeline=pipeline,
        synthesizer=synthesizer,
        config=config.processing,
        feed_config=config.feed,
        metrics=SubmissionMetrics(registry),
        clock=clock,
    )

    tasks = [PeriodicTask("cache-sweep", config.cache.sweep_interval_seconds, cache_store.sweep)]
    if coordinator.strategy == InvalidationStrategy.SCHEDULED:
        tasks.append(
            PeriodicTask(
                "invalidation-drain", config.cache.scheduled_interval_seconds, coordinator.drain
            )
        )

    logger.debug(
        "feedcast_built",
        strategy=coordinator.strategy.value,
        database=config.database_path,
        edge_cache=config.edge.enabled,
    )
    return FeedcastApp(
        config=config,
        episode_store=episode_store,
        submission_store=submission_store,
        cache_store=cache_store,
        coordinator=coordinator,
        feed_service=feed_service,
        submission_service=submission_service,
        tasks=tasks,
        purge_executor=purge_executor,
    )
