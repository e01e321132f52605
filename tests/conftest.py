"""Shared fixtures for the feedcast test suite."""

from datetime import datetime, timedelta, timezone
from itertools import count

import pytest
from prometheus_client import CollectorRegistry

from feedcast.cache.invalidation import InvalidationCoordinator
from feedcast.cache.store import FeedCacheStore
from feedcast.config import CacheConfig, FeedConfig, ProcessingConfig
from feedcast.metrics import CacheMetrics, InvalidationMetrics, SubmissionMetrics
from feedcast.models import EpisodeDraft, ExtractedContent, PodcastEpisode
from feedcast.rss.renderer import RssFeedRenderer
from feedcast.services.feed_service import FeedService
from feedcast.services.submission_service import SubmissionService
from feedcast.storage import InMemoryEpisodeStore, InMemorySubmissionStore

BASE_TIME = datetime(2024, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    """Clock that only moves when told to."""

    def __init__(self, start: datetime = BASE_TIME):
        self.now = start

    def __call__(self) -> datetime:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now = self.now + timedelta(seconds=seconds)


class RecordingEdgeCache:
    """Edge cache double that records purged paths."""

    def __init__(self, error: Exception = None):
        self.purged = []
        self.error = error

    def purge(self, paths):
        self.purged.append(list(paths))
        if self.error is not None:
            raise self.error


class CountingRenderer:
    """Wraps the RSS renderer and counts invocations."""

    def __init__(self, inner=None):
        self.inner = inner or RssFeedRenderer(FeedConfig())
        self.calls = 0

    def render(self, episodes, options):
        self.calls += 1
        return self.inner.render(episodes, options)


class StaticPipeline:
    def __init__(self, error: Exception = None):
        self.error = error

    def process(self, submission):
        if self.error is not None:
            raise self.error
        return ExtractedContent(
            title=f"Episode for {submission.content_url}",
            content="Some extracted words for the episode",
        )


class StaticSynthesizer:
    def synthesize(self, content):
        return EpisodeDraft(
            title=content.title,
            description=content.content,
            audio_url="https://cdn.example.com/audio.mp3",
            duration_seconds=125,
        )


@pytest.fixture
def clock():
    return FakeClock()


@pytest.fixture
def registry():
    """Private Prometheus registry so counters start at zero."""
    return CollectorRegistry()


@pytest.fixture
def cache_config():
    return CacheConfig(ttl_seconds=60)


@pytest.fixture
def cache_metrics(registry):
    return CacheMetrics(registry)


@pytest.fixture
def cache_store(cache_config, cache_metrics, clock):
    return FeedCacheStore(cache_config, metrics=cache_metrics, clock=clock)


@pytest.fixture
def edge_cache():
    return RecordingEdgeCache()


@pytest.fixture
def coordinator(cache_store, cache_config, edge_cache, registry, clock):
    return InvalidationCoordinator(
        cache_store,
        strategy=cache_config.invalidation_strategy,
        edge_cache=edge_cache,
        metrics=InvalidationMetrics(registry),
        clock=clock,
    )


@pytest.fixture
def episode_store(clock):
    return InMemoryEpisodeStore(clock=clock)


@pytest.fixture
def submission_store():
    return InMemorySubmissionStore()


@pytest.fixture
def renderer():
    return CountingRenderer()


@pytest.fixture
def feed_service(episode_store, renderer, cache_store, coordinator, cache_metrics, clock):
    service = FeedService(
        episode_store, renderer, cache_store, coordinator, metrics=cache_metrics, clock=clock
    )
    yield service
    service.close()


@pytest.fixture
def submission_service(submission_store, episode_store, feed_service, registry, clock):
    service = SubmissionService(
        submission_store,
        episode_store,
        on_episode_change=feed_service.on_episode_change,
        pipeline=StaticPipeline(),
        synthesizer=StaticSynthesizer(),
        config=ProcessingConfig(max_workers=2),
        metrics=SubmissionMetrics(registry),
        clock=clock,
    )
    yield service
    service.shutdown()


@pytest.fixture
def make_episode():
    """Factory for episode values with unique ids."""
    ids = count(1)

    def _make(**overrides) -> PodcastEpisode:
        n = next(ids)
        values = {
            "id": f"ep{n:03d}",
            "submission_id": f"sub{n:03d}",
            "title": f"Episode {n}",
            "description": f"Description {n}",
            "audio_url": f"https://cdn.example.com/{n}.mp3",
            "duration_seconds": 60 * n,
            "published_at": BASE_TIME + timedelta(hours=n),
            "created_at": BASE_TIME,
        }
        values.update(overrides)
        return PodcastEpisode(**values)

    return _make
