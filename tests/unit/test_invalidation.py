"""Tests for the invalidation coordinator strategies."""

from concurrent.futures import ThreadPoolExecutor

import pytest

from feedcast.cache.invalidation import InvalidationCoordinator, InvalidationStrategy
from feedcast.cache.store import CacheEntry, CacheKey
from feedcast.errors import ConfigurationError, EdgeCacheError
from feedcast.metrics import InvalidationMetrics
from feedcast.models import ChangeKind, InvalidationEvent
from tests.conftest import BASE_TIME, RecordingEdgeCache

DEFAULT_KEYS = [CacheKey("default", "a"), CacheKey("default", "b")]
OTHER_KEY = CacheKey("other", "a")


@pytest.fixture
def filled_store(cache_store, clock):
    for key in DEFAULT_KEYS + [OTHER_KEY]:
        cache_store.put(key, CacheEntry.create(key, "<rss/>", "fp", clock(), 60))
    return cache_store


def make_coordinator(store, strategy, registry, edge_cache=None, executor=None):
    return InvalidationCoordinator(
        store,
        strategy=strategy,
        edge_cache=edge_cache or RecordingEdgeCache(),
        metrics=InvalidationMetrics(registry),
        executor=executor,
    )


def event(kind="created", slug="default", episode_id="ep1"):
    return InvalidationEvent(episode_id, kind, occurred_at=BASE_TIME, feed_slug=slug)


def test_unknown_strategy_is_rejected(cache_store, registry):
    with pytest.raises(ConfigurationError):
        make_coordinator(cache_store, "eventually", registry)


def test_immediate_removes_feed_keys_and_purges_edge(filled_store, registry):
    edge = RecordingEdgeCache()
    coordinator = make_coordinator(filled_store, "immediate", registry, edge_cache=edge)

    result = coordinator.on_episode_change(event())

    assert sorted(result.removed_keys, key=str) == DEFAULT_KEYS
    assert filled_store.keys() == [OTHER_KEY]
    assert edge.purged == [["/feeds/default/rss.xml", "/feeds/default/episodes"]]
    assert registry.get_sample_value(
        "feedcast_invalidation_events_total", {"change_kind": "created"}
    ) == 1.0


def test_immediate_invalidation_is_idempotent(filled_store, registry):
    coordinator = make_coordinator(filled_store, "immediate", registry)

    coordinator.on_episode_change(event())
    second = coordinator.on_episode_change(event())

    assert second.removed_keys == []
    assert filled_store.keys() == [OTHER_KEY]


def test_edge_failure_does_not_fail_local_invalidation(filled_store, registry):
    edge = RecordingEdgeCache(error=EdgeCacheError("purge endpoint down"))
    coordinator = make_coordinator(filled_store, "immediate", registry, edge_cache=edge)

    result = coordinator.on_episode_change(event())

    assert len(result.removed_keys) == 2
    assert len(edge.purged) == 1
    assert registry.get_sample_value("feedcast_edge_purge_failures_total") == 1.0


def test_edge_purge_runs_on_executor(filled_store, registry):
    edge = RecordingEdgeCache()
    with ThreadPoolExecutor(max_workers=1) as executor:
        coordinator = make_coordinator(
            filled_store, "immediate", registry, edge_cache=edge, executor=executor
        )
        coordinator.on_episode_change(event())
    assert len(edge.purged) == 1


def test_scheduled_coalesces_events_per_feed(filled_store, registry):
    edge = RecordingEdgeCache()
    coordinator = make_coordinator(filled_store, "scheduled", registry, edge_cache=edge)

    for i in range(3):
        assert coordinator.on_episode_change(event(episode_id=f"ep{i}")) is None
    coordinator.on_episode_change(event(slug="other"))

    assert coordinator.pending_count() == 4
    assert len(filled_store) == 3

    results = coordinator.drain()

    assert sorted(r.feed_slug for r in results) == ["default", "other"]
    assert len(filled_store) == 0
    assert len(edge.purged) == 2
    assert coordinator.pending_count() == 0
    assert coordinator.drain() == []


def test_lazy_marks_feed_dirty_until_immediate_invalidation(filled_store, registry):
    edge = RecordingEdgeCache()
    coordinator = make_coordinator(filled_store, "lazy", registry, edge_cache=edge)

    coordinator.on_episode_change(event(kind=ChangeKind.UPDATED))

    assert coordinator.dirty_mark("default") is not None
    assert coordinator.dirty_mark("other") is None
    assert len(filled_store) == 3
    assert edge.purged == []

    coordinator.invalidate_feed("default", reason="manual")

    assert coordinator.dirty_mark("default") is None
    assert filled_store.keys() == [OTHER_KEY]


def test_listeners_run_on_invalidation(cache_store, registry):
    coordinator = make_coordinator(cache_store, InvalidationStrategy.IMMEDIATE, registry)
    seen = []
    coordinator.add_listener(seen.append)

    coordinator.invalidate_feed("default")

    assert seen == ["default"]


def test_event_counts_per_change_kind(cache_store, registry):
    coordinator = make_coordinator(cache_store, "lazy", registry)

    coordinator.on_episode_change(event(kind="created"))
    coordinator.on_episode_change(event(kind="created"))
    coordinator.on_episode_change(event(kind="deleted"))

    assert coordinator.event_counts() == {"created": 2, "deleted": 1}


def test_lazy_mark_clears_only_when_current(cache_store, registry):
    coordinator = make_coordinator(cache_store, "lazy", registry)
    seen = []
    coordinator.add_listener(seen.append)

    coordinator.on_episode_change(event())
    first = coordinator.dirty_mark("default")
    coordinator.on_episode_change(event(kind=ChangeKind.UPDATED))
    second = coordinator.dirty_mark("default")

    assert seen == ["default", "default"]
    assert second != first
    assert not coordinator.mark_clean("default", first)
    assert coordinator.dirty_mark("default") == second
    assert coordinator.mark_clean("default", second)
    assert coordinator.dirty_mark("default") is None
