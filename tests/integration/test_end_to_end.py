"""End-to-end tests through a fully wired application."""

import feedparser
import pytest
from prometheus_client import CollectorRegistry

from feedcast.app import build_app
from feedcast.config import CacheConfig, EdgeCacheConfig, FeedcastConfig, FeedConfig
from feedcast.models import ChangeKind, InvalidationEvent, SubmissionStatus
from feedcast.rss import FeedOptions
from tests.conftest import BASE_TIME, RecordingEdgeCache, StaticPipeline, StaticSynthesizer

URLS = ["https://example.com/one", "https://example.com/two", "https://example.com/three"]


def make_config(tmp_path=None, **cache_settings):
    return FeedcastConfig(
        cache=CacheConfig(**cache_settings),
        edge=EdgeCacheConfig(enabled=True, purge_url="https://cdn.example.com/purge"),
        feed=FeedConfig(title="Integration Cast", base_url="https://pods.example.com/"),
        database_path=str(tmp_path / "feedcast.db") if tmp_path else ":memory:",
    )


@pytest.fixture
def edge():
    return RecordingEdgeCache()


@pytest.fixture
def app_factory(edge):
    apps = []

    def _build(config):
        app = build_app(
            config,
            edge_cache=edge,
            pipeline=StaticPipeline(),
            synthesizer=StaticSynthesizer(),
            registry=CollectorRegistry(),
        )
        apps.append(app)
        return app

    yield _build
    for app in apps:
        app.stop()


def publish(app, url):
    receipt = app.submission_service.submit({"content_url": url, "content_type": "url"})
    return app.submission_service.process_async(receipt.submission_id).result(timeout=5)


def test_submissions_become_feed_items(app_factory, edge):
    app = app_factory(make_config())
    empty = app.feed_service.get_feed()

    results = [publish(app, url) for url in URLS]

    assert all(r.status == SubmissionStatus.COMPLETED for r in results)
    served = app.feed_service.get_feed()
    assert not served.from_cache
    assert served.etag != empty.etag

    parsed = feedparser.parse(served.content.encode("utf-8"))
    assert not parsed.bozo
    assert parsed.feed.title == "Integration Cast"
    assert len(parsed.entries) == 3
    assert {e.title for e in parsed.entries} == {f"Episode for {url}" for url in URLS}

    assert app.feed_service.get_feed().from_cache

    status = app.submission_service.get_status(results[0].id)
    assert status.feed_url == "https://pods.example.com/feeds/default/rss.xml"

    app.stop()
    assert len(edge.purged) == 3


def test_sqlite_backed_app_survives_restart(tmp_path, app_factory):
    config = make_config(tmp_path)
    first = app_factory(config)
    completed = publish(first, URLS[0])
    first.stop()

    second = app_factory(config)

    assert second.submission_service.get(completed.id).status == SubmissionStatus.COMPLETED
    listing = second.feed_service.list_episodes()
    assert [e.id for e in listing.episodes] == [completed.episode_id]


def test_scheduled_strategy_applies_queued_invalidations(app_factory, edge):
    app = app_factory(make_config(invalidation_strategy="scheduled"))
    app.feed_service.get_feed()
    app.feed_service.get_feed(options=FeedOptions(max_episodes=1))
    assert len(app.cache_store) == 2

    app.feed_service.on_episode_change(
        InvalidationEvent("ep1", ChangeKind.UPDATED, occurred_at=BASE_TIME)
    )
    assert app.coordinator.pending_count() == 1
    assert len(app.cache_store) == 2

    app.stop()

    assert app.coordinator.pending_count() == 0
    assert len(app.cache_store) == 0
    assert edge.purged == [["/feeds/default/rss.xml", "/feeds/default/episodes"]]


def test_background_tasks_follow_app_lifecycle(app_factory):
    app = app_factory(make_config(invalidation_strategy="scheduled"))

    with app:
        assert [task.name for task in app.tasks] == ["cache-sweep", "invalidation-drain"]
        assert all(task.running for task in app.tasks)

    assert not any(task.running for task in app.tasks)
