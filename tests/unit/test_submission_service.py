"""Tests for submission intake, status and processing."""

import threading
from datetime import timedelta

import pytest

from feedcast.config import ProcessingConfig
from feedcast.errors import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamProcessingError,
    ValidationError,
)
from feedcast.lifecycle import new_submission, transition
from feedcast.metrics import SubmissionMetrics
from feedcast.models import EpisodeDraft, SubmissionStatus
from feedcast.schemas import SubmissionRequest
from feedcast.services.submission_service import SubmissionService, compute_progress
from tests.conftest import BASE_TIME, StaticPipeline, StaticSynthesizer

ARTICLE = {"content_url": "https://example.com/article", "content_type": "url"}

DRAFT = EpisodeDraft(
    title="A Fine Article",
    description="Narrated article",
    audio_url="https://cdn.example.com/article.mp3",
    duration_seconds=300,
)


@pytest.fixture
def service_factory(submission_store, episode_store, feed_service, registry, clock):
    services = []

    def _build(**overrides):
        kwargs = dict(
            on_episode_change=feed_service.on_episode_change,
            pipeline=StaticPipeline(),
            synthesizer=StaticSynthesizer(),
            config=ProcessingConfig(max_workers=1),
            metrics=SubmissionMetrics(registry),
            clock=clock,
        )
        kwargs.update(overrides)
        service = SubmissionService(submission_store, episode_store, **kwargs)
        services.append(service)
        return service

    yield _build
    for service in services:
        service.shutdown()


def test_submit_returns_receipt(submission_service, submission_store, registry):
    receipt = submission_service.submit(ARTICLE)

    assert receipt.status == SubmissionStatus.PENDING
    assert receipt.estimated_completion == BASE_TIME + timedelta(minutes=15)
    stored = submission_store.get(receipt.submission_id)
    assert stored.status == SubmissionStatus.PENDING
    assert stored.created_at == stored.updated_at == BASE_TIME
    assert registry.get_sample_value(
        "feedcast_submission_transitions_total", {"status": "pending"}
    ) == 1.0


def test_submit_accepts_request_model(submission_service):
    request = SubmissionRequest(
        content_url="https://www.youtube.com/watch?v=dQw4w9WgXcQ",
        content_type="youtube",
        user_note="for the commute",
    )

    receipt = submission_service.submit(request)

    submission = submission_service.get(receipt.submission_id)
    assert submission.user_note == "for the commute"


@pytest.mark.parametrize(
    "payload,field",
    [
        ({"content_url": "ftp://example.com/a", "content_type": "url"}, "content_url"),
        ({"content_url": "https://example.com/a", "content_type": "video"}, "content_type"),
        ({"content_type": "url"}, "content_url"),
        ({**ARTICLE, "user_note": "x" * 1001}, "user_note"),
        ({"content_url": "https://example.com/watch", "content_type": "youtube"}, "content_url"),
    ],
)
def test_submit_rejects_invalid_requests(submission_service, payload, field):
    with pytest.raises(ValidationError) as exc_info:
        submission_service.submit(payload)
    assert exc_info.value.field == field


def test_unknown_submission(submission_service):
    with pytest.raises(NotFoundError):
        submission_service.get_status("missing")


def test_successful_lifecycle_publishes_episode(submission_service, feed_service, clock):
    receipt = submission_service.submit({**ARTICLE, "metadata": {"title": "A Fine Article"}})
    submission_id = receipt.submission_id
    before = feed_service.get_feed("default")

    clock.advance(5)
    processing = submission_service.start_processing(submission_id)
    assert processing.status == SubmissionStatus.PROCESSING
    assert submission_service.get_status(submission_id).progress == 20

    clock.advance(30)
    completed, episode = submission_service.complete(submission_id, DRAFT)

    assert completed.status == SubmissionStatus.COMPLETED
    assert completed.episode_id == episode.id
    assert completed.processed_at == clock()
    assert completed.error_message is None
    assert episode.submission_id == submission_id
    assert episode.source_url == ARTICLE["content_url"]

    status = submission_service.get_status(submission_id)
    assert status.progress == 100
    assert status.estimated_completion is None
    assert status.feed_url == "https://podcast-generator.example.com/feeds/default/rss.xml"

    after = feed_service.get_feed("default")
    assert not after.from_cache
    assert after.etag != before.etag
    assert "A Fine Article" in after.content


def test_failed_lifecycle(submission_service, clock):
    submission_id = submission_service.submit(ARTICLE).submission_id
    submission_service.start_processing(submission_id)

    clock.advance(10)
    failed = submission_service.mark_failed(submission_id, "extraction timeout")

    assert failed.status == SubmissionStatus.FAILED
    assert failed.processed_at == clock()
    assert failed.episode_id is None
    status = submission_service.get_status(submission_id)
    assert status.progress == 0
    assert status.error_message == "extraction timeout"
    assert status.feed_url is None


def test_pending_submission_can_fail_directly(submission_service):
    submission_id = submission_service.submit(ARTICLE).submission_id

    failed = submission_service.mark_failed(submission_id, "unsupported site")

    assert failed.status == SubmissionStatus.FAILED


@pytest.mark.parametrize("terminal", ["completed", "failed"])
def test_terminal_submissions_cannot_move(submission_service, terminal):
    submission_id = submission_service.submit(ARTICLE).submission_id
    submission_service.start_processing(submission_id)
    if terminal == "completed":
        submission_service.complete(submission_id, DRAFT)
    else:
        submission_service.mark_failed(submission_id, "boom")

    with pytest.raises(InvalidTransitionError):
        submission_service.start_processing(submission_id)
    with pytest.raises(InvalidTransitionError):
        submission_service.mark_failed(submission_id, "again")
    assert submission_service.get(submission_id).status == SubmissionStatus(terminal)


def test_complete_requires_processing(submission_service, episode_store):
    submission_id = submission_service.submit(ARTICLE).submission_id

    with pytest.raises(InvalidTransitionError):
        submission_service.complete(submission_id, DRAFT)
    assert episode_store.get_episode_for_submission(submission_id) is None


def test_rejected_transition_leaves_submission_untouched(submission_service):
    submission_id = submission_service.submit(ARTICLE).submission_id
    submission_service.start_processing(submission_id)
    before = submission_service.get(submission_id)

    with pytest.raises(ValidationError):
        submission_service.mark_failed(submission_id, "   ")

    assert submission_service.get(submission_id) == before


def test_concurrent_starts_admit_one(submission_service):
    submission_id = submission_service.submit(ARTICLE).submission_id
    outcomes = []
    barrier = threading.Barrier(4)

    def start():
        barrier.wait()
        try:
            submission_service.start_processing(submission_id)
            outcomes.append("ok")
        except InvalidTransitionError:
            outcomes.append("rejected")

    threads = [threading.Thread(target=start) for _ in range(4)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["ok", "rejected", "rejected", "rejected"]


def test_progress_estimate():
    submission = new_submission("https://example.com/a", "url", now=BASE_TIME)
    estimate = timedelta(minutes=10)
    assert compute_progress(submission, BASE_TIME, estimate) == 0

    processing = transition(submission, "processing", now=BASE_TIME)
    started = processing.updated_at
    assert compute_progress(processing, started, estimate) == 20
    assert compute_progress(processing, started + timedelta(minutes=5), estimate) == 59
    assert compute_progress(processing, started + timedelta(hours=2), estimate) == 99


def test_process_async_completes(submission_service, episode_store):
    submission_id = submission_service.submit(ARTICLE).submission_id

    result = submission_service.process_async(submission_id).result(timeout=5)

    assert result.status == SubmissionStatus.COMPLETED
    episode = episode_store.get_episode(result.episode_id)
    assert episode.title == f"Episode for {ARTICLE['content_url']}"
    assert episode.duration_seconds == 125


def test_process_async_upstream_failure(service_factory):
    service = service_factory(
        pipeline=StaticPipeline(error=UpstreamProcessingError("extraction timeout"))
    )
    submission_id = service.submit(ARTICLE).submission_id

    result = service.process_async(submission_id).result(timeout=5)

    assert result.status == SubmissionStatus.FAILED
    assert result.error_message == "extraction timeout"


def test_process_async_unexpected_failure(service_factory):
    service = service_factory(pipeline=StaticPipeline(error=RuntimeError("disk full")))
    submission_id = service.submit(ARTICLE).submission_id

    result = service.process_async(submission_id).result(timeout=5)

    assert result.status == SubmissionStatus.FAILED
    assert result.error_message == "Processing failed: disk full"


class BlockingPipeline(StaticPipeline):
    def __init__(self):
        super().__init__()
        self.release = threading.Event()

    def process(self, submission):
        self.release.wait(timeout=30)
        return super().process(submission)


def test_process_async_fails_hung_pipeline(service_factory, episode_store):
    pipeline = BlockingPipeline()
    service = service_factory(
        pipeline=pipeline, config=ProcessingConfig(max_workers=1, processing_timeout=1)
    )
    submission_id = service.submit(ARTICLE).submission_id

    try:
        result = service.process_async(submission_id).result(timeout=5)
    finally:
        pipeline.release.set()

    assert result.status == SubmissionStatus.FAILED
    assert result.error_message == "processing timed out after 1s"
    assert episode_store.get_episode_for_submission(submission_id) is None
    assert service.get(submission_id).status == SubmissionStatus.FAILED


def test_process_async_requires_collaborators(service_factory):
    service = service_factory(pipeline=None)
    submission_id = service.submit(ARTICLE).submission_id

    with pytest.raises(ConfigurationError):
        service.process_async(submission_id)


@pytest.mark.parametrize(
    "changes,field",
    [
        ({"description": None}, "description"),
        ({"duration_seconds": "abc"}, "duration_seconds"),
        ({"duration_seconds": -5}, "duration_seconds"),
        ({"audio_url": "not-a-url"}, "audio_url"),
        ({"title": ""}, "title"),
    ],
)
def test_complete_rejects_invalid_drafts(submission_service, episode_store, changes, field):
    submission_id = submission_service.submit(ARTICLE).submission_id
    submission_service.start_processing(submission_id)
    draft = {
        "title": DRAFT.title,
        "description": DRAFT.description,
        "audio_url": DRAFT.audio_url,
        "duration_seconds": DRAFT.duration_seconds,
    }
    draft.update(changes)
    draft = {k: v for k, v in draft.items() if v is not None}

    with pytest.raises(ValidationError) as exc_info:
        submission_service.complete(submission_id, draft)

    assert exc_info.value.field == field
    assert submission_service.get(submission_id).status == SubmissionStatus.PROCESSING
    assert episode_store.get_episode_for_submission(submission_id) is None


def test_complete_accepts_mapping_draft(submission_service):
    submission_id = submission_service.submit(ARTICLE).submission_id
    submission_service.start_processing(submission_id)

    completed, episode = submission_service.complete(
        submission_id,
        {
            "title": "Mapped",
            "description": "From a mapping",
            "audio_url": "https://cdn.example.com/mapped.mp3",
            "duration_seconds": "90",
            "transcript_url": "https://cdn.example.com/mapped.vtt",
        },
    )

    assert completed.status == SubmissionStatus.COMPLETED
    assert episode.duration_seconds == 90
    assert episode.transcript_url == "https://cdn.example.com/mapped.vtt"
    assert episode.feed_slug == "default"


def test_transition_time_comes_from_service_clock(submission_service):
    submission_id = submission_service.submit(ARTICLE).submission_id
    before = submission_service.get(submission_id)

    with pytest.raises(ValidationError) as exc_info:
        submission_service.transition(
            submission_id, SubmissionStatus.PROCESSING, now=BASE_TIME + timedelta(days=1)
        )

    assert exc_info.value.field == "now"
    assert submission_service.get(submission_id) == before
