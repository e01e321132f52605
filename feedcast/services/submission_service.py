"""Submission intake, status and background processing."""

import threading
import time
from concurrent.futures import Executor, Future, ThreadPoolExecutor
from concurrent.futures import TimeoutError as FutureTimeoutError
from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, Mapping, Optional, Tuple, Type, TypeVar, Union

import pydantic
import structlog

from feedcast.config.feed_config import FeedConfig
from feedcast.config.processing_config import ProcessingConfig
from feedcast.core.clock import Clock, utc_now
from feedcast.errors import (
    ConfigurationError,
    InvalidTransitionError,
    NotFoundError,
    UpstreamProcessingError,
    ValidationError,
)
from feedcast.interfaces import ContentPipeline, EpisodeStore, EpisodeSynthesizer, SubmissionStore
from feedcast.lifecycle import state_machine
from feedcast.metrics import SubmissionMetrics
from feedcast.models import (
    ChangeKind,
    ContentSubmission,
    EpisodeDraft,
    InvalidationEvent,
    PodcastEpisode,
    SubmissionStatus,
)
from feedcast.schemas import (
    EpisodeDraftRequest,
    SubmissionReceipt,
    SubmissionRequest,
    SubmissionStatusView,
)

logger = structlog.get_logger(__name__)

PROCESSING_PROGRESS_START = 20
PROCESSING_PROGRESS_END = 99

M = TypeVar("M", bound=pydantic.BaseModel)


def compute_progress(
    submission: ContentSubmission, now: datetime, estimated: timedelta
) -> int:
    """Estimate processing progress as a percentage.

    Pending and failed submissions report 0 and completed ones 100. A
    processing submission moves from 20 towards 99 as the time since it
    entered processing approaches the estimate, and stays at 99 after.
    """
    if submission.status == SubmissionStatus.COMPLETED:
        return 100
    if submission.status != SubmissionStatus.PROCESSING:
        return 0
    elapsed = max((now - submission.updated_at).total_seconds(), 0.0)
    fraction = min(elapsed / estimated.total_seconds(), 1.0)
    span = PROCESSING_PROGRESS_END - PROCESSING_PROGRESS_START
    return PROCESSING_PROGRESS_START + int(span * fraction)


def _validated(model: Type[M], payload: Union[M, Mapping[str, Any]]) -> M:
    if isinstance(payload, model):
        return payload
    try:
        return model.model_validate(dict(payload))
    except pydantic.ValidationError as e:
        errors = e.errors(include_url=False, include_context=False, include_input=False)
        first = errors[0]
        field = ".".join(str(part) for part in first["loc"]) or None
        raise ValidationError(first["msg"], field=field, details={"errors": errors}) from e


def _draft_data(draft: Union[EpisodeDraft, Mapping[str, Any]]) -> Dict[str, Any]:
    """Validate a completion draft and return the episode fields it sets."""
    payload = asdict(draft) if isinstance(draft, EpisodeDraft) else draft
    return _validated(EpisodeDraftRequest, payload).model_dump(exclude_none=True)


class SubmissionService:
    """Owns the lifecycle of content submissions.

    Transitions of one submission are serialized with a per-submission lock;
    transitions of different submissions run in parallel.
    """

    def __init__(
        self,
        submission_store: SubmissionStore,
        episode_store: EpisodeStore,
        on_episode_change: Callable[[InvalidationEvent], Any],
        pipeline: Optional[ContentPipeline] = None,
        synthesizer: Optional[EpisodeSynthesizer] = None,
        config: Optional[ProcessingConfig] = None,
        feed_config: Optional[FeedConfig] = None,
        metrics: Optional[SubmissionMetrics] = None,
        clock: Clock = utc_now,
        executor: Optional[Executor] = None,
    ):
        """Initialize the submission service.

        Args:
            submission_store: Persistence for submissions
            episode_store: Store the produced episodes are created in
            on_episode_change: Receives an event after each episode is created
            pipeline: Content extraction collaborator
            synthesizer: Speech synthesis collaborator
            config: Processing configuration
            feed_config: Feed configuration, used to build feed URLs
            metrics: Prometheus metrics to update
            clock: Source of the current time
            executor: Executor for background processing, created from the
                configuration when omitted
        """
        self._submissions = submission_store
        self._episodes = episode_store
        self._on_episode_change = on_episode_change
        self._pipeline = pipeline
        self._synthesizer = synthesizer
        self.config = config or ProcessingConfig()
        self._feed_config = feed_config or FeedConfig()
        self._metrics = metrics or SubmissionMetrics()
        self._clock = clock
        self._owns_executor = executor is None
        self._executor = executor or ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="submission"
        )
        # Pipeline and synthesizer calls, abandoned once they outlive processing_timeout
        self._work_executor = ThreadPoolExecutor(
            max_workers=self.config.max_workers, thread_name_prefix="submission-work"
        )
        self._locks_guard = threading.Lock()
        self._locks: Dict[str, threading.Lock] = {}

    @property
    def estimated_duration(self) -> timedelta:
        return timedelta(minutes=self.config.estimated_minutes)

    def submit(self, payload: Union[SubmissionRequest, Mapping[str, Any]]) -> SubmissionReceipt:
        """Accept new content for processing.

        Args:
            payload: Intake request or a mapping with the same fields

        Returns:
            Receipt with the new submission id and the expected completion time

        Raises:
            ValidationError: If the request is malformed
        """
        request = _validated(SubmissionRequest, payload)
        submission = state_machine.new_submission(
            content_url=request.content_url,
            content_type=request.content_type,
            user_note=request.user_note,
            metadata=request.metadata,
            now=self._clock(),
        )
        self._submissions.save(submission)
        self._metrics.transitions.labels(status=submission.status.value).inc()
        logger.info(
            "content_submitted",
            submission_id=submission.id,
            content_type=submission.content_type.value,
        )
        return SubmissionReceipt(
            submission_id=submission.id,
            status=submission.status,
            estimated_completion=submission.created_at + self.estimated_duration,
        )

    def get(self, submission_id: str) -> ContentSubmission:
        submission = self._submissions.get(submission_id)
        if submission is None:
            raise NotFoundError(
                f"Submission {submission_id} not found", details={"submission_id": submission_id}
            )
        return submission

    def get_status(self, submission_id: str) -> SubmissionStatusView:
        """Return the status projection of a submission."""
        submission = self.get(submission_id)
        now = self._clock()

        feed_url = None
        if submission.status == SubmissionStatus.COMPLETED and submission.episode_id:
            episode = self._episodes.get_episode(submission.episode_id)
            feed_slug = episode.feed_slug if episode is not None else self.config.feed_slug
            feed_url = self._feed_config.feed_url(feed_slug)

        estimated_completion = None
        if not submission.status.is_terminal:
            estimated_completion = submission.created_at + self.estimated_duration

        return SubmissionStatusView(
            submission_id=submission.id,
            status=submission.status,
            progress=compute_progress(submission, now, self.estimated_duration),
            content_url=submission.content_url,
            content_type=submission.content_type,
            created_at=submission.created_at,
            updated_at=submission.updated_at,
            processed_at=submission.processed_at,
            estimated_completion=estimated_completion,
            episode_id=submission.episode_id,
            feed_url=feed_url,
            error_message=submission.error_message,
        )

    def transition(self, submission_id: str, target_status: Any, **kwargs) -> ContentSubmission:
        """Apply a status change to a stored submission.

        Keyword arguments other than ``now`` are passed to
        :func:`feedcast.lifecycle.state_machine.transition`. A rejected change
        leaves the stored submission untouched.
        """
        if "now" in kwargs:
            raise ValidationError("Transition time comes from the service clock", field="now")
        with self._lock_for(submission_id):
            current = self.get(submission_id)
            updated = state_machine.transition(current, target_status, now=self._clock(), **kwargs)
            self._submissions.save(updated)
        self._after_transition(current, updated)
        return updated

    def start_processing(self, submission_id: str) -> ContentSubmission:
        return self.transition(submission_id, SubmissionStatus.PROCESSING)

    def mark_failed(self, submission_id: str, error_message: str) -> ContentSubmission:
        """Fail a submission with the given reason."""
        return self.transition(
            submission_id,
            SubmissionStatus.FAILED,
            error_message=error_message,
            processed_at=self._clock(),
        )

    def complete(
        self, submission_id: str, draft: Union[EpisodeDraft, Mapping[str, Any]]
    ) -> Tuple[ContentSubmission, PodcastEpisode]:
        """Create the episode of a processing submission and complete it.

        The episode is durably created before the submission is completed,
        and the feed is notified only after both are stored.

        Raises:
            InvalidTransitionError: If the submission is not processing
            ValidationError: If the draft is missing a field or has an invalid one
        """
        data = _draft_data(draft)
        with self._lock_for(submission_id):
            current = self.get(submission_id)
            if SubmissionStatus.COMPLETED not in state_machine.allowed_targets(current.status):
                raise InvalidTransitionError(
                    current.status.value, SubmissionStatus.COMPLETED.value
                )
            data.setdefault("feed_slug", self.config.feed_slug)
            data.setdefault("source_url", current.content_url)

            episode = self._episodes.create_episode(current.id, data)
            now = self._clock()
            updated = state_machine.transition(
                current,
                SubmissionStatus.COMPLETED,
                processed_at=now,
                episode_id=episode.id,
                now=now,
            )
            self._submissions.save(updated)
        self._after_transition(current, updated)

        self._on_episode_change(
            InvalidationEvent(
                episode_id=episode.id,
                change_kind=ChangeKind.CREATED,
                occurred_at=self._clock(),
                feed_slug=episode.feed_slug,
            )
        )
        return updated, episode

    def process_async(self, submission_id: str) -> "Future[ContentSubmission]":
        """Process a pending submission in the background.

        Returns:
            Future resolving to the submission in its terminal status

        Raises:
            ConfigurationError: If no pipeline or synthesizer is configured
            NotFoundError: If the submission does not exist
        """
        if self._pipeline is None or self._synthesizer is None:
            raise ConfigurationError("Background processing needs a pipeline and a synthesizer")
        self.get(submission_id)
        return self._executor.submit(self._process, submission_id)

    def shutdown(self, wait: bool = True) -> None:
        if self._owns_executor:
            self._executor.shutdown(wait=wait)
        # abandoned calls may still be running
        self._work_executor.shutdown(wait=False, cancel_futures=True)

    def _produce_draft(self, submission: ContentSubmission) -> EpisodeDraft:
        content = self._pipeline.process(submission)
        return self._synthesizer.synthesize(content)

    def _process(self, submission_id: str) -> ContentSubmission:
        submission = self.start_processing(submission_id)
        started = time.perf_counter()
        log = logger.bind(submission_id=submission_id)
        log.info("submission_processing_started")

        timeout = self.config.processing_timeout
        try:
            work = self._work_executor.submit(self._produce_draft, submission)
            try:
                draft = work.result(timeout=timeout)
            except FutureTimeoutError:
                work.cancel()
                log.warning("submission_processing_timed_out", timeout=timeout)
                return self.mark_failed(submission_id, f"processing timed out after {timeout}s")
            completed, episode = self.complete(submission_id, draft)
            log.info("submission_processing_completed", episode_id=episode.id)
            return completed
        except UpstreamProcessingError as e:
            log.warning("submission_processing_failed", error=e.message)
            return self.mark_failed(submission_id, e.message)
        except Exception as e:
            log.exception("submission_processing_error", error=str(e))
            return self.mark_failed(submission_id, f"Processing failed: {e}")
        finally:
            self._metrics.processing_seconds.observe(time.perf_counter() - started)

    def _lock_for(self, submission_id: str) -> threading.Lock:
        with self._locks_guard:
            lock = self._locks.get(submission_id)
            if lock is None:
                lock = self._locks[submission_id] = threading.Lock()
            return lock

    def _after_transition(self, previous: ContentSubmission, updated: ContentSubmission) -> None:
        self._metrics.transitions.labels(status=updated.status.value).inc()
        logger.info(
            "submission_transitioned",
            submission_id=updated.id,
            source=previous.status.value,
            target=updated.status.value,
        )
        if updated.status.is_terminal:
            # a thread still holding the old lock will find a terminal value and fail
            with self._locks_guard:
                self._locks.pop(updated.id, None)
