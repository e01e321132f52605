"""In-memory episode and submission stores."""

import dataclasses
import threading
import uuid
from typing import Any, Dict, List, Optional

import structlog

from feedcast.core.clock import Clock, utc_now
from feedcast.errors import NotFoundError
from feedcast.models import DEFAULT_FEED_SLUG, ContentSubmission, PodcastEpisode

logger = structlog.get_logger(__name__)

EPISODE_FIELDS = (
    "title",
    "description",
    "audio_url",
    "duration_seconds",
    "published_at",
    "feed_slug",
    "audio_size_bytes",
    "source_url",
    "transcript_url",
    "chapters_url",
)


def build_episode(
    submission_id: str, data: Dict[str, Any], now, episode_id: Optional[str] = None
) -> PodcastEpisode:
    """Build an episode value from creation data."""
    values = {k: v for k, v in data.items() if k in EPISODE_FIELDS}
    values.setdefault("published_at", now)
    values.setdefault("feed_slug", DEFAULT_FEED_SLUG)
    return PodcastEpisode(
        id=episode_id or uuid.uuid4().hex,
        submission_id=submission_id,
        created_at=now,
        **values,
    )


class InMemoryEpisodeStore:
    """Episode store kept in process memory."""

    def __init__(self, clock: Clock = utc_now):
        self._clock = clock
        self._lock = threading.Lock()
        self._episodes: Dict[str, PodcastEpisode] = {}

    def list_episodes(self, feed_slug: str) -> List[PodcastEpisode]:
        with self._lock:
            episodes = [e for e in self._episodes.values() if e.feed_slug == feed_slug]
        return sorted(episodes, key=lambda e: e.id)

    def create_episode(self, submission_id: str, data: Dict[str, Any]) -> PodcastEpisode:
        """Create the episode of a submission.

        A submission owns at most one episode; creating it again returns the
        existing one unchanged.
        """
        with self._lock:
            for episode in self._episodes.values():
                if episode.submission_id == submission_id:
                    return episode
            episode = build_episode(submission_id, data, self._clock())
            self._episodes[episode.id] = episode
        logger.info("episode_created", episode_id=episode.id, submission_id=submission_id)
        return episode

    def get_episode(self, episode_id: str) -> Optional[PodcastEpisode]:
        with self._lock:
            return self._episodes.get(episode_id)

    def get_episode_for_submission(self, submission_id: str) -> Optional[PodcastEpisode]:
        with self._lock:
            for episode in self._episodes.values():
                if episode.submission_id == submission_id:
                    return episode
        return None

    def update_episode(self, episode_id: str, changes: Dict[str, Any]) -> PodcastEpisode:
        """Apply changes to an episode and stamp ``updated_at``.

        Raises:
            NotFoundError: If the episode does not exist
        """
        changes = {k: v for k, v in changes.items() if k in EPISODE_FIELDS and k != "feed_slug"}
        with self._lock:
            episode = self._episodes.get(episode_id)
            if episode is None:
                raise NotFoundError(f"Episode {episode_id} not found")
            updated = dataclasses.replace(episode, updated_at=self._clock(), **changes)
            self._episodes[episode_id] = updated
        return updated

    def delete_episode(self, episode_id: str) -> PodcastEpisode:
        with self._lock:
            episode = self._episodes.pop(episode_id, None)
        if episode is None:
            raise NotFoundError(f"Episode {episode_id} not found")
        return episode


class InMemorySubmissionStore:
    """Submission store kept in process memory."""

    def __init__(self):
        self._lock = threading.Lock()
        self._submissions: Dict[str, ContentSubmission] = {}

    def save(self, submission: ContentSubmission) -> None:
        with self._lock:
            self._submissions[submission.id] = submission

    def get(self, submission_id: str) -> Optional[ContentSubmission]:
        with self._lock:
            return self._submissions.get(submission_id)
