"""Interfaces of the collaborators the feedcast core depends on."""

from typing import Any, Dict, List, Optional, Protocol, Sequence

from feedcast.models import (
    ContentSubmission,
    EpisodeDraft,
    ExtractedContent,
    PodcastEpisode,
)
from feedcast.rss.options import FeedOptions


class EpisodeStore(Protocol):
    """Source of truth for published episodes."""

    def list_episodes(self, feed_slug: str) -> List[PodcastEpisode]:
        """Return the episodes of a feed ordered by id."""

    def create_episode(self, submission_id: str, data: Dict[str, Any]) -> PodcastEpisode:
        """Durably create the episode of a completed submission."""

    def get_episode(self, episode_id: str) -> Optional[PodcastEpisode]:
        """Return an episode by id."""

    def get_episode_for_submission(self, submission_id: str) -> Optional[PodcastEpisode]:
        """Return the episode produced by a submission, if any."""

    def update_episode(self, episode_id: str, changes: Dict[str, Any]) -> PodcastEpisode:
        """Apply changes to an episode and stamp ``updated_at``."""

    def delete_episode(self, episode_id: str) -> PodcastEpisode:
        """Remove an episode and return it."""


class SubmissionStore(Protocol):
    """Persistence for submission values."""

    def save(self, submission: ContentSubmission) -> None:
        """Insert or replace a submission."""

    def get(self, submission_id: str) -> Optional[ContentSubmission]:
        """Return a submission by id."""


class ContentPipeline(Protocol):
    """Extracts text content from a submission's source."""

    def process(self, submission: ContentSubmission) -> ExtractedContent:
        """Extract the content referenced by a submission."""


class EpisodeSynthesizer(Protocol):
    """Turns extracted content into an audio episode."""

    def synthesize(self, content: ExtractedContent) -> EpisodeDraft:
        """Produce an episode draft from extracted content."""


class FeedRenderer(Protocol):
    """Renders a feed document. Must be deterministic for identical inputs."""

    def render(self, episodes: Sequence[PodcastEpisode], options: FeedOptions) -> str:
        """Render the feed document."""


class EdgeCache(Protocol):
    """External cache in front of the public feed paths."""

    def purge(self, paths: List[str]) -> None:
        """Purge the given public paths. Best effort."""
