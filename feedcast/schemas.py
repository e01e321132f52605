"""Request and response schemas exposed to callers."""

from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field, field_validator

from feedcast.models import ContentType, PodcastEpisode, SubmissionStatus, is_http_url

MAX_USER_NOTE_LENGTH = 1000


class SubmissionRequest(BaseModel):
    """Content intake payload."""

    content_url: str = Field(..., description="URL of the content to convert")
    content_type: ContentType
    user_note: Optional[str] = Field(None, max_length=MAX_USER_NOTE_LENGTH)
    metadata: Dict[str, Any] = Field(default_factory=dict)

    @field_validator("content_url")
    @classmethod
    def validate_content_url(cls, v: str) -> str:
        v = v.strip()
        if not is_http_url(v):
            raise ValueError("content_url must be an absolute http(s) URL")
        return v


class SubmissionReceipt(BaseModel):
    """Response to a successful intake."""

    submission_id: str
    status: SubmissionStatus = SubmissionStatus.PENDING
    estimated_completion: datetime
    message: str = "Content submitted successfully for processing"


class SubmissionStatusView(BaseModel):
    """Status projection of one submission."""

    submission_id: str
    status: SubmissionStatus
    progress: int = Field(..., ge=0, le=100)
    content_url: str
    content_type: ContentType
    created_at: datetime
    updated_at: datetime
    processed_at: Optional[datetime] = None
    estimated_completion: Optional[datetime] = None
    episode_id: Optional[str] = None
    feed_url: Optional[str] = None
    error_message: Optional[str] = None


class EpisodeDraftRequest(BaseModel):
    """Episode data supplied when a submission is completed."""

    title: str = Field(..., min_length=1)
    description: str
    audio_url: str
    duration_seconds: int = Field(..., ge=0)
    audio_size_bytes: Optional[int] = Field(None, gt=0)
    published_at: Optional[datetime] = None
    feed_slug: Optional[str] = None
    source_url: Optional[str] = None
    transcript_url: Optional[str] = None
    chapters_url: Optional[str] = None

    @field_validator("audio_url")
    @classmethod
    def validate_audio_url(cls, v: str) -> str:
        v = v.strip()
        if not is_http_url(v):
            raise ValueError("audio_url must be an absolute http(s) URL")
        return v


class EpisodeView(BaseModel):
    """Projection of one episode in a listing."""

    id: str
    title: str
    description: str
    audio_url: str
    duration_seconds: int
    formatted_duration: str
    published_at: datetime
    feed_slug: str

    @classmethod
    def from_episode(cls, episode: PodcastEpisode) -> "EpisodeView":
        return cls(
            id=episode.id,
            title=episode.title,
            description=episode.description,
            audio_url=episode.audio_url,
            duration_seconds=episode.duration_seconds,
            formatted_duration=episode.formatted_duration,
            published_at=episode.published_at,
            feed_slug=episode.feed_slug,
        )


class EpisodeListing(BaseModel):
    """One page of a feed's episodes, newest first."""

    feed_slug: str
    episodes: List[EpisodeView]
    total: int
    limit: int
    offset: int
    has_more: bool


class ErrorResponse(BaseModel):
    """User visible error payload."""

    error: str
    message: str
    retryable: bool = False
    details: Dict[str, Any] = Field(default_factory=dict)
