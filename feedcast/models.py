"""
Data models for the feedcast system.
"""
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, Optional
from urllib.parse import urlparse

from feedcast.errors import ValidationError

DEFAULT_FEED_SLUG = "default"

YOUTUBE_URL_PATTERNS = (
    re.compile(r"youtube\.com/watch\?v=([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/embed/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/v/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtu\.be/([a-zA-Z0-9_-]{11})"),
    re.compile(r"youtube\.com/.*[?&]v=([a-zA-Z0-9_-]{11})"),
)


class ContentType(str, Enum):
    """Kinds of content a submission can reference."""

    URL = "url"
    YOUTUBE = "youtube"
    PDF = "pdf"
    DOCUMENT = "document"


class SubmissionStatus(str, Enum):
    """Lifecycle status of a content submission."""

    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"

    @property
    def is_terminal(self) -> bool:
        return self in (SubmissionStatus.COMPLETED, SubmissionStatus.FAILED)


class ChangeKind(str, Enum):
    """Kinds of episode changes that drive cache invalidation."""

    CREATED = "created"
    UPDATED = "updated"
    DELETED = "deleted"


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def extract_youtube_id(url: str) -> Optional[str]:
    """Return the 11 character video id of a YouTube URL, or None."""
    for pattern in YOUTUBE_URL_PATTERNS:
        match = pattern.search(url)
        if match:
            return match.group(1)
    return None


def is_http_url(url: str) -> bool:
    """Check that a URL is absolute and uses http or https."""
    try:
        parsed = urlparse(url)
    except ValueError:
        return False
    return parsed.scheme in ("http", "https") and bool(parsed.netloc)


def _coerce_enum(enum_cls, value, field_name: str):
    if isinstance(value, enum_cls):
        return value
    try:
        return enum_cls(value)
    except ValueError:
        valid = ", ".join(member.value for member in enum_cls)
        raise ValidationError(
            f"Invalid {field_name} {value!r}. Must be one of: {valid}", field=field_name
        )


@dataclass(frozen=True)
class ContentSubmission:
    """A user-supplied reference to content awaiting conversion into an episode.

    Values are immutable; status changes go through
    :func:`feedcast.lifecycle.state_machine.transition`, which returns a new
    value. The invariants below are checked on every construction, so no
    value violating them can exist.
    """

    id: str
    content_url: str
    content_type: ContentType
    status: SubmissionStatus
    created_at: datetime
    updated_at: datetime
    error_message: Optional[str] = None
    processed_at: Optional[datetime] = None
    user_note: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    episode_id: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(
            self, "content_type", _coerce_enum(ContentType, self.content_type, "content_type")
        )
        object.__setattr__(self, "status", _coerce_enum(SubmissionStatus, self.status, "status"))
        object.__setattr__(self, "created_at", as_utc(self.created_at))
        object.__setattr__(self, "updated_at", as_utc(self.updated_at))
        if self.processed_at is not None:
            object.__setattr__(self, "processed_at", as_utc(self.processed_at))

        if not self.id:
            raise ValidationError("Submission id must not be empty", field="id")

        if not self.content_url or not is_http_url(self.content_url):
            raise ValidationError(
                "content_url must be an absolute http(s) URL", field="content_url"
            )
        if self.content_type == ContentType.YOUTUBE and extract_youtube_id(self.content_url) is None:
            raise ValidationError(
                "content_url is not a recognized YouTube video URL", field="content_url"
            )

        if self.status == SubmissionStatus.FAILED:
            if not self.error_message or not self.error_message.strip():
                raise ValidationError(
                    "A failed submission requires an error message", field="error_message"
                )
        elif self.error_message is not None:
            raise ValidationError(
                "error_message is only allowed on failed submissions", field="error_message"
            )

        if self.status.is_terminal and self.processed_at is None:
            raise ValidationError(
                f"A {self.status.value} submission requires processed_at", field="processed_at"
            )
        if not self.status.is_terminal and self.processed_at is not None:
            raise ValidationError(
                f"processed_at is not allowed on a {self.status.value} submission",
                field="processed_at",
            )
        if self.processed_at is not None and self.processed_at < self.created_at:
            raise ValidationError("processed_at precedes created_at", field="processed_at")

        if self.episode_id is not None and self.status != SubmissionStatus.COMPLETED:
            raise ValidationError(
                "episode_id is only allowed on completed submissions", field="episode_id"
            )

        if self.updated_at < self.created_at:
            raise ValidationError("updated_at precedes created_at", field="updated_at")

    @property
    def title(self) -> str:
        """Best available title for display."""
        return self.metadata.get("title") or self.content_url


@dataclass(frozen=True)
class PodcastEpisode:
    """A published podcast episode produced from one completed submission."""

    id: str
    submission_id: str
    title: str
    description: str
    audio_url: str
    duration_seconds: int
    published_at: datetime
    created_at: datetime
    updated_at: Optional[datetime] = None
    feed_slug: str = DEFAULT_FEED_SLUG
    audio_size_bytes: Optional[int] = None
    source_url: Optional[str] = None
    transcript_url: Optional[str] = None
    chapters_url: Optional[str] = None

    def __post_init__(self):
        object.__setattr__(self, "published_at", as_utc(self.published_at))
        object.__setattr__(self, "created_at", as_utc(self.created_at))
        if self.updated_at is not None:
            object.__setattr__(self, "updated_at", as_utc(self.updated_at))

        if not self.id:
            raise ValidationError("Episode id must not be empty", field="id")
        if not self.submission_id:
            raise ValidationError("Episode requires an owning submission", field="submission_id")
        if not self.title or not self.title.strip():
            raise ValidationError("Episode title must not be empty", field="title")
        if self.duration_seconds < 0:
            raise ValidationError("duration_seconds must not be negative", field="duration_seconds")
        if self.audio_size_bytes is not None and self.audio_size_bytes <= 0:
            raise ValidationError("audio_size_bytes must be positive", field="audio_size_bytes")

    @property
    def last_changed_at(self) -> datetime:
        """Timestamp used for staleness detection."""
        return self.updated_at or self.published_at

    @property
    def formatted_duration(self) -> str:
        minutes, seconds = divmod(int(self.duration_seconds), 60)
        return f"{minutes}:{seconds:02d}"

    @property
    def rss_guid(self) -> str:
        return f"episode_{self.id}"

    @property
    def enclosure_type(self) -> str:
        return "audio/mpeg"

    @property
    def enclosure_length(self) -> int:
        # 128 kbps works out to 16 KiB of audio per second
        if self.audio_size_bytes:
            return self.audio_size_bytes
        return int(self.duration_seconds * 16 * 1024)


@dataclass(frozen=True)
class ExtractedContent:
    """Content pulled from a submission's source by the content pipeline."""

    title: str
    content: str
    summary: str = ""
    metadata: Dict[str, Any] = field(default_factory=dict)


@dataclass(frozen=True)
class EpisodeDraft:
    """Synthesized episode data, not yet persisted."""

    title: str
    description: str
    audio_url: str
    duration_seconds: int
    audio_size_bytes: Optional[int] = None
    published_at: Optional[datetime] = None


@dataclass(frozen=True)
class InvalidationEvent:
    """An episode change that may make cached feed documents stale."""

    episode_id: str
    change_kind: ChangeKind
    occurred_at: datetime
    feed_slug: str = DEFAULT_FEED_SLUG

    def __post_init__(self):
        object.__setattr__(
            self, "change_kind", _coerce_enum(ChangeKind, self.change_kind, "change_kind")
        )
        object.__setattr__(self, "occurred_at", as_utc(self.occurred_at))
