"""SQLite storage implementation for submissions and episodes."""
import dataclasses
import json
import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, Iterator, List, Optional

import structlog
from pydantic import BaseModel

from feedcast.core.clock import Clock, utc_now
from feedcast.errors import NotFoundError
from feedcast.models import ContentSubmission, PodcastEpisode
from feedcast.storage.memory import EPISODE_FIELDS, build_episode

logger = structlog.get_logger(__name__)


class SQLiteConfig(BaseModel):
    """Configuration for SQLite storage."""

    db_path: str


def _dt(value: Optional[datetime]) -> Optional[str]:
    return value.isoformat() if value is not None else None


def _parse_dt(value: Optional[str]) -> Optional[datetime]:
    return datetime.fromisoformat(value) if value else None


class _SQLiteStore:
    def __init__(self, config: SQLiteConfig):
        """Initialize SQLite storage and create the schema.

        Args:
            config: SQLite configuration
        """
        self.db_path = Path(config.db_path)
        self.db_path.parent.mkdir(parents=True, exist_ok=True)

        with self._connection() as conn:
            with open(Path(__file__).parent / "schema.sql") as f:
                conn.executescript(f.read())

    @contextmanager
    def _connection(self) -> Iterator[sqlite3.Connection]:
        """Yield a connection with row factory, committing on success."""
        conn = sqlite3.connect(self.db_path)
        conn.row_factory = sqlite3.Row
        try:
            with conn:
                yield conn
        finally:
            conn.close()


class SQLiteSubmissionStore(_SQLiteStore):
    """Submission store backed by SQLite."""

    def save(self, submission: ContentSubmission) -> None:
        with self._connection() as conn:
            conn.execute(
                """
                INSERT OR REPLACE INTO submissions (
                    id, content_url, content_type, status, created_at, updated_at,
                    error_message, processed_at, user_note, metadata, episode_id
                ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
                """,
                (
                    submission.id,
                    submission.content_url,
                    submission.content_type.value,
                    submission.status.value,
                    _dt(submission.created_at),
                    _dt(submission.updated_at),
                    submission.error_message,
                    _dt(submission.processed_at),
                    submission.user_note,
                    json.dumps(submission.metadata, sort_keys=True),
                    submission.episode_id,
                ),
            )

    def get(self, submission_id: str) -> Optional[ContentSubmission]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM submissions WHERE id = ?", (submission_id,)
            ).fetchone()
        if row is None:
            return None
        return ContentSubmission(
            id=row["id"],
            content_url=row["content_url"],
            content_type=row["content_type"],
            status=row["status"],
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
            error_message=row["error_message"],
            processed_at=_parse_dt(row["processed_at"]),
            user_note=row["user_note"],
            metadata=json.loads(row["metadata"]),
            episode_id=row["episode_id"],
        )


class SQLiteEpisodeStore(_SQLiteStore):
    """Episode store backed by SQLite."""

    def __init__(self, config: SQLiteConfig, clock: Clock = utc_now):
        super().__init__(config)
        self._clock = clock

    @staticmethod
    def _to_episode(row: sqlite3.Row) -> PodcastEpisode:
        return PodcastEpisode(
            id=row["id"],
            submission_id=row["submission_id"],
            feed_slug=row["feed_slug"],
            title=row["title"],
            description=row["description"],
            audio_url=row["audio_url"],
            duration_seconds=row["duration_seconds"],
            audio_size_bytes=row["audio_size_bytes"],
            source_url=row["source_url"],
            transcript_url=row["transcript_url"],
            chapters_url=row["chapters_url"],
            published_at=_parse_dt(row["published_at"]),
            created_at=_parse_dt(row["created_at"]),
            updated_at=_parse_dt(row["updated_at"]),
        )

    def _write(self, conn: sqlite3.Connection, episode: PodcastEpisode, replace: bool) -> None:
        verb = "INSERT OR REPLACE" if replace else "INSERT"
        conn.execute(
            f"""
            {verb} INTO episodes (
                id, submission_id, feed_slug, title, description, audio_url,
                duration_seconds, audio_size_bytes, source_url, transcript_url,
                chapters_url, published_at, created_at, updated_at
            ) VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)
            """,
            (
                episode.id,
                episode.submission_id,
                episode.feed_slug,
                episode.title,
                episode.description,
                episode.audio_url,
                episode.duration_seconds,
                episode.audio_size_bytes,
                episode.source_url,
                episode.transcript_url,
                episode.chapters_url,
                _dt(episode.published_at),
                _dt(episode.created_at),
                _dt(episode.updated_at),
            ),
        )

    def list_episodes(self, feed_slug: str) -> List[PodcastEpisode]:
        with self._connection() as conn:
            rows = conn.execute(
                "SELECT * FROM episodes WHERE feed_slug = ? ORDER BY id", (feed_slug,)
            ).fetchall()
        return [self._to_episode(row) for row in rows]

    def create_episode(self, submission_id: str, data: Dict[str, Any]) -> PodcastEpisode:
        """Create the episode of a submission, returning the existing one if present."""
        episode = build_episode(submission_id, data, self._clock())
        try:
            with self._connection() as conn:
                self._write(conn, episode, replace=False)
        except sqlite3.IntegrityError:
            logger.debug("episode_already_exists", submission_id=submission_id)
            existing = self.get_episode_for_submission(submission_id)
            if existing is None:
                raise
            return existing
        logger.info("episode_created", episode_id=episode.id, submission_id=submission_id)
        return episode

    def get_episode(self, episode_id: str) -> Optional[PodcastEpisode]:
        with self._connection() as conn:
            row = conn.execute("SELECT * FROM episodes WHERE id = ?", (episode_id,)).fetchone()
        return self._to_episode(row) if row is not None else None

    def get_episode_for_submission(self, submission_id: str) -> Optional[PodcastEpisode]:
        with self._connection() as conn:
            row = conn.execute(
                "SELECT * FROM episodes WHERE submission_id = ?", (submission_id,)
            ).fetchone()
        return self._to_episode(row) if row is not None else None

    def update_episode(self, episode_id: str, changes: Dict[str, Any]) -> PodcastEpisode:
        """Apply changes to an episode and stamp ``updated_at``.

        Raises:
            NotFoundError: If the episode does not exist
        """
        episode = self.get_episode(episode_id)
        if episode is None:
            raise NotFoundError(f"Episode {episode_id} not found")
        changes = {k: v for k, v in changes.items() if k in EPISODE_FIELDS and k != "feed_slug"}
        updated = dataclasses.replace(episode, updated_at=self._clock(), **changes)
        with self._connection() as conn:
            self._write(conn, updated, replace=True)
        return updated

    def delete_episode(self, episode_id: str) -> PodcastEpisode:
        episode = self.get_episode(episode_id)
        if episode is None:
            raise NotFoundError(f"Episode {episode_id} not found")
        with self._connection() as conn:
            conn.execute("DELETE FROM episodes WHERE id = ?", (episode_id,))
        return episode
