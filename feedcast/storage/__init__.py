"""Storage implementations for feedcast."""

from .memory import InMemoryEpisodeStore, InMemorySubmissionStore
from .sqlite_storage import SQLiteConfig, SQLiteEpisodeStore, SQLiteSubmissionStore

__all__ = [
    "InMemoryEpisodeStore",
    "InMemorySubmissionStore",
    "SQLiteConfig",
    "SQLiteEpisodeStore",
    "SQLiteSubmissionStore",
]
