"""feedcast: podcast feeds kept consistent with asynchronously produced episodes."""

from .app import FeedcastApp, build_app
from .config import FeedcastConfig
from .models import ContentSubmission, InvalidationEvent, PodcastEpisode, SubmissionStatus

__version__ = "0.1.0"

__all__ = [
    "ContentSubmission",
    "FeedcastApp",
    "FeedcastConfig",
    "InvalidationEvent",
    "PodcastEpisode",
    "SubmissionStatus",
    "build_app",
]
