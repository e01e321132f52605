"""Application services."""

from .feed_service import FeedResult, FeedService, validate_feed_slug
from .submission_service import SubmissionService, compute_progress

__all__ = [
    "FeedResult",
    "FeedService",
    "SubmissionService",
    "compute_progress",
    "validate_feed_slug",
]
