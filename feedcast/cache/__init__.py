"""Feed cache, fingerprints and invalidation."""

from .fingerprint import fingerprint, options_hash
from .invalidation import InvalidationCoordinator, InvalidationResult, InvalidationStrategy
from .store import CacheEntry, CacheHealth, CacheKey, CacheStats, FeedCacheStore

__all__ = [
    "CacheEntry",
    "CacheHealth",
    "CacheKey",
    "CacheStats",
    "FeedCacheStore",
    "InvalidationCoordinator",
    "InvalidationResult",
    "InvalidationStrategy",
    "fingerprint",
    "options_hash",
]
