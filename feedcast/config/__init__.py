"""Configuration management for feedcast components."""

from .cache_config import CacheConfig
from .edge_config import EdgeCacheConfig
from .feed_config import FeedConfig
from .processing_config import ProcessingConfig
from .settings import FeedcastConfig

__all__ = ["CacheConfig", "EdgeCacheConfig", "FeedConfig", "FeedcastConfig", "ProcessingConfig"]
