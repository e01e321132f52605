"""Configuration settings for the feed cache and invalidation."""

from dataclasses import dataclass
from typing import Any, Dict

from feedcast.errors import ConfigurationError

INVALIDATION_STRATEGIES = ("immediate", "scheduled", "lazy")


@dataclass
class CacheConfig:
    """Configuration for the feed cache.

    Attributes:
        ttl_seconds: Time-to-live in seconds for cached feed documents
        max_entry_bytes: Largest document that may be stored
        max_total_bytes: Total size above which the oldest entries are evicted
        sweep_interval_seconds: Interval of the background TTL sweep
        invalidation_strategy: One of immediate, scheduled or lazy
        scheduled_interval_seconds: Drain interval for the scheduled strategy
        render_timeout_seconds: Maximum time a feed render may take
        revalidate_every_read: Recompute the fingerprint on every read
        listing_cache_size: Maximum number of cached episode listing pages
        listing_ttl_seconds: Time-to-live of cached episode listing pages
        stats_smoothing: Weight of the newest sample in the latency average
    """

    ttl_seconds: int = 3600
    max_entry_bytes: int = 10 * 1024 * 1024
    max_total_bytes: int = 50 * 1024 * 1024
    sweep_interval_seconds: float = 300.0
    invalidation_strategy: str = "immediate"
    scheduled_interval_seconds: float = 30.0
    render_timeout_seconds: float = 5.0
    revalidate_every_read: bool = True
    listing_cache_size: int = 128
    listing_ttl_seconds: int = 60
    stats_smoothing: float = 0.2

    def __post_init__(self):
        if self.ttl_seconds <= 0:
            raise ConfigurationError("ttl_seconds must be positive")
        if self.max_entry_bytes <= 0 or self.max_total_bytes <= 0:
            raise ConfigurationError("cache size limits must be positive")
        if self.invalidation_strategy not in INVALIDATION_STRATEGIES:
            raise ConfigurationError(
                f"invalidation_strategy must be one of: {', '.join(INVALIDATION_STRATEGIES)}",
                details={"invalidation_strategy": self.invalidation_strategy},
            )
        if self.render_timeout_seconds <= 0:
            raise ConfigurationError("render_timeout_seconds must be positive")
        if not 0 < self.stats_smoothing <= 1:
            raise ConfigurationError("stats_smoothing must be in (0, 1]")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "CacheConfig":
        """Create a CacheConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            CacheConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})
