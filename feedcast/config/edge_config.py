"""Configuration settings for edge cache purging."""

from dataclasses import dataclass
from typing import Any, Dict

from feedcast.errors import ConfigurationError


@dataclass
class EdgeCacheConfig:
    """Configuration for edge cache purge requests.

    Attributes:
        enabled: Whether purges are sent at all
        purge_url: Endpoint accepting purge requests
        auth_token: Optional bearer token for purge requests
        timeout: Request timeout in seconds
        max_retries: Maximum number of retry attempts for a failed purge
        retry_delay: Base delay between retries in seconds
        failure_threshold: Consecutive failures before the circuit opens
        reset_timeout: Seconds before an open circuit allows a trial request
    """

    enabled: bool = False
    purge_url: str = ""
    auth_token: str = ""
    timeout: float = 10.0
    max_retries: int = 3
    retry_delay: float = 1.0
    failure_threshold: int = 5
    reset_timeout: int = 60

    def __post_init__(self):
        if self.enabled and not self.purge_url:
            raise ConfigurationError("purge_url is required when the edge cache is enabled")
        if self.max_retries < 0:
            raise ConfigurationError("max_retries must not be negative")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "EdgeCacheConfig":
        """Create an EdgeCacheConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            EdgeCacheConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})
