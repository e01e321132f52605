"""Configuration settings for background submission processing."""

from dataclasses import dataclass
from typing import Any, Dict

from feedcast.errors import ConfigurationError


@dataclass
class ProcessingConfig:
    """Configuration for the submission processor.

    Attributes:
        max_workers: Number of background processing threads
        estimated_minutes: Expected processing time reported to submitters
        processing_timeout: Seconds after which a running submission is failed
        feed_slug: Feed that completed episodes are published to
    """

    max_workers: int = 4
    estimated_minutes: int = 15
    processing_timeout: int = 1800
    feed_slug: str = "default"

    def __post_init__(self):
        if self.max_workers < 1:
            raise ConfigurationError("max_workers must be at least 1")
        if self.estimated_minutes < 1:
            raise ConfigurationError("estimated_minutes must be at least 1")
        if self.processing_timeout <= 0:
            raise ConfigurationError("processing_timeout must be positive")

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "ProcessingConfig":
        """Create a ProcessingConfig instance from a dictionary.

        Args:
            config_dict: Dictionary containing configuration values

        Returns:
            ProcessingConfig instance with values from dictionary
        """
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})
