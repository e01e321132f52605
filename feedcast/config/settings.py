"""Top level feedcast configuration."""

import os
from dataclasses import dataclass, field, fields
from typing import Any, Dict, Mapping, Optional

from dotenv import load_dotenv

from feedcast.errors import ConfigurationError

from .cache_config import CacheConfig
from .edge_config import EdgeCacheConfig
from .feed_config import FeedConfig
from .processing_config import ProcessingConfig

ENV_PREFIX = "FEEDCAST_"

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def _convert(name: str, raw: str, target_type) -> Any:
    try:
        if target_type is bool:
            value = raw.strip().lower()
            if value in _TRUE:
                return True
            if value in _FALSE:
                return False
            raise ValueError(raw)
        if target_type is int:
            return int(raw)
        if target_type is float:
            return float(raw)
    except ValueError:
        raise ConfigurationError(
            f"Invalid value for {name}: {raw!r}", details={"expected": target_type.__name__}
        )
    return raw


def _section_from_env(cls, prefix: str, environ: Mapping[str, str]) -> Dict[str, Any]:
    values = {}
    for f in fields(cls):
        name = f"{prefix}{f.name.upper()}"
        if name in environ:
            values[f.name] = _convert(name, environ[name], f.type)
    return values


@dataclass
class FeedcastConfig:
    """Aggregate configuration of a feedcast deployment."""

    cache: CacheConfig = field(default_factory=CacheConfig)
    edge: EdgeCacheConfig = field(default_factory=EdgeCacheConfig)
    processing: ProcessingConfig = field(default_factory=ProcessingConfig)
    feed: FeedConfig = field(default_factory=FeedConfig)
    log_level: str = "INFO"
    log_json: bool = False
    metrics_port: int = 8000
    database_path: str = "feedcast.db"

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "FeedcastConfig":
        """Create a configuration from nested dictionaries.

        Args:
            config_dict: Mapping with optional ``cache``, ``edge``,
                ``processing`` and ``feed`` sections plus top level settings

        Returns:
            FeedcastConfig instance
        """
        top_level = {
            k: v
            for k, v in config_dict.items()
            if k in ("log_level", "log_json", "metrics_port", "database_path")
        }
        return cls(
            cache=CacheConfig.from_dict(config_dict.get("cache", {})),
            edge=EdgeCacheConfig.from_dict(config_dict.get("edge", {})),
            processing=ProcessingConfig.from_dict(config_dict.get("processing", {})),
            feed=FeedConfig.from_dict(config_dict.get("feed", {})),
            **top_level,
        )

    @classmethod
    def from_env(
        cls, environ: Optional[Mapping[str, str]] = None, dotenv: bool = True
    ) -> "FeedcastConfig":
        """Create a configuration from ``FEEDCAST_*`` environment variables.

        Section settings use the section name as a second prefix, for example
        ``FEEDCAST_CACHE_TTL_SECONDS`` or ``FEEDCAST_EDGE_PURGE_URL``.

        Args:
            environ: Environment to read, ``os.environ`` when omitted
            dotenv: Load a ``.env`` file into the process environment first

        Returns:
            FeedcastConfig instance
        """
        if dotenv:
            load_dotenv()
        if environ is None:
            environ = os.environ

        top_level = {}
        for name in ("log_level", "log_json", "metrics_port", "database_path"):
            key = f"{ENV_PREFIX}{name.upper()}"
            if key in environ:
                target_type = cls.__dataclass_fields__[name].type
                top_level[name] = _convert(key, environ[key], target_type)

        return cls.from_dict(
            {
                "cache": _section_from_env(CacheConfig, f"{ENV_PREFIX}CACHE_", environ),
                "edge": _section_from_env(EdgeCacheConfig, f"{ENV_PREFIX}EDGE_", environ),
                "processing": _section_from_env(
                    ProcessingConfig, f"{ENV_PREFIX}PROCESSING_", environ
                ),
                "feed": _section_from_env(FeedConfig, f"{ENV_PREFIX}FEED_", environ),
                **top_level,
            }
        )
