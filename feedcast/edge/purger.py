"""Edge cache purge clients."""

import time
from typing import Callable, List, Optional

import pybreaker
import requests
import structlog

from feedcast.config.edge_config import EdgeCacheConfig
from feedcast.errors import EdgeCacheError

logger = structlog.get_logger(__name__)


def feed_paths(feed_slug: str) -> List[str]:
    """Public paths serving a feed, purged whenever the feed changes."""
    return [f"/feeds/{feed_slug}/rss.xml", f"/feeds/{feed_slug}/episodes"]


class NullEdgeCache:
    """Edge cache used when no CDN sits in front of the feeds."""

    def purge(self, paths: List[str]) -> None:
        logger.debug("edge_purge_skipped", paths=paths)


class HttpEdgeCache:
    """Purges CDN paths through an HTTP purge endpoint.

    Failed requests are retried with exponential backoff, and a circuit
    breaker stops sending requests to an endpoint that keeps failing. This
    client owns the retry policy; callers treat a raised error as final.
    """

    def __init__(
        self,
        config: EdgeCacheConfig,
        breaker: Optional[pybreaker.CircuitBreaker] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        """Initialize the purge client.

        Args:
            config: Edge cache configuration
            breaker: Optional circuit breaker, built from the config when omitted
            sleep: Function used to wait between retries
        """
        self.config = config
        self.breaker = breaker or pybreaker.CircuitBreaker(
            fail_max=config.failure_threshold,
            reset_timeout=config.reset_timeout,
            name="edge_cache",
        )
        self._sleep = sleep

    def _headers(self) -> dict:
        headers = {
            "Content-Type": "application/json",
            "User-Agent": "feedcast/1.0",
        }
        if self.config.auth_token:
            headers["Authorization"] = f"Bearer {self.config.auth_token}"
        return headers

    def _send(self, paths: List[str]) -> None:
        response = requests.post(
            self.config.purge_url,
            json={"contentPaths": paths},
            headers=self._headers(),
            timeout=self.config.timeout,
        )
        if response.status_code >= 400:
            raise EdgeCacheError(
                f"Purge request failed with status {response.status_code}",
                status_code=response.status_code,
            )

    def purge(self, paths: List[str]) -> None:
        """Purge paths from the edge cache.

        Args:
            paths: Public paths to purge

        Raises:
            EdgeCacheError: If every attempt failed or the circuit is open
        """
        if not paths:
            return

        last_error: Optional[Exception] = None
        for attempt in range(self.config.max_retries + 1):
            try:
                self.breaker.call(self._send, paths)
                logger.info("edge_purge_sent", paths=paths, attempt=attempt + 1)
                return
            except pybreaker.CircuitBreakerError as e:
                logger.warning("edge_purge_circuit_open", paths=paths)
                raise EdgeCacheError(
                    "Edge cache circuit breaker is open", details={"paths": paths}
                ) from e
            except (EdgeCacheError, requests.exceptions.RequestException) as e:
                last_error = e
                logger.warning(
                    "edge_purge_attempt_failed", paths=paths, attempt=attempt + 1, error=str(e)
                )
                if attempt < self.config.max_retries:
                    self._sleep(self.config.retry_delay * (2**attempt))

        raise EdgeCacheError(
            f"Edge purge failed after {self.config.max_retries + 1} attempts: {last_error}",
            details={"paths": paths},
        )


def build_edge_cache(config: EdgeCacheConfig):
    """Return the edge cache client matching the configuration."""
    if config.enabled:
        return HttpEdgeCache(config)
    return NullEdgeCache()
