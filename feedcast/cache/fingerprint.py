"""Content fingerprints for cached feed documents.

A fingerprint is a digest over the episode set and the render options. It is
the only staleness signal the cache trusts: it does not depend on wall-clock
time, and any change to an episode's timestamp or to the set membership
produces a different value.
"""

import hashlib
import json
from typing import Iterable

from feedcast.models import PodcastEpisode
from feedcast.rss.options import FeedOptions


def canonical_options(options: FeedOptions) -> str:
    """Serialize options with sorted keys so equal options give equal text."""
    return json.dumps(options.to_dict(), sort_keys=True, separators=(",", ":"))


def options_hash(options: FeedOptions) -> str:
    """Return a short stable hash of the render options for use in cache keys."""
    return hashlib.sha256(canonical_options(options).encode("utf-8")).hexdigest()[:16]


def fingerprint(episodes: Iterable[PodcastEpisode], options: FeedOptions) -> str:
    """Compute the fingerprint of an episode set rendered with ``options``.

    Episodes are sorted by id first, so the order of ``episodes`` never
    affects the result.

    Args:
        episodes: Episodes of the feed
        options: Render options

    Returns:
        Hex digest identifying this exact episode set and options
    """
    digest = hashlib.sha256()
    for episode in sorted(episodes, key=lambda ep: ep.id):
        digest.update(episode.id.encode("utf-8"))
        digest.update(b"\x1f")
        digest.update(episode.last_changed_at.isoformat().encode("utf-8"))
        digest.update(b"\x1e")
    digest.update(b"\x1d")
    digest.update(canonical_options(options).encode("utf-8"))
    return digest.hexdigest()
