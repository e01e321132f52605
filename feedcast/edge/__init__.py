"""Edge cache (CDN) integration."""

from .purger import HttpEdgeCache, NullEdgeCache, build_edge_cache, feed_paths

__all__ = ["HttpEdgeCache", "NullEdgeCache", "build_edge_cache", "feed_paths"]
