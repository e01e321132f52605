"""RSS rendering."""

from .options import SORT_ORDERS, FeedOptions
from .renderer import RssFeedRenderer, order_episodes

__all__ = ["SORT_ORDERS", "FeedOptions", "RssFeedRenderer", "order_episodes"]
