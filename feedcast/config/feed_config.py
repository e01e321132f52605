"""Configuration settings for the published podcast feed."""

from dataclasses import dataclass
from typing import Any, Dict

from feedcast.errors import ConfigurationError

ITUNES_CATEGORIES = (
    "Arts",
    "Business",
    "Comedy",
    "Education",
    "Fiction",
    "Government",
    "History",
    "Health & Fitness",
    "Kids & Family",
    "Leisure",
    "Music",
    "News",
    "Religion & Spirituality",
    "Science",
    "Society & Culture",
    "Sports",
    "Technology",
    "True Crime",
    "TV & Film",
)


@dataclass
class FeedConfig:
    """Channel level metadata of the rendered feed.

    Attributes:
        title: Podcast title
        description: Podcast description
        link: Website of the podcast
        author: Author shown by podcast apps
        owner_email: Contact address of the owner
        language: Feed language code
        category: iTunes category
        explicit: Whether the podcast is marked explicit
        image_url: Optional cover art URL
        base_url: Public base URL the feeds are served under
    """

    title: str = "Podcast Generator"
    description: str = "AI-generated podcast episodes"
    link: str = "https://podcast-generator.example.com"
    author: str = "Podcast Generator"
    owner_email: str = ""
    language: str = "en-us"
    category: str = "Technology"
    explicit: bool = False
    image_url: str = ""
    base_url: str = "https://podcast-generator.example.com"

    def __post_init__(self):
        if not self.title.strip():
            raise ConfigurationError("Feed title must not be empty")
        if self.category not in ITUNES_CATEGORIES:
            raise ConfigurationError(
                f"Invalid iTunes category: {self.category}",
                details={"valid": list(ITUNES_CATEGORIES)},
            )
        self.base_url = self.base_url.rstrip("/")

    def feed_url(self, feed_slug: str) -> str:
        """Public URL of a feed's RSS document."""
        return f"{self.base_url}/feeds/{feed_slug}/rss.xml"

    @classmethod
    def from_dict(cls, config_dict: Dict[str, Any]) -> "FeedConfig":
        return cls(**{k: v for k, v in config_dict.items() if k in cls.__dataclass_fields__})
