"""Render options for feed documents."""

from dataclasses import asdict, dataclass
from typing import Any, Dict, Optional

from feedcast.errors import ValidationError

SORT_ORDERS = ("newest", "oldest")


@dataclass(frozen=True)
class FeedOptions:
    """Options that change the rendered feed document.

    Attributes:
        max_episodes: Maximum number of items in the document, None for all
        sort_order: ``newest`` or ``oldest`` first, by publication date
        include_chapters: Emit chapter links when episodes have them
        include_transcript: Emit transcript links when episodes have them
    """

    max_episodes: Optional[int] = None
    sort_order: str = "newest"
    include_chapters: bool = False
    include_transcript: bool = False

    def __post_init__(self):
        if self.sort_order not in SORT_ORDERS:
            raise ValidationError(
                f"sort_order must be one of: {', '.join(SORT_ORDERS)}", field="sort_order"
            )
        if self.max_episodes is not None and self.max_episodes < 1:
            raise ValidationError("max_episodes must be at least 1", field="max_episodes")

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)

    @classmethod
    def from_dict(cls, options: Dict[str, Any]) -> "FeedOptions":
        """Create FeedOptions from a dictionary, ignoring unknown keys."""
        return cls(**{k: v for k, v in options.items() if k in cls.__dataclass_fields__})
