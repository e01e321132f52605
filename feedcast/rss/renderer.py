"""RSS 2.0 renderer with the iTunes podcast extensions."""

import xml.etree.ElementTree as ET
from email.utils import format_datetime
from typing import List, Optional, Sequence

import structlog

from feedcast.config.feed_config import FeedConfig
from feedcast.models import PodcastEpisode
from feedcast.rss.options import FeedOptions

logger = structlog.get_logger(__name__)

ITUNES_NS = "http://www.itunes.com/dtds/podcast-1.0.dtd"
PODCAST_NS = "https://podcastindex.org/namespace/1.0"
GENERATOR = "feedcast"

ET.register_namespace("itunes", ITUNES_NS)
ET.register_namespace("podcast", PODCAST_NS)


def _itunes(tag: str) -> str:
    return f"{{{ITUNES_NS}}}{tag}"


def _podcast(tag: str) -> str:
    return f"{{{PODCAST_NS}}}{tag}"


def _text(parent: ET.Element, tag: str, text: str, **attrib) -> ET.Element:
    element = ET.SubElement(parent, tag, attrib)
    element.text = text
    return element


def order_episodes(
    episodes: Sequence[PodcastEpisode], options: FeedOptions
) -> List[PodcastEpisode]:
    """Order and truncate episodes as the options ask.

    Ties on the publication date are broken by id so the order never depends
    on the order of the input.
    """
    ordered = sorted(
        episodes,
        key=lambda e: (e.published_at, e.id),
        reverse=options.sort_order == "newest",
    )
    if options.max_episodes is not None:
        ordered = ordered[: options.max_episodes]
    return ordered


class RssFeedRenderer:
    """Renders episodes into an RSS document.

    Output depends only on the episodes, the options and the feed
    configuration: the build date is the latest episode change, never the
    wall clock, so identical inputs give byte-identical documents.
    """

    def __init__(self, config: Optional[FeedConfig] = None):
        self.config = config or FeedConfig()

    def render(self, episodes: Sequence[PodcastEpisode], options: FeedOptions) -> str:
        """Render the feed document.

        Args:
            episodes: Episodes of the feed, in any order
            options: Render options

        Returns:
            The RSS document as a string
        """
        selected = order_episodes(episodes, options)

        rss = ET.Element("rss", {"version": "2.0"})
        channel = ET.SubElement(rss, "channel")
        self._channel(channel, episodes)
        for episode in selected:
            self._item(channel, episode, options)

        ET.indent(rss, space="  ")
        document = ET.tostring(rss, encoding="unicode")
        logger.debug("rss_rendered", episodes=len(selected), bytes=len(document))
        return '<?xml version="1.0" encoding="UTF-8"?>\n' + document + "\n"

    def _channel(self, channel: ET.Element, episodes: Sequence[PodcastEpisode]) -> None:
        config = self.config
        _text(channel, "title", config.title)
        _text(channel, "description", config.description)
        _text(channel, "link", config.link)
        _text(channel, "language", config.language)
        if episodes:
            last_change = max(episode.last_changed_at for episode in episodes)
            _text(channel, "lastBuildDate", format_datetime(last_change, usegmt=True))
        _text(channel, "generator", GENERATOR)

        _text(channel, _itunes("author"), config.author)
        _text(channel, _itunes("summary"), config.description)
        _text(channel, _itunes("type"), "episodic")
        _text(channel, _itunes("explicit"), "true" if config.explicit else "false")
        ET.SubElement(channel, _itunes("category"), {"text": config.category})
        if config.owner_email:
            owner = ET.SubElement(channel, _itunes("owner"))
            _text(owner, _itunes("name"), config.author)
            _text(owner, _itunes("email"), config.owner_email)
        if config.image_url:
            ET.SubElement(channel, _itunes("image"), {"href": config.image_url})

    def _item(self, channel: ET.Element, episode: PodcastEpisode, options: FeedOptions) -> None:
        item = ET.SubElement(channel, "item")
        _text(item, "title", episode.title)
        _text(item, "description", episode.description)
        _text(item, "link", episode.source_url or episode.audio_url)
        _text(item, "guid", episode.rss_guid, isPermaLink="false")
        _text(item, "pubDate", format_datetime(episode.published_at, usegmt=True))
        ET.SubElement(
            item,
            "enclosure",
            {
                "url": episode.audio_url,
                "type": episode.enclosure_type,
                "length": str(episode.enclosure_length),
            },
        )
        _text(item, _itunes("title"), episode.title)
        _text(item, _itunes("summary"), episode.description)
        _text(item, _itunes("duration"), episode.formatted_duration)
        _text(item, _itunes("episodeType"), "full")

        if options.include_transcript and episode.transcript_url:
            ET.SubElement(
                item, _podcast("transcript"), {"url": episode.transcript_url, "type": "text/plain"}
            )
        if options.include_chapters and episode.chapters_url:
            ET.SubElement(
                item,
                _podcast("chapters"),
                {"url": episode.chapters_url, "type": "application/json+chapters"},
            )
