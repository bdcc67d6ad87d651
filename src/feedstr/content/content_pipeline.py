"""Turns feed entries into signed Nostr messages.

A note is built in a fixed order: resolve the entry's time, drop it if it is
older than the window, sanitize and flatten its HTML, append enclosures and
the link, attach category and provenance tags, then sign with the feed's key.
"""

from datetime import datetime, timedelta, timezone
from typing import Iterable, Optional
from urllib.parse import quote_plus

from feedstr.content.sanitizer import flatten_html, sanitize_html
from feedstr.content.timestamps import TimestampResolver
from feedstr.feeds.domain.feed_item import FeedItem, FeedMetadata
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.exceptions import UnresolvableTimestampException
from feedstr.main.logging import get_logger
from feedstr.nostr.signed_message import (
    SignedMessage,
    sign_note,
    sign_profile_metadata,
)

logger = get_logger(__name__)


def provenance_tag(feed_url: str, item_link: str) -> list[str]:
    return ["proxy", f"{feed_url}#{quote_plus(item_link, safe='')}", "rss"]


def is_within_window(item_time: datetime, window: timedelta, now: datetime) -> bool:
    return item_time >= now - window


class ContentPipeline:
    def __init__(
        self,
        timestamp_resolver: TimestampResolver,
        mirror_patterns: Iterable[str] = ("nitter", "telegram"),
        nip05_domain: str = "",
    ):
        self.timestamp_resolver = timestamp_resolver
        self.mirror_patterns = tuple(p.lower() for p in mirror_patterns)
        self.nip05_domain = nip05_domain

    def is_mirror(self, link: str) -> bool:
        link = (link or "").lower()
        return any(pattern in link for pattern in self.mirror_patterns)

    def render_text(self, item: FeedItem) -> str:
        body = sanitize_html(item.description)
        if self.is_mirror(item.link):
            # Mirrors repeat the title as the first line of the body
            text = body
        else:
            text = f"{item.title}\n\n{body}"

        text = flatten_html(text)

        for enclosure in item.enclosures:
            text = f"{text}\n\n{enclosure}"

        if item.link:
            text = f"{text}\n\n{item.link}"

        return text

    def build_tags(self, feed_url: str, item: FeedItem) -> list[list[str]]:
        tags = [["t", category] for category in item.categories]
        tags.append(provenance_tag(feed_url, item.link))
        return tags

    def build_note(
        self,
        feed: FeedSource,
        item: FeedItem,
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> Optional[SignedMessage]:
        """Signed note for ``item``, or None when it is undated or too old."""
        now = now or datetime.now(timezone.utc)

        try:
            item_time = self.timestamp_resolver.resolve(item)
        except UnresolvableTimestampException:
            logger.warning(
                f"Can't parse any date from post from {feed.url}",
                extra={"feed_url": feed.url, "title": item.title},
            )
            return None

        if not is_within_window(item_time, window, now):
            return None

        return sign_note(
            feed.secret_key,
            content=self.render_text(item),
            tags=self.build_tags(feed.url, item),
            created_at=item_time,
        )

    def build_notes(
        self,
        feed: FeedSource,
        items: Iterable[FeedItem],
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> list[SignedMessage]:
        now = now or datetime.now(timezone.utc)
        notes = []
        for item in items:
            note = self.build_note(feed, item, window, now)
            if note is not None:
                notes.append(note)
        return notes

    def build_profile_metadata(
        self,
        feed: FeedSource,
        metadata: FeedMetadata,
        now: Optional[datetime] = None,
    ) -> SignedMessage:
        now = now or datetime.now(timezone.utc)
        profile = {
            "name": f"{metadata.title} (RSS Feed)",
            "about": f"{metadata.description}\n\n{metadata.link}",
            "picture": metadata.image or "",
            "nip05": f"{feed.url}@{self.nip05_domain}",
        }
        return sign_profile_metadata(feed.secret_key, profile, created_at=now)
