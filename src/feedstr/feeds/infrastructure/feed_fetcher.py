import asyncio
import calendar
import time
from datetime import datetime, timezone
from typing import Any, Optional

import aiohttp
import feedparser

from feedstr.feeds.domain.feed_item import FeedItem, FeedMetadata, ParsedFeed
from feedstr.main.exceptions import FeedFetchException
from feedstr.main.logging import get_logger

logger = get_logger(__name__)


def struct_to_datetime(value: Optional[time.struct_time]) -> Optional[datetime]:
    """feedparser normalizes dates to UTC struct_time."""
    if value is None:
        return None
    try:
        return datetime.fromtimestamp(calendar.timegm(value), tz=timezone.utc)
    except (OverflowError, ValueError, TypeError):
        return None


def _enclosure_urls(entry: Any) -> tuple[str, ...]:
    urls = []
    for enclosure in entry.get("enclosures", []) or []:
        href = enclosure.get("href") or enclosure.get("url")
        if href:
            urls.append(href)
    return tuple(urls)


def _categories(entry: Any) -> tuple[str, ...]:
    terms = []
    for tag in entry.get("tags", []) or []:
        term = (tag.get("term") or "").strip()
        if term:
            terms.append(term)
    return tuple(terms)


def _entry_to_item(entry: Any) -> FeedItem:
    description = entry.get("summary") or ""
    # Prefer the full body when the feed ships one
    content = entry.get("content") or []
    if content and content[0].get("value"):
        description = content[0]["value"]

    return FeedItem(
        title=entry.get("title", "") or "",
        description=description,
        link=entry.get("link", "") or "",
        published_parsed=struct_to_datetime(entry.get("published_parsed")),
        updated_parsed=struct_to_datetime(entry.get("updated_parsed")),
        published=entry.get("published", "") or "",
        updated=entry.get("updated", "") or "",
        categories=_categories(entry),
        enclosures=_enclosure_urls(entry),
    )


def _feed_image(feed: Any) -> Optional[str]:
    image = feed.get("image") or {}
    href = image.get("href") or image.get("url")
    if href:
        return href
    return feed.get("logo") or None


def to_parsed_feed(parsed: Any) -> ParsedFeed:
    feed = parsed.feed
    metadata = FeedMetadata(
        title=feed.get("title", "") or "",
        description=feed.get("subtitle", "") or feed.get("description", "") or "",
        link=feed.get("link", "") or "",
        image=_feed_image(feed),
    )
    return ParsedFeed(metadata=metadata, items=[_entry_to_item(e) for e in parsed.entries])


class FeedFetcher:
    """Downloads a feed with aiohttp and parses it with feedparser."""

    def __init__(self, client_session_factory, timeout: float):
        self._client_session_factory = client_session_factory
        self.timeout = timeout

    async def fetch(self, url: str) -> ParsedFeed:
        """
        Raises:
            FeedFetchException: Network error, non-2xx response, timeout, or the
                body is not an RSS/Atom document.
        """
        session: aiohttp.ClientSession = self._client_session_factory()
        try:
            async with session.get(
                url, timeout=aiohttp.ClientTimeout(total=self.timeout)
            ) as response:
                if response.status >= 400:
                    raise FeedFetchException(f"HTTP {response.status} fetching {url}")
                body = await response.read()
        except asyncio.TimeoutError as exc:
            raise FeedFetchException(f"Timed out fetching {url}") from exc
        except aiohttp.ClientError as exc:
            raise FeedFetchException(f"Failed to fetch {url}: {exc}") from exc

        parsed = await asyncio.to_thread(feedparser.parse, body)

        if not parsed.get("version"):
            reason = parsed.get("bozo_exception") or "not an RSS or Atom document"
            raise FeedFetchException(f"No feed found at {url}: {reason}")

        feed = to_parsed_feed(parsed)
        logger.debug(
            f"Fetched {len(feed.items)} items",
            extra={"feed_url": url, "version": parsed.get("version")},
        )
        return feed
