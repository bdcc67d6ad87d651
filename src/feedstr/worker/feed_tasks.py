from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Optional

from feedstr.feeds.domain.feed_item import ParsedFeed
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.exceptions import FeedFetchException
from feedstr.main.log_context import log_context
from feedstr.main.logging import get_logger

if TYPE_CHECKING:
    from feedstr.feeds.application.feed_service import FeedService
    from feedstr.feeds.domain.feed_health import FeedHealthPolicy
    from feedstr.feeds.domain.feed_repo import FeedRepository
    from feedstr.feeds.infrastructure.feed_fetcher import FeedFetcher

logger = get_logger(__name__)


class FeedTasks:
    """Per-feed units of work run by the worker pool."""

    def __init__(
        self,
        feed_service: "FeedService",
        feed_repo: "FeedRepository",
        feed_fetcher: "FeedFetcher",
        health_policy: "FeedHealthPolicy",
        fetch_window: timedelta,
    ):
        self.feed_service = feed_service
        self.feed_repo = feed_repo
        self.feed_fetcher = feed_fetcher
        self.health_policy = health_policy
        self.fetch_window = fetch_window

    async def _fetch_tracked(self, feed: FeedSource, now: datetime) -> Optional[ParsedFeed]:
        """Fetch a feed and record the outcome in its health state.

        Returns None when the feed is skipped or the fetch failed.
        """
        if not self.health_policy.is_eligible(feed, now):
            logger.info(
                f"Skipping broken feed, next retry at {self.health_policy.next_retry_at(feed)}",
                extra={"feed_url": feed.url, "failure_count": feed.failure_count},
            )
            return None

        try:
            parsed = await self.feed_fetcher.fetch(feed.url)
        except FeedFetchException as exc:
            updated = await self.feed_repo.record_failure(
                feed.url, now, self.health_policy.failure_threshold
            )
            if updated is not None and updated.is_broken and not feed.is_broken:
                logger.warning(
                    f"Feed marked as broken after {updated.failure_count} failures",
                    extra={"feed_url": feed.url},
                )
            else:
                logger.warning(f"Failed to fetch feed: {exc}", extra={"feed_url": feed.url})
            return None

        if feed.is_broken:
            logger.info("Broken feed recovered", extra={"feed_url": feed.url})
        await self.feed_repo.record_success(feed.url, now)
        return parsed

    async def scrape_feed(self, feed: FeedSource, now: Optional[datetime] = None) -> int:
        """Publish the feed's items from the last fetch interval."""
        now = now or datetime.now(timezone.utc)
        with log_context(feed_url=feed.url):
            parsed = await self._fetch_tracked(feed, now)
            if parsed is None:
                return 0

            published = await self.feed_service.publish_items(
                feed, parsed.items, self.fetch_window, now
            )
            logger.debug(f"Finished updating feed, {published} posts published")
            return published

    async def refresh_metadata(self, feed: FeedSource, now: Optional[datetime] = None) -> bool:
        """Re-announce the feed's profile metadata."""
        now = now or datetime.now(timezone.utc)
        with log_context(feed_url=feed.url):
            parsed = await self._fetch_tracked(feed, now)
            if parsed is None:
                return False

            await self.feed_service.publish_metadata(feed, parsed.metadata)
            return True
