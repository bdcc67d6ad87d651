from datetime import datetime, timedelta, timezone
from typing import TYPE_CHECKING, Callable, Optional

from feedstr.feeds.domain.feed_item import FeedItem, FeedMetadata, ParsedFeed
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.exceptions import (
    BadRequestException,
    FeedAlreadyExistsException,
    FeedFetchException,
    InvalidFeedException,
    NotFoundException,
)
from feedstr.main.logging import get_logger
from feedstr.nostr.keys import generate_identity

if TYPE_CHECKING:
    from feedstr.content.content_pipeline import ContentPipeline
    from feedstr.feeds.domain.feed_repo import FeedRepository
    from feedstr.feeds.infrastructure.favicon import FaviconFinder
    from feedstr.feeds.infrastructure.feed_fetcher import FeedFetcher
    from feedstr.nostr.publisher import EventPublisher

logger = get_logger(__name__)

ProgressCallback = Callable[[str], None]


class AddFeedStage:
    VALIDATING = "Validating feed URL"
    CHECKING_DUPLICATES = "Checking for duplicate feeds"
    GENERATING_KEYS = "Generating feed keys"
    SAVING = "Saving feed to database"
    PUBLISHING_METADATA = "Publishing feed metadata"
    DRY_RUN_METADATA = "Dry-run mode: would publish feed metadata"
    PROCESSING_HISTORY = "Processing feed history (this may take a while)"
    DONE = "Feed successfully added"


def _no_progress(message: str) -> None:
    pass


class FeedService:
    def __init__(
        self,
        feed_repo: "FeedRepository",
        feed_fetcher: "FeedFetcher",
        favicon_finder: "FaviconFinder",
        content_pipeline: "ContentPipeline",
        publisher: "EventPublisher",
        history_window: timedelta,
        relays: list[str],
        dry_run: bool = False,
    ):
        self.feed_repo = feed_repo
        self.feed_fetcher = feed_fetcher
        self.favicon_finder = favicon_finder
        self.content_pipeline = content_pipeline
        self.publisher = publisher
        self.history_window = history_window
        self.relays = relays
        self.dry_run = dry_run

    async def validate_feed(self, url: str) -> ParsedFeed:
        try:
            return await self.feed_fetcher.fetch(url)
        except FeedFetchException as exc:
            logger.info(f"No valid feed found on {url}: {exc}", extra={"feed_url": url})
            raise InvalidFeedException("No valid feed found at URL") from exc

    async def resolve_metadata(self, url: str, metadata: FeedMetadata) -> FeedMetadata:
        """Fill in a missing feed image from the site's favicon."""
        if metadata.image:
            return metadata

        image = await self.favicon_finder.find(url)
        logger.debug(f"Using image {image} for feed", extra={"feed_url": url})
        return FeedMetadata(
            title=metadata.title,
            description=metadata.description,
            link=metadata.link,
            image=image,
        )

    async def publish_metadata(self, feed: FeedSource, metadata: FeedMetadata):
        metadata = await self.resolve_metadata(feed.url, metadata)
        message = self.content_pipeline.build_profile_metadata(feed, metadata)
        return await self.publisher.publish(message)

    async def publish_items(
        self,
        feed: FeedSource,
        items: list[FeedItem],
        window: timedelta,
        now: Optional[datetime] = None,
    ) -> int:
        """Publish every item inside ``window``. Returns how many were handed to the publisher."""
        now = now or datetime.now(timezone.utc)
        published = 0
        for item in items:
            try:
                note = self.content_pipeline.build_note(feed, item, window, now)
                if note is None:
                    continue
                await self.publisher.publish(note)
            except Exception:
                logger.exception(
                    f"Skipping item {item.link or item.title!r}", extra={"feed_url": feed.url}
                )
                continue
            published += 1
        return published

    async def add_feed(
        self, url: str, progress: ProgressCallback = _no_progress
    ) -> FeedSource:
        """Register a feed: validate, dedupe, mint its identity, store, announce, backfill.

        ``progress`` receives the name of each stage as it starts.

        Raises:
            BadRequestException: Empty URL.
            InvalidFeedException: The URL does not serve a feed.
            FeedAlreadyExistsException: The URL is already registered.
            PersistenceException: The record could not be stored.
        """
        url = (url or "").strip()
        if not url:
            raise BadRequestException("Feed URL is required")

        progress(AddFeedStage.VALIDATING)
        parsed = await self.validate_feed(url)

        progress(AddFeedStage.CHECKING_DUPLICATES)
        if await self.feed_repo.get_by_url(url) is not None:
            logger.warning("Feed already exists", extra={"feed_url": url})
            raise FeedAlreadyExistsException("Feed already exists")

        progress(AddFeedStage.GENERATING_KEYS)
        now = datetime.now(timezone.utc)
        feed = FeedSource.create(url, generate_identity(), now)

        progress(AddFeedStage.SAVING)
        await self.feed_repo.add(feed)
        logger.info(f"Added feed {url} with public key {feed.npub}", extra={"feed_url": url})

        if self.dry_run:
            progress(AddFeedStage.DRY_RUN_METADATA)
        else:
            progress(AddFeedStage.PUBLISHING_METADATA)
        await self.publish_metadata(feed, parsed.metadata)

        progress(AddFeedStage.PROCESSING_HISTORY)
        logger.info("Parsing post history of new feed", extra={"feed_url": url})
        count = await self.publish_items(feed, parsed.items, self.history_window, now)
        logger.info(
            f"Finished parsing post history of new feed, {count} posts published",
            extra={"feed_url": url},
        )

        progress(AddFeedStage.DONE)
        return feed

    async def delete_feed(self, url: str) -> None:
        if not await self.feed_repo.delete(url):
            raise NotFoundException("Feed not found")
        logger.info("Feed removed", extra={"feed_url": url})

    async def list_feeds(self) -> list[FeedSource]:
        return await self.feed_repo.get_all()

    async def lookup_nip05(self, name: Optional[str]) -> dict:
        """NIP-05 document for a feed. Names are feed URLs."""
        if not name or name == "_":
            return {"names": {}, "relays": {}}

        feed = await self.feed_repo.get_by_url(name)
        if feed is None:
            return {"names": {}, "relays": {}}

        return {
            "names": {name: feed.public_key},
            "relays": {feed.public_key: list(self.relays)},
        }
