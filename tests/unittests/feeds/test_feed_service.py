from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import pytest

from feedstr.content.content_pipeline import ContentPipeline
from feedstr.content.timestamps import TimestampResolver
from feedstr.feeds.application.feed_service import AddFeedStage, FeedService
from feedstr.feeds.domain.feed_item import FeedItem
from feedstr.main.exceptions import (
    BadRequestException,
    FeedAlreadyExistsException,
    InvalidFeedException,
    NotFoundException,
    PersistenceException,
)
from feedstr.nostr.signed_message import NOTE, PROFILE_METADATA
from tests.fakes import FakeFaviconFinder, FakeFetcher, RecordingPublisher, parsed_feed

URL = "https://example.com/feed.xml"


def recent_item(link: str, minutes_ago: int) -> FeedItem:
    return FeedItem(
        title=f"Post {link}",
        description="body",
        link=link,
        published_parsed=datetime.now(timezone.utc) - timedelta(minutes=minutes_ago),
    )


@pytest.fixture
def fetcher():
    items = [
        recent_item("https://example.com/1", 10),
        recent_item("https://example.com/2", 50),
        recent_item("https://example.com/old", 60 * 5),
    ]
    return FakeFetcher({URL: parsed_feed(items=items)})


@pytest.fixture
def publisher():
    return RecordingPublisher()


@pytest.fixture
def favicon_finder():
    return FakeFaviconFinder()


@pytest.fixture
def service(feed_repo, fetcher, favicon_finder, publisher):
    return FeedService(
        feed_repo=feed_repo,
        feed_fetcher=fetcher,
        favicon_finder=favicon_finder,
        content_pipeline=ContentPipeline(TimestampResolver(), nip05_domain="feedstr.test"),
        publisher=publisher,
        history_window=timedelta(hours=1),
        relays=["wss://relay.one.test"],
    )


@pytest.mark.asyncio
async def test_add_feed_reports_stages_in_order(service):
    stages = []

    await service.add_feed(URL, progress=stages.append)

    assert stages == [
        AddFeedStage.VALIDATING,
        AddFeedStage.CHECKING_DUPLICATES,
        AddFeedStage.GENERATING_KEYS,
        AddFeedStage.SAVING,
        AddFeedStage.PUBLISHING_METADATA,
        AddFeedStage.PROCESSING_HISTORY,
        AddFeedStage.DONE,
    ]


@pytest.mark.asyncio
async def test_add_feed_stores_and_publishes_history(service, feed_repo, publisher, favicon_finder):
    feed = await service.add_feed(URL)

    stored = await feed_repo.get_by_url(URL)
    assert stored.public_key == feed.public_key
    assert stored.last_success is not None

    # Metadata first, then the two items inside the history window
    assert publisher.kinds() == [PROFILE_METADATA, NOTE, NOTE]
    assert favicon_finder.calls == [URL]
    assert all(message.author == feed.public_key for message in publisher.messages)


@pytest.mark.asyncio
async def test_failing_item_does_not_stop_the_rest(service, publisher, make_feed, monkeypatch):
    pipeline = service.content_pipeline
    build_note = pipeline.build_note

    def build_note_or_fail(feed, item, window, now):
        if item.link == "https://example.com/broken":
            raise ValueError("u64 requires 0 <= value")
        return build_note(feed, item, window, now)

    monkeypatch.setattr(pipeline, "build_note", build_note_or_fail)
    items = [
        recent_item("https://example.com/1", 10),
        recent_item("https://example.com/broken", 20),
        recent_item("https://example.com/2", 30),
    ]

    published = await service.publish_items(make_feed(URL), items, timedelta(hours=1))

    assert published == 2
    assert [message.tags[-1][1] for message in publisher.messages] == [
        URL + "#https%3A%2F%2Fexample.com%2F1",
        URL + "#https%3A%2F%2Fexample.com%2F2",
    ]


@pytest.mark.asyncio
async def test_dry_run_stage_message(service):
    service.dry_run = True
    stages = []

    await service.add_feed(URL, progress=stages.append)

    assert AddFeedStage.DRY_RUN_METADATA in stages
    assert AddFeedStage.PUBLISHING_METADATA not in stages


@pytest.mark.asyncio
async def test_add_invalid_feed(service, feed_repo, publisher):
    with pytest.raises(InvalidFeedException, match="No valid feed found at URL"):
        await service.add_feed("https://example.com/not-a-feed")

    assert await feed_repo.get_all() == []
    assert publisher.messages == []


@pytest.mark.asyncio
async def test_add_empty_url(service):
    with pytest.raises(BadRequestException):
        await service.add_feed("  ")


@pytest.mark.asyncio
async def test_add_duplicate_keeps_original_keys(service, feed_repo):
    original = await service.add_feed(URL)

    with pytest.raises(FeedAlreadyExistsException):
        await service.add_feed(URL)

    stored = await feed_repo.get_by_url(URL)
    assert stored.public_key == original.public_key
    assert stored.secret_key == original.secret_key


@pytest.mark.asyncio
async def test_add_persistence_failure_publishes_nothing(service, publisher, monkeypatch):
    monkeypatch.setattr(
        service.feed_repo, "add", AsyncMock(side_effect=PersistenceException("disk full"))
    )

    with pytest.raises(PersistenceException):
        await service.add_feed(URL)

    assert publisher.messages == []


@pytest.mark.asyncio
async def test_feed_image_skips_favicon(service, fetcher, favicon_finder, publisher):
    fetcher.feeds[URL] = parsed_feed(image="https://example.com/logo.png")

    await service.add_feed(URL)

    assert favicon_finder.calls == []
    assert '"picture": "https://example.com/logo.png"' in publisher.messages[0].content


@pytest.mark.asyncio
async def test_delete_feed(service, feed_repo):
    await service.add_feed(URL)

    await service.delete_feed(URL)

    assert await feed_repo.get_by_url(URL) is None
    with pytest.raises(NotFoundException):
        await service.delete_feed(URL)


@pytest.mark.asyncio
async def test_lookup_nip05(service):
    feed = await service.add_feed(URL)

    assert await service.lookup_nip05(URL) == {
        "names": {URL: feed.public_key},
        "relays": {feed.public_key: ["wss://relay.one.test"]},
    }


@pytest.mark.asyncio
@pytest.mark.parametrize("name", [None, "", "_", "https://unknown.example/feed"])
async def test_lookup_nip05_unknown_names(service, name):
    assert await service.lookup_nip05(name) == {"names": {}, "relays": {}}
