import asyncio
from datetime import datetime, timedelta, timezone

import pytest
import sqlalchemy as sa

from feedstr.database.database import DatabaseSessionManager
from feedstr.feeds.domain.feed_repo import FeedRepository
from feedstr.main.exceptions import FeedAlreadyExistsException
from feedstr.main.models import FeedState
from feedstr.nostr.keys import generate_identity

NOW = datetime(2024, 5, 1, 12, 0, tzinfo=timezone.utc)


@pytest.mark.asyncio
async def test_add_and_get_by_url(feed_repo, make_feed):
    feed = make_feed()

    await feed_repo.add(feed)
    stored = await feed_repo.get_by_url(feed.url)

    assert stored.url == feed.url
    assert stored.public_key == feed.public_key
    assert stored.secret_key == feed.secret_key
    assert stored.state == FeedState.ACTIVE
    assert stored.failure_count == 0
    assert stored.last_success == feed.last_success
    assert stored.last_failure is None


@pytest.mark.asyncio
async def test_get_unknown_url_returns_none(feed_repo):
    assert await feed_repo.get_by_url("https://nowhere.test/feed") is None


@pytest.mark.asyncio
async def test_duplicate_url_is_rejected(feed_repo, make_feed):
    await feed_repo.add(make_feed())

    with pytest.raises(FeedAlreadyExistsException):
        await feed_repo.add(make_feed(identity=generate_identity()))


@pytest.mark.asyncio
async def test_record_failure_increments_and_breaks_at_threshold(feed_repo, make_feed):
    feed = await feed_repo.add(make_feed())

    first = await feed_repo.record_failure(feed.url, NOW, failure_threshold=3)
    second = await feed_repo.record_failure(feed.url, NOW, failure_threshold=3)
    third = await feed_repo.record_failure(feed.url, NOW + timedelta(minutes=1), failure_threshold=3)

    assert (first.failure_count, first.state) == (1, FeedState.ACTIVE)
    assert (second.failure_count, second.state) == (2, FeedState.ACTIVE)
    assert (third.failure_count, third.state) == (3, FeedState.BROKEN)
    assert third.last_failure == NOW + timedelta(minutes=1)


@pytest.mark.asyncio
async def test_concurrent_failures_are_not_lost(feed_repo, make_feed):
    feed = await feed_repo.add(make_feed())

    await asyncio.gather(
        *(feed_repo.record_failure(feed.url, NOW, failure_threshold=100) for _ in range(5))
    )

    stored = await feed_repo.get_by_url(feed.url)
    assert stored.failure_count == 5


@pytest.mark.asyncio
async def test_record_success_resets_health(feed_repo, make_feed):
    feed = await feed_repo.add(make_feed())
    for _ in range(3):
        await feed_repo.record_failure(feed.url, NOW, failure_threshold=3)

    recovered = await feed_repo.record_success(feed.url, NOW + timedelta(days=1))

    assert recovered.state == FeedState.ACTIVE
    assert recovered.failure_count == 0
    assert recovered.last_success == NOW + timedelta(days=1)
    assert recovered.last_failure is None


@pytest.mark.asyncio
async def test_get_all_and_delete(feed_repo, make_feed):
    await feed_repo.add(make_feed("https://b.example/feed"))
    await feed_repo.add(make_feed("https://a.example/feed", identity=generate_identity()))

    urls = [feed.url for feed in await feed_repo.get_all()]
    assert urls == ["https://a.example/feed", "https://b.example/feed"]

    assert await feed_repo.delete("https://a.example/feed") is True
    assert await feed_repo.delete("https://a.example/feed") is False
    assert [feed.url for feed in await feed_repo.get_all()] == ["https://b.example/feed"]


@pytest.mark.asyncio
async def test_migrate_upgrades_legacy_store(tmp_path):
    """A store from before health tracking only has pub, sec and url."""
    url = f"sqlite+aiosqlite:///{tmp_path / 'legacy.db'}"
    identity = generate_identity()

    manager = DatabaseSessionManager()
    manager.init(url)
    async with manager.connect() as connection:
        await connection.execute(sa.text("CREATE TABLE feeds (pub TEXT PRIMARY KEY, sec TEXT, url TEXT)"))
        await connection.execute(
            sa.text("INSERT INTO feeds (pub, sec, url) VALUES (:pub, :sec, :url)"),
            {"pub": identity.public_key, "sec": identity.secret_key, "url": "https://old.example/rss"},
        )

    await manager.migrate()
    # Running it again is a no-op
    await manager.migrate()

    stored = await FeedRepository(manager).get_by_url("https://old.example/rss")
    await manager.close()

    assert stored.state == FeedState.ACTIVE
    assert stored.failure_count == 0
    assert stored.last_success is None
