from datetime import datetime, timezone

import pytest

from feedstr.database.database import DatabaseSessionManager
from feedstr.feeds.domain.feed_repo import FeedRepository
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.nostr.keys import generate_identity


@pytest.fixture
async def sessionmanager(test_settings):
    """A fresh SQLite store under tmp_path, migrated and closed after the test."""
    manager = DatabaseSessionManager()
    manager.init(test_settings.database_url, pool_size=test_settings.max_workers)
    await manager.migrate()
    yield manager
    await manager.close()


@pytest.fixture
def feed_repo(sessionmanager) -> FeedRepository:
    return FeedRepository(sessionmanager)


@pytest.fixture(scope="session")
def identity():
    return generate_identity()


@pytest.fixture
def make_feed(identity):
    def _make_feed(url: str = "https://example.com/feed.xml", **overrides) -> FeedSource:
        keys = overrides.pop("identity", identity)
        feed = FeedSource.create(url, keys, datetime(2024, 1, 1, tzinfo=timezone.utc))
        for key, value in overrides.items():
            setattr(feed, key, value)
        return feed

    return _make_feed
