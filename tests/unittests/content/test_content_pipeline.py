import json
from datetime import datetime, timedelta, timezone

import pytest

from feedstr.content.content_pipeline import ContentPipeline, provenance_tag
from feedstr.content.timestamps import TimestampResolver
from feedstr.feeds.domain.feed_item import FeedItem, FeedMetadata
from feedstr.nostr.signed_message import NOTE, PROFILE_METADATA

UTC = timezone.utc
NOW = datetime(2024, 5, 1, 12, 0, tzinfo=UTC)
WINDOW = timedelta(minutes=15)
FEED_URL = "https://example.com/feed.xml"


@pytest.fixture
def pipeline():
    return ContentPipeline(
        TimestampResolver(),
        mirror_patterns=["nitter", "telegram"],
        nip05_domain="feedstr.test",
    )


@pytest.fixture
def feed(make_feed):
    return make_feed(FEED_URL)


def make_item(**overrides) -> FeedItem:
    values = dict(
        title="Hello",
        description="<p>World &amp; more</p>",
        link="https://example.com/posts/1?x=a b",
        published_parsed=NOW - timedelta(minutes=5),
        categories=("news", "tech"),
        enclosures=("https://example.com/audio.mp3",),
    )
    values.update(overrides)
    return FeedItem(**values)


def test_note_content_and_tags(pipeline, feed):
    item = make_item()

    note = pipeline.build_note(feed, item, WINDOW, NOW)

    assert note.kind == NOTE
    assert note.author == feed.public_key
    assert note.created_at == int((NOW - timedelta(minutes=5)).timestamp())
    assert note.content == (
        "Hello\n\nWorld & more"
        "\n\nhttps://example.com/audio.mp3"
        "\n\nhttps://example.com/posts/1?x=a b"
    )
    assert note.tags == (
        ("t", "news"),
        ("t", "tech"),
        ("proxy", FEED_URL + "#https%3A%2F%2Fexample.com%2Fposts%2F1%3Fx%3Da+b", "rss"),
    )


def test_note_signature_verifies(pipeline, feed):
    note = pipeline.build_note(feed, make_item(), WINDOW, NOW)

    assert note.verify()


def test_exactly_one_provenance_tag(pipeline, feed):
    note = pipeline.build_note(feed, make_item(categories=()), WINDOW, NOW)

    proxies = [tag for tag in note.tags if tag[0] == "proxy"]
    assert proxies == [tuple(provenance_tag(FEED_URL, make_item().link))]


def test_item_older_than_window_is_dropped(pipeline, feed):
    item = make_item(published_parsed=NOW - WINDOW - timedelta(seconds=1))

    assert pipeline.build_note(feed, item, WINDOW, NOW) is None


def test_window_boundary_is_inclusive(pipeline, feed):
    item = make_item(published_parsed=NOW - WINDOW)

    assert pipeline.build_note(feed, item, WINDOW, NOW) is not None


def test_undated_item_is_dropped(pipeline, feed):
    item = make_item(published_parsed=None, published="whenever")

    assert pipeline.build_note(feed, item, WINDOW, NOW) is None


def test_text_timestamp_sets_created_at(pipeline, feed):
    item = make_item(published_parsed=None, published="Wed, 01 May 2024 11:55:00 +0000")

    note = pipeline.build_note(feed, item, WINDOW, NOW)

    assert note.created_at == int(datetime(2024, 5, 1, 11, 55, tzinfo=UTC).timestamp())


def test_mirror_links_skip_title(pipeline, feed):
    item = make_item(
        title="Duplicated title",
        description="Duplicated title and body",
        link="https://nitter.example/user/status/1",
        enclosures=(),
    )

    note = pipeline.build_note(feed, item, WINDOW, NOW)

    assert note.content == "Duplicated title and body\n\nhttps://nitter.example/user/status/1"


def test_scripts_never_reach_content(pipeline, feed):
    item = make_item(description="<script>steal()</script><b>safe</b>", enclosures=())

    note = pipeline.build_note(feed, item, WINDOW, NOW)

    assert "steal" not in note.content
    assert note.content.startswith("Hello\n\nsafe")


def test_inline_images_become_urls(pipeline, feed):
    item = make_item(
        description='<p>Pic <img src="https://example.com/pic.jpg" alt="p"></p>',
        enclosures=(),
        link="",
    )

    note = pipeline.build_note(feed, item, WINDOW, NOW)

    assert note.content == "Hello\n\nPic https://example.com/pic.jpg\n"


def test_build_notes_filters(pipeline, feed):
    items = [
        make_item(link="https://example.com/new"),
        make_item(link="https://example.com/old", published_parsed=NOW - timedelta(days=1)),
        make_item(link="https://example.com/undated", published_parsed=None),
    ]

    notes = pipeline.build_notes(feed, items, WINDOW, NOW)

    assert len(notes) == 1
    assert notes[0].content.endswith("https://example.com/new")


def test_profile_metadata(pipeline, feed):
    metadata = FeedMetadata(
        title="Example",
        description="All the news",
        link="https://example.com",
        image="https://example.com/logo.png",
    )

    message = pipeline.build_profile_metadata(feed, metadata, NOW)

    assert message.kind == PROFILE_METADATA
    assert message.created_at == int(NOW.timestamp())
    assert json.loads(message.content) == {
        "name": "Example (RSS Feed)",
        "about": "All the news\n\nhttps://example.com",
        "picture": "https://example.com/logo.png",
        "nip05": FEED_URL + "@feedstr.test",
    }
    assert message.verify()
