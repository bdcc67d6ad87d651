from datetime import datetime, timezone

import pytest

from feedstr.nostr.publisher import EventPublisher
from feedstr.nostr.signed_message import sign_note
from tests.fakes import FakeRelayClient

RELAYS = ["wss://one.test", "wss://two.test", "wss://three.test"]


@pytest.fixture
def message(identity):
    return sign_note(identity.secret_key, "hello", [], datetime.now(timezone.utc))


@pytest.mark.asyncio
async def test_failing_relay_does_not_stop_the_others(message):
    client = FakeRelayClient({"wss://two.test": "down"})
    publisher = EventPublisher(client, RELAYS)

    report = await publisher.publish(message)

    assert [relay for relay, _ in client.sent] == RELAYS
    assert report.delivered == ["wss://one.test", "wss://three.test"]
    assert set(report.failed) == {"wss://two.test"}


@pytest.mark.asyncio
async def test_rejection_and_timeout_are_recorded(message):
    client = FakeRelayClient({"wss://one.test": "reject", "wss://three.test": "timeout"})
    publisher = EventPublisher(client, RELAYS)

    report = await publisher.publish(message)

    assert report.delivered == ["wss://two.test"]
    assert report.failed["wss://one.test"] == "blocked: spam"
    assert "Timed out" in report.failed["wss://three.test"]


@pytest.mark.asyncio
async def test_each_relay_is_tried_once(message):
    client = FakeRelayClient({relay: "down" for relay in RELAYS})
    publisher = EventPublisher(client, RELAYS)

    report = await publisher.publish(message)

    assert len(client.sent) == len(RELAYS)
    assert not report.any_delivered


@pytest.mark.asyncio
async def test_dry_run_does_no_network_io(message):
    client = FakeRelayClient({})
    publisher = EventPublisher(client, RELAYS, dry_run=True)

    report = await publisher.publish(message)

    assert client.sent == []
    assert report.dry_run
    assert report.delivered == []
