import asyncio
import json
import logging

import pytest

from feedstr.main.log_context import get_log_context, log_context
from feedstr.main.logging import ContextJSONFormatter


def test_log_context_is_restored():
    with log_context(feed_url="https://example.com/feed.xml"):
        with log_context(job_id="abc"):
            assert get_log_context() == {"feed_url": "https://example.com/feed.xml", "job_id": "abc"}
        assert get_log_context() == {"feed_url": "https://example.com/feed.xml"}
    assert get_log_context() == {}


@pytest.mark.asyncio
async def test_context_is_per_task():
    async def worker(name):
        with log_context(feed_url=name):
            await asyncio.sleep(0.01)
            return get_log_context()["feed_url"]

    assert await asyncio.gather(worker("a"), worker("b")) == ["a", "b"]


def test_json_formatter_includes_context_and_extra():
    record = logging.LogRecord("feedstr.test", logging.INFO, __file__, 1, "hello", None, None)
    record.relay = "wss://relay.test"

    with log_context(job_id="abc"):
        payload = json.loads(ContextJSONFormatter().format(record))

    assert payload["message"] == "hello"
    assert payload["level"] == "info"
    assert payload["job_id"] == "abc"
    assert payload["relay"] == "wss://relay.test"
    assert "lineno" not in payload
    assert "taskName" not in payload
