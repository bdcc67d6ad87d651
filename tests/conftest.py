"""
Root-level conftest for all tests.

Settings are pinned to explicit test values so nothing depends on a local
.env file, and the settings singleton is reset after every test.
"""
import os

# Keep log output readable under pytest
os.environ.setdefault("JSON_LOGS", "false")

import pytest

from feedstr.main.config import Settings, reset_settings, set_settings


@pytest.fixture
def test_settings(tmp_path) -> Settings:
    return Settings(
        _env_file=None,
        db_path=str(tmp_path / "feedstr-test.db"),
        relays_to_publish_to="wss://relay.one.test,wss://relay.two.test",
        nip05_domain="feedstr.test",
        default_feed_image="https://feedstr.test/default.png",
        fetch_interval_seconds=900,
        metadata_interval_seconds=43200,
        history_interval_seconds=3600,
        max_workers=3,
        max_failure_attempts=3,
        broken_feed_retry_interval_seconds=86400,
        job_retention_seconds=300,
        max_concurrent_add_jobs=2,
        shutdown_grace_seconds=1,
        dry_run=False,
    )


@pytest.fixture(autouse=True)
def _settings_override(test_settings):
    set_settings(test_settings)
    yield
    reset_settings()
