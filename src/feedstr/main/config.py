import logging
import os
import sys
from typing import Optional
from urllib.parse import urlparse

from pydantic import computed_field, model_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from feedstr.definitions import FEEDSTR_VERSION


def split_csv(value: str | None) -> list[str]:
    """Split a comma-separated env value into trimmed, non-empty entries."""
    if not value:
        return []
    return [part.strip() for part in value.split(",") if part.strip()]


def validate_relay_url(url: str) -> str:
    """
    Validate a relay address.

    Rules:
    - Must use ws:// or wss://
    - Must have a hostname

    Raises:
        ValueError: Invalid relay URL

    Examples:
        >>> validate_relay_url("wss://relay.example.com")
        "wss://relay.example.com"

        >>> validate_relay_url("https://relay.example.com")
        ValueError: relay URL must use ws:// or wss://
    """
    parsed = urlparse(url)
    if parsed.scheme not in ("ws", "wss"):
        raise ValueError(f"relay URL must use ws:// or wss://, got: {url}")
    if not parsed.hostname:
        raise ValueError(f"relay URL missing hostname: {url}")
    return url


class Settings(BaseSettings):
    model_config = SettingsConfigDict(env_file=".env", extra="allow")

    app_version: str = FEEDSTR_VERSION

    # Record store
    db_path: str = "./feedstr.db"

    # Web server
    webserver_host: str = "0.0.0.0"
    webserver_port: int = 8061

    # Scheduling
    fetch_interval_seconds: int = 60 * 15
    metadata_interval_seconds: int = 60 * 60 * 12
    history_interval_seconds: int = 60 * 60  # backfill window for newly added feeds
    max_workers: int = 5

    # Feed health
    max_failure_attempts: int = 3
    broken_feed_retry_interval_seconds: int = 60 * 60 * 24

    # Timeouts
    fetch_timeout_seconds: float = 10.0
    publish_timeout_seconds: float = 10.0  # per relay
    favicon_timeout_seconds: float = 5.0
    shutdown_grace_seconds: float = 30.0

    # Publishing
    relays_to_publish_to: str = "wss://nostr.data.haus"
    nip05_domain: str = "feedstr.data.haus"
    default_feed_image: str = (
        "https://upload.wikimedia.org/wikipedia/en/thumb/4/43/Feed-icon.svg/256px-Feed-icon.svg.png"
    )
    dry_run: bool = False

    # Content
    date_formats: Optional[str] = None
    mirror_host_patterns: str = "nitter,telegram"

    # Async add jobs
    job_retention_seconds: float = 60 * 5
    max_concurrent_add_jobs: int = 4

    @model_validator(mode="after")
    def validate_worker_settings(self):
        """Ensure scheduling and worker configuration values are sane."""
        positive = {
            "MAX_WORKERS": self.max_workers,
            "FETCH_INTERVAL_SECONDS": self.fetch_interval_seconds,
            "METADATA_INTERVAL_SECONDS": self.metadata_interval_seconds,
            "HISTORY_INTERVAL_SECONDS": self.history_interval_seconds,
            "MAX_FAILURE_ATTEMPTS": self.max_failure_attempts,
            "MAX_CONCURRENT_ADD_JOBS": self.max_concurrent_add_jobs,
        }
        for name, value in positive.items():
            if value <= 0:
                logging.error(
                    "%s must be greater than zero. Current value: %s", name, value
                )
                sys.exit(1)

        if self.broken_feed_retry_interval_seconds < 0:
            logging.error(
                "BROKEN_FEED_RETRY_INTERVAL_SECONDS cannot be negative. Current value: %s",
                self.broken_feed_retry_interval_seconds,
            )
            sys.exit(1)

        return self

    @model_validator(mode="after")
    def validate_relays(self):
        """Validate RELAYS_TO_PUBLISH_TO entries."""
        relays = split_csv(self.relays_to_publish_to)
        if not relays and not self.dry_run:
            logging.warning(
                "RELAYS_TO_PUBLISH_TO is empty. Events will not be delivered anywhere."
            )
        for relay in relays:
            try:
                validate_relay_url(relay)
            except ValueError as e:
                logging.error(
                    f"Invalid RELAYS_TO_PUBLISH_TO configuration: {e}\n"
                    f"Example: RELAYS_TO_PUBLISH_TO=wss://relay.one,wss://relay.two"
                )
                sys.exit(1)
        return self

    @property
    def relays(self) -> list[str]:
        return split_csv(self.relays_to_publish_to)

    @property
    def mirror_patterns(self) -> list[str]:
        return split_csv(self.mirror_host_patterns)

    @property
    def custom_date_formats(self) -> list[str]:
        return split_csv(self.date_formats)

    @computed_field
    @property
    def database_url(self) -> str:
        return f"sqlite+aiosqlite:///{self.db_path}"


_settings: Optional[Settings] = None


def get_settings() -> Settings:
    """Get settings singleton, creating it if needed.

    Returns:
        Settings: The application settings instance.
    """
    global _settings
    if _settings is None:
        _settings = Settings()
    return _settings


def set_settings(settings: Settings) -> None:
    """Override settings (primarily for testing).

    Args:
        settings: The Settings instance to use.
    """
    global _settings
    _settings = settings


def reset_settings() -> None:
    """Reset settings to None (for test cleanup)."""
    global _settings
    _settings = None


def get_loglevel():
    loglevel = os.getenv("LOGLEVEL", "INFO")

    match loglevel:
        case "INFO":
            return logging.INFO
        case "WARNING":
            return logging.WARNING
        case "ERROR":
            return logging.ERROR
        case "CRITICAL":
            return logging.CRITICAL
        case "DEBUG":
            return logging.DEBUG
        case _:
            return logging.INFO
