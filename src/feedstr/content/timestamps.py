import re
from datetime import datetime, timezone
from email.utils import parsedate_to_datetime
from typing import Iterable, Optional

from feedstr.feeds.domain.feed_item import FeedItem
from feedstr.main.exceptions import UnresolvableTimestampException

DEFAULT_DATE_FORMATS = (
    "%a, %d %b %Y %H:%M:%S %z",
    "%a, %d %b %Y %H:%M:%S %Z",
    "%d %b %y %H:%M %Z",
    "%d %b %y %H:%M %z",
    "%Y-%m-%dT%H:%M:%S%z",
    "%Y-%m-%dT%H:%M:%S.%f%z",
    "%Y-%m-%dT%H:%M:%SZ",
    "%Y-%m-%d %H:%M:%S",
    "%Y-%m-%d",
)


# strptime stops at microseconds
_EXTRA_FRACTION = re.compile(r"(\.\d{6})\d+")


def _as_utc(parsed: datetime) -> datetime:
    if parsed.tzinfo is None:
        return parsed.replace(tzinfo=timezone.utc)
    return parsed.astimezone(timezone.utc)


def parse_date_text(value: str, formats: Iterable[str]) -> Optional[datetime]:
    """Try each layout in order, then RFC 822 with any zone name.

    Naive results are taken as UTC.
    """
    value = _EXTRA_FRACTION.sub(r"\1", value.strip())
    for layout in formats:
        try:
            return _as_utc(datetime.strptime(value, layout))
        except ValueError:
            continue

    try:
        return _as_utc(parsedate_to_datetime(value))
    except (TypeError, ValueError):
        return None


class TimestampResolver:
    def __init__(self, formats: Optional[Iterable[str]] = None):
        self.formats = tuple(formats) if formats else DEFAULT_DATE_FORMATS

    @classmethod
    def from_settings(cls, settings) -> "TimestampResolver":
        return cls(settings.custom_date_formats or None)

    def resolve(self, item: FeedItem) -> datetime:
        """Best available publication time of an item.

        Raises:
            UnresolvableTimestampException: No parsed or textual date could be used.
        """
        for parsed in (item.published_parsed, item.updated_parsed):
            if parsed is not None:
                return parsed

        for text in (item.published, item.updated):
            if not text:
                continue
            resolved = parse_date_text(text, self.formats)
            if resolved is not None:
                return resolved

        raise UnresolvableTimestampException(
            f"Could not resolve a timestamp for {item.link or item.title!r}"
        )
