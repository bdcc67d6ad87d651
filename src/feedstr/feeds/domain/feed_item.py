from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional


@dataclass(frozen=True)
class FeedItem:
    """One entry of a fetched feed. Consumed once by the content pipeline."""

    title: str = ""
    description: str = ""
    link: str = ""
    published_parsed: Optional[datetime] = None
    updated_parsed: Optional[datetime] = None
    published: str = ""
    updated: str = ""
    categories: tuple[str, ...] = ()
    enclosures: tuple[str, ...] = ()


@dataclass(frozen=True)
class FeedMetadata:
    title: str = ""
    description: str = ""
    link: str = ""
    image: Optional[str] = None


@dataclass(frozen=True)
class ParsedFeed:
    metadata: FeedMetadata
    items: list[FeedItem] = field(default_factory=list)
