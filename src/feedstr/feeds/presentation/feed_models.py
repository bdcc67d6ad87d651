from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.models import FeedState


class FeedPublic(BaseModel):
    url: str
    npub: str
    state: FeedState
    failure_count: int
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    @classmethod
    def from_domain(cls, feed: FeedSource) -> "FeedPublic":
        return cls(
            url=feed.url,
            npub=feed.npub,
            state=feed.state,
            failure_count=feed.failure_count,
            last_success=feed.last_success,
            last_failure=feed.last_failure,
        )


class FeedIndex(BaseModel):
    relays: list[str]
    feeds: list[FeedPublic]
    version: str


class Nip05Response(BaseModel):
    names: dict[str, str]
    relays: dict[str, list[str]]
