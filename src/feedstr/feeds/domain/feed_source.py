from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TYPE_CHECKING, Optional

from feedstr.main.models import FeedState
from feedstr.nostr.keys import FeedIdentity, encode_npub

if TYPE_CHECKING:
    from feedstr.database.tables.feeds_table import Feeds as FeedsTable


def as_utc(value: Optional[datetime]) -> Optional[datetime]:
    """SQLite hands back naive datetimes; everything we store is UTC."""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


@dataclass
class FeedSource:
    url: str
    public_key: str
    secret_key: str = field(repr=False)
    state: FeedState = FeedState.ACTIVE
    failure_count: int = 0
    last_success: Optional[datetime] = None
    last_failure: Optional[datetime] = None

    @property
    def npub(self) -> str:
        return encode_npub(self.public_key)

    @property
    def is_broken(self) -> bool:
        return self.state == FeedState.BROKEN

    @classmethod
    def create(cls, url: str, identity: FeedIdentity, now: datetime) -> "FeedSource":
        """A freshly validated feed starts active with a clean failure history."""
        return cls(
            url=url,
            public_key=identity.public_key,
            secret_key=identity.secret_key,
            state=FeedState.ACTIVE,
            failure_count=0,
            last_success=now,
            last_failure=None,
        )

    @classmethod
    def to_domain(cls, record: "FeedsTable") -> "FeedSource":
        return cls(
            url=record.url,
            public_key=record.pub,
            secret_key=record.sec,
            state=FeedState(record.state or FeedState.ACTIVE.value),
            failure_count=record.failure_count or 0,
            last_success=as_utc(record.last_success),
            last_failure=as_utc(record.last_failure),
        )
