"""Health state machine for feed sources.

A feed starts ``active``. Every failed fetch increments its failure counter;
once the counter reaches the threshold the feed becomes ``broken``. Any
successful fetch resets the counter and returns the feed to ``active``.

Broken feeds are retried on a fixed interval, not with exponential backoff.
"""

from datetime import datetime, timedelta

from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.models import FeedState


class FeedHealthPolicy:
    def __init__(self, failure_threshold: int, retry_interval: timedelta):
        if failure_threshold <= 0:
            raise ValueError("failure_threshold must be greater than zero")
        self.failure_threshold = failure_threshold
        self.retry_interval = retry_interval

    @classmethod
    def from_settings(cls, settings) -> "FeedHealthPolicy":
        return cls(
            failure_threshold=settings.max_failure_attempts,
            retry_interval=timedelta(seconds=settings.broken_feed_retry_interval_seconds),
        )

    def is_eligible(self, feed: FeedSource, now: datetime) -> bool:
        """Whether the scheduler should attempt a fetch for this feed now."""
        if feed.state != FeedState.BROKEN:
            return True

        if feed.last_failure is None:
            return True

        return now - feed.last_failure >= self.retry_interval

    def state_after_failure(self, current: FeedState, failure_count: int) -> FeedState:
        """A failure never heals a feed; it can only push it into broken."""
        if failure_count >= self.failure_threshold:
            return FeedState.BROKEN
        return current

    def next_retry_at(self, feed: FeedSource) -> datetime | None:
        if feed.state != FeedState.BROKEN or feed.last_failure is None:
            return None
        return feed.last_failure + self.retry_interval
