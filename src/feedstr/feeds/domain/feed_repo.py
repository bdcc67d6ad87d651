from datetime import datetime
from typing import TYPE_CHECKING, Optional

import sqlalchemy as sa
from sqlalchemy.exc import IntegrityError, SQLAlchemyError

from feedstr.database.tables.feeds_table import Feeds as FeedsTable
from feedstr.feeds.domain.feed_source import FeedSource
from feedstr.main.exceptions import FeedAlreadyExistsException, PersistenceException
from feedstr.main.models import FeedState

if TYPE_CHECKING:
    from feedstr.database.database import DatabaseSessionManager


class FeedRepository:
    """Keyed record store for feed sources.

    Every operation borrows its own short-lived session from the shared
    session manager, so concurrent workers never share a session.
    """

    def __init__(self, sessionmanager: "DatabaseSessionManager"):
        self.sessionmanager = sessionmanager

    async def get_all(self) -> list[FeedSource]:
        stmt = sa.select(FeedsTable).order_by(FeedsTable.url)

        async with self.sessionmanager.session() as session, session.begin():
            feeds_db = await session.scalars(stmt)
            return [FeedSource.to_domain(feed_db) for feed_db in feeds_db]

    async def get_by_url(self, url: str) -> Optional[FeedSource]:
        stmt = sa.select(FeedsTable).where(FeedsTable.url == url)

        async with self.sessionmanager.session() as session, session.begin():
            feed_db = await session.scalar(stmt)
            return FeedSource.to_domain(feed_db) if feed_db is not None else None

    async def add(self, feed: FeedSource) -> FeedSource:
        """Insert a new feed.

        Raises:
            FeedAlreadyExistsException: A record for this URL (or key) exists.
            PersistenceException: The write failed; nothing was stored.
        """
        stmt = sa.insert(FeedsTable).values(
            pub=feed.public_key,
            sec=feed.secret_key,
            url=feed.url,
            state=feed.state.value,
            failure_count=feed.failure_count,
            last_success=feed.last_success,
            last_failure=feed.last_failure,
        )

        try:
            async with self.sessionmanager.session() as session, session.begin():
                await session.execute(stmt)
        except IntegrityError as exc:
            raise FeedAlreadyExistsException("Feed already exists") from exc
        except SQLAlchemyError as exc:
            raise PersistenceException(f"Can't add feed: {exc}") from exc

        return feed

    async def update_state(
        self,
        url: str,
        state: FeedState,
        failure_count: int,
        last_success: Optional[datetime],
        last_failure: Optional[datetime],
    ) -> Optional[FeedSource]:
        stmt = (
            sa.update(FeedsTable)
            .where(FeedsTable.url == url)
            .values(
                state=state.value,
                failure_count=failure_count,
                last_success=last_success,
                last_failure=last_failure,
            )
            .returning(FeedsTable)
            .execution_options(synchronize_session=False)
        )
        return await self._update_returning(stmt)

    async def record_failure(
        self, url: str, now: datetime, failure_threshold: int
    ) -> Optional[FeedSource]:
        """Atomically count a failed fetch and flip the feed to broken at the threshold.

        Done in a single statement so concurrent updates to one feed cannot
        lose increments.
        """
        new_count = FeedsTable.failure_count + 1
        stmt = (
            sa.update(FeedsTable)
            .where(FeedsTable.url == url)
            .values(
                failure_count=new_count,
                last_failure=now,
                state=sa.case(
                    (new_count >= failure_threshold, FeedState.BROKEN.value),
                    else_=FeedsTable.state,
                ),
            )
            .returning(FeedsTable)
            .execution_options(synchronize_session=False)
        )
        return await self._update_returning(stmt)

    async def record_success(self, url: str, now: datetime) -> Optional[FeedSource]:
        return await self.update_state(
            url,
            state=FeedState.ACTIVE,
            failure_count=0,
            last_success=now,
            last_failure=None,
        )

    async def delete(self, url: str) -> bool:
        stmt = sa.delete(FeedsTable).where(FeedsTable.url == url)

        try:
            async with self.sessionmanager.session() as session, session.begin():
                result = await session.execute(stmt)
        except SQLAlchemyError as exc:
            raise PersistenceException(f"Can't remove feed: {exc}") from exc

        return result.rowcount > 0

    async def _update_returning(self, stmt) -> Optional[FeedSource]:
        try:
            async with self.sessionmanager.session() as session, session.begin():
                feed_db = await session.scalar(stmt)
                feed = FeedSource.to_domain(feed_db) if feed_db is not None else None
        except SQLAlchemyError as exc:
            raise PersistenceException(f"Can't update feed state: {exc}") from exc

        return feed
