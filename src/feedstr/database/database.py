import contextlib
from typing import AsyncIterator

import sqlalchemy as sa
from sqlalchemy.ext.asyncio import (
    AsyncConnection,
    AsyncEngine,
    AsyncSession,
    async_sessionmaker,
    create_async_engine,
)

from feedstr.database.tables.base_class import Base
from feedstr.database.tables.feeds_table import HEALTH_COLUMNS, Feeds
from feedstr.main.exceptions import NotReadyException
from feedstr.main.logging import get_logger

logger = get_logger(__name__)


class DatabaseSessionManager:
    """Owns the single engine (and its connection pool) shared by workers and jobs."""

    def __init__(self):
        self._engine: AsyncEngine | None = None
        self._sessionmaker: async_sessionmaker[AsyncSession] | None = None

    @property
    def is_initialized(self) -> bool:
        return self._engine is not None

    def init(self, host: str, pool_size: int = 5):
        # If already initialized, don't reinitialize (important for tests)
        if self._engine is not None:
            logger.debug("Database already initialized, skipping reinitialization")
            return

        engine_kwargs = {"connect_args": {"timeout": 30}}
        # In-memory SQLite uses a static single-connection pool
        if ":memory:" not in host:
            engine_kwargs.update(pool_size=pool_size, max_overflow=pool_size)

        self._engine = create_async_engine(host, **engine_kwargs)
        self._sessionmaker = async_sessionmaker(
            autocommit=False,
            bind=self._engine,
            autobegin=False,
            expire_on_commit=False,
        )
        logger.info(f"Database opened at {host}")

    async def close(self):
        if self._engine is None:
            logger.debug("DatabaseSessionManager already closed or not initialized")
            return
        await self._engine.dispose()
        self._engine = None
        self._sessionmaker = None
        logger.info("Database closed")

    async def migrate(self):
        """Bring the schema up to date. Safe to run on every startup.

        Older stores only have (pub, sec, url); the health columns and the
        unique URL index are added when missing.
        """
        async with self.connect() as connection:
            await connection.run_sync(Base.metadata.create_all)

            existing = await connection.run_sync(
                lambda sync_conn: {
                    column["name"]
                    for column in sa.inspect(sync_conn).get_columns(Feeds.__tablename__)
                }
            )
            missing = [name for name in HEALTH_COLUMNS if name not in existing]
            if missing:
                logger.info(
                    "Migrating database: adding state tracking columns",
                    extra={"columns": missing},
                )
                for name in missing:
                    await connection.execute(
                        sa.text(f"ALTER TABLE {Feeds.__tablename__} ADD COLUMN {HEALTH_COLUMNS[name]}")
                    )

            await connection.execute(
                sa.text(
                    f"CREATE UNIQUE INDEX IF NOT EXISTS ix_feeds_url ON {Feeds.__tablename__} (url)"
                )
            )

    @contextlib.asynccontextmanager
    async def connect(self) -> AsyncIterator[AsyncConnection]:
        if self._engine is None:
            raise NotReadyException("DatabaseSessionManager is not initialized")

        async with self._engine.begin() as connection:
            try:
                yield connection
            except Exception:
                await connection.rollback()
                raise

    @contextlib.asynccontextmanager
    async def session(self) -> AsyncIterator[AsyncSession]:
        if self._sessionmaker is None:
            raise NotReadyException("DatabaseSessionManager is not initialized")

        session = self._sessionmaker()
        try:
            yield session
        except Exception:
            await session.rollback()
            raise
        finally:
            await session.close()


sessionmanager = DatabaseSessionManager()
