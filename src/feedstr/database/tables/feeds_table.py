from datetime import datetime
from typing import Optional

from sqlalchemy import DateTime, Index, Integer, String, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from feedstr.database.tables.base_class import Base


class Feeds(Base):
    """One row per registered feed URL with its identity keys and health state."""

    __tablename__ = "feeds"

    pub: Mapped[str] = mapped_column(String(64), primary_key=True)
    sec: Mapped[str] = mapped_column(String(64), nullable=False)
    url: Mapped[str] = mapped_column(Text, nullable=False)

    # Health tracking, added to pre-existing stores by schema evolution
    state: Mapped[str] = mapped_column(
        Text, nullable=False, default="active", server_default=text("'active'")
    )
    failure_count: Mapped[int] = mapped_column(
        Integer, nullable=False, default=0, server_default=text("0")
    )
    last_success: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )
    last_failure: Mapped[Optional[datetime]] = mapped_column(
        DateTime(timezone=True), nullable=True
    )

    __table_args__ = (Index("ix_feeds_url", "url", unique=True),)


# Columns that older stores were created without, as SQLite column definitions
HEALTH_COLUMNS = {
    "state": "state TEXT DEFAULT 'active'",
    "failure_count": "failure_count INTEGER DEFAULT 0",
    "last_success": "last_success DATETIME",
    "last_failure": "last_failure DATETIME",
}
