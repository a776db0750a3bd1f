"""SQLAlchemy models for the feed store."""

import hashlib

from sqlalchemy import (
    Column, DateTime, ForeignKey, Index, Integer, String, Text, create_engine, event,
)
from sqlalchemy.orm import declarative_base, sessionmaker
from sqlalchemy.pool import StaticPool

Base = declarative_base()

# Bump when the meaning of stored data changes without a column change
SCHEMA_VERSION = 1
SCHEMA_KEY = "schema"


class FeedModel(Base):
    """Database model for feeds."""
    __tablename__ = "feeds"

    id = Column(String(2048), primary_key=True)
    title = Column(Text, nullable=False, default="")
    description = Column(Text, nullable=False, default="")
    categories = Column(Text, nullable=False, default="[]")  # JSON array

    # Where it was fetched from vs. the site it describes
    source_url = Column(String(2048), nullable=False)
    link = Column(String(2048), nullable=False, default="")

    ttl = Column(String(32))
    pub_date = Column(String(64))
    last_fetched = Column(DateTime)  # UTC

    __table_args__ = (
        Index('idx_feeds_source_url', 'source_url'),
    )


class ItemModel(Base):
    """Database model for feed items."""
    __tablename__ = "items"

    id = Column(String(2048), primary_key=True)
    feed_id = Column(
        String(2048),
        ForeignKey("feeds.id", ondelete="CASCADE"),
        nullable=False,
    )

    title = Column(Text)
    author = Column(Text)
    content = Column(Text)
    description = Column(Text)
    text_description = Column(Text)
    categories = Column(Text, nullable=False, default="[]")  # JSON array
    link = Column(String(2048))
    pub_date = Column(String(64))

    __table_args__ = (
        Index('idx_items_feed_id', 'feed_id'),
    )


class MetaModel(Base):
    """Single-row schema fingerprint record."""
    __tablename__ = "meta"

    key = Column(String(32), primary_key=True)
    fingerprint = Column(String(64), nullable=False)
    version = Column(Integer, nullable=False)
    migrated_at = Column(DateTime)


def schema_fingerprint(metadata=None) -> str:
    """Hash of the declared tables, columns and types plus SCHEMA_VERSION."""
    metadata = metadata if metadata is not None else Base.metadata
    parts = [f"version:{SCHEMA_VERSION}"]
    for table in sorted(metadata.tables.values(), key=lambda t: t.name):
        for column in table.columns:
            parts.append(
                f"{table.name}.{column.name}:{column.type}"
                f":{'pk' if column.primary_key else ''}"
                f":{'null' if column.nullable else 'notnull'}"
            )
    return hashlib.sha256("\n".join(parts).encode()).hexdigest()


def _enable_foreign_keys(dbapi_connection, connection_record):
    cursor = dbapi_connection.cursor()
    cursor.execute("PRAGMA foreign_keys=ON")
    cursor.close()


def init_db(database_url: str):
    """Create an engine; in-memory SQLite shares one connection across threads."""
    if database_url in ("sqlite://", "sqlite:///:memory:"):
        engine = create_engine(
            database_url,
            echo=False,
            connect_args={"check_same_thread": False},
            poolclass=StaticPool,
        )
    else:
        engine = create_engine(database_url, echo=False)

    if engine.dialect.name == "sqlite":
        event.listen(engine, "connect", _enable_foreign_keys)
    return engine
