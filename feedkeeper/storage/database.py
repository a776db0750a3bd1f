"""Database operations for feed storage."""

import json
from collections import defaultdict
from datetime import timezone
from enum import Enum
from pathlib import Path
from typing import Dict, List, Optional

import structlog
from sqlalchemy import func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import sessionmaker

from .errors import StorageError
from .migrations import apply_migrations
from .models import FeedModel, ItemModel, init_db
from ..config.settings import Settings, SortOrder, settings
from ..ingestion.interfaces import Category, Feed, Item, StorageInterface
from ..ingestion.ordering import sort_feeds

logger = structlog.get_logger()


class StorageEvent(Enum):
    """Outcome of a single storage write."""
    INSERT = "insert"
    UPDATE = "update"
    DELETE = "delete"
    NOOP = "noop"


class FeedStorage(StorageInterface):
    """SQLite-based storage for feeds and their items."""

    def __init__(self, database_url: str = None):
        if database_url is None:
            database_url = settings.database_url

        # Ensure data directory exists
        if database_url.startswith("sqlite:///") and database_url != "sqlite:///:memory:":
            db_path = database_url.replace("sqlite:///", "")
            Path(db_path).parent.mkdir(parents=True, exist_ok=True)

        self.database_url = database_url
        self.engine = init_db(database_url)
        # Runs once, before any read or write; a failure here is fatal
        apply_migrations(self.engine)
        self.Session = sessionmaker(bind=self.engine, expire_on_commit=False)

    @classmethod
    def from_settings(cls, config: Settings = None) -> "FeedStorage":
        """Durable file when caching is enabled, in-memory store otherwise."""
        config = config or settings
        return cls(config.database_url)

    def read_all(
        self,
        sort_order: SortOrder = None,
        feed_urls: Optional[List[str]] = None,
    ) -> List[Feed]:
        """Load every feed with its items, ordered by sort_order."""
        sort_order = sort_order or settings.sort_order
        session = self.Session()
        try:
            feed_models = session.query(FeedModel).all()
            item_models = session.query(ItemModel).order_by(text("items.rowid")).all()
        except SQLAlchemyError as e:
            logger.error("feeds_read_failed", error=str(e))
            raise StorageError("could not read feeds") from e
        finally:
            session.close()

        items_by_feed: Dict[str, List[Item]] = defaultdict(list)
        for model in item_models:
            items_by_feed[model.feed_id].append(self._model_to_item(model))

        feeds = [self._model_to_feed(m, items_by_feed[m.id]) for m in feed_models]
        return sort_feeds(feeds, sort_order, feed_urls)

    def read_feed(self, feed_id: str) -> Optional[Feed]:
        """Get a single feed with its items by id."""
        session = self.Session()
        try:
            model = session.get(FeedModel, feed_id)
            if model is None:
                return None
            item_models = session.query(ItemModel)\
                .filter(ItemModel.feed_id == feed_id)\
                .order_by(text("items.rowid"))\
                .all()
            return self._model_to_feed(model, [self._model_to_item(m) for m in item_models])
        except SQLAlchemyError as e:
            logger.error("feed_read_failed", id=feed_id, error=str(e))
            raise StorageError(f"could not read feed {feed_id}") from e
        finally:
            session.close()

    def write_feed(self, feed: Feed) -> StorageEvent:
        """Upsert a feed and its items, keyed by id."""
        session = self.Session()
        try:
            event = self._upsert(session, feed)
            session.commit()
            logger.debug("feed_written", id=feed.id, items=len(feed.items), outcome=event.value)
            return event
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("feed_write_failed", id=feed.id, error=str(e))
            raise StorageError(f"could not write feed {feed.id}") from e
        finally:
            session.close()

    def write_feeds(self, feeds: List[Feed]) -> List[StorageEvent]:
        """Upsert several feeds in one transaction: all of them or none."""
        session = self.Session()
        try:
            events = [self._upsert(session, feed) for feed in feeds]
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("feeds_write_failed", count=len(feeds), error=str(e))
            raise StorageError(f"could not write {len(feeds)} feeds") from e
        finally:
            session.close()

        logger.info(
            "feeds_written",
            count=len(feeds),
            inserted=events.count(StorageEvent.INSERT),
            updated=events.count(StorageEvent.UPDATE),
        )
        return events

    def delete_feed_by_url(self, url: str) -> StorageEvent:
        """Delete the feed fetched from url and all of its items.

        A URL with no stored feed is a no-op, not an error.
        """
        session = self.Session()
        try:
            models = session.query(FeedModel).filter(FeedModel.source_url == url).all()
            if not models:
                logger.info("feed_delete_noop", url=url)
                return StorageEvent.NOOP

            deleted_items = 0
            for model in models:
                deleted_items += session.query(ItemModel)\
                    .filter(ItemModel.feed_id == model.id)\
                    .delete(synchronize_session=False)
                session.delete(model)
            session.commit()
        except SQLAlchemyError as e:
            session.rollback()
            logger.error("feed_delete_failed", url=url, error=str(e))
            raise StorageError(f"could not delete feed for {url}") from e
        finally:
            session.close()

        logger.info("feed_deleted", url=url, feeds=len(models), items=deleted_items)
        return StorageEvent.DELETE

    def get_stats(self) -> dict:
        """Get database statistics."""
        session = self.Session()
        try:
            return {
                "total_feeds": session.query(func.count(FeedModel.id)).scalar(),
                "total_items": session.query(func.count(ItemModel.id)).scalar(),
            }
        except SQLAlchemyError as e:
            raise StorageError("could not read stats") from e
        finally:
            session.close()

    def close(self) -> None:
        self.engine.dispose()

    def _upsert(self, session, feed: Feed) -> StorageEvent:
        exists = session.get(FeedModel, feed.id) is not None
        # merge() replaces every column of an existing row, keeping its key
        session.merge(self._feed_to_model(feed))
        session.flush()
        for item in feed.items:
            session.merge(self._item_to_model(item, feed.id))
        return StorageEvent.UPDATE if exists else StorageEvent.INSERT

    def _feed_to_model(self, feed: Feed) -> FeedModel:
        last_fetched = feed.last_fetched
        if last_fetched is not None and last_fetched.tzinfo is not None:
            last_fetched = last_fetched.astimezone(timezone.utc).replace(tzinfo=None)
        return FeedModel(
            id=feed.id,
            title=feed.title or "",
            description=feed.description or "",
            categories=_dump_categories(feed.categories),
            source_url=feed.source_url,
            link=feed.link or "",
            ttl=feed.ttl,
            pub_date=feed.pub_date,
            last_fetched=last_fetched,
        )

    def _item_to_model(self, item: Item, feed_id: str) -> ItemModel:
        return ItemModel(
            id=item.id,
            feed_id=feed_id,
            title=item.title,
            author=item.author,
            content=item.content,
            description=item.description,
            text_description=item.text_description,
            categories=_dump_categories(item.categories),
            link=item.link,
            pub_date=item.pub_date,
        )

    def _model_to_feed(self, model: FeedModel, items: List[Item]) -> Feed:
        last_fetched = model.last_fetched
        if last_fetched is not None:
            last_fetched = last_fetched.replace(tzinfo=timezone.utc)
        return Feed(
            id=model.id,
            title=model.title,
            description=model.description,
            categories=_load_categories(model.categories),
            source_url=model.source_url,
            link=model.link,
            ttl=model.ttl,
            items=items,
            pub_date=model.pub_date,
            last_fetched=last_fetched,
        )

    def _model_to_item(self, model: ItemModel) -> Item:
        return Item(
            id=model.id,
            feed_id=model.feed_id,
            title=model.title,
            author=model.author,
            content=model.content,
            description=model.description,
            text_description=model.text_description,
            categories=_load_categories(model.categories),
            link=model.link,
            pub_date=model.pub_date,
        )


def _dump_categories(categories: List[Category]) -> str:
    return json.dumps([{"name": c.name, "domain": c.domain} for c in categories])


def _load_categories(raw: Optional[str]) -> List[Category]:
    if not raw:
        return []
    return [Category(name=c["name"], domain=c.get("domain")) for c in json.loads(raw)]
