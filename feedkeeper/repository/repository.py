"""Repository: composition root bridging background fetches to a polling consumer."""

from typing import List, Optional

import structlog

from .events import (
    Aborted, Envelope, EventChannel, Errored, Refresh, RetrievedAll, RetrievedOne,
)
from .orchestrator import FetchOrchestrator, FlightHandle
from .ticker import PeriodicTicker
from ..config.settings import Settings, settings
from ..ingestion.cancellation import CancellationToken
from ..ingestion.interfaces import Feed
from ..storage.database import FeedStorage, StorageEvent
from ..storage.errors import StorageError

logger = structlog.get_logger()


class Repository:
    """Owns the feed store, the fetch handles and the event channels.

    Background work only ever talks to the internal channel. The consumer
    calls `tick()` on its own cadence, which persists finished results and
    forwards events; `events()` then hands those events over without
    blocking. The store is only touched from the consumer's thread.
    """

    def __init__(
        self,
        config: Settings = None,
        storage: FeedStorage = None,
        orchestrator: FetchOrchestrator = None,
        ticker: PeriodicTicker = None,
    ):
        self.settings = config or settings
        # Schema migration happens here; MigrationError is deliberately not caught
        self.storage = storage or FeedStorage.from_settings(self.settings)
        self.orchestrator = orchestrator or FetchOrchestrator(
            max_attempts=self.settings.fetch_max_attempts,
        )
        self.ticker = ticker or PeriodicTicker(self.settings.refresh_interval_seconds)

        self._internal = EventChannel()
        self._consumer = EventChannel()
        self._handle_many: Optional[FlightHandle] = None
        self._handle_one: Optional[FlightHandle] = None

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, *args):
        self.close()

    @property
    def feed_urls(self) -> List[str]:
        return list(self.settings.feed_urls)

    def start(self) -> None:
        """Start the periodic refresh ticker, if an interval is configured."""
        self.ticker.start(self.request_refresh)

    def close(self) -> None:
        self.ticker.stop()
        for handle in (self._handle_many, self._handle_one):
            if handle is not None and not handle.cancelled:
                handle.cancel()
        self._handle_many = None
        self._handle_one = None
        self.orchestrator.shutdown()
        self.storage.close()

    def request_refresh(self) -> None:
        """Ask for a refresh on the next tick. Safe to call from any thread."""
        self._internal.send(Envelope(Refresh()))

    def tick(self) -> int:
        """Drain everything the background has produced, without blocking.

        Results are written to storage before being forwarded. Returns the
        number of internal messages handled.
        """
        handled = 0
        for envelope in self._internal.drain():
            handled += 1
            if envelope.stale:
                logger.debug("stale_event_dropped", kind=type(envelope.event).__name__)
                continue

            event = envelope.event
            if isinstance(event, RetrievedAll):
                self._persist_many(event.feeds)
                self._release(envelope.token)
                self._consumer.send(event)
            elif isinstance(event, RetrievedOne):
                saved = self._persist_one(event.feed)
                self._release(envelope.token)
                self._consumer.send(event)
                if not saved:
                    self._consumer.send(Errored("failed to save feed"))
            elif isinstance(event, Refresh):
                self.refresh_all()
            else:
                if isinstance(event, Errored):
                    self._release(envelope.token)
                self._consumer.send(event)
        return handled

    def events(self) -> list:
        """Consumer-facing events forwarded so far, oldest first."""
        return list(self._consumer.drain())

    def read_all(self) -> List[Feed]:
        try:
            return self.storage.read_all(self.settings.sort_order, self.feed_urls)
        except StorageError:
            logger.error("feeds_read_failed")
            raise

    def refresh_all(self, urls: Optional[List[str]] = None) -> None:
        """Refresh every configured feed, superseding a refresh still in flight."""
        self._supersede(self._handle_many)
        self._handle_many = None

        urls = self.feed_urls if urls is None else list(urls)
        logger.info("refresh_requested", feeds=len(urls))
        self._handle_many = self.orchestrator.refresh_all(
            urls,
            self.settings.fetch_timeout_seconds,
            self._send,
            sort_order=self.settings.sort_order,
            feed_urls=self.feed_urls,
        )

    def add_feed(self, url: str) -> None:
        """Fetch a single feed, superseding a previous add still in flight."""
        self._supersede(self._handle_one)
        self._handle_one = None

        logger.info("add_feed_requested", url=url)
        self._handle_one = self.orchestrator.add_feed(
            url,
            self.settings.fetch_timeout_seconds,
            self._send,
        )

    def remove_feed(self, url: str) -> Optional[StorageEvent]:
        """Delete a feed and its items; failures surface as an Errored event."""
        try:
            return self.storage.delete_feed_by_url(url)
        except StorageError as e:
            logger.error("remove_feed_failed", url=url, error=str(e))
            self._send(None, Errored("failed to remove feed"))
            return None

    def _supersede(self, handle: Optional[FlightHandle]) -> None:
        """Cancel a running operation of the same kind and announce it."""
        if handle is None:
            return
        if handle.done():
            # Finished work already queued all of its events; let them through
            return
        handle.cancel()
        self._send(None, Aborted())

    def _send(self, token: Optional[CancellationToken], event) -> None:
        self._internal.send(Envelope(event, token))

    def _release(self, token: Optional[CancellationToken]) -> None:
        if self._handle_many is not None and self._handle_many.token is token:
            self._handle_many = None
        if self._handle_one is not None and self._handle_one.token is token:
            self._handle_one = None

    def _persist_many(self, feeds: List[Feed]) -> None:
        try:
            self.storage.write_feeds(feeds)
        except StorageError as e:
            # Batch writes are best effort; the feeds are still shown
            logger.error("refresh_write_failed", feeds=len(feeds), error=str(e))
        except Exception as e:
            logger.exception("refresh_write_crashed", feeds=len(feeds), error=str(e))

    def _persist_one(self, feed: Feed) -> bool:
        try:
            self.storage.write_feed(feed)
        except StorageError as e:
            logger.error("add_feed_write_failed", feed=feed.id, error=str(e))
            return False
        except Exception as e:
            logger.exception("add_feed_write_crashed", feed=feed.id, error=str(e))
            return False
        return True
