"""Fetch orchestration on a background asyncio loop."""

import asyncio
import threading
from concurrent.futures import Future
from typing import Callable, List, Optional

import structlog

from .events import Errored, Requested, Requesting, RetrievedAll, RetrievedOne
from ..config.settings import SortOrder, settings
from ..ingestion.cancellation import CancellationToken, OperationCancelled
from ..ingestion.fetcher import FeedFetcher
from ..ingestion.interfaces import FetchError
from ..ingestion.ordering import sort_feeds

logger = structlog.get_logger()

# send(token, event): hands an event produced by the operation owning token
# to whoever consumes it (the repository's internal channel)
Sink = Callable[[CancellationToken, object], None]


class BackgroundLoop:
    """An asyncio event loop running on its own daemon thread."""

    def __init__(self, name: str = "feedkeeper-fetch"):
        self.name = name
        self._loop: Optional[asyncio.AbstractEventLoop] = None
        self._thread: Optional[threading.Thread] = None
        self._lock = threading.Lock()

    @property
    def running(self) -> bool:
        return self._thread is not None and self._thread.is_alive()

    def start(self) -> None:
        with self._lock:
            if self.running:
                return
            self._loop = asyncio.new_event_loop()
            ready = threading.Event()
            self._thread = threading.Thread(
                target=self._run, args=(ready,), name=self.name, daemon=True,
            )
            self._thread.start()
            ready.wait()

    def submit(self, coro) -> Future:
        """Schedule a coroutine on the loop from any thread."""
        self.start()
        return asyncio.run_coroutine_threadsafe(coro, self._loop)

    def stop(self, timeout: float = 5.0) -> None:
        with self._lock:
            if not self.running:
                return
            self._loop.call_soon_threadsafe(self._loop.stop)
            self._thread.join(timeout)
            self._thread = None

    def _run(self, ready: threading.Event) -> None:
        loop = self._loop
        asyncio.set_event_loop(loop)
        loop.call_soon(ready.set)
        try:
            loop.run_forever()
        finally:
            # Cancel leftovers so their sessions close before the loop does
            pending = asyncio.all_tasks(loop)
            for task in pending:
                task.cancel()
            if pending:
                loop.run_until_complete(asyncio.gather(*pending, return_exceptions=True))
            loop.run_until_complete(loop.shutdown_asyncgens())
            loop.close()


class FlightHandle:
    """Handle on one in-flight operation, cancellable from the owning thread."""

    def __init__(self, kind: str, token: CancellationToken, future: Future):
        self.kind = kind
        self.token = token
        self.future = future

    @property
    def cancelled(self) -> bool:
        return self.token.cancelled

    def done(self) -> bool:
        return self.future.done()

    def cancel(self) -> None:
        """Returns immediately; anything the operation still produces is stale."""
        self.token.cancel()
        self.future.cancel()
        logger.debug("operation_cancelled", kind=self.kind)


class FetchOrchestrator:
    """Spawns bulk refreshes and single-feed adds on a background loop.

    Handles returned here are owned by the caller; the orchestrator never
    cancels anything on its own except at shutdown.
    """

    def __init__(
        self,
        max_attempts: int = None,
        fetcher_factory: Callable[..., FeedFetcher] = None,
        loop: BackgroundLoop = None,
    ):
        self.max_attempts = max_attempts or settings.fetch_max_attempts
        self._fetcher_factory = fetcher_factory or FeedFetcher
        self._loop = loop or BackgroundLoop()

    def refresh_all(
        self,
        urls: List[str],
        timeout: int,
        send: Sink,
        sort_order: SortOrder = None,
        feed_urls: Optional[List[str]] = None,
    ) -> FlightHandle:
        """Fetch every URL concurrently and deliver one sorted aggregate."""
        urls = list(urls)
        token = CancellationToken()
        send(token, Requesting(len(urls)))

        future = self._loop.submit(self._refresh_many(
            urls, timeout, token, send,
            sort_order or settings.sort_order,
            urls if feed_urls is None else feed_urls,
        ))
        return FlightHandle("refresh_all", token, future)

    def add_feed(self, url: str, timeout: int, send: Sink) -> FlightHandle:
        """Fetch one URL; deliver the feed or an Errored event."""
        token = CancellationToken()
        send(token, Requesting(1))

        future = self._loop.submit(self._fetch_one(url, timeout, token, send))
        return FlightHandle("add_feed", token, future)

    def shutdown(self) -> None:
        self._loop.stop()

    def _fetcher(self, timeout: int) -> FeedFetcher:
        return self._fetcher_factory(timeout_seconds=timeout, max_attempts=self.max_attempts)

    async def _refresh_many(
        self,
        urls: List[str],
        timeout: int,
        token: CancellationToken,
        send: Sink,
        sort_order: SortOrder,
        feed_urls: List[str],
    ) -> None:
        def on_settled(completed: int, total: int) -> None:
            send(token, Requested(completed, total))

        try:
            async with self._fetcher(timeout) as fetcher:
                feeds = await fetcher.fetch_many(urls, token, on_settled=on_settled)
            token.raise_if_cancelled()
            feeds = sort_feeds(feeds, sort_order, feed_urls)
        except OperationCancelled:
            logger.info("refresh_superseded", feeds=len(urls))
            return
        except Exception as e:
            logger.exception("refresh_failed", feeds=len(urls), error=str(e))
            send(token, Errored("refresh failed"))
            return

        send(token, RetrievedAll(feeds))

    async def _fetch_one(
        self,
        url: str,
        timeout: int,
        token: CancellationToken,
        send: Sink,
    ) -> None:
        try:
            async with self._fetcher(timeout) as fetcher:
                feed = await fetcher.fetch_feed(url, token)
            token.raise_if_cancelled()
        except OperationCancelled:
            logger.info("add_feed_superseded", url=url)
            return
        except FetchError:
            # Already logged with its kind by the fetcher
            send(token, Errored("request failed"))
            return
        except Exception as e:
            logger.exception("add_feed_failed", url=url, error=str(e))
            send(token, Errored("request failed"))
            return

        send(token, Requested(1, 1))
        send(token, RetrievedOne(feed))
