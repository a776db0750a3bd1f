"""Async feed fetcher: one concurrent request per URL, absorbing per-feed failures."""

import asyncio
import time
from typing import Callable, List, Optional

import aiohttp
import structlog
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential

from .cancellation import CancellationToken
from .interfaces import (
    DeserializeError, Feed, FetchError, FetcherInterface, RequestError,
)
from .normalizer import parse_feed
from ..config.settings import settings

logger = structlog.get_logger()


class FeedFetcher(FetcherInterface):
    """Async feed fetcher with per-request timeouts and cancellation."""

    def __init__(
        self,
        timeout_seconds: int = None,
        max_attempts: int = None,
        user_agent: str = None,
    ):
        self.session: Optional[aiohttp.ClientSession] = None
        if timeout_seconds is None:
            timeout_seconds = settings.fetch_timeout_seconds
        self.timeout_seconds = timeout_seconds
        self.max_attempts = max(1, max_attempts or settings.fetch_max_attempts)
        self.user_agent = user_agent or settings.user_agent

    async def __aenter__(self):
        # Bounds both the connect phase and the whole request; 0 means no limit
        limit = self.timeout_seconds or None
        self.session = aiohttp.ClientSession(
            timeout=aiohttp.ClientTimeout(total=limit, sock_connect=limit),
            headers={"User-Agent": self.user_agent},
        )
        return self

    async def __aexit__(self, *args):
        if self.session:
            await self.session.close()

    async def fetch_feed(self, url: str, token: CancellationToken = None) -> Feed:
        """Fetch and normalize a single feed.

        Raises RequestError, DeserializeError or ParseError, and
        OperationCancelled once token is cancelled.
        """
        token = token or CancellationToken()
        start_time = time.time()

        try:
            body = await self._download(url, token)
            feed = parse_feed(body, url)
        except FetchError as e:
            elapsed_ms = int((time.time() - start_time) * 1000)
            logger.warning(
                "feed_fetch_failed",
                url=url,
                kind=e.kind.value,
                error=e.message,
                time_ms=elapsed_ms,
            )
            raise

        elapsed_ms = int((time.time() - start_time) * 1000)
        logger.info(
            "feed_fetched",
            url=url,
            feed=feed.id,
            items=len(feed.items),
            time_ms=elapsed_ms,
        )
        return feed

    async def fetch_many(
        self,
        urls: List[str],
        token: CancellationToken = None,
        on_settled: Optional[Callable[[int, int], None]] = None,
    ) -> List[Feed]:
        """Fetch all feeds concurrently.

        Every request is started immediately. on_settled(completed, total) is
        called as each request settles, successful or not, in completion
        order. Only successfully normalized feeds are returned.
        """
        token = token or CancellationToken()
        total = len(urls)
        completed = 0

        async def settle(url: str) -> Optional[Feed]:
            nonlocal completed
            try:
                feed = await self.fetch_feed(url, token)
            except FetchError:
                feed = None
            token.raise_if_cancelled()

            completed += 1
            if on_settled:
                on_settled(completed, total)
            return feed

        tasks = [asyncio.ensure_future(settle(url)) for url in urls]
        try:
            results = await asyncio.gather(*tasks)
        finally:
            for task in tasks:
                if not task.done():
                    task.cancel()

        feeds = [feed for feed in results if feed is not None]
        logger.info(
            "all_feeds_fetched",
            succeeded=len(feeds),
            failed=total - len(feeds),
            feeds=total,
        )
        return feeds

    async def _download(self, url: str, token: CancellationToken) -> bytes:
        retrying = AsyncRetrying(
            stop=stop_after_attempt(self.max_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(aiohttp.ClientConnectionError),
            reraise=True,
        )

        try:
            async for attempt in retrying:
                with attempt:
                    response = await self.session.get(url)
        except (aiohttp.ClientError, asyncio.TimeoutError, ValueError) as e:
            raise RequestError(url, str(e) or type(e).__name__) from e

        async with response:
            token.raise_if_cancelled()
            if response.status >= 400:
                raise RequestError(url, f"HTTP {response.status}")

            try:
                body = await response.read()
            except (aiohttp.ClientError, asyncio.TimeoutError) as e:
                raise DeserializeError(url, str(e) or type(e).__name__) from e

        token.raise_if_cancelled()
        return body
