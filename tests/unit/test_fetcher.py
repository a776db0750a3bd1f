"""Unit tests for the async feed fetcher."""

import asyncio
from unittest.mock import AsyncMock, patch

import aiohttp
import pytest
from aioresponses import aioresponses

from feedkeeper.ingestion.cancellation import CancellationToken, OperationCancelled
from feedkeeper.ingestion.fetcher import FeedFetcher
from feedkeeper.ingestion.interfaces import (
    DeserializeError, FetchErrorKind, ParseError, RequestError,
)

URL_A = "https://a.example.com/rss"
URL_B = "https://b.example.com/rss"
URL_C = "https://c.example.com/rss"


@pytest.mark.asyncio
class TestFetchFeed:
    """Tests for FeedFetcher.fetch_feed."""

    async def test_fetch_and_normalize(self, sample_rss):
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=sample_rss)
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                feed = await fetcher.fetch_feed(URL_A)

        assert feed.id == "https://news.example.com/"
        assert feed.source_url == URL_A
        assert len(feed.items) == 4

    async def test_http_error_status(self):
        with aioresponses() as mocked:
            mocked.get(URL_A, status=500)
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                with pytest.raises(RequestError) as exc_info:
                    await fetcher.fetch_feed(URL_A)

        assert "HTTP 500" in str(exc_info.value)
        assert exc_info.value.kind == FetchErrorKind.REQUEST

    async def test_connection_error(self):
        with aioresponses() as mocked:
            mocked.get(URL_A, exception=aiohttp.ClientConnectionError("refused"))
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                with pytest.raises(RequestError):
                    await fetcher.fetch_feed(URL_A)

    async def test_timeout_is_a_request_error(self):
        with aioresponses() as mocked:
            mocked.get(URL_A, exception=asyncio.TimeoutError())
            async with FeedFetcher(timeout_seconds=1, max_attempts=1) as fetcher:
                with pytest.raises(RequestError):
                    await fetcher.fetch_feed(URL_A)

    async def test_connection_error_is_retried(self, sample_rss):
        """A failed connect is retried up to max_attempts."""
        with aioresponses() as mocked:
            mocked.get(URL_A, exception=aiohttp.ClientConnectionError("reset"))
            mocked.get(URL_A, status=200, body=sample_rss)
            async with FeedFetcher(timeout_seconds=5, max_attempts=2) as fetcher:
                feed = await fetcher.fetch_feed(URL_A)

        assert feed.title == "Example News"

    async def test_unreadable_body(self):
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=b"")
            with patch.object(
                aiohttp.ClientResponse, "read",
                AsyncMock(side_effect=aiohttp.ClientPayloadError("truncated")),
            ):
                async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                    with pytest.raises(DeserializeError):
                        await fetcher.fetch_feed(URL_A)

    async def test_garbage_body(self):
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=b"<html><body>nope</body></html>")
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                with pytest.raises(ParseError):
                    await fetcher.fetch_feed(URL_A)

    async def test_cancelled_token(self, sample_rss):
        token = CancellationToken()
        token.cancel()
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=sample_rss)
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                with pytest.raises(OperationCancelled):
                    await fetcher.fetch_feed(URL_A, token)


@pytest.mark.asyncio
class TestFetchMany:
    """Tests for FeedFetcher.fetch_many."""

    async def test_failures_are_absorbed(self, make_rss):
        """Failed feeds are left out; every request still reports progress."""
        settled = []
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=make_rss("A", "https://a.example.com/"))
            mocked.get(URL_B, status=404)
            mocked.get(URL_C, status=200, body=make_rss("C", "https://c.example.com/"))
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                feeds = await fetcher.fetch_many(
                    [URL_A, URL_B, URL_C],
                    on_settled=lambda done, total: settled.append((done, total)),
                )

        assert sorted(f.title for f in feeds) == ["A", "C"]
        assert settled == [(1, 3), (2, 3), (3, 3)]

    async def test_empty_url_list(self):
        async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
            assert await fetcher.fetch_many([]) == []

    async def test_cancelled_token_aborts_batch(self, make_rss):
        token = CancellationToken()
        token.cancel()
        with aioresponses() as mocked:
            mocked.get(URL_A, status=200, body=make_rss("A", "https://a.example.com/"))
            mocked.get(URL_B, status=200, body=make_rss("B", "https://b.example.com/"))
            async with FeedFetcher(timeout_seconds=5, max_attempts=1) as fetcher:
                with pytest.raises(OperationCancelled):
                    await fetcher.fetch_many([URL_A, URL_B], token)
