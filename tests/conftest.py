"""Pytest configuration and shared fixtures."""

import asyncio
import os
import tempfile
import threading
import time
from datetime import datetime, timezone
from pathlib import Path

import pytest

# Add project root to path
import sys
sys.path.insert(0, str(Path(__file__).parent.parent))

from feedkeeper.ingestion.fetcher import FeedFetcher
from feedkeeper.ingestion.interfaces import Category, Feed, Item


SAMPLE_RSS = b"""<?xml version="1.0" encoding="UTF-8"?>
<rss version="2.0" xmlns:dc="http://purl.org/dc/elements/1.1/">
  <channel>
    <title>Example News</title>
    <link>https://news.example.com/</link>
    <description>All the example news</description>
    <ttl>60</ttl>
    <pubDate>Mon, 01 Jan 2024 12:00:00 GMT</pubDate>
    <category domain="https://news.example.com/topics">Tech</category>
    <category domain="https://news.example.com/topics">Tech</category>
    <item>
      <title>Permalink item</title>
      <link>https://news.example.com/1</link>
      <guid isPermaLink="true">https://news.example.com/1</guid>
      <author>jane@example.com (Jane Doe)</author>
      <description>&lt;p&gt;Hello &lt;a href="https://example.com"&gt;world&lt;/a&gt;&lt;/p&gt;</description>
      <pubDate>Tue, 02 Jan 2024 08:30:00 GMT</pubDate>
      <category>Launch</category>
    </item>
    <item>
      <title>Opaque guid item</title>
      <link>https://news.example.com/2</link>
      <guid isPermaLink="false">item-2</guid>
      <dc:creator>Alice</dc:creator>
    </item>
    <item>
      <title>Link only item</title>
      <link>https://news.example.com/3</link>
    </item>
    <item>
      <title>Title only item</title>
    </item>
    <item>
      <description>No way to identify this one</description>
    </item>
  </channel>
</rss>
"""


SAMPLE_ATOM = b"""<?xml version="1.0" encoding="utf-8"?>
<feed xmlns="http://www.w3.org/2005/Atom">
  <title>Example Atom</title>
  <id>urn:uuid:60a76c80-d399-11d9-b93C-0003939e0af6</id>
  <link href="https://atom.example.com/"/>
  <updated>2024-02-01T10:00:00Z</updated>
  <entry>
    <title>Contributed entry</title>
    <id>urn:uuid:1225c695-cfb8-4ebb-aaaa-80da344efa6a</id>
    <link href="https://atom.example.com/entry"/>
    <updated>2024-02-01T09:00:00Z</updated>
    <contributor><name>Bob</name></contributor>
    <contributor><name>Carol</name></contributor>
    <summary>Short summary</summary>
  </entry>
</feed>
"""


def rss_document(title: str, link: str, item_count: int = 1) -> bytes:
    """Build a minimal RSS document."""
    items = "".join(
        f"<item><title>{title} {n}</title><link>{link}{n}</link></item>"
        for n in range(item_count)
    )
    return (
        f'<?xml version="1.0"?><rss version="2.0"><channel>'
        f"<title>{title}</title><link>{link}</link><description>{title}</description>"
        f"{items}</channel></rss>"
    ).encode()


@pytest.fixture
def temp_db():
    """Provide a temporary database file."""
    with tempfile.NamedTemporaryFile(suffix=".db", delete=False) as f:
        db_path = f.name
    yield f"sqlite:///{db_path}"
    # Cleanup
    try:
        os.unlink(db_path)
    except FileNotFoundError:
        pass


@pytest.fixture
def sample_rss():
    return SAMPLE_RSS


@pytest.fixture
def sample_atom():
    return SAMPLE_ATOM


@pytest.fixture
def make_feed():
    """Factory for Feed objects with a couple of items."""
    def _make(feed_id="https://a.example.com/", title="A", item_count=2, **overrides):
        items = [
            Item(
                id=f"{feed_id}:{n}",
                feed_id=feed_id,
                title=f"{title} item {n}",
                link=f"{feed_id}{n}",
                description=f"<p>{title} {n}</p>",
                text_description=f"{title} {n}\n\n",
                categories=[Category(name="news")],
            )
            for n in range(item_count)
        ]
        fields = dict(
            id=feed_id,
            title=title,
            description=f"{title} description",
            categories=[Category(name="tech", domain="https://example.com/c")],
            source_url=f"{feed_id}feed.xml",
            link=feed_id,
            ttl="60",
            items=items,
            pub_date="Mon, 01 Jan 2024 12:00:00 +0000",
            last_fetched=datetime(2024, 1, 1, 12, 0, 0, 123456, tzinfo=timezone.utc),
        )
        fields.update(overrides)
        return Feed(**fields)
    return _make


class StubFetcher(FeedFetcher):
    """FeedFetcher without HTTP: results keyed by URL, optionally held by a gate.

    A result may be a Feed or an exception to raise. Gates are
    threading.Events; a gated URL waits until its gate is set.
    """

    results = {}
    gates = {}

    async def __aenter__(self):
        return self

    async def __aexit__(self, *args):
        pass

    async def fetch_feed(self, url, token=None):
        gate = self.gates.get(url)
        while gate is not None and not gate.is_set():
            await asyncio.sleep(0.01)
            if token is not None:
                token.raise_if_cancelled()
        if token is not None:
            token.raise_if_cancelled()

        result = self.results[url]
        if isinstance(result, Exception):
            raise result
        return result


@pytest.fixture
def fetcher_factory():
    """Build a fetcher factory serving canned results."""
    def _factory(results, gates=None):
        def make(**kwargs):
            fetcher = StubFetcher(**kwargs)
            fetcher.results = results
            fetcher.gates = gates or {}
            return fetcher
        return make
    return _factory


def _pump(repo, until, timeout=5.0):
    collected = []
    deadline = time.monotonic() + timeout
    while time.monotonic() < deadline:
        repo.tick()
        collected.extend(repo.events())
        if until(collected):
            return collected
        time.sleep(0.01)
    raise AssertionError(f"condition not met in {timeout}s, events: {collected}")


@pytest.fixture
def pump():
    """Tick a repository until until(events) holds; returns the events seen."""
    return _pump


@pytest.fixture
def gate():
    """A closed gate; set() it to release a held fetch."""
    event = threading.Event()
    yield event
    event.set()


@pytest.fixture
def make_rss():
    """Factory for small RSS documents."""
    return rss_document
