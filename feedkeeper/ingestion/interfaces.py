"""Interface definitions for feed ingestion."""

from dataclasses import asdict, dataclass, field
from datetime import datetime
from enum import Enum
from typing import Callable, List, Optional


@dataclass(frozen=True)
class Category:
    """A category attached to a feed or an item."""
    name: str
    domain: Optional[str] = None


@dataclass
class Item:
    """One entry within a feed."""
    id: str
    feed_id: str
    title: Optional[str] = None
    author: Optional[str] = None
    content: Optional[str] = None
    description: Optional[str] = None       # Raw HTML as published
    text_description: Optional[str] = None  # Flattened plain-text projection
    categories: List[Category] = field(default_factory=list)
    link: Optional[str] = None
    pub_date: Optional[str] = None

    @property
    def readable_description(self) -> Optional[str]:
        """Plain-text description when available, raw description otherwise."""
        return self.text_description or self.description

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "feed_id": self.feed_id,
            "title": self.title,
            "author": self.author,
            "content": self.content,
            "description": self.description,
            "text_description": self.text_description,
            "categories": [asdict(c) for c in self.categories],
            "link": self.link,
            "pub_date": self.pub_date,
        }


@dataclass
class Feed:
    """A normalized syndication document and its items."""
    id: str
    title: str = ""
    description: str = ""
    categories: List[Category] = field(default_factory=list)
    source_url: str = ""  # The URL the document was fetched from
    link: str = ""        # The canonical site URL
    ttl: Optional[str] = None
    items: List[Item] = field(default_factory=list)
    pub_date: Optional[str] = None
    last_fetched: Optional[datetime] = None

    def to_dict(self) -> dict:
        """Convert to dictionary."""
        return {
            "id": self.id,
            "title": self.title,
            "description": self.description,
            "categories": [asdict(c) for c in self.categories],
            "source_url": self.source_url,
            "link": self.link,
            "ttl": self.ttl,
            "items": [i.to_dict() for i in self.items],
            "pub_date": self.pub_date,
            "last_fetched": self.last_fetched.isoformat() if self.last_fetched else None,
        }


class FetchErrorKind(Enum):
    """Why a single feed dropped out of a fetch."""
    REQUEST = "request"          # DNS, connect, timeout, HTTP error status
    DESERIALIZE = "deserialize"  # Response body could not be read
    PARSE = "parse"              # Body read but not a usable feed


class FetchError(Exception):
    """A single feed could not be fetched or normalized."""

    kind: FetchErrorKind = FetchErrorKind.REQUEST

    def __init__(self, url: str, message: str = ""):
        self.url = url
        self.message = message
        super().__init__(f"{self.kind.value} error for {url}: {message}" if message
                         else f"{self.kind.value} error for {url}")


class RequestError(FetchError):
    kind = FetchErrorKind.REQUEST


class DeserializeError(FetchError):
    kind = FetchErrorKind.DESERIALIZE


class ParseError(FetchError):
    kind = FetchErrorKind.PARSE


class ItemNormalizationError(ValueError):
    """An entry inside an otherwise valid feed has no derivable identity."""


class FetcherInterface:
    """Interface for feed fetching."""

    async def fetch_feed(self, url: str, token=None) -> Feed:
        """Fetch and normalize a single feed."""
        raise NotImplementedError

    async def fetch_many(
        self,
        urls: List[str],
        token=None,
        on_settled: Optional[Callable[[int, int], None]] = None,
    ) -> List[Feed]:
        """Fetch all feeds concurrently, returning only the successful ones."""
        raise NotImplementedError


class StorageInterface:
    """Interface for feed storage."""

    def read_all(self, sort_order, feed_urls: Optional[List[str]] = None) -> List[Feed]:
        """Load every feed with its items, ordered."""
        raise NotImplementedError

    def write_feed(self, feed: Feed):
        """Upsert one feed and its items."""
        raise NotImplementedError

    def write_feeds(self, feeds: List[Feed]):
        """Upsert several feeds in one transaction."""
        raise NotImplementedError

    def delete_feed_by_url(self, url: str):
        """Delete the feed fetched from url together with its items."""
        raise NotImplementedError
