"""Feed ingestion - fetching, normalizing and ordering feeds."""

from .interfaces import (
    Category, Feed, Item, FetchError, FetchErrorKind, RequestError,
    DeserializeError, ParseError, FetcherInterface, StorageInterface,
)
from .cancellation import CancellationToken, OperationCancelled
from .fetcher import FeedFetcher
from .normalizer import parse_feed
from .ordering import sort_feeds

__all__ = [
    "Category", "Feed", "Item",
    "FetchError", "FetchErrorKind", "RequestError", "DeserializeError", "ParseError",
    "FetcherInterface", "StorageInterface",
    "CancellationToken", "OperationCancelled",
    "FeedFetcher", "parse_feed", "sort_feeds",
]
