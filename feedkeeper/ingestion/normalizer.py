"""Normalize raw feed documents into the Feed/Item domain model."""

from datetime import datetime, timezone
from email.utils import format_datetime
from typing import List, Optional

import feedparser
import structlog

from .html import flatten_html
from .interfaces import Category, Feed, Item, ItemNormalizationError, ParseError

logger = structlog.get_logger()


def parse_feed(raw: bytes, source_url: str) -> Feed:
    """Parse a raw RSS/Atom document fetched from source_url.

    Raises ParseError when the outer document is not a recognizable feed or
    has no derivable identity. Entries without an identity are dropped.
    """
    parsed = feedparser.parse(
        raw,
        response_headers={"content-location": source_url},
    )

    if not parsed.version:
        reason = type(parsed.bozo_exception).__name__ if parsed.bozo else "unknown format"
        raise ParseError(source_url, f"not a feed document ({reason})")

    channel = parsed.feed
    feed_id = derive_feed_id(channel)
    if not feed_id:
        raise ParseError(source_url, "feed has neither an id nor a link")

    items = []
    for entry in parsed.entries:
        try:
            items.append(normalize_entry(entry, feed_id))
        except ItemNormalizationError as e:
            logger.warning("feed_item_dropped", url=source_url, reason=str(e))

    return Feed(
        id=feed_id,
        title=channel.get("title", ""),
        description=channel.get("description", ""),
        categories=_categories(channel),
        source_url=source_url,
        link=channel.get("link", ""),
        ttl=channel.get("ttl"),
        items=items,
        pub_date=_pub_date(channel),
        last_fetched=datetime.now(timezone.utc),
    )


def derive_feed_id(channel) -> Optional[str]:
    """Source-provided identifier first, the feed's link otherwise."""
    return channel.get("id") or channel.get("link") or None


def derive_item_id(entry, feed_id: str) -> str:
    """Permalink GUID, then any stable source id, then feed_id:link-or-title."""
    # feedparser exposes permalink and opaque GUIDs (and Atom ids) as `id`,
    # flagging permalinks with `guidislink`; either one is stable
    guid = entry.get("id")
    if guid:
        return guid

    fallback = entry.get("link") or entry.get("title")
    if not fallback:
        raise ItemNormalizationError("entry has no id, link or title")
    return f"{feed_id}:{fallback}"


def normalize_entry(entry, feed_id: str) -> Item:
    """Convert one feedparser entry into an Item."""
    item_id = derive_item_id(entry, feed_id)

    description = entry.get("summary")
    text_description = flatten_html(description) if description else None

    content = None
    if entry.get("content"):
        content = entry.content[0].get("value")

    return Item(
        id=item_id,
        feed_id=feed_id,
        title=entry.get("title"),
        author=resolve_author(entry),
        content=content,
        description=description,
        text_description=text_description or None,
        categories=_categories(entry),
        link=entry.get("link"),
        pub_date=_pub_date(entry),
    )


def resolve_author(entry) -> Optional[str]:
    """First non-empty of: author, extension author detail, contributors."""
    author = entry.get("author")
    if author:
        return author

    detail = entry.get("author_detail") or {}
    author = detail.get("name") or detail.get("email")
    if author:
        return author

    names = [c.get("name") for c in entry.get("contributors", []) if c.get("name")]
    return ", ".join(names) or None


def _categories(node) -> List[Category]:
    categories = []
    for tag in node.get("tags", []):
        name = tag.get("term") or tag.get("label")
        if not name:
            continue
        category = Category(name=name, domain=tag.get("scheme") or None)
        if category not in categories:
            categories.append(category)
    return categories


def _pub_date(node) -> Optional[str]:
    """RFC 2822 date, or the raw string when it cannot be parsed."""
    for attr in ["published_parsed", "updated_parsed"]:
        parsed = node.get(attr)
        if parsed:
            try:
                return format_datetime(datetime(*parsed[:6], tzinfo=timezone.utc))
            except (TypeError, ValueError):
                pass
    return node.get("published") or node.get("updated")
