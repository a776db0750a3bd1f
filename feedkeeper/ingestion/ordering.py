"""Feed ordering shared by storage reads and refresh aggregates."""

from datetime import datetime, timezone
from typing import List, Optional

from .interfaces import Feed
from ..config.settings import SortOrder

_NEVER = datetime.min.replace(tzinfo=timezone.utc)


def _fetched_at(feed: Feed) -> datetime:
    fetched = feed.last_fetched
    if fetched is None:
        return _NEVER
    if fetched.tzinfo is None:
        return fetched.replace(tzinfo=timezone.utc)
    return fetched


def sort_feeds(
    feeds: List[Feed],
    sort_order: SortOrder,
    feed_urls: Optional[List[str]] = None,
) -> List[Feed]:
    """Return feeds ordered by sort_order.

    CUSTOM follows feed_urls, matching a feed by its link and then by the
    URL it was fetched from; feeds not listed keep their relative order at
    the end. UNREAD is not supported and raises NotImplementedError.
    """
    sort_order = SortOrder(sort_order)

    if sort_order == SortOrder.AZ:
        return sorted(feeds, key=lambda f: f.title)
    if sort_order == SortOrder.ZA:
        return sorted(feeds, key=lambda f: f.title, reverse=True)
    if sort_order == SortOrder.CUSTOM:
        positions = {url: i for i, url in reversed(list(enumerate(feed_urls or [])))}
        unlisted = len(positions)

        def position(feed: Feed) -> int:
            if feed.link in positions:
                return positions[feed.link]
            return positions.get(feed.source_url, unlisted)

        return sorted(feeds, key=position)
    if sort_order == SortOrder.NEWEST:
        # Never-fetched feeds go last in both recency orders
        fetched = sorted(
            (f for f in feeds if f.last_fetched is not None),
            key=_fetched_at,
            reverse=True,
        )
        return fetched + [f for f in feeds if f.last_fetched is None]
    if sort_order == SortOrder.OLDEST:
        fetched = sorted((f for f in feeds if f.last_fetched is not None), key=_fetched_at)
        return fetched + [f for f in feeds if f.last_fetched is None]

    raise NotImplementedError(f"sort order {sort_order.value!r} is not implemented")
