#!/usr/bin/env python3
"""Refresh every configured feed once and print what was stored.

Usage:
    FK_FEED_URLS='["https://example.com/feed.xml"]' python scripts/refresh.py
    python scripts/refresh.py --json > feeds.json

Environment Variables:
    FK_FEED_URLS: JSON list of feed URLs
    FK_CACHE_ENABLED: false keeps everything in memory
    FK_FETCH_TIMEOUT_SECONDS: per-request timeout
    FK_SORT_ORDER: az, za, custom, newest or oldest
"""

import argparse
import json
import sys
import time
from pathlib import Path

sys.path.insert(0, str(Path(__file__).parent.parent))

from feedkeeper.config.settings import settings
from feedkeeper.logging_config import configure_logging
from feedkeeper.repository import Errored, LoadState, Repository, RetrievedAll

TICK_SECONDS = 0.25


def main():
    parser = argparse.ArgumentParser(description="Refresh configured feeds once")
    parser.add_argument("--json", action="store_true", help="Print stored feeds as JSON")
    args = parser.parse_args()

    configure_logging()

    if not args.json:
        print("\n" + "=" * 50)
        print("FEEDKEEPER REFRESH")
        print("=" * 50 + "\n")

    start = time.time()
    state = LoadState()
    retrieved = None

    with Repository(settings) as repo:
        repo.refresh_all()
        while retrieved is None:
            repo.tick()
            for event in repo.events():
                state = state.apply(event)
                if isinstance(event, (RetrievedAll, Errored)):
                    retrieved = event
            if state.loading and not args.json:
                print(f"\r  Loading {state.completed}/{state.total}", end="", flush=True)
            time.sleep(TICK_SECONDS)

        feeds = repo.read_all()
        stats = repo.storage.get_stats()

    if args.json:
        print(json.dumps([feed.to_dict() for feed in feeds], indent=2))
        return

    print("\n\nRESULTS:")
    if isinstance(retrieved, Errored):
        print(f"  Refresh failed: {retrieved.reason}")
    else:
        print(f"  Feeds: {len(retrieved.feeds)} of {len(settings.feed_urls)} refreshed")
    for feed in feeds:
        print(f"  - {feed.title or feed.link} ({len(feed.items)} items)")
    print(f"\nSTORE: {stats['total_feeds']} feeds, {stats['total_items']} items")
    print(f"TIME: {time.time() - start:.1f}s\n")


if __name__ == "__main__":
    main()
