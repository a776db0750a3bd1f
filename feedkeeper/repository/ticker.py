"""Periodic refresh ticker backed by APScheduler."""

from datetime import datetime, timezone
from typing import Callable, Optional

import structlog
from apscheduler.executors.pool import ThreadPoolExecutor
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

logger = structlog.get_logger()


class PeriodicTicker:
    """Calls a callback every `interval_seconds` from one background thread.

    The callback must be lightweight: the repository only uses it to enqueue
    a refresh request. The first call happens as soon as the ticker starts,
    then once per interval. An interval of zero disables the ticker. `fire()`
    invokes the callback synchronously so tests never wait on a clock.
    """

    def __init__(self, interval_seconds: int = 0):
        self.interval_seconds = interval_seconds or 0
        self.scheduler: Optional[BackgroundScheduler] = None
        self._callback: Optional[Callable[[], None]] = None

    @property
    def enabled(self) -> bool:
        return self.interval_seconds > 0

    @property
    def running(self) -> bool:
        return self.scheduler is not None and self.scheduler.running

    def start(self, callback: Callable[[], None]) -> None:
        self._callback = callback
        if not self.enabled:
            logger.info("periodic_refresh_disabled")
            return
        if self.running:
            return

        self.scheduler = BackgroundScheduler(
            executors={"default": ThreadPoolExecutor(max_workers=1)},
            daemon=True,
        )
        self.scheduler.add_job(
            self.fire,
            IntervalTrigger(seconds=self.interval_seconds),
            id="refresh_feeds",
            name="Request feed refresh",
            replace_existing=True,
            coalesce=True,
            max_instances=1,
            next_run_time=datetime.now(timezone.utc),  # first refresh right away
        )
        self.scheduler.start()
        logger.info("periodic_refresh_started", interval_seconds=self.interval_seconds)

    def fire(self) -> None:
        if self._callback is not None:
            self._callback()

    def stop(self) -> None:
        if self.running:
            self.scheduler.shutdown(wait=False)
            logger.info("periodic_refresh_stopped")
        self.scheduler = None
