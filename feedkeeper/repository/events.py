"""Repository event protocol, the polling channel, and the derived load state."""

import queue
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Iterator, List, Optional

from ..ingestion.cancellation import CancellationToken
from ..ingestion.interfaces import Feed


@dataclass(frozen=True)
class Requesting:
    """A fetch operation for `count` feeds has started."""
    count: int


@dataclass(frozen=True)
class Requested:
    """One more request settled; `completed` of `total` are done."""
    completed: int
    total: int


@dataclass(frozen=True)
class RetrievedAll:
    """Sorted aggregate of a bulk refresh."""
    feeds: List[Feed] = field(default_factory=list)


@dataclass(frozen=True)
class RetrievedOne:
    """Result of a single-feed add."""
    feed: Feed


@dataclass(frozen=True)
class Errored:
    reason: str = "request failed"


@dataclass(frozen=True)
class Aborted:
    """An in-flight operation was superseded by a new one of the same class."""


@dataclass(frozen=True)
class Refresh:
    """Periodic refresh request. Internal only, never forwarded to the consumer."""


@dataclass(frozen=True)
class Envelope:
    """An event on the internal channel, tagged with the operation that produced it."""
    event: Any
    token: Optional[CancellationToken] = None

    @property
    def stale(self) -> bool:
        return self.token is not None and self.token.cancelled


class EventChannel:
    """Unbounded thread-safe FIFO whose receiving side never blocks."""

    def __init__(self):
        self._queue = queue.SimpleQueue()

    def send(self, message) -> None:
        self._queue.put(message)

    def try_recv(self):
        """Next pending message, or None when nothing is ready."""
        try:
            return self._queue.get_nowait()
        except queue.Empty:
            return None

    def drain(self) -> Iterator:
        """Yield pending messages until the channel reports none ready."""
        while True:
            try:
                message = self._queue.get_nowait()
            except queue.Empty:
                return
            yield message

    def empty(self) -> bool:
        return self._queue.empty()


class LoadPhase(Enum):
    LOADING = "loading"
    DONE = "done"
    ERRORED = "errored"


@dataclass(frozen=True)
class LoadState:
    """What a consumer shows while feeds load, derived from the event stream.

    Starts DONE. Requesting while already loading adds to the total instead
    of resetting progress, so single-feed adds can overlap a bulk refresh.
    """
    phase: LoadPhase = LoadPhase.DONE
    completed: int = 0
    total: int = 0
    reason: Optional[str] = None

    @property
    def loading(self) -> bool:
        return self.phase == LoadPhase.LOADING

    def apply(self, event) -> "LoadState":
        if isinstance(event, Requesting):
            if self.loading:
                return LoadState(LoadPhase.LOADING, self.completed, self.total + event.count)
            return LoadState(LoadPhase.LOADING, 0, event.count)

        if isinstance(event, Requested):
            if self.loading:
                return LoadState(
                    LoadPhase.LOADING,
                    min(self.completed + 1, self.total),
                    self.total,
                )
            return LoadState(LoadPhase.LOADING, event.completed, event.total)

        if isinstance(event, (RetrievedAll, RetrievedOne, Aborted)):
            return LoadState(LoadPhase.DONE)

        if isinstance(event, Errored):
            return LoadState(LoadPhase.ERRORED, reason=event.reason)

        return self
