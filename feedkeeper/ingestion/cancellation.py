"""Cancellation tokens for superseded fetch operations."""

import threading


class OperationCancelled(Exception):
    """Raised inside a fetch operation once its token has been cancelled.

    This is control flow, not a failure: the operation was superseded.
    """


class CancellationToken:
    """Thread-safe flag shared between an operation and whoever may cancel it."""

    def __init__(self):
        self._event = threading.Event()

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        return self._event.is_set()

    def raise_if_cancelled(self) -> None:
        """Checked after every await point of a fetch."""
        if self._event.is_set():
            raise OperationCancelled()
