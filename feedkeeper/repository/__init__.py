"""Repository - background fetch orchestration bridged to a polling consumer."""

from .events import (
    Requesting, Requested, RetrievedAll, RetrievedOne, Errored, Aborted, Refresh,
    EventChannel, LoadPhase, LoadState,
)
from .orchestrator import BackgroundLoop, FetchOrchestrator, FlightHandle
from .repository import Repository
from .ticker import PeriodicTicker

__all__ = [
    "Requesting", "Requested", "RetrievedAll", "RetrievedOne", "Errored", "Aborted", "Refresh",
    "EventChannel", "LoadPhase", "LoadState",
    "BackgroundLoop", "FetchOrchestrator", "FlightHandle",
    "Repository", "PeriodicTicker",
]
