"""Unit tests for the event channel and derived load state."""

import threading

from feedkeeper.ingestion.cancellation import CancellationToken
from feedkeeper.repository.events import (
    Aborted, Envelope, EventChannel, Errored, LoadPhase, LoadState,
    Requested, Requesting, RetrievedAll, RetrievedOne,
)
from feedkeeper.ingestion.interfaces import Feed


class TestEventChannel:
    """Tests for EventChannel."""

    def test_fifo_order(self):
        channel = EventChannel()
        for n in range(3):
            channel.send(n)
        assert list(channel.drain()) == [0, 1, 2]

    def test_try_recv_never_blocks(self):
        channel = EventChannel()
        assert channel.try_recv() is None
        assert channel.empty()

        channel.send("x")
        assert channel.try_recv() == "x"
        assert channel.try_recv() is None

    def test_drain_on_empty_channel(self):
        assert list(EventChannel().drain()) == []

    def test_send_from_other_threads(self):
        channel = EventChannel()
        threads = [threading.Thread(target=channel.send, args=(n,)) for n in range(10)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()
        assert sorted(channel.drain()) == list(range(10))


class TestEnvelope:
    """Tests for Envelope staleness."""

    def test_untagged_envelope_is_never_stale(self):
        assert not Envelope(Aborted()).stale

    def test_cancelled_token_makes_envelope_stale(self):
        token = CancellationToken()
        envelope = Envelope(Requesting(1), token)
        assert not envelope.stale

        token.cancel()
        assert envelope.stale


class TestLoadState:
    """Tests for LoadState transitions."""

    def test_initial_state_is_done(self):
        assert LoadState().phase == LoadPhase.DONE
        assert not LoadState().loading

    def test_requesting_starts_loading(self):
        state = LoadState().apply(Requesting(3))
        assert state == LoadState(LoadPhase.LOADING, 0, 3)

    def test_requesting_while_loading_accumulates(self):
        """An add during a refresh extends the total instead of resetting."""
        state = LoadState().apply(Requesting(3)).apply(Requested(1, 3)).apply(Requesting(1))
        assert state == LoadState(LoadPhase.LOADING, 1, 4)

    def test_requested_increments_and_caps(self):
        state = LoadState().apply(Requesting(2))
        for _ in range(5):
            state = state.apply(Requested(1, 1))
        assert state.completed == 2
        assert state.total == 2

    def test_requested_when_idle_takes_event_values(self):
        state = LoadState().apply(Requested(2, 5))
        assert state == LoadState(LoadPhase.LOADING, 2, 5)

    def test_terminal_events_finish_loading(self):
        loading = LoadState().apply(Requesting(2))
        assert loading.apply(RetrievedAll([])).phase == LoadPhase.DONE
        assert loading.apply(RetrievedOne(Feed(id="x"))).phase == LoadPhase.DONE
        assert loading.apply(Aborted()).phase == LoadPhase.DONE

    def test_errored_keeps_reason(self):
        state = LoadState().apply(Requesting(1)).apply(Errored("request failed"))
        assert state.phase == LoadPhase.ERRORED
        assert state.reason == "request failed"

    def test_requesting_after_error_restarts(self):
        state = LoadState().apply(Errored()).apply(Requesting(2))
        assert state == LoadState(LoadPhase.LOADING, 0, 2)

    def test_unknown_events_are_ignored(self):
        state = LoadState().apply(Requesting(1))
        assert state.apply(object()) is state
