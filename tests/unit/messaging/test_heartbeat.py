"""Unit tests for HeartbeatMonitor."""

from __future__ import annotations

from unittest.mock import MagicMock

from webview_comm.messaging.heartbeat import ConnectionHealth, HealthStatus, HeartbeatMonitor
from webview_comm.protocol.codec import MessageCodec
from webview_comm.protocol.message_types import Message, MessageKind
from webview_comm.scheduler import ManualScheduler

# Test constants
INTERVAL = 30.0
THRESHOLD = 3


class HeartbeatHarness:
    """A monitor wired to a virtual clock, recording sent PINGs."""

    def __init__(self, threshold: int = THRESHOLD) -> None:
        self.scheduler = ManualScheduler()
        self.codec = MessageCodec(clock=lambda: int(self.scheduler.time() * 1000))
        self.sent: list[Message] = []
        self.transitions: list[ConnectionHealth] = []
        self.monitor = HeartbeatMonitor(
            self.scheduler,
            self.codec,
            self._post,
            interval_seconds=INTERVAL,
            missed_pong_threshold=threshold,
            endpoint="test",
        )
        _ = self.monitor.on_health_change(self.transitions.append)

    def _post(self, message: Message) -> bool:
        self.sent.append(message)
        return True

    def pong_for(self, ping: Message) -> Message:
        return self.codec.pong(ping)

    @property
    def last_ping(self) -> Message:
        return self.sent[-1]


class TestPingSchedule:
    """Tests for PING cadence."""

    def test_first_ping_after_one_interval(self):
        """Test that PINGs are sent once per interval, starting after the first interval."""
        h = HeartbeatHarness()
        h.monitor.start()

        h.scheduler.advance(INTERVAL - 1)
        assert h.sent == []
        h.scheduler.advance(1)
        h.scheduler.advance(INTERVAL * 2)

        assert len(h.sent) == 3
        assert all(m.kind is MessageKind.PING for m in h.sent)
        assert [m.payload["timestamp"] for m in h.sent] == [30000, 60000, 90000]

    def test_start_is_idempotent_and_stop_halts(self):
        """Test that start() twice arms one timer and stop() cancels it."""
        h = HeartbeatHarness()
        h.monitor.start()
        h.monitor.start()
        assert h.scheduler.pending() == 1

        h.monitor.stop()
        h.scheduler.advance(INTERVAL * 5)

        assert h.sent == []
        assert not h.monitor.running


class TestHealthTransitions:
    """Tests for the healthy/degraded state machine."""

    def test_degrades_exactly_once_after_threshold(self):
        """Test that health degrades after THRESHOLD missed PONGs and notifies once."""
        h = HeartbeatHarness()
        h.monitor.start()

        # PING at 30s; misses counted at 60s, 90s, 120s
        h.scheduler.advance(INTERVAL * 3)
        assert h.monitor.health.status is HealthStatus.HEALTHY
        assert h.monitor.health.consecutive_missed_pongs == 2

        h.scheduler.advance(INTERVAL)
        assert h.monitor.health.status is HealthStatus.DEGRADED
        assert h.monitor.health.consecutive_missed_pongs == THRESHOLD

        h.scheduler.advance(INTERVAL * 3)
        assert len(h.transitions) == 1
        assert h.transitions[0].status is HealthStatus.DEGRADED

    def test_single_pong_restores_health_once(self):
        """Test that one matching PONG returns a degraded peer to healthy."""
        h = HeartbeatHarness()
        h.monitor.start()
        h.scheduler.advance(INTERVAL * 4)
        assert h.monitor.health.status is HealthStatus.DEGRADED

        h.scheduler.advance(0.25)
        assert h.monitor.on_pong(h.pong_for(h.last_ping)) is True

        health = h.monitor.health
        assert health.status is HealthStatus.HEALTHY
        assert health.consecutive_missed_pongs == 0
        assert health.last_pong_at == INTERVAL * 4 + 0.25
        assert health.last_rtt_ms == 250
        assert [t.status for t in h.transitions] == [HealthStatus.DEGRADED, HealthStatus.HEALTHY]

        # Another PONG for the same PING is stale and changes nothing
        assert h.monitor.on_pong(h.pong_for(h.last_ping)) is False
        assert len(h.transitions) == 2

    def test_answered_pings_never_count_as_missed(self):
        """Test that a peer answering every PING stays healthy."""
        h = HeartbeatHarness()
        h.monitor.start()

        for _ in range(10):
            h.scheduler.advance(INTERVAL)
            _ = h.monitor.on_pong(h.pong_for(h.last_ping))

        assert h.monitor.health.consecutive_missed_pongs == 0
        assert h.transitions == []

    def test_late_pong_for_earlier_ping_counts(self):
        """Test that a PONG answering an older unanswered PING resets the counter."""
        h = HeartbeatHarness()
        h.monitor.start()
        h.scheduler.advance(INTERVAL)
        first_ping = h.last_ping
        h.scheduler.advance(INTERVAL)
        assert h.monitor.health.consecutive_missed_pongs == 1

        assert h.monitor.on_pong(h.pong_for(first_ping)) is True
        assert h.monitor.health.consecutive_missed_pongs == 0

    def test_pong_without_timestamp_is_stale(self):
        """Test that a PONG with an unusable payload is ignored."""
        h = HeartbeatHarness()
        bogus = Message(id="p", kind=MessageKind.PONG, timestamp=1, payload={"timestamp": "soon"})
        assert h.monitor.on_pong(bogus) is False
        assert h.monitor.health.last_pong_at is None


class TestObservers:
    """Tests for health observers."""

    def test_unsubscribe_stops_notifications(self):
        """Test that an unsubscribed observer is not called."""
        h = HeartbeatHarness(threshold=1)
        observer = MagicMock()
        unsubscribe = h.monitor.on_health_change(observer)
        unsubscribe()
        h.monitor.start()

        h.scheduler.advance(INTERVAL * 2)

        observer.assert_not_called()
        assert len(h.transitions) == 1

    def test_raising_observer_does_not_block_others(self):
        """Test that a failing observer is logged and the rest still run."""
        h = HeartbeatHarness(threshold=1)
        failing = MagicMock(side_effect=RuntimeError("boom"))
        h.monitor._observers.insert(0, failing)  # noqa: SLF001
        h.monitor.start()

        h.scheduler.advance(INTERVAL * 2)

        failing.assert_called_once()
        assert len(h.transitions) == 1

    def test_observer_receives_snapshot(self):
        """Test that observers get a copy that later changes do not mutate."""
        h = HeartbeatHarness(threshold=1)
        h.monitor.start()
        h.scheduler.advance(INTERVAL * 2)
        snapshot = h.transitions[0]

        _ = h.monitor.on_pong(h.pong_for(h.last_ping))

        assert snapshot.status is HealthStatus.DEGRADED
        assert not snapshot.is_healthy
