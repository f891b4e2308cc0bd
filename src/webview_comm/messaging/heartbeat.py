"""PING/PONG liveness monitoring.

Health is a two-state machine driven by heartbeat ticks:

- every ``interval`` a PING is sent carrying its send timestamp
- a tick that finds the previous PING still unanswered counts one missed PONG
- reaching ``missed_pong_threshold`` consecutive misses moves HEALTHY -> DEGRADED
- any PONG echoing an outstanding PING timestamp resets the counter and moves
  DEGRADED -> HEALTHY

Observers are notified once per transition, never on repeated misses.
"""

from __future__ import annotations

from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, replace
from enum import StrEnum
from typing import TYPE_CHECKING

from webview_comm.const import DEFAULT_HEARTBEAT_INTERVAL_MS, DEFAULT_MISSED_PONG_THRESHOLD
from webview_comm.logging_abstraction import get_logger
from webview_comm.metrics import registry

if TYPE_CHECKING:
    from webview_comm.protocol.codec import MessageCodec
    from webview_comm.protocol.message_types import Message
    from webview_comm.scheduler import Scheduler, TimerHandle
    from webview_comm.transport.base import Unsubscribe

__all__ = ["ConnectionHealth", "HealthObserver", "HealthStatus", "HeartbeatMonitor"]

logger = get_logger(__name__)

# Outstanding PING timestamps kept for matching late PONGs
_MAX_OUTSTANDING_PINGS = 16


class HealthStatus(StrEnum):
    HEALTHY = "healthy"
    DEGRADED = "degraded"


@dataclass
class ConnectionHealth:
    """Liveness snapshot of the peer.

    Attributes:
        status: Current health state
        consecutive_missed_pongs: Heartbeat ticks in a row with no PONG
        last_pong_at: Scheduler time of the last matching PONG
        last_rtt_ms: Round trip of the last matching PING/PONG

    """

    status: HealthStatus = HealthStatus.HEALTHY
    consecutive_missed_pongs: int = 0
    last_pong_at: float | None = None
    last_rtt_ms: int | None = None

    @property
    def is_healthy(self) -> bool:
        return self.status is HealthStatus.HEALTHY


HealthObserver = Callable[[ConnectionHealth], None]


class HeartbeatMonitor:
    """Sends periodic PINGs and tracks peer health from the PONGs.

    Args:
        scheduler: Clock and timer source
        codec: Frames PING messages
        post: Puts a message on the wire (returns False if the transport refused it)
        interval_seconds: Time between PINGs
        missed_pong_threshold: Consecutive misses before the peer is DEGRADED
        endpoint: Label for logs and metrics

    """

    def __init__(
        self,
        scheduler: Scheduler,
        codec: MessageCodec,
        post: Callable[[Message], bool],
        interval_seconds: float = DEFAULT_HEARTBEAT_INTERVAL_MS / 1000.0,
        missed_pong_threshold: int = DEFAULT_MISSED_PONG_THRESHOLD,
        endpoint: str = "endpoint",
    ) -> None:
        self.scheduler: Scheduler = scheduler
        self.codec: MessageCodec = codec
        self._post: Callable[[Message], bool] = post
        self.interval_seconds: float = interval_seconds
        self.missed_pong_threshold: int = missed_pong_threshold
        self.endpoint: str = endpoint
        self._health: ConnectionHealth = ConnectionHealth()
        self._outstanding: deque[int] = deque(maxlen=_MAX_OUTSTANDING_PINGS)
        self._observers: list[HealthObserver] = []
        self._timer: TimerHandle | None = None
        registry.record_connection_health(self.endpoint, self._health.status.value)

    @property
    def health(self) -> ConnectionHealth:
        """Copy of the current health state."""
        return replace(self._health)

    @property
    def running(self) -> bool:
        return self._timer is not None

    def start(self) -> None:
        """Start sending PINGs every interval (first PING after one interval)."""
        if self._timer is not None:
            return
        self._timer = self.scheduler.call_later(self.interval_seconds, self._tick)
        logger.debug(
            "Heartbeat started",
            extra={"endpoint": self.endpoint, "interval": self.interval_seconds},
        )

    def stop(self) -> None:
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None
        self._outstanding.clear()

    def on_health_change(self, observer: HealthObserver) -> Unsubscribe:
        """Register an observer for HEALTHY/DEGRADED transitions."""
        self._observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unsubscribe

    def _tick(self) -> None:
        self._timer = self.scheduler.call_later(self.interval_seconds, self._tick)

        if self._outstanding:
            self._health.consecutive_missed_pongs += 1
            registry.record_heartbeat(self.endpoint, "missed")
            logger.warning(
                "No PONG for previous PING (%d consecutive)",
                self._health.consecutive_missed_pongs,
                extra={"endpoint": self.endpoint, "missed": self._health.consecutive_missed_pongs},
            )
            if (
                self._health.consecutive_missed_pongs >= self.missed_pong_threshold
                and self._health.status is HealthStatus.HEALTHY
            ):
                self._transition(HealthStatus.DEGRADED)

        ping = self.codec.ping()
        self._outstanding.append(ping.payload["timestamp"])
        if self._post(ping):
            registry.record_heartbeat(self.endpoint, "sent")

    def on_pong(self, message: Message) -> bool:
        """Process an incoming PONG.

        Returns:
            True if it answered an outstanding PING, False if it was stale

        """
        echoed = message.payload.get("timestamp") if isinstance(message.payload, dict) else None
        if not isinstance(echoed, int) or echoed not in self._outstanding:
            registry.record_heartbeat(self.endpoint, "stale")
            logger.debug(
                "Ignoring PONG for unknown PING",
                extra={"endpoint": self.endpoint, "echoed": echoed},
            )
            return False

        self._outstanding.clear()
        rtt_ms = max(0, self.codec.now() - echoed)
        self._health.consecutive_missed_pongs = 0
        self._health.last_pong_at = self.scheduler.time()
        self._health.last_rtt_ms = rtt_ms
        registry.record_heartbeat(self.endpoint, "pong")
        registry.record_heartbeat_rtt(self.endpoint, rtt_ms / 1000.0)

        if self._health.status is HealthStatus.DEGRADED:
            self._transition(HealthStatus.HEALTHY)
        return True

    def _transition(self, status: HealthStatus) -> None:
        self._health.status = status
        registry.record_connection_health(self.endpoint, status.value)
        if status is HealthStatus.DEGRADED:
            logger.warning(
                "⚠️ Peer health degraded after %d missed PONGs",
                self._health.consecutive_missed_pongs,
                extra={"endpoint": self.endpoint, "missed": self._health.consecutive_missed_pongs},
            )
        else:
            logger.info(
                "✓ Peer health restored",
                extra={"endpoint": self.endpoint, "rtt_ms": self._health.last_rtt_ms},
            )

        snapshot = self.health
        for observer in list(self._observers):
            try:
                observer(snapshot)
            except Exception:
                logger.exception("Health observer raised", extra={"endpoint": self.endpoint})

    def __repr__(self) -> str:
        return f"HeartbeatMonitor({self.endpoint}, {self._health.status}, missed={self._health.consecutive_missed_pongs})"
