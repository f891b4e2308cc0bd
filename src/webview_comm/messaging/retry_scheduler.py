"""Retransmission policy for requests that were not acknowledged in time.

Retries cover only the ACK phase: once the peer has acknowledged a request,
its ACK timer is gone and this policy is never consulted again for it.
Retransmissions reuse the request id, so the peer can recognize duplicates.
"""

from __future__ import annotations

from collections.abc import Callable
from typing import TYPE_CHECKING

from webview_comm.const import DEFAULT_MAX_RETRIES, DEFAULT_RETRY_DELAY_MS
from webview_comm.logging_abstraction import get_logger
from webview_comm.metrics import registry

if TYPE_CHECKING:
    from webview_comm.messaging.correlation_tracker import PendingRequest

__all__ = ["RetryScheduler"]

logger = get_logger(__name__)


class RetryScheduler:
    """Fixed-delay retry policy.

    Args:
        resend: Called with the PendingRequest to put it on the wire again
        max_retries: Retransmissions allowed after the first send
        retry_delay_seconds: How long to wait for an ACK after each retransmission
        endpoint: Label for logs and metrics

    """

    def __init__(
        self,
        resend: Callable[[PendingRequest], None],
        max_retries: int = DEFAULT_MAX_RETRIES,
        retry_delay_seconds: float = DEFAULT_RETRY_DELAY_MS / 1000.0,
        endpoint: str = "endpoint",
    ) -> None:
        if max_retries < 0:
            msg = f"max_retries must be >= 0, got {max_retries}"
            raise ValueError(msg)
        self._resend: Callable[[PendingRequest], None] = resend
        self.max_retries: int = max_retries
        self.retry_delay_seconds: float = retry_delay_seconds
        self.endpoint: str = endpoint

    def should_retry(self, pending: PendingRequest) -> bool:
        return not pending.acknowledged and pending.retries_sent < self.max_retries

    def on_ack_timeout(self, pending: PendingRequest) -> bool:
        """Retransmit ``pending`` if the budget allows.

        Returns:
            True if a retransmission was sent and the caller should re-arm the
            ACK timer with ``retry_delay_seconds``; False to give up

        """
        if not self.should_retry(pending):
            return False

        pending.retries_sent += 1
        registry.record_retransmit(self.endpoint, pending.retries_sent)
        logger.info(
            "↻ ACK timeout, retransmitting (attempt %d/%d)",
            pending.retries_sent,
            self.max_retries,
            extra={
                "endpoint": self.endpoint,
                "request_id": pending.id,
                "command": pending.command,
            },
        )
        self._resend(pending)
        return True

    def __repr__(self) -> str:
        return f"RetryScheduler(max_retries={self.max_retries}, retry_delay={self.retry_delay_seconds}s)"
