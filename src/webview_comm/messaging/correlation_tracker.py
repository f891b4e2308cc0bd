"""Sender-side bookkeeping for in-flight requests.

Every request sent with send_request() gets one PendingRequest, keyed by the
request's message id. The tracker's map is the single source of truth: an
entry is terminated exactly once, by whichever of these removes it first:

- a matching RESPONSE (resolve, or reject with the peer's failure)
- the response timer (RequestTimeoutError)
- the retry budget running out without an ACK (DeliveryFailedError)
- explicit cancellation or manager shutdown

ACKs and RESPONSEs whose correlation id is not in the map (late, duplicate or
unknown) are dropped without touching any state.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from functools import partial
from typing import TYPE_CHECKING, Any

from webview_comm.logging_abstraction import get_logger
from webview_comm.metrics import registry
from webview_comm.protocol.exceptions import (
    CommandNotSupportedError,
    DeliveryFailedError,
    DuplicateRequestError,
    HandlerFailureError,
    PayloadValidationError,
    RemoteRequestError,
    RequestError,
    RequestTimeoutError,
)
from webview_comm.protocol.message_types import ErrorCode, Message, ResponseResult

if TYPE_CHECKING:
    from webview_comm.messaging.retry_scheduler import RetryScheduler
    from webview_comm.scheduler import Scheduler, TimerHandle

__all__ = ["CorrelationTracker", "PendingRequest"]

logger = get_logger(__name__)

_REMOTE_ERRORS: dict[str, type[RemoteRequestError]] = {
    ErrorCode.HANDLER_NOT_FOUND: CommandNotSupportedError,
    ErrorCode.EXECUTION_FAILED: HandlerFailureError,
    ErrorCode.VALIDATION_FAILED: PayloadValidationError,
}


@dataclass(eq=False)
class PendingRequest:
    """Tracks one request awaiting its terminal outcome.

    Attributes:
        id: Request message id (shared by every retransmission)
        command: Request command
        message: Last framed copy of the request (retransmissions refresh it)
        created_at: Scheduler time of the first send
        future: Completed with the response data or a RequestError
        ack_timer: Pending ACK timer (None once acknowledged)
        response_timer: Pending response timer
        retries_sent: Retransmissions sent so far
        acknowledged: Whether an ACK has been received

    """

    id: str
    command: str
    message: Message
    created_at: float
    future: asyncio.Future[Any]
    ack_timer: TimerHandle | None = None
    response_timer: TimerHandle | None = None
    retries_sent: int = 0
    acknowledged: bool = False

    def cancel_timers(self) -> None:
        if self.ack_timer is not None:
            self.ack_timer.cancel()
            self.ack_timer = None
        if self.response_timer is not None:
            self.response_timer.cancel()
            self.response_timer = None


class CorrelationTracker:
    """Map of outstanding request ids to their PendingRequest.

    Args:
        scheduler: Clock and timer source
        retry_scheduler: Decides what happens when an ACK timer expires
        endpoint: Label for logs and metrics

    """

    def __init__(self, scheduler: Scheduler, retry_scheduler: RetryScheduler, endpoint: str = "endpoint") -> None:
        self.scheduler: Scheduler = scheduler
        self.retry_scheduler: RetryScheduler = retry_scheduler
        self.endpoint: str = endpoint
        self._pending: dict[str, PendingRequest] = {}

    def __len__(self) -> int:
        return len(self._pending)

    def __contains__(self, request_id: object) -> bool:
        return request_id in self._pending

    def get(self, request_id: str) -> PendingRequest | None:
        return self._pending.get(request_id)

    def register(
        self,
        message: Message,
        ack_timeout_seconds: float,
        response_timeout_seconds: float,
    ) -> PendingRequest:
        """Start tracking ``message`` and arm its ACK and response timers.

        Raises:
            DuplicateRequestError: If the id already has a live entry

        """
        if message.id in self._pending:
            raise DuplicateRequestError(message.id)

        loop = asyncio.get_running_loop()
        pending = PendingRequest(
            id=message.id,
            command=message.command or "",
            message=message,
            created_at=self.scheduler.time(),
            future=loop.create_future(),
        )
        pending.ack_timer = self.scheduler.call_later(ack_timeout_seconds, self.on_ack_timeout_fired, message.id)
        pending.response_timer = self.scheduler.call_later(
            response_timeout_seconds,
            self.on_response_timeout_fired,
            message.id,
            response_timeout_seconds,
        )
        pending.future.add_done_callback(partial(self._on_future_done, message.id))
        self._pending[message.id] = pending
        registry.record_pending_requests(self.endpoint, len(self._pending))
        logger.debug(
            "→ Tracking request",
            extra={
                "endpoint": self.endpoint,
                "request_id": message.id,
                "command": pending.command,
                "ack_timeout": ack_timeout_seconds,
                "response_timeout": response_timeout_seconds,
            },
        )
        return pending

    # Incoming answers

    def on_ack(self, correlation_id: str) -> bool:
        """Mark the request acknowledged and stop its ACK timer.

        Returns:
            True if a live request matched, False if the ACK was stale

        """
        pending = self._pending.get(correlation_id)
        if pending is None:
            registry.record_stale_answer(self.endpoint, "ACK")
            logger.debug(
                "Ignoring ACK with no pending request",
                extra={"endpoint": self.endpoint, "correlation_id": correlation_id},
            )
            return False
        if not pending.acknowledged:
            pending.acknowledged = True
            if pending.ack_timer is not None:
                pending.ack_timer.cancel()
                pending.ack_timer = None
            logger.debug(
                "✓ Request acknowledged",
                extra={
                    "endpoint": self.endpoint,
                    "request_id": correlation_id,
                    "command": pending.command,
                    "retries_sent": pending.retries_sent,
                },
            )
        return True

    def on_response(self, correlation_id: str, result: ResponseResult) -> bool:
        """Complete the request with the peer's result.

        Returns:
            True if a live request matched, False if the RESPONSE was stale

        """
        pending = self._pending.get(correlation_id)
        if pending is None:
            registry.record_stale_answer(self.endpoint, "RESPONSE")
            logger.debug(
                "Ignoring RESPONSE with no pending request (late or duplicate)",
                extra={"endpoint": self.endpoint, "correlation_id": correlation_id},
            )
            return False

        if result.success:
            self._terminate(pending, outcome="success", result=result.data)
        else:
            code = result.code or ErrorCode.UNKNOWN.value
            error_cls = _REMOTE_ERRORS.get(code, RemoteRequestError)
            error = error_cls(pending.id, pending.command, code, result.error or "Request failed")
            self._terminate(pending, outcome="remote_error", error=error)
        return True

    # Timers

    def on_ack_timeout_fired(self, request_id: str) -> None:
        """ACK timer expired: retransmit, or fail with DeliveryFailedError once retries are spent."""
        pending = self._pending.get(request_id)
        if pending is None or pending.acknowledged:
            return
        pending.ack_timer = None
        registry.record_ack_timeout(self.endpoint)

        if self.retry_scheduler.on_ack_timeout(pending):
            pending.ack_timer = self.scheduler.call_later(
                self.retry_scheduler.retry_delay_seconds,
                self.on_ack_timeout_fired,
                request_id,
            )
            return

        logger.warning(
            "✗ No ACK after %d retries, giving up",
            pending.retries_sent,
            extra={"endpoint": self.endpoint, "request_id": request_id, "command": pending.command},
        )
        self._terminate(
            pending,
            outcome="delivery_failed",
            error=DeliveryFailedError(pending.id, pending.command, pending.retries_sent),
        )

    def on_response_timeout_fired(self, request_id: str, timeout_seconds: float) -> None:
        """Response timer expired: fail with RequestTimeoutError, even if the request was ACKed."""
        pending = self._pending.get(request_id)
        if pending is None:
            return
        pending.response_timer = None
        logger.warning(
            "✗ Request timed out after %.1fs",
            timeout_seconds,
            extra={
                "endpoint": self.endpoint,
                "request_id": request_id,
                "command": pending.command,
                "acknowledged": pending.acknowledged,
            },
        )
        self._terminate(
            pending,
            outcome="timeout",
            error=RequestTimeoutError(pending.id, pending.command, timeout_seconds, pending.acknowledged),
        )

    # Consumer-driven termination

    def cancel(self, request_id: str) -> bool:
        """Cancel a pending request; its future is cancelled and late answers are ignored.

        Returns:
            True if the request was still pending

        """
        pending = self._pending.get(request_id)
        if pending is None:
            return False
        self._terminate(pending, outcome="cancelled")
        return True

    def reject_all(self, error_factory: Callable[[PendingRequest], RequestError], outcome: str = "closed") -> int:
        """Fail every pending request (used on shutdown).

        Returns:
            Number of requests rejected

        """
        pending_requests = list(self._pending.values())
        for pending in pending_requests:
            self._terminate(pending, outcome=outcome, error=error_factory(pending))
        return len(pending_requests)

    def _terminate(
        self,
        pending: PendingRequest,
        outcome: str,
        result: Any = None,
        error: RequestError | None = None,
    ) -> None:
        # Removal from the map is the termination point; only the first caller gets here
        if self._pending.pop(pending.id, None) is None:
            return
        pending.cancel_timers()

        if not pending.future.done():
            if outcome == "cancelled":
                _ = pending.future.cancel()
            elif error is not None:
                pending.future.set_exception(error)
            else:
                pending.future.set_result(result)

        latency = self.scheduler.time() - pending.created_at
        registry.record_request_outcome(self.endpoint, outcome, latency)
        registry.record_pending_requests(self.endpoint, len(self._pending))
        logger.debug(
            "Request finished: %s",
            outcome,
            extra={
                "endpoint": self.endpoint,
                "request_id": pending.id,
                "command": pending.command,
                "latency_ms": round(latency * 1000, 1),
                "retries_sent": pending.retries_sent,
            },
        )

    def _on_future_done(self, request_id: str, future: asyncio.Future[Any]) -> None:
        # The caller cancelled the future directly (e.g. its awaiting task was cancelled)
        if future.cancelled() and request_id in self._pending:
            self.cancel(request_id)
