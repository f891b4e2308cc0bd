"""CommunicationManager - one endpoint of the host <-> webview channel.

Wires the codec, correlation tracker, retry policy, heartbeat monitor and
handler dispatcher onto a Transport, and exposes the consumer API:

    async with CommunicationManager(transport, config) as comm:
        comm.register_handler("updateCell", handle_update_cell)
        rows = await comm.send_request("requestTableData")
        comm.sync_state({"tables": tables})

Both sides of the channel run the same class; the command names are what
differ.
"""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, Self

from webview_comm.config import CommunicationConfig
from webview_comm.logging_abstraction import get_logger
from webview_comm.messaging.correlation_tracker import CorrelationTracker, PendingRequest
from webview_comm.messaging.dispatcher import Handler, HandlerDispatcher
from webview_comm.messaging.heartbeat import ConnectionHealth, HealthObserver, HealthStatus, HeartbeatMonitor
from webview_comm.messaging.retry_scheduler import RetryScheduler
from webview_comm.metrics import registry
from webview_comm.protocol.codec import MessageCodec
from webview_comm.protocol.exceptions import CommunicationClosedError, MalformedMessageError, RequestError
from webview_comm.protocol.message_types import Command, Message
from webview_comm.scheduler import LoopScheduler, Scheduler, TimerHandle
from webview_comm.transport.exceptions import TransportError

if TYPE_CHECKING:
    from webview_comm.transport.base import Transport, Unsubscribe

__all__ = ["CommunicationManager", "SyncObserver"]

logger = get_logger(__name__)

SyncObserver = Callable[[Any], None]


class CommunicationManager:
    """Reliable request/response and notification messaging over a Transport.

    Receiving starts as soon as the manager is constructed; start() (or
    entering the async context) starts the heartbeat and resync timers.
    Must be constructed inside a running event loop unless a scheduler is given.

    Args:
        transport: Channel to the peer
        config: Timeouts and cadences (defaults when omitted)
        scheduler: Clock and timer source (the running loop's by default)
        codec: Message framer (by default clocked by ``scheduler``)

    """

    def __init__(
        self,
        transport: Transport,
        config: CommunicationConfig | None = None,
        *,
        scheduler: Scheduler | None = None,
        codec: MessageCodec | None = None,
    ) -> None:
        self.transport: Transport = transport
        self.config: CommunicationConfig = config or CommunicationConfig()
        self.endpoint: str = self.config.endpoint_name
        self.scheduler: Scheduler = scheduler or LoopScheduler()
        self.codec: MessageCodec = codec or MessageCodec(clock=self._clock_ms)

        self.retry_scheduler = RetryScheduler(
            self._retransmit,
            max_retries=self.config.max_retries,
            retry_delay_seconds=self.config.retry_delay_seconds,
            endpoint=self.endpoint,
        )
        self.tracker = CorrelationTracker(self.scheduler, self.retry_scheduler, self.endpoint)
        self.heartbeat = HeartbeatMonitor(
            self.scheduler,
            self.codec,
            self._post,
            interval_seconds=self.config.heartbeat_interval_seconds,
            missed_pong_threshold=self.config.missed_pong_threshold,
            endpoint=self.endpoint,
        )
        self.dispatcher = HandlerDispatcher(
            self.codec,
            self._post,
            self.tracker,
            self.heartbeat,
            endpoint=self.endpoint,
            validate_payloads=self.config.validate_payloads,
            dedup_cache_size=self.config.dedup_cache_size,
        )

        self._sync_observers: list[SyncObserver] = []
        self._sync_timer: TimerHandle | None = None
        self._sync_task: asyncio.Task[None] | None = None
        self._started: bool = False
        self._closed: bool = False

        if self.config.ack_phase_budget_ms >= self.config.response_timeout_ms:
            logger.warning(
                "ACK phase budget (%dms) is not below the response timeout (%dms); "
                "unacknowledged requests will fail with RequestTimeout instead of DeliveryFailed",
                self.config.ack_phase_budget_ms,
                self.config.response_timeout_ms,
                extra={"endpoint": self.endpoint},
            )

        self._unsubscribe: Unsubscribe | None = self.transport.on_message(self._on_raw)
        logger.debug("Communication manager created: %r", self.config, extra={"endpoint": self.endpoint})

    def _clock_ms(self) -> int:
        return int(self.scheduler.time() * 1000)

    # Lifecycle

    def start(self) -> None:
        """Start the heartbeat and resync timers (idempotent)."""
        if self._closed:
            msg = "Cannot start a closed CommunicationManager"
            raise RuntimeError(msg)
        if self._started:
            return
        self._started = True
        self.heartbeat.start()
        self._arm_sync_timer()
        logger.info(
            "✓ Communication started",
            extra={
                "endpoint": self.endpoint,
                "heartbeat_interval": self.config.heartbeat_interval_seconds,
                "sync_command": self.config.sync_command,
            },
        )

    async def close(self) -> None:
        """Stop timers, fail pending requests, cancel handlers and detach from the transport.

        Safe to call more than once.
        """
        if self._closed:
            return
        self._closed = True
        self.heartbeat.stop()
        if self._sync_timer is not None:
            self._sync_timer.cancel()
            self._sync_timer = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

        rejected = self.tracker.reject_all(lambda p: CommunicationClosedError(p.id, p.command))

        if self._sync_task is not None and not self._sync_task.done():
            _ = self._sync_task.cancel()
            _ = await asyncio.gather(self._sync_task, return_exceptions=True)
        self._sync_task = None

        await self.dispatcher.close()
        self._sync_observers.clear()
        logger.info(
            "Communication closed",
            extra={"endpoint": self.endpoint, "rejected_requests": rejected},
        )

    @property
    def closed(self) -> bool:
        return self._closed

    async def __aenter__(self) -> Self:
        self.start()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()

    # Sending

    async def send_request(self, command: str, payload: Any = None, *, timeout_ms: int | None = None) -> Any:
        """Send a REQUEST and wait for the peer's RESPONSE.

        Args:
            command: Command name
            payload: JSON-compatible payload
            timeout_ms: Response timeout for this request (config value by default)

        Returns:
            The ``data`` of a successful RESPONSE

        Raises:
            DeliveryFailedError: No ACK after every retransmission
            RequestTimeoutError: No RESPONSE within the response timeout
            RemoteRequestError: The peer answered with a failure (see subclasses)
            CommunicationClosedError: The manager was closed first

        """
        pending = self.start_request(command, payload, timeout_ms=timeout_ms)
        try:
            return await pending.future
        except asyncio.CancelledError:
            _ = self.tracker.cancel(pending.id)
            raise

    def start_request(self, command: str, payload: Any = None, *, timeout_ms: int | None = None) -> PendingRequest:
        """Send a REQUEST without waiting; the returned PendingRequest's ``future`` settles it."""
        message = self.codec.request(command, payload)
        if self._closed:
            raise CommunicationClosedError(message.id, command)

        response_timeout = timeout_ms / 1000.0 if timeout_ms is not None else self.config.response_timeout_seconds
        pending = self.tracker.register(message, self.config.ack_timeout_seconds, response_timeout)
        logger.debug(
            "→ Sending request '%s'",
            command,
            extra={"endpoint": self.endpoint, "request_id": message.id, "command": command},
        )
        _ = self._post(message)
        return pending

    def cancel_request(self, request_id: str) -> bool:
        """Cancel a pending request; the awaiting caller sees CancelledError."""
        return self.tracker.cancel(request_id)

    def send_notification(self, command: str, payload: Any = None) -> bool:
        """Send a fire-and-forget NOTIFICATION.

        Returns:
            False if the manager is closed or the transport refused the message

        """
        if self._closed:
            logger.warning(
                "Dropping notification '%s': manager closed",
                command,
                extra={"endpoint": self.endpoint, "command": command},
            )
            return False
        return self._post(self.codec.notification(command, payload))

    # Handlers and observers

    def register_handler(self, command: str, handler: Handler) -> None:
        """Handle incoming REQUESTs/NOTIFICATIONs for ``command``; the last registration wins."""
        self.dispatcher.register(command, handler)

    def unregister_handler(self, command: str) -> bool:
        return self.dispatcher.unregister(command)

    def on_health_change(self, observer: HealthObserver) -> Unsubscribe:
        return self.heartbeat.on_health_change(observer)

    def on_sync(self, observer: SyncObserver) -> Unsubscribe:
        """Receive the result of every periodic resync request."""
        self._sync_observers.append(observer)

        def unsubscribe() -> None:
            if observer in self._sync_observers:
                self._sync_observers.remove(observer)

        return unsubscribe

    @property
    def health(self) -> ConnectionHealth:
        return self.heartbeat.health

    def is_connected(self) -> bool:
        return self.heartbeat.health.status is HealthStatus.HEALTHY

    @property
    def pending_count(self) -> int:
        return len(self.tracker)

    # Resync

    async def request_sync(self) -> Any:
        """Send the configured sync command now and return the peer's answer."""
        command = self.config.sync_command
        if command is None:
            msg = "Resync is disabled (sync_command is None)"
            raise RuntimeError(msg)
        return await self.send_request(command)

    def _arm_sync_timer(self) -> None:
        if self.config.sync_command is None:
            return
        self._sync_timer = self.scheduler.call_later(self.config.sync_interval_seconds, self._on_sync_timer)

    def _on_sync_timer(self) -> None:
        self._arm_sync_timer()
        if self._sync_task is not None and not self._sync_task.done():
            logger.debug("Previous resync still running, skipping", extra={"endpoint": self.endpoint})
            return
        self._sync_task = asyncio.create_task(self._run_sync(), name=f"resync-{self.endpoint}")

    async def _run_sync(self) -> None:
        try:
            result = await self.request_sync()
        except RequestError as e:
            logger.warning(
                "Resync failed: %s",
                e,
                extra={"endpoint": self.endpoint, "error_type": type(e).__name__},
            )
            return
        for observer in list(self._sync_observers):
            try:
                observer(result)
            except Exception:
                logger.exception("Sync observer raised", extra={"endpoint": self.endpoint})

    # Convenience notifications (host -> webview)

    def sync_state(self, data: Any) -> bool:
        return self.send_notification(Command.SYNC_STATE, data)

    def update_table_data(self, data: Any) -> bool:
        return self.send_notification(Command.UPDATE_TABLE_DATA, data)

    def set_active_table(self, index: int) -> bool:
        return self.send_notification(Command.SET_ACTIVE_TABLE, {"index": index})

    def apply_theme_variables(self, css_text: str) -> bool:
        return self.send_notification(Command.APPLY_THEME_VARIABLES, {"cssText": css_text})

    def apply_font_settings(self, font_family: str | None = None, font_size: int | None = None) -> bool:
        payload = {"fontFamily": font_family, "fontSize": font_size}
        return self.send_notification(Command.APPLY_FONT_SETTINGS, {k: v for k, v in payload.items() if v is not None})

    def send_operation_success(self, message: str, data: Any = None) -> bool:
        payload: dict[str, Any] = {"message": message}
        if data is not None:
            payload["data"] = data
        return self.send_notification(Command.OPERATION_SUCCESS, payload)

    def send_operation_error(self, error: str, code: str | None = None) -> bool:
        payload: dict[str, Any] = {"error": error}
        if code is not None:
            payload["code"] = code
        return self.send_notification(Command.OPERATION_ERROR, payload)

    def send_cell_update_error(self, row: int, col: int, error: str) -> bool:
        return self.send_notification(Command.CELL_UPDATE_ERROR, {"row": row, "col": col, "error": error})

    def send_header_update_error(self, col: int, error: str) -> bool:
        return self.send_notification(Command.HEADER_UPDATE_ERROR, {"col": col, "error": error})

    # Convenience senders (webview -> host)

    def _notify(self, command: str, **fields: Any) -> bool:
        """Send ``command`` with the non-None ``fields`` as payload (None when all are unset)."""
        payload = {k: v for k, v in fields.items() if v is not None}
        return self.send_notification(command, payload or None)

    async def request_table_data(self, *, timeout_ms: int | None = None) -> Any:
        return await self.send_request(Command.REQUEST_TABLE_DATA, timeout_ms=timeout_ms)

    async def request_theme_variables(self, *, timeout_ms: int | None = None) -> Any:
        return await self.send_request(Command.REQUEST_THEME_VARIABLES, timeout_ms=timeout_ms)

    def update_cell(self, row: int, col: int, value: str, table_index: int | None = None) -> bool:
        return self._notify(Command.UPDATE_CELL, row=row, col=col, value=value, tableIndex=table_index)

    def bulk_update_cells(self, updates: list[dict[str, Any]], table_index: int | None = None) -> bool:
        return self._notify(Command.BULK_UPDATE_CELLS, updates=updates, tableIndex=table_index)

    def update_header(self, col: int, value: str, table_index: int | None = None) -> bool:
        return self._notify(Command.UPDATE_HEADER, col=col, value=value, tableIndex=table_index)

    def add_row(self, index: int | None = None, count: int | None = None, table_index: int | None = None) -> bool:
        return self._notify(Command.ADD_ROW, index=index, count=count, tableIndex=table_index)

    def delete_rows(self, indices: list[int], table_index: int | None = None) -> bool:
        return self._notify(Command.DELETE_ROWS, indices=indices, tableIndex=table_index)

    def add_column(self, index: int | None = None, table_index: int | None = None) -> bool:
        return self._notify(Command.ADD_COLUMN, index=index, tableIndex=table_index)

    def delete_columns(self, indices: list[int], table_index: int | None = None) -> bool:
        return self._notify(Command.DELETE_COLUMNS, indices=indices, tableIndex=table_index)

    def sort(self, column: int, direction: str, table_index: int | None = None) -> bool:
        """Sort by ``column``; ``direction`` is "asc", "desc" or "none"."""
        return self._notify(Command.SORT, column=column, direction=direction, tableIndex=table_index)

    def move_row(self, from_index: int, to_index: int, table_index: int | None = None) -> bool:
        return self._notify(Command.MOVE_ROW, fromIndex=from_index, toIndex=to_index, tableIndex=table_index)

    def move_column(self, from_index: int, to_index: int, table_index: int | None = None) -> bool:
        return self._notify(Command.MOVE_COLUMN, fromIndex=from_index, toIndex=to_index, tableIndex=table_index)

    def export_csv(
        self,
        csv_content: str,
        filename: str | None = None,
        encoding: str | None = None,
        table_index: int | None = None,
    ) -> bool:
        return self._notify(
            Command.EXPORT_CSV,
            csvContent=csv_content,
            filename=filename,
            encoding=encoding,
            tableIndex=table_index,
        )

    def switch_table(self, index: int) -> bool:
        return self._notify(Command.SWITCH_TABLE, index=index)

    def undo(self) -> bool:
        return self._notify(Command.UNDO)

    def redo(self) -> bool:
        return self._notify(Command.REDO)

    def notify_sync_requested(self) -> bool:
        """Ask the peer for a full state push without waiting for an answer (see request_sync())."""
        return self._notify(Command.REQUEST_SYNC)

    # Wire

    def _post(self, message: Message) -> bool:
        kind = message.kind.value
        try:
            self.transport.send(message.to_wire())
        except (TransportError, OSError) as e:
            registry.record_message_sent(self.endpoint, kind, "failed")
            logger.warning(
                "Transport refused %s: %s",
                kind,
                e,
                extra={"endpoint": self.endpoint, "message_id": message.id, "kind": kind},
            )
            return False
        registry.record_message_sent(self.endpoint, kind, "success")
        return True

    def _retransmit(self, pending: PendingRequest) -> None:
        pending.message = self.codec.reframe(pending.message)
        _ = self._post(pending.message)

    def _on_raw(self, raw: Any) -> None:
        if self._closed:
            return
        try:
            message = self.codec.decode(raw)
        except MalformedMessageError as e:
            registry.record_decode_error(self.endpoint, e.reason)
            logger.warning(
                "Dropping malformed message: %s",
                e.reason,
                extra={"endpoint": self.endpoint, "reason": e.reason, "raw": e.raw_preview},
            )
            return
        registry.record_message_recv(self.endpoint, message.kind.value)
        self.dispatcher.dispatch(message)

    def __repr__(self) -> str:
        state = "closed" if self._closed else "started" if self._started else "idle"
        return f"CommunicationManager({self.endpoint}, {state}, pending={len(self.tracker)})"
