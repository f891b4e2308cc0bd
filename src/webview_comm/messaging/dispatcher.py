"""Receiver-side routing of decoded messages.

Every REQUEST is answered: an ACK goes out before the handler is scheduled,
and exactly one RESPONSE follows whatever the handler does (including not
existing, rejecting the payload, or raising). Retransmitted REQUESTs are
recognized by id and re-acknowledged without running the handler again.
"""

from __future__ import annotations

import asyncio
import inspect
import json
import time
from collections import OrderedDict
from collections.abc import Awaitable, Callable, Coroutine
from typing import TYPE_CHECKING, Any, assert_never

from webview_comm.correlation import correlation_context
from webview_comm.instrumentation import measure_time, timed_async
from webview_comm.logging_abstraction import get_logger
from webview_comm.metrics import registry
from webview_comm.protocol.message_types import ErrorCode, Message, MessageKind, ResponseResult
from webview_comm.protocol.payloads import validate_payload

if TYPE_CHECKING:
    from webview_comm.messaging.correlation_tracker import CorrelationTracker
    from webview_comm.messaging.heartbeat import HeartbeatMonitor
    from webview_comm.protocol.codec import MessageCodec

__all__ = ["Handler", "HandlerDispatcher"]

logger = get_logger(__name__)

# Takes the request/notification payload; may return a value or an awaitable
Handler = Callable[[Any], Any | Awaitable[Any]]


class HandlerDispatcher:
    """Routes each incoming message by kind.

    - REQUEST: ACK, then run the handler and send its RESPONSE
    - NOTIFICATION: run the handler, nothing is sent back
    - RESPONSE / ACK: handed to the correlation tracker
    - PING: answered with a PONG echoing its timestamp
    - PONG: handed to the heartbeat monitor
    """

    def __init__(
        self,
        codec: MessageCodec,
        post: Callable[[Message], bool],
        tracker: CorrelationTracker,
        heartbeat: HeartbeatMonitor,
        *,
        endpoint: str = "endpoint",
        validate_payloads: bool = True,
        dedup_cache_size: int = 256,
    ) -> None:
        self.codec: MessageCodec = codec
        self._post: Callable[[Message], bool] = post
        self.tracker: CorrelationTracker = tracker
        self.heartbeat: HeartbeatMonitor = heartbeat
        self.endpoint: str = endpoint
        self.validate_payloads: bool = validate_payloads
        self.dedup_cache_size: int = dedup_cache_size
        self._handlers: dict[str, Handler] = {}
        # request id -> cached RESPONSE (None while the handler is still running)
        self._seen_requests: OrderedDict[str, Message | None] = OrderedDict()
        self._tasks: set[asyncio.Task[None]] = set()

    # Registry

    def register(self, command: str, handler: Handler) -> None:
        """Register ``handler`` for ``command`` (a later registration replaces an earlier one)."""
        if command in self._handlers:
            logger.info(
                "Replacing handler for '%s'",
                command,
                extra={"endpoint": self.endpoint, "command": command},
            )
        self._handlers[command] = handler

    def unregister(self, command: str) -> bool:
        """Remove the handler for ``command``; returns False if none was registered."""
        return self._handlers.pop(command, None) is not None

    def has_handler(self, command: str) -> bool:
        return command in self._handlers

    def clear(self) -> None:
        self._handlers.clear()

    @property
    def in_flight(self) -> int:
        """Handler tasks not yet finished."""
        return len(self._tasks)

    # Routing

    def dispatch(self, message: Message) -> None:
        """Route one decoded message. Never raises for peer-caused problems."""
        match message.kind:
            case MessageKind.REQUEST:
                self._on_request(message)
            case MessageKind.NOTIFICATION:
                self._on_notification(message)
            case MessageKind.RESPONSE:
                _ = self.tracker.on_response(message.correlation_id or "", ResponseResult.from_payload(message.payload))
            case MessageKind.ACK:
                _ = self.tracker.on_ack(message.correlation_id or "")
            case MessageKind.PING:
                _ = self._post(self.codec.pong(message))
            case MessageKind.PONG:
                _ = self.heartbeat.on_pong(message)
            case _:
                assert_never(message.kind)

    def _on_request(self, message: Message) -> None:
        # ACK first, before any handler code runs
        _ = self._post(self.codec.ack(message))

        if message.id in self._seen_requests:
            registry.record_dedup_cache_hit(self.endpoint)
            cached = self._seen_requests[message.id]
            self._seen_requests.move_to_end(message.id)
            logger.debug(
                "Duplicate REQUEST re-acknowledged",
                extra={
                    "endpoint": self.endpoint,
                    "request_id": message.id,
                    "command": message.command,
                    "response_cached": cached is not None,
                },
            )
            if cached is not None:
                _ = self._post(cached)
            return

        self._remember(message.id, None)
        self._spawn(self._serve_request(message), f"request-{message.command}")

    def _on_notification(self, message: Message) -> None:
        command = message.command or ""
        handler = self._handlers.get(command)
        if handler is None:
            registry.record_handler_outcome(self.endpoint, "not_found")
            logger.info(
                "No handler for notification '%s'",
                command,
                extra={"endpoint": self.endpoint, "command": command},
            )
            return

        error = self._validate(command, message.payload)
        if error is not None:
            registry.record_handler_outcome(self.endpoint, "invalid_payload")
            logger.warning(
                "Dropping notification with invalid payload: %s",
                error,
                extra={"endpoint": self.endpoint, "command": command},
            )
            return

        self._spawn(self._serve_notification(message, handler), f"notification-{command}")

    # Handler execution

    async def _serve_request(self, message: Message) -> None:
        with correlation_context(message.id):
            result = await self._run_request_handler(message)
            response = self.codec.response(message, result)
            if message.id in self._seen_requests:
                self._seen_requests[message.id] = response
            _ = self._post(response)

    @timed_async("request_handler")
    async def _run_request_handler(self, message: Message) -> ResponseResult:
        command = message.command or ""
        handler = self._handlers.get(command)
        if handler is None:
            registry.record_handler_outcome(self.endpoint, "not_found")
            logger.warning(
                "No handler for request '%s'",
                command,
                extra={"endpoint": self.endpoint, "request_id": message.id, "command": command},
            )
            return ResponseResult.failure(ErrorCode.HANDLER_NOT_FOUND, f"No handler registered for command: {command}")

        error = self._validate(command, message.payload)
        if error is not None:
            registry.record_handler_outcome(self.endpoint, "invalid_payload")
            logger.warning(
                "Rejecting request with invalid payload: %s",
                error,
                extra={"endpoint": self.endpoint, "request_id": message.id, "command": command},
            )
            return ResponseResult.failure(ErrorCode.VALIDATION_FAILED, error)

        start_time = time.perf_counter()
        try:
            data = await self._invoke(handler, message.payload)
        except asyncio.CancelledError:
            raise
        except Exception as e:
            registry.record_handler_outcome(self.endpoint, "failed")
            logger.exception(
                "Handler for '%s' raised",
                command,
                extra={"endpoint": self.endpoint, "request_id": message.id, "command": command},
            )
            return ResponseResult.failure(ErrorCode.EXECUTION_FAILED, str(e) or type(e).__name__)
        finally:
            registry.record_handler_duration(self.endpoint, command, measure_time(start_time) / 1000.0)

        try:
            _ = json.dumps(data)
        except (TypeError, ValueError) as e:
            registry.record_handler_outcome(self.endpoint, "failed")
            logger.error(
                "Handler for '%s' returned a value that cannot be sent: %s",
                command,
                e,
                extra={"endpoint": self.endpoint, "request_id": message.id, "command": command},
            )
            return ResponseResult.failure(ErrorCode.EXECUTION_FAILED, f"Handler result is not serializable: {e}")

        registry.record_handler_outcome(self.endpoint, "success")
        return ResponseResult.ok(data)

    async def _serve_notification(self, message: Message, handler: Handler) -> None:
        command = message.command or ""
        with correlation_context(message.id):
            try:
                _ = await self._invoke(handler, message.payload)
            except asyncio.CancelledError:
                raise
            except Exception:
                registry.record_handler_outcome(self.endpoint, "failed")
                logger.exception(
                    "Notification handler for '%s' raised",
                    command,
                    extra={"endpoint": self.endpoint, "command": command},
                )
                return
        registry.record_handler_outcome(self.endpoint, "success")

    @staticmethod
    async def _invoke(handler: Handler, payload: Any) -> Any:
        result = handler(payload)
        if inspect.isawaitable(result):
            result = await result
        return result

    def _validate(self, command: str, payload: Any) -> str | None:
        if not self.validate_payloads:
            return None
        return validate_payload(command, payload)

    # Bookkeeping

    def _remember(self, request_id: str, response: Message | None) -> None:
        if self.dedup_cache_size <= 0:
            return
        self._seen_requests[request_id] = response
        while len(self._seen_requests) > self.dedup_cache_size:
            _ = self._seen_requests.popitem(last=False)

    def _spawn(self, coro: Coroutine[Any, Any, None], name: str) -> None:
        task = asyncio.create_task(coro, name=name)
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    async def close(self) -> None:
        """Cancel running handler tasks and drop handlers and the duplicate cache."""
        tasks = list(self._tasks)
        for task in tasks:
            _ = task.cancel()
        if tasks:
            _ = await asyncio.gather(*tasks, return_exceptions=True)
        self._tasks.clear()
        self._handlers.clear()
        self._seen_requests.clear()

    def __repr__(self) -> str:
        return f"HandlerDispatcher({self.endpoint}, handlers={sorted(self._handlers)}, in_flight={len(self._tasks)})"
