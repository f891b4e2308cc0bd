"""Message codec: frames outgoing messages and validates incoming raw values.

The codec is a pure transform apart from its id generator and its timestamp
watermark, which keeps timestamps non-decreasing even if the wall clock steps
backwards.
"""

from __future__ import annotations

import json
import math
import time
from collections.abc import Callable, Mapping
from dataclasses import replace
from typing import Any

from uuid_extensions import uuid7

from webview_comm.protocol.exceptions import MalformedMessageError
from webview_comm.protocol.message_types import (
    COMMAND_KINDS,
    CORRELATED_KINDS,
    FIELD_COMMAND,
    FIELD_CORRELATION_ID,
    FIELD_ID,
    FIELD_KIND,
    FIELD_PAYLOAD,
    FIELD_TIMESTAMP,
    Message,
    MessageKind,
    ResponseResult,
)

__all__ = ["MessageCodec", "generate_message_id", "wall_clock_ms"]


def generate_message_id() -> str:
    """Generate a process-unique, time-ordered message id (UUID v7)."""
    return str(uuid7())


def wall_clock_ms() -> int:
    """Current wall clock in milliseconds."""
    return int(time.time() * 1000)


class MessageCodec:
    """Build and parse wire messages.

    Args:
        clock: Millisecond clock used for timestamps (defaults to wall clock)
        id_factory: Message id generator (defaults to UUID v7)

    Usage:
        >>> codec = MessageCodec()
        >>> msg = codec.request("updateCell", {"row": 2, "col": 1, "value": "hi"})
        >>> codec.decode(msg.to_wire()) == msg
        True

    """

    def __init__(
        self,
        clock: Callable[[], int] | None = None,
        id_factory: Callable[[], str] | None = None,
    ) -> None:
        self._clock: Callable[[], int] = clock or wall_clock_ms
        self._id_factory: Callable[[], str] = id_factory or generate_message_id
        self._last_timestamp: int = 0

    def now(self) -> int:
        """Return the next timestamp, never lower than the previous one."""
        current = int(self._clock())
        if current < self._last_timestamp:
            current = self._last_timestamp
        self._last_timestamp = current
        return current

    # Framing

    def frame(
        self,
        kind: MessageKind,
        command: str | None = None,
        payload: Any = None,
        correlation_id: str | None = None,
    ) -> Message:
        """Build a new message with a fresh id and timestamp.

        Raises:
            ValueError: If a REQUEST/NOTIFICATION lacks a command or a RESPONSE/ACK
                lacks a correlation id

        """
        if kind in COMMAND_KINDS and not command:
            msg = f"{kind} requires a command"
            raise ValueError(msg)
        if kind in CORRELATED_KINDS and not correlation_id:
            msg = f"{kind} requires a correlation id"
            raise ValueError(msg)
        return Message(
            id=self._id_factory(),
            kind=kind,
            timestamp=self.now(),
            command=command,
            payload=payload,
            correlation_id=correlation_id,
        )

    def reframe(self, message: Message) -> Message:
        """Copy a message for retransmission: same id and payload, fresh timestamp."""
        return replace(message, timestamp=self.now())

    def request(self, command: str, payload: Any = None) -> Message:
        return self.frame(MessageKind.REQUEST, command=command, payload=payload)

    def notification(self, command: str, payload: Any = None) -> Message:
        return self.frame(MessageKind.NOTIFICATION, command=command, payload=payload)

    def ack(self, request: Message) -> Message:
        return self.frame(MessageKind.ACK, correlation_id=request.id)

    def response(self, request: Message, result: ResponseResult) -> Message:
        return self.frame(
            MessageKind.RESPONSE,
            payload=result.to_payload(),
            correlation_id=request.id,
        )

    def ping(self) -> Message:
        """Build a PING whose payload carries the send timestamp."""
        timestamp = self.now()
        return Message(
            id=self._id_factory(),
            kind=MessageKind.PING,
            timestamp=timestamp,
            payload={"timestamp": timestamp},
        )

    def pong(self, ping: Message) -> Message:
        """Build a PONG echoing the timestamp carried by ``ping``."""
        echoed = ping.payload.get("timestamp") if isinstance(ping.payload, dict) else None
        if echoed is None:
            echoed = ping.timestamp
        return self.frame(MessageKind.PONG, payload={"timestamp": echoed})

    # Wire conversion

    @staticmethod
    def encode_json(message: Message) -> str:
        """Serialize ``message`` as a compact JSON string."""
        return json.dumps(message.to_wire(), separators=(",", ":"))

    def decode(self, raw: Any) -> Message:
        """Parse a raw incoming value (mapping, JSON str or bytes) into a Message.

        Unknown command strings are preserved.

        Raises:
            MalformedMessageError: If the value is not a valid message

        """
        if isinstance(raw, bytes | bytearray):
            try:
                raw = raw.decode("utf-8")
            except UnicodeDecodeError as e:
                raise MalformedMessageError("invalid_utf8", raw) from e
        if isinstance(raw, str):
            try:
                raw = json.loads(raw)
            except json.JSONDecodeError as e:
                raise MalformedMessageError("invalid_json", raw) from e

        if not isinstance(raw, Mapping):
            raise MalformedMessageError("not_an_object", raw)

        message_id = raw.get(FIELD_ID)
        if not isinstance(message_id, str) or not message_id:
            raise MalformedMessageError("missing_id", raw)

        try:
            kind = MessageKind(raw.get(FIELD_KIND))
        except ValueError as e:
            raise MalformedMessageError("unknown_kind", raw) from e

        timestamp = raw.get(FIELD_TIMESTAMP)
        # bool is an int subclass; reject it explicitly
        if isinstance(timestamp, bool) or not isinstance(timestamp, int | float):
            raise MalformedMessageError("missing_timestamp", raw)
        # json.loads accepts Infinity and NaN
        if isinstance(timestamp, float) and not math.isfinite(timestamp):
            raise MalformedMessageError("invalid_timestamp", raw)

        command = raw.get(FIELD_COMMAND)
        if command is not None and not isinstance(command, str):
            raise MalformedMessageError("invalid_command", raw)
        if kind in COMMAND_KINDS and not command:
            raise MalformedMessageError("missing_command", raw)

        correlation_id = raw.get(FIELD_CORRELATION_ID)
        if correlation_id is not None and not isinstance(correlation_id, str):
            raise MalformedMessageError("invalid_correlation_id", raw)
        if kind in CORRELATED_KINDS and not correlation_id:
            raise MalformedMessageError("missing_correlation_id", raw)

        return Message(
            id=message_id,
            kind=kind,
            timestamp=int(timestamp),
            command=command,
            payload=raw.get(FIELD_PAYLOAD),
            correlation_id=correlation_id,
        )
