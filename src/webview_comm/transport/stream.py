"""Newline-delimited JSON transport over asyncio streams.

Lets a host process and a UI process that are not embedded in each other
(for example over a local TCP socket or a child process's pipes) use the same
messaging layer. Each wire message is one compact JSON object followed by
``\\n``.
"""

from __future__ import annotations

import asyncio
import contextlib
import json
from typing import Any

from webview_comm.const import MAX_LINE_BYTES
from webview_comm.logging_abstraction import get_logger
from webview_comm.transport.base import MessageCallback, Unsubscribe
from webview_comm.transport.exceptions import TransportError

__all__ = ["LineFramer", "StreamTransport"]

logger = get_logger(__name__)

_READ_CHUNK_BYTES = 65536


class LineFramer:
    r"""Extract complete lines from a byte stream.

    Reads may return partial lines, several lines, or exact boundaries; the
    framer buffers bytes until a newline completes a line.

    Security: a line longer than ``max_line_bytes`` is discarded (up to and
    including its terminating newline) instead of growing the buffer without
    bound.

    Example:
        framer = LineFramer()
        assert framer.feed(b'{"id":"a"') == []
        assert framer.feed(b',"kind":"PING"}\n') == [b'{"id":"a","kind":"PING"}']

    """

    def __init__(self, max_line_bytes: int = MAX_LINE_BYTES) -> None:
        self.max_line_bytes: int = max_line_bytes
        self.buffer: bytearray = bytearray()
        self._discarding: bool = False
        self.discarded_lines: int = 0

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to buffer and return complete, non-empty lines (without newline)."""
        self.buffer.extend(data)
        lines: list[bytes] = []
        while True:
            newline = self.buffer.find(b"\n")
            if newline < 0:
                break
            line = bytes(self.buffer[:newline]).rstrip(b"\r")
            del self.buffer[: newline + 1]
            if self._discarding:
                # Tail of an oversize line
                self._discarding = False
                continue
            if len(line) > self.max_line_bytes:
                self._record_discard(len(line))
                continue
            if line.strip():
                lines.append(line)

        if len(self.buffer) > self.max_line_bytes:
            self._record_discard(len(self.buffer))
            self.buffer = bytearray()
            self._discarding = True
        return lines

    def _record_discard(self, size: int) -> None:
        self.discarded_lines += 1
        logger.warning(
            "Discarding oversize line: %d bytes (max %d)",
            size,
            self.max_line_bytes,
            extra={"line_bytes": size, "max_line_bytes": self.max_line_bytes},
        )


class StreamTransport:
    """Transport over an asyncio StreamReader/StreamWriter pair.

    Incoming lines are passed to subscribers as ``bytes``; the codec decodes
    (and rejects) them, so a corrupt line never stops the read loop.
    """

    def __init__(
        self,
        reader: asyncio.StreamReader,
        writer: asyncio.StreamWriter,
        name: str = "stream",
        max_line_bytes: int = MAX_LINE_BYTES,
    ) -> None:
        self.name: str = name
        self.reader: asyncio.StreamReader = reader
        self.writer: asyncio.StreamWriter = writer
        self.framer: LineFramer = LineFramer(max_line_bytes)
        self._subscribers: list[MessageCallback] = []
        self._read_task: asyncio.Task[None] | None = None
        self._closed: bool = False

    @classmethod
    async def connect(cls, host: str, port: int, timeout: float = 5.0, name: str | None = None) -> StreamTransport:
        """Open a TCP connection and start reading.

        Raises:
            TransportError: If the connection cannot be established in time

        """
        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(host, port), timeout=timeout)
        except (TimeoutError, OSError) as e:
            raise TransportError(f"connect to {host}:{port} failed: {e!r}", transport="stream") from e
        transport = cls(reader, writer, name=name or f"{host}:{port}")
        transport.start()
        logger.info("Connected stream transport", extra={"transport": transport.name})
        return transport

    def start(self) -> None:
        """Start the background read loop (idempotent)."""
        if self._read_task is None or self._read_task.done():
            self._read_task = asyncio.create_task(self._read_loop(), name=f"stream-read-{self.name}")

    def send(self, raw: dict[str, Any]) -> None:
        if self._closed or self.writer.is_closing():
            raise TransportError("stream closed", transport=self.name)
        try:
            data = json.dumps(raw, separators=(",", ":")).encode("utf-8") + b"\n"
        except (TypeError, ValueError) as e:
            raise TransportError(f"payload not serializable: {e}", transport=self.name) from e
        try:
            self.writer.write(data)
        except OSError as e:
            raise TransportError(f"write failed: {e!r}", transport=self.name) from e

    def on_message(self, callback: MessageCallback) -> Unsubscribe:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    async def drain(self) -> None:
        """Wait until the write buffer is flushed."""
        await self.writer.drain()

    async def _read_loop(self) -> None:
        try:
            while not self._closed:
                try:
                    data = await self.reader.read(_READ_CHUNK_BYTES)
                except OSError:
                    logger.exception("Stream read failed", extra={"transport": self.name})
                    break
                if not data:
                    logger.info("Stream closed by peer", extra={"transport": self.name})
                    break
                for line in self.framer.feed(data):
                    self._deliver(line)
        except asyncio.CancelledError:
            logger.debug("Stream read loop cancelled", extra={"transport": self.name})
            raise
        finally:
            self._closed = True

    def _deliver(self, line: bytes) -> None:
        for callback in list(self._subscribers):
            try:
                callback(line)
            except Exception:
                # One failing subscriber must not end the read loop
                logger.exception(
                    "Stream subscriber raised",
                    extra={"transport": self.name, "line_bytes": len(line)},
                )

    async def close(self) -> None:
        """Stop reading and close the writer."""
        self._closed = True
        if self._read_task and not self._read_task.done() and self._read_task is not asyncio.current_task():
            _ = self._read_task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._read_task
        self._read_task = None
        self._subscribers.clear()
        try:
            self.writer.close()
            await self.writer.wait_closed()
        except (OSError, ConnectionError) as e:
            logger.warning(
                "Error closing stream: %s",
                e,
                extra={"transport": self.name, "error": str(e), "error_type": type(e).__name__},
            )

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"StreamTransport({self.name}, {status})"
