"""In-memory transport pair with asynchronous delivery and fault injection.

Mirrors the webview postMessage channel: each send is serialized (so only
JSON-compatible payloads cross), then delivered to the peer on a later event
loop iteration. A per-endpoint ``drop_outgoing`` filter simulates loss.
"""

from __future__ import annotations

import asyncio
import json
from collections.abc import Callable
from typing import Any

from webview_comm.logging_abstraction import get_logger
from webview_comm.transport.base import MessageCallback, Unsubscribe
from webview_comm.transport.exceptions import TransportError

__all__ = ["LoopbackEndpoint", "create_loopback_pair"]

logger = get_logger(__name__)

DropFilter = Callable[[dict[str, Any]], bool]


class LoopbackEndpoint:
    """One side of an in-memory channel.

    Attributes:
        name: Label used in logs
        peer: The endpoint that receives this endpoint's sends
        drop_outgoing: Optional predicate; matching outgoing messages are lost
        sent: Every wire message accepted by send(), including dropped ones

    """

    def __init__(self, name: str, loop: asyncio.AbstractEventLoop) -> None:
        self.name: str = name
        self.peer: LoopbackEndpoint | None = None
        self.drop_outgoing: DropFilter | None = None
        self.sent: list[dict[str, Any]] = []
        self._loop: asyncio.AbstractEventLoop = loop
        self._subscribers: list[MessageCallback] = []
        self._closed: bool = False

    def send(self, raw: dict[str, Any]) -> None:
        if self._closed or self.peer is None:
            raise TransportError("channel closed", transport=f"loopback:{self.name}")
        try:
            # Round-trip through JSON so the peer never shares objects with the sender
            wire = json.loads(json.dumps(raw))
        except (TypeError, ValueError) as e:
            raise TransportError(f"payload not serializable: {e}", transport=f"loopback:{self.name}") from e

        self.sent.append(wire)
        if self.drop_outgoing is not None and self.drop_outgoing(wire):
            logger.debug(
                "Loopback dropped outgoing message",
                extra={"endpoint": self.name, "kind": wire.get("kind"), "id": wire.get("id")},
            )
            return
        self._loop.call_soon(self.peer._deliver, wire)  # noqa: SLF001

    def on_message(self, callback: MessageCallback) -> Unsubscribe:
        self._subscribers.append(callback)

        def unsubscribe() -> None:
            if callback in self._subscribers:
                self._subscribers.remove(callback)

        return unsubscribe

    def _deliver(self, wire: dict[str, Any]) -> None:
        if self._closed:
            return
        for callback in list(self._subscribers):
            callback(wire)

    def sent_of_kind(self, kind: str) -> list[dict[str, Any]]:
        """Return sent wire messages of one kind (test convenience)."""
        return [m for m in self.sent if m.get("kind") == kind]

    def close(self) -> None:
        self._closed = True
        self._subscribers.clear()

    @property
    def is_closed(self) -> bool:
        return self._closed

    def __repr__(self) -> str:
        status = "closed" if self._closed else "open"
        return f"LoopbackEndpoint({self.name}, {status}, sent={len(self.sent)})"


def create_loopback_pair(
    loop: asyncio.AbstractEventLoop | None = None,
    names: tuple[str, str] = ("host", "ui"),
) -> tuple[LoopbackEndpoint, LoopbackEndpoint]:
    """Create two connected endpoints (host side first)."""
    loop = loop or asyncio.get_running_loop()
    host = LoopbackEndpoint(names[0], loop)
    ui = LoopbackEndpoint(names[1], loop)
    host.peer = ui
    ui.peer = host
    return host, ui
