"""Transport interface consumed by CommunicationManager."""

from __future__ import annotations

from collections.abc import Callable
from typing import Any, Protocol

__all__ = ["MessageCallback", "Transport", "Unsubscribe"]

# Receives one raw incoming value (mapping, JSON text or bytes)
MessageCallback = Callable[[Any], None]
Unsubscribe = Callable[[], None]


class Transport(Protocol):
    """Unordered, best-effort, asynchronous channel of opaque messages.

    The channel offers no acknowledgement, timeout or retry; the messaging
    layer builds those on top.
    """

    def send(self, raw: dict[str, Any]) -> None:
        """Hand one wire message to the channel.

        Raises:
            TransportError: If the channel cannot accept the message

        """
        ...

    def on_message(self, callback: MessageCallback) -> Unsubscribe:
        """Subscribe to incoming messages; returns a callable that unsubscribes."""
        ...
