"""Transport-level errors.

These never reach a consumer of send_request(): the manager logs them and
drops the message, and the ACK timer/retry path recovers.
"""

from __future__ import annotations

from webview_comm.protocol.exceptions import WebviewCommError


class TransportError(WebviewCommError):
    """The channel refused or failed to accept a message.

    Raised when:
    - Sending on a closed transport
    - The message cannot be serialized for the channel
    - The underlying stream reported an OS error

    Note: Named TransportError to avoid shadowing asyncio's transport types.

    Attributes:
        reason: Specific failure reason
        transport: Short description of the transport

    """

    def __init__(self, reason: str, transport: str = "unknown") -> None:
        self.reason: str = reason
        self.transport: str = transport
        super().__init__(f"Transport error: {reason} (transport: {transport})")
