"""Custom exception types for the webview messaging layer.

Decode-level errors (MalformedMessageError) stay inside the receiving endpoint:
they are logged and the offending message is dropped. Request-level errors
(RequestError subclasses) are always delivered to the caller that issued the
request, by failing the future returned from send_request().
"""

from __future__ import annotations

from typing import Any


class WebviewCommError(Exception):
    """Base exception for all messaging layer errors.

    All messaging exceptions inherit from this base class, enabling catch-all
    error handling when needed while keeping specific types for detailed handling.
    """


class MalformedMessageError(WebviewCommError):
    """Incoming raw value cannot be decoded into a Message.

    Raised when:
    - The raw value is not a mapping
    - A required field (id, kind, timestamp) is missing or has the wrong type
    - ``kind`` is not one of the six recognized values
    - A RESPONSE/ACK has no correlation id

    Attributes:
        reason: Specific failure reason (e.g., "missing_id", "unknown_kind")
        raw_preview: Truncated repr of the raw value (keeps payloads out of logs)

    """

    def __init__(self, reason: str, raw: Any = None) -> None:
        self.reason: str = reason
        self.raw_preview: str = repr(raw)[:80] if raw is not None else ""
        super().__init__(f"Malformed message: {reason}")


class DuplicateRequestError(WebviewCommError):
    """A pending request with the same id is already being tracked.

    This is a programming error: ids are generated uniquely per message.

    Attributes:
        request_id: The id that was already live

    """

    def __init__(self, request_id: str) -> None:
        self.request_id: str = request_id
        super().__init__(f"Request id already pending: {request_id}")


class RequestError(WebviewCommError):
    """Base class for errors surfaced to the caller of send_request().

    Attributes:
        request_id: Id of the request that failed
        command: Command the request carried

    """

    def __init__(self, message: str, request_id: str, command: str) -> None:
        self.request_id: str = request_id
        self.command: str = command
        super().__init__(message)


class DeliveryFailedError(RequestError):
    """No ACK was received after exhausting all retransmissions.

    The peer never confirmed receipt, so the request can be retried safely.

    Attributes:
        retries: Number of retransmissions that were sent

    """

    def __init__(self, request_id: str, command: str, retries: int) -> None:
        self.retries: int = retries
        super().__init__(
            f"Delivery failed for '{command}' after {retries} retries",
            request_id,
            command,
        )


class RequestTimeoutError(RequestError):
    """No RESPONSE arrived within the response timeout.

    The peer may have completed the work; the outcome is unconfirmed.

    Attributes:
        timeout_seconds: Timeout value that was exceeded
        acknowledged: Whether an ACK had been received before the timeout

    """

    def __init__(self, request_id: str, command: str, timeout_seconds: float, acknowledged: bool) -> None:
        self.timeout_seconds: float = timeout_seconds
        self.acknowledged: bool = acknowledged
        super().__init__(
            f"Request '{command}' timed out after {timeout_seconds}s (acknowledged: {acknowledged})",
            request_id,
            command,
        )


class RemoteRequestError(RequestError):
    """The peer answered the request with a failed RESPONSE.

    Attributes:
        code: Wire error code from the RESPONSE
        detail: Error description from the RESPONSE

    """

    def __init__(self, request_id: str, command: str, code: str, detail: str) -> None:
        self.code: str = code
        self.detail: str = detail
        super().__init__(f"Request '{command}' failed [{code}]: {detail}", request_id, command)


class CommandNotSupportedError(RemoteRequestError):
    """The peer has no handler registered for the requested command."""


class HandlerFailureError(RemoteRequestError):
    """The peer's handler raised while processing the request."""


class PayloadValidationError(RemoteRequestError):
    """The peer rejected the request payload for a known command."""


class CommunicationClosedError(RequestError):
    """The manager was closed while the request was still pending."""

    def __init__(self, request_id: str, command: str) -> None:
        super().__init__(f"Communication closed before '{command}' completed", request_id, command)
