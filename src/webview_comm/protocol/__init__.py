"""Wire protocol package - message types, codec, payload validation and errors.

Public API:
- Message kinds, commands and error codes (MessageKind, Command, ErrorCode)
- Message / ResponseResult dataclasses
- MessageCodec (framing and decoding)
- Exception hierarchy rooted at WebviewCommError
"""

from webview_comm.protocol.codec import MessageCodec, generate_message_id, wall_clock_ms
from webview_comm.protocol.exceptions import (
    CommandNotSupportedError,
    CommunicationClosedError,
    DeliveryFailedError,
    DuplicateRequestError,
    HandlerFailureError,
    MalformedMessageError,
    PayloadValidationError,
    RemoteRequestError,
    RequestError,
    RequestTimeoutError,
    WebviewCommError,
)
from webview_comm.protocol.message_types import (
    Command,
    ErrorCode,
    Message,
    MessageKind,
    ResponseResult,
)
from webview_comm.protocol.payloads import validate_payload

__all__ = [
    # Codec
    "MessageCodec",
    "generate_message_id",
    "wall_clock_ms",
    # Message types
    "Command",
    "ErrorCode",
    "Message",
    "MessageKind",
    "ResponseResult",
    "validate_payload",
    # Exceptions
    "CommandNotSupportedError",
    "CommunicationClosedError",
    "DeliveryFailedError",
    "DuplicateRequestError",
    "HandlerFailureError",
    "MalformedMessageError",
    "PayloadValidationError",
    "RemoteRequestError",
    "RequestError",
    "RequestTimeoutError",
    "WebviewCommError",
]
