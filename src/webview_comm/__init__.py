"""Reliable messaging between a host controller and an embedded webview UI."""

__version__ = "0.4.0"

from webview_comm.config import CommunicationConfig
from webview_comm.messaging import CommunicationManager, ConnectionHealth, HealthStatus, PendingRequest
from webview_comm.protocol import (
    Command,
    CommandNotSupportedError,
    CommunicationClosedError,
    DeliveryFailedError,
    ErrorCode,
    HandlerFailureError,
    MalformedMessageError,
    Message,
    MessageKind,
    PayloadValidationError,
    RemoteRequestError,
    RequestError,
    RequestTimeoutError,
    WebviewCommError,
)
from webview_comm.scheduler import LoopScheduler, ManualScheduler
from webview_comm.transport import StreamTransport, Transport, TransportError, create_loopback_pair

__all__ = [
    "Command",
    "CommandNotSupportedError",
    "CommunicationClosedError",
    "CommunicationConfig",
    "CommunicationManager",
    "ConnectionHealth",
    "DeliveryFailedError",
    "ErrorCode",
    "HandlerFailureError",
    "HealthStatus",
    "LoopScheduler",
    "MalformedMessageError",
    "ManualScheduler",
    "Message",
    "MessageKind",
    "PayloadValidationError",
    "PendingRequest",
    "RemoteRequestError",
    "RequestError",
    "RequestTimeoutError",
    "StreamTransport",
    "Transport",
    "TransportError",
    "WebviewCommError",
    "__version__",
    "create_loopback_pair",
]
