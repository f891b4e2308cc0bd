"""Transport package - the channel interface and concrete channels."""

from webview_comm.transport.base import MessageCallback, Transport, Unsubscribe
from webview_comm.transport.exceptions import TransportError
from webview_comm.transport.loopback import LoopbackEndpoint, create_loopback_pair
from webview_comm.transport.stream import LineFramer, StreamTransport

__all__ = [
    "LineFramer",
    "LoopbackEndpoint",
    "MessageCallback",
    "StreamTransport",
    "Transport",
    "TransportError",
    "Unsubscribe",
    "create_loopback_pair",
]
