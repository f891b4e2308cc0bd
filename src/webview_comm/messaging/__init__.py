"""Messaging layer - reliable request/response, notifications and heartbeat over a Transport.

Public API:
- CommunicationManager (consumer entry point)
- CorrelationTracker / PendingRequest (sender-side request state)
- RetryScheduler (ACK-phase retransmission policy)
- HeartbeatMonitor / ConnectionHealth / HealthStatus (peer liveness)
- HandlerDispatcher (receiver-side routing)
"""

from webview_comm.messaging.correlation_tracker import CorrelationTracker, PendingRequest
from webview_comm.messaging.dispatcher import Handler, HandlerDispatcher
from webview_comm.messaging.heartbeat import ConnectionHealth, HealthObserver, HealthStatus, HeartbeatMonitor
from webview_comm.messaging.manager import CommunicationManager, SyncObserver
from webview_comm.messaging.retry_scheduler import RetryScheduler

__all__ = [
    "CommunicationManager",
    "ConnectionHealth",
    "CorrelationTracker",
    "Handler",
    "HandlerDispatcher",
    "HealthObserver",
    "HealthStatus",
    "HeartbeatMonitor",
    "PendingRequest",
    "RetryScheduler",
    "SyncObserver",
]
