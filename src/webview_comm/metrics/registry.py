"""Prometheus metrics registry for the webview messaging layer."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

from webview_comm import const

# Message flow
webview_comm_message_sent_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_message_sent_total",
    "Total messages handed to the transport",
    ["endpoint", "kind", "outcome"],
)

webview_comm_message_recv_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_message_recv_total",
    "Total messages decoded from the transport",
    ["endpoint", "kind"],
)

webview_comm_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_decode_errors_total",
    "Total malformed messages dropped",
    ["endpoint", "reason"],
)

# Request lifecycle
webview_comm_retransmit_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_retransmit_total",
    "Total request retransmissions after an ACK timeout",
    ["endpoint", "attempt_number"],
)

webview_comm_ack_timeout_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_ack_timeout_total",
    "Total ACK timer expirations",
    ["endpoint"],
)

webview_comm_stale_answer_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_stale_answer_total",
    "Total ACK/RESPONSE messages with no matching pending request",
    ["endpoint", "kind"],
)

webview_comm_request_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_request_total",
    "Total requests by terminal outcome",
    ["endpoint", "outcome"],
)

webview_comm_request_latency_seconds: Final = Histogram(  # type: ignore[assignment]
    "webview_comm_request_latency_seconds",
    "Time from first send to terminal outcome",
    ["endpoint"],
    buckets=(0.005, 0.01, 0.025, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0),
)

webview_comm_pending_requests: Final = Gauge(  # type: ignore[assignment]
    "webview_comm_pending_requests",
    "Requests currently awaiting a terminal outcome",
    ["endpoint"],
)

# Handler side
webview_comm_handler_duration_seconds: Final = Histogram(  # type: ignore[assignment]
    "webview_comm_handler_duration_seconds",
    "Request handler execution time",
    ["endpoint", "command"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0, 10.0),
)

webview_comm_handler_outcome_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_handler_outcome_total",
    "Incoming request/notification outcomes",
    ["endpoint", "outcome"],
)

webview_comm_dedup_cache_hits_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_dedup_cache_hits_total",
    "Total duplicate REQUEST ids seen",
    ["endpoint"],
)

# Heartbeat
webview_comm_heartbeat_total: Final = Counter(  # type: ignore[assignment]
    "webview_comm_heartbeat_total",
    "Total heartbeat events",
    ["endpoint", "outcome"],
)

webview_comm_heartbeat_rtt_seconds: Final = Histogram(  # type: ignore[assignment]
    "webview_comm_heartbeat_rtt_seconds",
    "PING/PONG round-trip time",
    ["endpoint"],
    buckets=(0.001, 0.005, 0.01, 0.05, 0.1, 0.5, 1.0, 5.0),
)

webview_comm_connection_health: Final = Gauge(  # type: ignore[assignment]
    "webview_comm_connection_health",
    "Current connection health",
    ["endpoint", "state"],
)

_HEALTH_STATES = ("healthy", "degraded")

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int | None = None) -> None:
    """Start Prometheus HTTP metrics server (idempotent).

    Args:
        port: Listen port; defaults to WEBVIEW_COMM_METRICS_PORT (9400)

    """
    if port is None:
        port = const.WEBVIEW_COMM_METRICS_PORT
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_message_sent(endpoint: str, kind: str, outcome: str) -> None:
    """Record a message handed to the transport."""
    webview_comm_message_sent_total.labels(endpoint=endpoint, kind=kind, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_message_recv(endpoint: str, kind: str) -> None:
    """Record a decoded incoming message."""
    webview_comm_message_recv_total.labels(endpoint=endpoint, kind=kind).inc()  # type: ignore[no-untyped-call]


def record_decode_error(endpoint: str, reason: str) -> None:
    """Record a malformed message."""
    webview_comm_decode_errors_total.labels(endpoint=endpoint, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_retransmit(endpoint: str, attempt_number: int) -> None:
    """Record a retransmission."""
    webview_comm_retransmit_total.labels(
        endpoint=endpoint,
        attempt_number=str(attempt_number),
    ).inc()  # type: ignore[no-untyped-call]


def record_ack_timeout(endpoint: str) -> None:
    """Record an ACK timer expiration."""
    webview_comm_ack_timeout_total.labels(endpoint=endpoint).inc()  # type: ignore[no-untyped-call]


def record_stale_answer(endpoint: str, kind: str) -> None:
    """Record an ACK/RESPONSE that matched no pending request."""
    webview_comm_stale_answer_total.labels(endpoint=endpoint, kind=kind).inc()  # type: ignore[no-untyped-call]


def record_request_outcome(endpoint: str, outcome: str, latency_seconds: float | None = None) -> None:
    """Record a request's terminal outcome and, if known, its latency."""
    webview_comm_request_total.labels(endpoint=endpoint, outcome=outcome).inc()  # type: ignore[no-untyped-call]
    if latency_seconds is not None:
        webview_comm_request_latency_seconds.labels(endpoint=endpoint).observe(latency_seconds)  # type: ignore[no-untyped-call]


def record_pending_requests(endpoint: str, count: int) -> None:
    """Record the number of pending requests."""
    webview_comm_pending_requests.labels(endpoint=endpoint).set(count)  # type: ignore[no-untyped-call]


def record_handler_duration(endpoint: str, command: str, duration_seconds: float) -> None:
    """Record request handler execution time."""
    webview_comm_handler_duration_seconds.labels(endpoint=endpoint, command=command).observe(duration_seconds)  # type: ignore[no-untyped-call]


def record_handler_outcome(endpoint: str, outcome: str) -> None:
    """Record the outcome of serving an incoming request or notification."""
    webview_comm_handler_outcome_total.labels(endpoint=endpoint, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_dedup_cache_hit(endpoint: str) -> None:
    """Record a duplicate REQUEST id."""
    webview_comm_dedup_cache_hits_total.labels(endpoint=endpoint).inc()  # type: ignore[no-untyped-call]


def record_heartbeat(endpoint: str, outcome: str) -> None:
    """Record a heartbeat event (sent, pong, missed, stale)."""
    webview_comm_heartbeat_total.labels(endpoint=endpoint, outcome=outcome).inc()  # type: ignore[no-untyped-call]


def record_heartbeat_rtt(endpoint: str, rtt_seconds: float) -> None:
    """Record a PING/PONG round trip."""
    webview_comm_heartbeat_rtt_seconds.labels(endpoint=endpoint).observe(rtt_seconds)  # type: ignore[no-untyped-call]


def record_connection_health(endpoint: str, state: str) -> None:
    """Record connection health (1 for the current state, 0 for the other)."""
    for s in _HEALTH_STATES:
        value = 1 if s == state else 0
        webview_comm_connection_health.labels(endpoint=endpoint, state=s).set(value)  # type: ignore[no-untyped-call]
