"""Metrics module."""

from .registry import (
    record_ack_timeout,
    record_connection_health,
    record_decode_error,
    record_dedup_cache_hit,
    record_handler_duration,
    record_handler_outcome,
    record_heartbeat,
    record_heartbeat_rtt,
    record_message_recv,
    record_message_sent,
    record_pending_requests,
    record_request_outcome,
    record_retransmit,
    record_stale_answer,
    start_metrics_server,
)

__all__ = [
    "record_ack_timeout",
    "record_connection_health",
    "record_decode_error",
    "record_dedup_cache_hit",
    "record_handler_duration",
    "record_handler_outcome",
    "record_heartbeat",
    "record_heartbeat_rtt",
    "record_message_recv",
    "record_message_sent",
    "record_pending_requests",
    "record_request_outcome",
    "record_retransmit",
    "record_stale_answer",
    "start_metrics_server",
]
