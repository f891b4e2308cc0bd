import os

__all__ = [
    "DEFAULT_ACK_TIMEOUT_MS",
    "DEFAULT_DEDUP_CACHE_SIZE",
    "DEFAULT_HEARTBEAT_INTERVAL_MS",
    "DEFAULT_MAX_RETRIES",
    "DEFAULT_MISSED_PONG_THRESHOLD",
    "DEFAULT_RESPONSE_TIMEOUT_MS",
    "DEFAULT_RETRY_DELAY_MS",
    "DEFAULT_SYNC_INTERVAL_MS",
    "ENV_PREFIX",
    "MAX_LINE_BYTES",
    "WEBVIEW_COMM_DEBUG",
    "WEBVIEW_COMM_LOG_FORMAT",
    "WEBVIEW_COMM_LOG_HUMAN_OUTPUT",
    "WEBVIEW_COMM_LOG_JSON_FILE",
    "WEBVIEW_COMM_METRICS_PORT",
    "WEBVIEW_COMM_PERF_THRESHOLD_MS",
    "WEBVIEW_COMM_PERF_TRACKING",
    "YES_ANSWER",
]

YES_ANSWER = ("true", "1", "yes", "y", "t", 1, "on", "o")
ENV_PREFIX = "WEBVIEW_COMM_"

# Reliability defaults (milliseconds)
DEFAULT_ACK_TIMEOUT_MS = 2000
DEFAULT_RESPONSE_TIMEOUT_MS = 10000
DEFAULT_MAX_RETRIES = 3
DEFAULT_RETRY_DELAY_MS = 1000
DEFAULT_HEARTBEAT_INTERVAL_MS = 30000
DEFAULT_SYNC_INTERVAL_MS = 60000
DEFAULT_MISSED_PONG_THRESHOLD = 3
DEFAULT_DEDUP_CACHE_SIZE = 256

# Stream transport: lines longer than this are discarded
MAX_LINE_BYTES = 1024 * 1024

WEBVIEW_COMM_DEBUG: bool = os.environ.get("WEBVIEW_COMM_DEBUG", "0").casefold() in YES_ANSWER

# Logging Configuration
WEBVIEW_COMM_LOG_FORMAT: str = os.environ.get("WEBVIEW_COMM_LOG_FORMAT", "human")  # "json", "human", or "both"
WEBVIEW_COMM_LOG_JSON_FILE: str | None = os.environ.get("WEBVIEW_COMM_LOG_JSON_FILE") or None
WEBVIEW_COMM_LOG_HUMAN_OUTPUT: str = os.environ.get("WEBVIEW_COMM_LOG_HUMAN_OUTPUT", "stderr")

# Performance Instrumentation
WEBVIEW_COMM_PERF_TRACKING: bool = os.environ.get("WEBVIEW_COMM_PERF_TRACKING", "true").casefold() in YES_ANSWER
_perf_threshold = os.environ.get("WEBVIEW_COMM_PERF_THRESHOLD_MS", "250")
WEBVIEW_COMM_PERF_THRESHOLD_MS: int = int(_perf_threshold) if _perf_threshold and _perf_threshold.isdigit() else 250

_metrics_port = os.environ.get("WEBVIEW_COMM_METRICS_PORT", "9400")
WEBVIEW_COMM_METRICS_PORT: int = int(_metrics_port) if _metrics_port and _metrics_port.isdigit() else 9400
