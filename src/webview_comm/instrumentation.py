"""Timing of handler execution.

``@timed_async`` logs how long a coroutine took, at WARNING when it exceeds
``WEBVIEW_COMM_PERF_THRESHOLD_MS`` and at DEBUG otherwise. Tracking is turned
off with ``WEBVIEW_COMM_PERF_TRACKING=false``; the flag is read per call so it
can be toggled at runtime.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

from webview_comm import const
from webview_comm.logging_abstraction import CommLogger, get_logger

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")

logger = get_logger(__name__)


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (a time.perf_counter() value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """Time each call of the decorated coroutine function.

    When the first positional argument has an ``endpoint`` attribute (a
    dispatcher or manager method), it is included in the log context.

    Example:
        @timed_async("request_handler")
        async def _run_request_handler(self, message): ...

    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        op_name = operation_name or func.__name__

        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            if not const.WEBVIEW_COMM_PERF_TRACKING:
                return await func(*args, **kwargs)

            endpoint = getattr(args[0], "endpoint", None) if args else None
            start_time = time.perf_counter()
            try:
                return await func(*args, **kwargs)
            finally:
                _log_timing(logger, op_name, measure_time(start_time), const.WEBVIEW_COMM_PERF_THRESHOLD_MS, endpoint)

        return wrapper

    return decorator


def _log_timing(
    log: CommLogger,
    operation_name: str,
    elapsed_ms: float,
    threshold_ms: int,
    endpoint: str | None = None,
) -> None:
    context: dict[str, object] = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
    }
    if endpoint is not None:
        context["endpoint"] = endpoint

    if elapsed_ms > threshold_ms:
        log.warning(
            "%s took %.1fms (threshold %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        log.debug("%s took %.1fms", operation_name, elapsed_ms, extra=context)
