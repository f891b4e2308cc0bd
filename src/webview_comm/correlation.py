"""Correlation ids for log lines emitted while a message is being handled.

The dispatcher binds the id of the REQUEST (or NOTIFICATION) it is serving,
so log lines from a handler can be joined with the sender's log lines for the
same message id.
"""

from __future__ import annotations

import contextvars
from collections.abc import Iterator
from contextlib import contextmanager

from uuid_extensions import uuid7

__all__ = [
    "correlation_context",
    "get_correlation_id",
    "new_correlation_id",
]

# Per-task: asyncio copies the context when a task is created
_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar("correlation_id", default=None)


def new_correlation_id() -> str:
    """Time-ordered hex id for work that did not start from a received message."""
    return uuid7().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Iterator[str]:
    """Bind ``correlation_id`` (or a fresh one) for the duration of the block.

    Example:
        with correlation_context(request.id):
            logger.info("Running handler")  # line carries the request id

    """
    bound = correlation_id or new_correlation_id()
    token = _correlation_id.set(bound)
    try:
        yield bound
    finally:
        _correlation_id.reset(token)
