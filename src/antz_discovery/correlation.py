"""
Correlation ids for tracing one received ANT message through decode,
page requests and publishing.

The event loop opens a fresh ``correlation_context`` per message, so every
log record produced while handling it carries the same id.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager

__all__ = [
    "correlation_context",
    "generate_correlation_id",
    "get_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "antz_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new UUID4 hex id (no dashes)."""
    return uuid.uuid4().hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation id; the previous id is restored on exit.

    Example:
        with correlation_context() as corr_id:
            dispatcher.dispatch(message)
    """
    token = _correlation_id.set(correlation_id or generate_correlation_id())
    try:
        yield _correlation_id.get() or ""
    finally:
        _correlation_id.reset(token)
