"""
Correlation IDs for tracing one terminal operation across its frames.

Each public ZKTerminal call runs inside a correlation context so that the
handshake, the chunk requests and the FREE_DATA bracketing of a bulk read
share one ID in the logs. IDs are UUIDv7 (time-ordered), rendered as hex.
"""

from __future__ import annotations

import contextvars
import uuid
from collections.abc import Generator
from contextlib import contextmanager
from typing import cast

from uuid_extensions import uuid7

__all__ = [
    "correlation_context",
    "ensure_correlation_id",
    "generate_correlation_id",
    "get_correlation_id",
    "set_correlation_id",
]

_correlation_id: contextvars.ContextVar[str | None] = contextvars.ContextVar(
    "zk_correlation_id",
    default=None,
)


def generate_correlation_id() -> str:
    """Return a new UUIDv7 correlation ID as 32 hex characters."""
    return cast(uuid.UUID, uuid7()).hex


def get_correlation_id() -> str | None:
    return _correlation_id.get()


def set_correlation_id(correlation_id: str | None) -> None:
    _correlation_id.set(correlation_id)


@contextmanager
def correlation_context(correlation_id: str | None = None) -> Generator[str]:
    """
    Scope a correlation ID, restoring the previous one on exit.

    Nested operations keep the outer ID: ``list_users`` calls ``free_data``
    internally and both should log under the caller's ID.

    Args:
        correlation_id: ID to use; when None the enclosing ID is reused, or a
            new one is generated if there is none

    Yields:
        The correlation ID active inside the block
    """
    previous_id = get_correlation_id()
    active_id = correlation_id or previous_id or generate_correlation_id()
    token = _correlation_id.set(active_id)
    try:
        yield active_id
    finally:
        _correlation_id.reset(token)


def ensure_correlation_id() -> str:
    """Return the current correlation ID, creating one if none is set."""
    current_id = get_correlation_id()
    if current_id is None:
        current_id = generate_correlation_id()
        set_correlation_id(current_id)
    return current_id
