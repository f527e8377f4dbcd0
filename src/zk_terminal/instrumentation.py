"""
Timing instrumentation for terminal operations.

``timed_async`` wraps a coroutine function, logs how long it took, warns when
the ZK_PERF_THRESHOLD_MS threshold is exceeded and feeds the operation
duration histogram. Disabled entirely when ZK_PERF_TRACKING is off.
"""

from __future__ import annotations

import functools
import time
from collections.abc import Callable, Coroutine
from typing import Any, ParamSpec, TypeVar

__all__ = [
    "measure_time",
    "timed_async",
]

P = ParamSpec("P")
T = TypeVar("T")


def measure_time(start_time: float) -> float:
    """Milliseconds elapsed since ``start_time`` (a time.perf_counter() value)."""
    return (time.perf_counter() - start_time) * 1000


def timed_async(
    operation_name: str | None = None,
) -> Callable[[Callable[P, Coroutine[Any, Any, T]]], Callable[P, Coroutine[Any, Any, T]]]:
    """
    Decorator for timing async operations.

    Args:
        operation_name: Name for the operation (defaults to function name)

    Example:
        @timed_async("list_users")
        async def list_users(self):
            ...
    """

    def decorator(func: Callable[P, Coroutine[Any, Any, T]]) -> Callable[P, Coroutine[Any, Any, T]]:
        @functools.wraps(func)
        async def wrapper(*args: P.args, **kwargs: P.kwargs) -> T:
            # Import here to avoid circular dependency
            from zk_terminal.const import (  # noqa: PLC0415
                ZK_PERF_THRESHOLD_MS,
                ZK_PERF_TRACKING,
            )

            if not ZK_PERF_TRACKING:
                return await func(*args, **kwargs)

            op_name = operation_name or func.__name__
            start_time = time.perf_counter()
            outcome = "error"
            try:
                result = await func(*args, **kwargs)
                outcome = "success"
                return result
            finally:
                elapsed_ms = measure_time(start_time)
                _log_timing(op_name, elapsed_ms, ZK_PERF_THRESHOLD_MS)
                _record_duration(op_name, outcome, elapsed_ms)

        return wrapper

    return decorator


def _record_duration(operation_name: str, outcome: str, elapsed_ms: float) -> None:
    from zk_terminal.metrics import record_operation_duration  # noqa: PLC0415

    record_operation_duration(operation_name, outcome, elapsed_ms / 1000)


def _log_timing(operation_name: str, elapsed_ms: float, threshold_ms: int) -> None:
    from zk_terminal.logging_abstraction import get_logger  # noqa: PLC0415

    logger = get_logger(__name__)
    context = {
        "operation": operation_name,
        "duration_ms": round(elapsed_ms, 2),
        "threshold_ms": threshold_ms,
        "exceeded_threshold": elapsed_ms > threshold_ms,
    }
    if elapsed_ms > threshold_ms:
        logger.warning(
            "⏱️ [%s] completed in %.1fms (threshold: %dms)",
            operation_name,
            elapsed_ms,
            threshold_ms,
            extra=context,
        )
    else:
        logger.debug("⏱️ [%s] completed in %.1fms", operation_name, elapsed_ms, extra=context)
