"""Prometheus metrics registry for terminal communication."""

import threading
from typing import Final

from prometheus_client import (  # type: ignore[import-untyped]
    Counter,
    Gauge,
    Histogram,
    start_http_server,
)

# Metric definitions
zk_frames_sent_total: Final = Counter(  # type: ignore[assignment]
    "zk_frames_sent_total",
    "Total frames sent to terminals",
    ["transport", "command"],
)

zk_frames_received_total: Final = Counter(  # type: ignore[assignment]
    "zk_frames_received_total",
    "Total frames received from terminals",
    ["transport", "command"],
)

zk_decode_errors_total: Final = Counter(  # type: ignore[assignment]
    "zk_decode_errors_total",
    "Inbound bytes that could not be framed or parsed",
    ["transport", "reason"],
)

zk_exchange_timeouts_total: Final = Counter(  # type: ignore[assignment]
    "zk_exchange_timeouts_total",
    "Request/response exchanges that timed out",
    ["transport", "command", "phase"],
)

zk_bulk_transfers_total: Final = Counter(  # type: ignore[assignment]
    "zk_bulk_transfers_total",
    "Bulk dataset reads by outcome",
    ["transport", "mode", "outcome"],
)

zk_bulk_bytes_total: Final = Counter(  # type: ignore[assignment]
    "zk_bulk_bytes_total",
    "Dataset bytes received through bulk reads",
    ["transport"],
)

zk_realtime_events_total: Final = Counter(  # type: ignore[assignment]
    "zk_realtime_events_total",
    "Real-time attendance events delivered to subscribers",
    ["transport"],
)

zk_transport_fallback_total: Final = Counter(  # type: ignore[assignment]
    "zk_transport_fallback_total",
    "Connects that fell back from TCP to UDP",
    ["host"],
)

zk_connection_state: Final = Gauge(  # type: ignore[assignment]
    "zk_connection_state",
    "1 while a transport is connected to the host",
    ["host", "transport"],
)

zk_operation_duration_seconds: Final = Histogram(  # type: ignore[assignment]
    "zk_operation_duration_seconds",
    "Duration of public terminal operations",
    ["operation", "outcome"],
    buckets=(0.01, 0.05, 0.1, 0.25, 0.5, 1.0, 2.5, 5.0, 10.0, 30.0),
)

_server_state = {"started": False}
_server_lock = threading.Lock()


def start_metrics_server(port: int = 9400) -> None:
    """Start Prometheus HTTP metrics server (idempotent)."""
    with _server_lock:
        if not _server_state["started"]:
            start_http_server(port)  # type: ignore[no-untyped-call]
            _server_state["started"] = True


def record_frame_sent(transport: str, command: str) -> None:
    zk_frames_sent_total.labels(transport=transport, command=command).inc()  # type: ignore[no-untyped-call]


def record_frame_received(transport: str, command: str) -> None:
    zk_frames_received_total.labels(transport=transport, command=command).inc()  # type: ignore[no-untyped-call]


def record_decode_error(transport: str, reason: str) -> None:
    zk_decode_errors_total.labels(transport=transport, reason=reason).inc()  # type: ignore[no-untyped-call]


def record_exchange_timeout(transport: str, command: str, phase: str) -> None:
    zk_exchange_timeouts_total.labels(
        transport=transport,
        command=command,
        phase=phase,
    ).inc()  # type: ignore[no-untyped-call]


def record_bulk_transfer(transport: str, mode: str, outcome: str, size: int) -> None:
    """Record a finished bulk read; ``mode`` is "direct" or "chunked"."""
    zk_bulk_transfers_total.labels(transport=transport, mode=mode, outcome=outcome).inc()  # type: ignore[no-untyped-call]
    zk_bulk_bytes_total.labels(transport=transport).inc(size)  # type: ignore[no-untyped-call]


def record_realtime_event(transport: str) -> None:
    zk_realtime_events_total.labels(transport=transport).inc()  # type: ignore[no-untyped-call]


def record_transport_fallback(host: str) -> None:
    zk_transport_fallback_total.labels(host=host).inc()  # type: ignore[no-untyped-call]


def set_connection_state(host: str, transport: str, connected: bool) -> None:
    zk_connection_state.labels(host=host, transport=transport).set(1 if connected else 0)  # type: ignore[no-untyped-call]


def record_operation_duration(operation: str, outcome: str, seconds: float) -> None:
    zk_operation_duration_seconds.labels(operation=operation, outcome=outcome).observe(seconds)  # type: ignore[no-untyped-call]
