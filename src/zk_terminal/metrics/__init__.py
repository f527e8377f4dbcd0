"""Metrics module."""

from .registry import (
    record_bulk_transfer,
    record_decode_error,
    record_exchange_timeout,
    record_frame_received,
    record_frame_sent,
    record_operation_duration,
    record_realtime_event,
    record_transport_fallback,
    set_connection_state,
    start_metrics_server,
)

__all__ = [
    "record_bulk_transfer",
    "record_decode_error",
    "record_exchange_timeout",
    "record_frame_received",
    "record_frame_sent",
    "record_operation_duration",
    "record_realtime_event",
    "record_transport_fallback",
    "set_connection_state",
    "start_metrics_server",
]
