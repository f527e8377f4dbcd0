"""Terminal transports: sockets, request correlation and bulk transfers."""

from zk_terminal.transport.base import DeviceInfo, DeviceTransport, RecordSet
from zk_terminal.transport.bulk_transfer import BulkResult, ChunkedTransfer, plan_chunks
from zk_terminal.transport.correlator import RequestCorrelator
from zk_terminal.transport.exceptions import (
    ChunkTimeout,
    ConnectionFailure,
    ExchangeTimeout,
    ZKConnectionError,
    ZKDeviceError,
)
from zk_terminal.transport.session import SessionState
from zk_terminal.transport.tcp import TCPTransport
from zk_terminal.transport.timeouts import TimeoutConfig
from zk_terminal.transport.udp import UDPTransport

__all__ = [
    "BulkResult",
    "ChunkTimeout",
    "ChunkedTransfer",
    "ConnectionFailure",
    "DeviceInfo",
    "DeviceTransport",
    "ExchangeTimeout",
    "RecordSet",
    "RequestCorrelator",
    "SessionState",
    "TCPTransport",
    "TimeoutConfig",
    "UDPTransport",
    "ZKConnectionError",
    "ZKDeviceError",
    "plan_chunks",
]
