"""
ZKTerminal: one terminal, reached over TCP with a fallback to UDP.

``connect()`` tries TCP first. Only a refused TCP connection falls back to
UDP; any other TCP failure is reported as is. Every operation afterwards is
forwarded to the selected transport and failures are wrapped in
``ZKDeviceError`` labelled with the transport and operation
("[TCP] GET_USERS").

Example:
    async with ZKTerminal("192.168.1.201") as zk:
        users = await zk.list_users()
        logs = await zk.list_attendance(on_progress=print)
"""

from __future__ import annotations

import asyncio
import inspect
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from types import TracebackType
from typing import TypeVar

from zk_terminal.const import (
    ZK_DEVICE_PORT,
    ZK_ENABLE_METRICS,
    ZK_METRICS_PORT,
    ZK_TIMEOUT,
    ZK_UDP_LOCAL_PORT,
)
from zk_terminal.correlation import correlation_context
from zk_terminal.instrumentation import timed_async
from zk_terminal.logging_abstraction import get_logger
from zk_terminal.metrics import record_transport_fallback, start_metrics_server
from zk_terminal.protocol.exceptions import ZKProtocolError
from zk_terminal.protocol.frame import Frame
from zk_terminal.protocol.records import AttendanceRecord, UserRecord
from zk_terminal.protocol.timestamps import DeviceTimestamp
from zk_terminal.transport.base import (
    CloseListener,
    DeviceInfo,
    DeviceTransport,
    ErrorListener,
    EventCallback,
    RecordSet,
)
from zk_terminal.transport.bulk_transfer import ProgressCallback
from zk_terminal.transport.exceptions import (
    ConnectionFailure,
    ZKConnectionError,
    ZKDeviceError,
    failure_from_oserror,
)
from zk_terminal.transport.tcp import TCPTransport
from zk_terminal.transport.timeouts import TimeoutConfig
from zk_terminal.transport.udp import UDPTransport

logger = get_logger(__name__)

T = TypeVar("T")

ScheduledCallback = Callable[[], object]


def _failure_code(error: BaseException) -> ConnectionFailure | None:
    if isinstance(error, ZKConnectionError):
        return error.code
    return failure_from_oserror(error)


@dataclass(frozen=True)
class TerminalStatus:
    """Snapshot of the terminal connection."""

    connection_type: str | None
    connected: bool
    host: str
    port: int
    session_id: int | None


class ZKTerminal:
    """Client for one ZKTeco terminal."""

    def __init__(
        self,
        host: str,
        port: int = ZK_DEVICE_PORT,
        timeout: float = ZK_TIMEOUT,
        local_port: int = ZK_UDP_LOCAL_PORT,
        tcp_timeouts: TimeoutConfig | None = None,
        udp_timeouts: TimeoutConfig | None = None,
    ) -> None:
        """
        Args:
            host: Terminal address
            port: Terminal port, shared by TCP and UDP
            timeout: Command timeout in seconds
            local_port: Local port the UDP endpoint binds to
            tcp_timeouts: Full timeout override for the TCP transport
            udp_timeouts: Full timeout override for the UDP transport
        """
        self.host = host
        self.port = port
        self.tcp = TCPTransport(
            host,
            port,
            tcp_timeouts or TimeoutConfig.for_tcp(timeout),
            on_close=self._handle_close,
            on_error=self._handle_error,
        )
        self.udp = UDPTransport(
            host,
            port,
            udp_timeouts or TimeoutConfig.for_udp(timeout),
            local_port=local_port,
            on_close=self._handle_close,
            on_error=self._handle_error,
        )
        self.connection_type: str | None = None
        self._on_error: ErrorListener | None = None
        self._on_close: CloseListener | None = None
        self._scheduled: set[asyncio.Task[None]] = set()
        self.log = logger.bind(host=host, port=port)

    @property
    def transport(self) -> DeviceTransport | None:
        """The selected transport, or None before a successful connect."""
        if self.connection_type == "tcp":
            return self.tcp
        if self.connection_type == "udp":
            return self.udp
        return None

    # connection

    async def connect(
        self,
        on_error: ErrorListener | None = None,
        on_close: CloseListener | None = None,
    ) -> None:
        """Connect over TCP, falling back to UDP when TCP is refused.

        Args:
            on_error: Called with the socket error whenever a socket fails to open
            on_close: Called with "tcp" or "udp" when the selected socket closes

        Raises:
            ZKDeviceError: "TCP CONNECT" or "UDP CONNECT" on failure
        """
        if on_error is not None:
            self._on_error = on_error
        if on_close is not None:
            self._on_close = on_close
        if ZK_ENABLE_METRICS:
            start_metrics_server(ZK_METRICS_PORT)

        transport = self.transport
        if transport is not None and transport.is_connected:
            self.log.debug("Already connected over %s", transport.label)
            return

        # Sockets closed while reconnecting belong to no selected transport
        self.connection_type = None
        with correlation_context():
            try:
                await self.tcp.connect()
            except (ZKProtocolError, OSError) as tcp_error:
                await self.tcp.close()
                if _failure_code(tcp_error) != ConnectionFailure.ECONNREFUSED:
                    self.log.error("TCP connect failed: %s", tcp_error)
                    raise ZKDeviceError(tcp_error, "TCP CONNECT", self.host) from tcp_error
                self.log.info("TCP refused, falling back to UDP")
                record_transport_fallback(self.host)
                await self._connect_udp()
                return

            self.connection_type = "tcp"
            self.log.info("✓ Connected over TCP", extra={"session_id": self.tcp.session.session_id})

    async def _connect_udp(self) -> None:
        try:
            await self.udp.connect()
        except (ZKProtocolError, OSError) as udp_error:
            if _failure_code(udp_error) == ConnectionFailure.EADDRINUSE:
                # Another client in this process holds the local port; keep UDP selected
                self.log.warning("UDP local port %d in use, selecting UDP anyway", self.udp.local_port)
                self.connection_type = "udp"
                return
            self.connection_type = None
            await self.udp.close()
            self.log.error("UDP connect failed: %s", udp_error)
            raise ZKDeviceError(udp_error, "UDP CONNECT", self.host) from udp_error

        self.connection_type = "udp"
        self.log.info("✓ Connected over UDP", extra={"session_id": self.udp.session.session_id})

    async def disconnect(self) -> None:
        """Cancel scheduled work and close the selected transport.

        Raises:
            ZKDeviceError: If no transport was ever selected
        """
        for task in list(self._scheduled):
            task.cancel()
        await self._run("DISCONNECT", lambda transport: transport.disconnect(), require_socket=False)

    def _handle_close(self, label: str) -> None:
        # Sockets torn down while falling back were never selected
        if label != self.connection_type:
            return
        self.log.info("%s connection closed", label.upper())
        if self._on_close is not None:
            self._on_close(label)

    def _handle_error(self, error: BaseException) -> None:
        if self._on_error is not None:
            self._on_error(error)

    def status(self) -> TerminalStatus:
        transport = self.transport
        return TerminalStatus(
            connection_type=self.connection_type,
            connected=transport is not None and transport.is_connected,
            host=self.host,
            port=self.port,
            session_id=transport.session.session_id if transport is not None else None,
        )

    async def __aenter__(self) -> ZKTerminal:
        await self.connect()
        return self

    async def __aexit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.transport is not None:
            await self.disconnect()

    # operations

    async def _run(
        self,
        operation: str,
        call: Callable[[DeviceTransport], Awaitable[T]],
        require_socket: bool = True,
    ) -> T:
        transport = self.transport
        if transport is None:
            raise ZKDeviceError(
                ZKConnectionError("socket_not_connected", state="disconnected"),
                operation,
                self.host,
            )
        label = f"[{transport.label.upper()}] {operation}"
        if require_socket and not transport.is_connected:
            raise ZKDeviceError(ZKConnectionError("socket_not_connected", state="disconnected"), label, self.host)

        with correlation_context():
            try:
                return await call(transport)
            except (ZKProtocolError, OSError) as e:
                self.log.warning("%s failed: %s", label, e, extra={"error_type": type(e).__name__})
                raise ZKDeviceError(e, label, self.host) from e

    @timed_async("get_info")
    async def get_info(self) -> DeviceInfo:
        return await self._run("GET_INFO", lambda transport: transport.get_info())

    @timed_async("list_users")
    async def list_users(self) -> RecordSet[UserRecord]:
        """All user records. ``error`` is set on the result if the transfer stalled."""
        return await self._run("GET_USERS", lambda transport: transport.list_users())

    @timed_async("list_attendance")
    async def list_attendance(self, on_progress: ProgressCallback | None = None) -> RecordSet[AttendanceRecord]:
        """All attendance records.

        Args:
            on_progress: Called with (received_bytes, total_bytes) during a chunked transfer
        """
        return await self._run("GET_ATTENDANCES", lambda transport: transport.list_attendance(on_progress))

    async def clear_attendance_log(self) -> None:
        await self._run("CLEAR_ATTENDANCE_LOG", lambda transport: transport.clear_attendance_log())

    async def enable_device(self) -> None:
        await self._run("ENABLE_DEVICE", lambda transport: transport.enable_device())

    async def disable_device(self) -> None:
        await self._run("DISABLE_DEVICE", lambda transport: transport.disable_device())

    @timed_async("get_time")
    async def get_time(self) -> DeviceTimestamp:
        return await self._run("GET_TIME", lambda transport: transport.get_time())

    async def free_data(self) -> None:
        await self._run("FREE_DATA", lambda transport: transport.free_data())

    async def subscribe(self, on_event: EventCallback) -> None:
        """Receive real-time attendance events on ``on_event`` (sync or async)."""
        await self._run("GET_REAL_TIME_LOGS", lambda transport: transport.subscribe(on_event))

    async def execute(self, command: int, payload: bytes = b"") -> Frame:
        """Send an arbitrary command and return the terminal's reply frame."""
        return await self._run("EXECUTE_CMD", lambda transport: transport.execute(command, payload))

    # scheduling

    def schedule_interval(self, callback: ScheduledCallback, seconds: float) -> asyncio.Task[None]:
        """Run ``callback`` every ``seconds`` until cancelled or disconnected."""

        async def repeat() -> None:
            while True:
                await asyncio.sleep(seconds)
                await self._invoke_scheduled(callback)

        return self._track(asyncio.create_task(repeat()))

    def schedule_once(self, callback: ScheduledCallback, seconds: float) -> asyncio.Task[None]:
        """Run ``callback`` once after ``seconds`` unless disconnected first."""

        async def delayed() -> None:
            await asyncio.sleep(seconds)
            await self._invoke_scheduled(callback)

        return self._track(asyncio.create_task(delayed()))

    def _track(self, task: asyncio.Task[None]) -> asyncio.Task[None]:
        self._scheduled.add(task)
        task.add_done_callback(self._scheduled.discard)
        return task

    async def _invoke_scheduled(self, callback: ScheduledCallback) -> None:
        try:
            result = callback()
            if inspect.isawaitable(result):
                await result
        except asyncio.CancelledError:
            raise
        except Exception:
            self.log.exception("Scheduled callback failed")

    def __repr__(self) -> str:
        return f"ZKTerminal({self.host}:{self.port}, {self.connection_type or 'not connected'})"
