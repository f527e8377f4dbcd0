"""Asyncio socket abstractions with deadlines and instrumentation.

``TCPConnection`` wraps a stream connection and runs a reader task that
hands every received chunk to ``on_data``. ``UDPConnection`` wraps a
connected datagram endpoint bound to a fixed local port and hands every
datagram to ``on_data``. Both report the end of the connection once through
``on_close``.
"""

from __future__ import annotations

import asyncio
import contextlib
import time
from collections.abc import Callable

from zk_terminal.logging_abstraction import get_logger, hex_preview
from zk_terminal.transport.exceptions import ZKConnectionError

logger = get_logger(__name__)

DataCallback = Callable[[bytes], None]
CloseCallback = Callable[[BaseException | None], None]


def _elapsed_ms(start_time: float) -> float:
    return (time.perf_counter() - start_time) * 1000


class TCPConnection:
    """Async TCP connection with timeouts, a reader task and instrumentation."""

    def __init__(
        self,
        host: str,
        port: int,
        on_data: DataCallback,
        on_close: CloseCallback | None = None,
        connect_timeout: float = 10.0,
        io_timeout: float = 10.0,
        max_read_size: int = 65536,
    ):
        """
        Initialize TCP connection parameters.

        Args:
            host: Terminal host
            port: Terminal port
            on_data: Called with every chunk read from the socket
            on_close: Called once when the connection ends (None on a clean EOF)
            connect_timeout: Connection timeout in seconds
            io_timeout: Write drain timeout in seconds
            max_read_size: Maximum bytes to read in one operation
        """
        self.host = host
        self.port = port
        self.on_data = on_data
        self.on_close = on_close
        self.connect_timeout = connect_timeout
        self.io_timeout = io_timeout
        self.max_read_size = max_read_size
        self.reader: asyncio.StreamReader | None = None
        self.writer: asyncio.StreamWriter | None = None
        self._reader_task: asyncio.Task[None] | None = None
        self._connected = False
        self._close_notified = False

    async def connect(self) -> None:
        """
        Establish the TCP connection and start reading.

        Raises:
            ZKConnectionError: On timeout or socket error; ``code`` carries
                ECONNREFUSED, ETIMEDOUT, ... when known
        """
        start_time = time.perf_counter()
        context = {"host": self.host, "port": self.port, "timeout": self.connect_timeout}
        logger.info("Connecting to %s:%d over TCP", self.host, self.port, extra=context)
        try:
            self.reader, self.writer = await asyncio.wait_for(
                asyncio.open_connection(self.host, self.port),
                timeout=self.connect_timeout,
            )
        except (TimeoutError, OSError) as e:
            logger.warning(
                "TCP connection to %s:%d failed after %.1fms: %s",
                self.host,
                self.port,
                _elapsed_ms(start_time),
                str(e) or type(e).__name__,
                extra={**context, "error": str(e), "error_type": type(e).__name__},
            )
            raise ZKConnectionError.from_oserror(e, state="connecting") from e

        self._connected = True
        self._close_notified = False
        self._reader_task = asyncio.create_task(self._read_loop(), name=f"zk-tcp-reader-{self.host}")
        logger.info(
            "Connected to %s:%d in %.1fms",
            self.host,
            self.port,
            _elapsed_ms(start_time),
            extra={"host": self.host, "port": self.port, "elapsed_ms": _elapsed_ms(start_time)},
        )

    async def send(self, data: bytes) -> None:
        """
        Write ``data`` and wait for the buffer to drain.

        Raises:
            ZKConnectionError: If not connected, the drain times out or the socket fails
        """
        if not self._connected or not self.writer:
            raise ZKConnectionError("socket_not_connected", state="disconnected")

        logger.debug(
            "Sending %d bytes to %s:%d",
            len(data),
            self.host,
            self.port,
            extra={"bytes": len(data), "data": hex_preview(data)},
        )
        try:
            self.writer.write(data)
            await asyncio.wait_for(self.writer.drain(), timeout=self.io_timeout)
        except (TimeoutError, OSError) as e:
            logger.warning(
                "Send to %s:%d failed: %s",
                self.host,
                self.port,
                str(e) or type(e).__name__,
                extra={"host": self.host, "port": self.port, "error_type": type(e).__name__},
            )
            raise ZKConnectionError.from_oserror(e, state="connected") from e

    async def _read_loop(self) -> None:
        assert self.reader is not None
        error: BaseException | None = None
        try:
            while True:
                data = await self.reader.read(self.max_read_size)
                if not data:
                    logger.info("Connection closed by %s:%d", self.host, self.port)
                    break
                logger.debug(
                    "Received %d bytes from %s:%d",
                    len(data),
                    self.host,
                    self.port,
                    extra={"bytes": len(data), "data": hex_preview(data)},
                )
                self.on_data(data)
        except asyncio.CancelledError:
            raise
        except OSError as e:
            error = e
            logger.warning(
                "Receive from %s:%d failed: %s",
                self.host,
                self.port,
                e,
                extra={"host": self.host, "port": self.port, "error_type": type(e).__name__},
            )
        self._connected = False
        self._notify_close(error)

    def _notify_close(self, error: BaseException | None) -> None:
        if self._close_notified:
            return
        self._close_notified = True
        if self.on_close is not None:
            self.on_close(error)

    async def close(self) -> None:
        """Stop the reader and close the socket. Never raises."""
        task, self._reader_task = self._reader_task, None
        if task is not None and not task.done():
            task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await task

        if self.writer:
            logger.info("Closing TCP connection to %s:%d", self.host, self.port)
            try:
                self.writer.close()
                await asyncio.wait_for(self.writer.wait_closed(), timeout=2.0)
            except (OSError, TimeoutError) as e:
                logger.warning(
                    "Error closing connection: %s",
                    e,
                    extra={"host": self.host, "port": self.port, "error_type": type(e).__name__},
                )
            finally:
                self.writer = None
                self.reader = None

        self._connected = False
        self._notify_close(None)

    @property
    def is_connected(self) -> bool:
        return self._connected

    def __repr__(self) -> str:
        status = "connected" if self._connected else "disconnected"
        return f"TCPConnection({self.host}:{self.port}, {status})"


class _DatagramReceiver(asyncio.DatagramProtocol):
    """Forwards datagrams and errors of one endpoint to its UDPConnection."""

    def __init__(self, connection: UDPConnection) -> None:
        self.connection = connection

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        logger.debug(
            "Received %d-byte datagram from %s:%d",
            len(data),
            addr[0],
            addr[1],
            extra={"bytes": len(data), "data": hex_preview(data)},
        )
        self.connection.on_data(data)

    def error_received(self, exc: Exception) -> None:
        logger.warning("UDP error from %s: %s", self.connection.host, exc, extra={"error_type": type(exc).__name__})
        if self.connection.on_error is not None:
            self.connection.on_error(exc)

    def connection_lost(self, exc: Exception | None) -> None:
        self.connection.handle_connection_lost(exc)


class UDPConnection:
    """Connected UDP endpoint bound to a fixed local port."""

    def __init__(
        self,
        host: str,
        port: int,
        on_data: DataCallback,
        local_port: int = 4000,
        on_error: Callable[[Exception], None] | None = None,
        on_close: CloseCallback | None = None,
    ):
        """
        Initialize UDP endpoint parameters.

        Args:
            host: Terminal host
            port: Terminal port
            on_data: Called with every received datagram
            local_port: Local port to bind (0 picks an ephemeral port)
            on_error: Called with errors reported by the OS (e.g. ICMP port unreachable)
            on_close: Called once when the endpoint closes
        """
        self.host = host
        self.port = port
        self.local_port = local_port
        self.on_data = on_data
        self.on_error = on_error
        self.on_close = on_close
        self.transport: asyncio.DatagramTransport | None = None
        self._close_notified = False

    async def connect(self) -> None:
        """
        Bind the local port and associate the endpoint with the terminal.

        Raises:
            ZKConnectionError: If binding fails; EADDRINUSE when the local port is taken
        """
        loop = asyncio.get_running_loop()
        logger.info(
            "Opening UDP endpoint %s:%d (local port %d)",
            self.host,
            self.port,
            self.local_port,
            extra={"host": self.host, "port": self.port, "local_port": self.local_port},
        )
        try:
            transport, _ = await loop.create_datagram_endpoint(
                lambda: _DatagramReceiver(self),
                local_addr=("0.0.0.0", self.local_port),
                remote_addr=(self.host, self.port),
            )
        except OSError as e:
            logger.warning(
                "UDP endpoint for %s:%d failed: %s",
                self.host,
                self.port,
                e,
                extra={"host": self.host, "local_port": self.local_port, "error_type": type(e).__name__},
            )
            raise ZKConnectionError.from_oserror(e, state="binding") from e
        self.transport = transport
        self._close_notified = False

    async def send(self, data: bytes) -> None:
        """
        Send one datagram.

        Raises:
            ZKConnectionError: If the endpoint is not open
        """
        if self.transport is None or self.transport.is_closing():
            raise ZKConnectionError("socket_not_connected", state="disconnected")
        logger.debug(
            "Sending %d-byte datagram to %s:%d",
            len(data),
            self.host,
            self.port,
            extra={"bytes": len(data), "data": hex_preview(data)},
        )
        self.transport.sendto(data)

    def handle_connection_lost(self, exc: Exception | None) -> None:
        self.transport = None
        if not self._close_notified:
            self._close_notified = True
            if self.on_close is not None:
                self.on_close(exc)

    async def close(self) -> None:
        """Close the endpoint. Never raises."""
        transport, self.transport = self.transport, None
        if transport is not None:
            logger.info("Closing UDP endpoint for %s:%d", self.host, self.port)
            transport.close()
            # connection_lost runs on the next loop iteration
            await asyncio.sleep(0)
        self.handle_connection_lost(None)

    @property
    def is_connected(self) -> bool:
        return self.transport is not None and not self.transport.is_closing()

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"UDPConnection({self.host}:{self.port}, local={self.local_port}, {status})"
