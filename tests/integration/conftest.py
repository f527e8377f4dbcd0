"""Loopback terminals for integration tests.

A FakeTerminal is served on 127.0.0.1: over TCP with the envelope framer, and
over UDP one datagram per frame. Both bind port 0 so the OS picks a free port.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import AsyncGenerator

import pytest_asyncio

from zk_terminal.protocol.commands import REQUEST_ATTENDANCE_LOGS, REQUEST_USERS
from zk_terminal.protocol.envelope_framer import EnvelopeFramer
from zk_terminal.protocol.frame import Frame, wrap_envelope
from tests.helpers.fake_terminal import (
    FakeTerminal,
    attendance_16,
    attendance_40,
    dataset,
    user_28,
    user_72,
)

logger = logging.getLogger(__name__)

LOOPBACK = "127.0.0.1"


class TCPTerminalServer:
    """Serves one FakeTerminal over the TCP envelope protocol."""

    def __init__(self, terminal: FakeTerminal, host: str = LOOPBACK, port: int = 0) -> None:
        self.terminal = terminal
        self.host = host
        self.port = port
        self.server: asyncio.Server | None = None

    async def start(self) -> None:
        self.server = await asyncio.start_server(self._handle_client, self.host, self.port)
        if self.port == 0:
            self.port = self.server.sockets[0].getsockname()[1]
        logger.info("Loopback TCP terminal started on %s:%d", self.host, self.port)

    async def stop(self) -> None:
        if self.server:
            self.server.close()
            await self.server.wait_closed()

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        framer = EnvelopeFramer()
        try:
            while data := await reader.read(4096):
                for raw in framer.feed(data):
                    for reply in self.terminal(Frame.parse(raw)):
                        writer.write(wrap_envelope(reply))
                await writer.drain()
        except ConnectionResetError:
            logger.info("Client reset the connection")
        finally:
            writer.close()


class UDPTerminalProtocol(asyncio.DatagramProtocol):
    """Serves one FakeTerminal over plain UDP datagrams."""

    def __init__(self, terminal: FakeTerminal) -> None:
        self.terminal = terminal
        self.transport: asyncio.DatagramTransport | None = None

    def connection_made(self, transport: asyncio.BaseTransport) -> None:
        self.transport = transport  # type: ignore[assignment]

    def datagram_received(self, data: bytes, addr: tuple[str, int]) -> None:
        assert self.transport is not None
        for reply in self.terminal(Frame.parse(data)):
            self.transport.sendto(reply, addr)


@pytest_asyncio.fixture
async def tcp_terminal() -> AsyncGenerator[TCPTerminalServer]:
    """TCP terminal with two 72-byte users and 2000 attendance logs (two chunks)."""
    users = user_72(1, "JOHN", "1234") + user_72(2, "MARY", "1235")
    logs = b"".join(attendance_40(n, "1234", 0) for n in range(2000))
    server = TCPTerminalServer(
        FakeTerminal(
            datasets={REQUEST_USERS: dataset(users), REQUEST_ATTENDANCE_LOGS: dataset(logs)},
            chunked=True,
            data_frame_size=8000,
        )
    )
    await server.start()
    yield server
    await server.stop()


@pytest_asyncio.fixture
async def udp_terminal() -> AsyncGenerator[tuple[FakeTerminal, int]]:
    """UDP-only terminal; its port has no TCP listener, so TCP is refused."""
    terminal = FakeTerminal(
        datasets={
            REQUEST_USERS: dataset(user_28(1, "JOHN", 1234)),
            REQUEST_ATTENDANCE_LOGS: dataset(b"".join(attendance_16(1234, n) for n in range(300))),
        },
        chunked=True,
        data_frame_size=1024,
    )
    loop = asyncio.get_running_loop()
    transport, _ = await loop.create_datagram_endpoint(lambda: UDPTerminalProtocol(terminal), local_addr=(LOOPBACK, 0))
    yield terminal, transport.get_extra_info("sockname")[1]
    transport.close()
