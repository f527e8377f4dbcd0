"""Scripted terminal for transport and client tests.

``FakeTerminal`` answers request frames the way a ZKTeco terminal does.
``ScriptedConnection`` stands in for TCPConnection/UDPConnection: whatever is
sent is parsed, handed to the terminal and the replies are delivered back on
the next loop iteration. ``ScriptedTCPTransport`` / ``ScriptedUDPTransport``
plug it into the real transports so their framing, widths and event
classification are exercised without sockets.
"""

from __future__ import annotations

import asyncio
import struct
from collections.abc import Callable
from dataclasses import dataclass, field

from zk_terminal.protocol.commands import (
    CMD_ACK_OK,
    CMD_ACK_UNKNOWN,
    CMD_CLEAR_ATTLOG,
    CMD_CONNECT,
    CMD_DATA,
    CMD_DATA_RDY,
    CMD_DATA_WRRQ,
    CMD_DISABLEDEVICE,
    CMD_ENABLEDEVICE,
    CMD_EXIT,
    CMD_FREE_DATA,
    CMD_GET_FREE_SIZES,
    CMD_GET_TIME,
    CMD_PREPARE_DATA,
    CMD_REG_EVENT,
    EF_ATTLOG,
)
from zk_terminal.protocol.frame import Frame, build_frame, strip_envelope, wrap_envelope
from zk_terminal.transport.tcp import TCPTransport
from zk_terminal.transport.timeouts import TimeoutConfig
from zk_terminal.transport.udp import UDPTransport

TERMINAL_HOST = "10.0.0.5"
TERMINAL_SESSION = 0x2A17

FAST_TIMEOUTS = TimeoutConfig(command_timeout=0.5, handshake_timeout=0.5, chunk_timeout=0.2)


def reply(command: int, payload: bytes = b"", session_id: int = TERMINAL_SESSION, sequence_id: int = 0) -> bytes:
    """An unwrapped terminal frame."""
    return build_frame(command, session_id, sequence_id, payload)


def dataset(records: bytes) -> bytes:
    """Bulk dataset as terminals serve it: u32 size prefix, then the records."""
    return struct.pack("<I", len(records)) + records


def user_28(uid: int, name: str, user_id: int, role: int = 0) -> bytes:
    record = bytearray(28)
    struct.pack_into("<HB", record, 0, uid, role)
    record[8 : 8 + len(name)] = name.encode()
    struct.pack_into("<I", record, 24, user_id)
    return bytes(record)


def user_72(uid: int, name: str, user_id: str, password: str = "", card: int = 0, role: int = 0) -> bytes:
    record = bytearray(72)
    struct.pack_into("<HB", record, 0, uid, role)
    record[3 : 3 + len(password)] = password.encode()
    record[11 : 11 + len(name)] = name.encode()
    struct.pack_into("<I", record, 35, card)
    record[48 : 48 + len(user_id)] = user_id.encode()
    return bytes(record)


def attendance_16(user_id: int, packed_time: int) -> bytes:
    record = bytearray(16)
    struct.pack_into("<H", record, 0, user_id)
    struct.pack_into("<I", record, 4, packed_time)
    return bytes(record)


def attendance_40(user_sn: int, user_id: str, packed_time: int) -> bytes:
    record = bytearray(40)
    struct.pack_into("<H", record, 0, user_sn)
    record[2 : 2 + len(user_id)] = user_id.encode()
    struct.pack_into("<I", record, 27, packed_time)
    return bytes(record)


def udp_event(user_id: int, raw_time: bytes) -> bytes:
    """An 18-byte UDP real-time event frame."""
    return reply(CMD_REG_EVENT, bytes([user_id, 0, 0, 0]) + raw_time)


def tcp_event(user_id: str, raw_time: bytes) -> bytes:
    """An unwrapped TCP real-time event frame (EF_ATTLOG in the session field)."""
    body = bytearray(32)
    body[0 : len(user_id)] = user_id.encode()
    body[26:32] = raw_time
    return reply(CMD_REG_EVENT, bytes(body), session_id=EF_ATTLOG)


@dataclass
class FakeTerminal:
    """Answers request frames like a terminal.

    Attributes:
        datasets: Dataset bytes (size prefix included) per bulk descriptor
        chunked: Announce datasets with PREPARE_DATA instead of one DATA reply
        data_frame_size: Split each requested chunk into DATA frames of this size
        silent: Commands the terminal never answers
        free_sizes: (users, logs, capacity) for GET_FREE_SIZES
        packed_time: Value returned by GET_TIME
        delays: Seconds to hold back the replies to a command
    """

    datasets: dict[bytes, bytes] = field(default_factory=dict)
    chunked: bool = False
    data_frame_size: int = 0
    silent: set[int] = field(default_factory=set)
    free_sizes: tuple[int, int, int] = (0, 0, 0)
    packed_time: int = 0
    session_id: int = TERMINAL_SESSION
    requests: list[Frame] = field(default_factory=list)
    active: bytes = b""
    delays: dict[int, float] = field(default_factory=dict)

    def __call__(self, request: Frame) -> list[bytes]:
        self.requests.append(request)
        if request.command in self.silent:
            return []
        handler = self._handlers().get(request.command)
        if handler is None:
            return [self._frame(CMD_ACK_UNKNOWN, request)]
        return handler(request)

    def commands(self) -> list[int]:
        return [frame.command for frame in self.requests]

    def _handlers(self) -> dict[int, Callable[[Frame], list[bytes]]]:
        ack = self._ack
        return {
            CMD_CONNECT: ack,
            CMD_EXIT: ack,
            CMD_FREE_DATA: ack,
            CMD_ENABLEDEVICE: ack,
            CMD_DISABLEDEVICE: ack,
            CMD_CLEAR_ATTLOG: ack,
            CMD_GET_FREE_SIZES: self._free_sizes,
            CMD_GET_TIME: self._time,
            CMD_DATA_WRRQ: self._write_request,
            CMD_DATA_RDY: self._data_ready,
            CMD_REG_EVENT: ack,
        }

    def _frame(self, command: int, request: Frame, payload: bytes = b"") -> bytes:
        return reply(command, payload, session_id=self.session_id, sequence_id=request.sequence_id)

    def _ack(self, request: Frame) -> list[bytes]:
        return [self._frame(CMD_ACK_OK, request)]

    def _free_sizes(self, request: Frame) -> list[bytes]:
        users, logs, capacity = self.free_sizes
        payload = bytearray(80)
        struct.pack_into("<I", payload, 16, users)
        struct.pack_into("<I", payload, 32, logs)
        struct.pack_into("<I", payload, 64, capacity)
        return [self._frame(CMD_ACK_OK, request, bytes(payload))]

    def _time(self, request: Frame) -> list[bytes]:
        return [self._frame(CMD_ACK_OK, request, struct.pack("<I", self.packed_time))]

    def _write_request(self, request: Frame) -> list[bytes]:
        data = self.datasets.get(request.payload, dataset(b""))
        self.active = data
        if not self.chunked:
            return [self._frame(CMD_DATA, request, data)]
        return [self._frame(CMD_PREPARE_DATA, request, b"\x00" + struct.pack("<I", len(data)) + b"\x00\x00\x00")]

    def _data_ready(self, request: Frame) -> list[bytes]:
        offset, length = struct.unpack_from("<II", request.payload, 0)
        if length == 0:
            return []
        chunk = self.active[offset : offset + length]
        step = self.data_frame_size or len(chunk)
        frames = [self._frame(CMD_PREPARE_DATA, request, struct.pack("<I", len(chunk)))]
        frames += [self._frame(CMD_DATA, request, chunk[i : i + step]) for i in range(0, len(chunk), step)]
        frames.append(self._frame(CMD_ACK_OK, request))
        return frames


class ScriptedConnection:
    """In-memory socket: requests go to a FakeTerminal, replies come back asynchronously."""

    def __init__(self, terminal: FakeTerminal, deliver: Callable[[bytes], None], enveloped: bool) -> None:
        self.terminal = terminal
        self.deliver = deliver
        self.enveloped = enveloped
        self.sent: list[bytes] = []
        self.is_connected = True
        self.closed = False

    async def connect(self) -> None:
        self.is_connected = True

    async def send(self, data: bytes) -> None:
        self.sent.append(data)
        request = Frame.parse(strip_envelope(data) if self.enveloped else data)
        loop = asyncio.get_running_loop()
        replies = [wrap_envelope(raw) if self.enveloped else raw for raw in self.terminal(request)]
        delay = self.terminal.delays.get(request.command)
        if delay:
            loop.call_later(delay, self._deliver_all, replies)
            return
        for wire in replies:
            loop.call_soon(self.deliver, wire)

    def _deliver_all(self, replies: list[bytes]) -> None:
        for wire in replies:
            self.deliver(wire)

    async def close(self) -> None:
        self.is_connected = False
        self.closed = True

    def push(self, raw: bytes) -> None:
        """Deliver an unsolicited frame (a real-time event)."""
        self.deliver(wrap_envelope(raw) if self.enveloped else raw)


class ScriptedUDPTransport(UDPTransport):
    """UDPTransport wired to a FakeTerminal."""

    def __init__(self, terminal: FakeTerminal, timeouts: TimeoutConfig = FAST_TIMEOUTS, **kwargs) -> None:
        super().__init__(TERMINAL_HOST, 4370, timeouts, **kwargs)
        self.terminal = terminal

    async def _open_socket(self) -> None:
        self.connection = ScriptedConnection(self.terminal, self.handle_frame, enveloped=False)  # type: ignore[assignment]


class ScriptedTCPTransport(TCPTransport):
    """TCPTransport wired to a FakeTerminal; replies pass through the envelope framer."""

    def __init__(self, terminal: FakeTerminal, timeouts: TimeoutConfig = FAST_TIMEOUTS, **kwargs) -> None:
        super().__init__(TERMINAL_HOST, 4370, timeouts, **kwargs)
        self.terminal = terminal

    async def _open_socket(self) -> None:
        self.framer.reset()
        self.connection = ScriptedConnection(self.terminal, self._on_data, enveloped=True)  # type: ignore[assignment]

