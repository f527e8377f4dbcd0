"""Transport capability interface shared by the TCP and UDP variants.

``DeviceTransport`` implements every terminal operation on top of four
variant hooks: opening/closing the socket, wrapping frames for the wire,
classifying inbound event frames and decoding them. The variants also pick
the record layouts, the data-ready threshold and the chunk accounting.
"""

from __future__ import annotations

import asyncio
import inspect
import struct
from abc import ABC, abstractmethod
from collections.abc import Awaitable, Callable, Iterator
from dataclasses import dataclass, field
from typing import ClassVar, Generic, TypeVar

from zk_terminal.logging_abstraction import get_logger
from zk_terminal.metrics import (
    record_decode_error,
    record_frame_sent,
    record_realtime_event,
    set_connection_state,
)
from zk_terminal.protocol.commands import (
    CMD_ACK_ERROR,
    CMD_ACK_UNAUTH,
    CMD_CLEAR_ATTLOG,
    CMD_CONNECT,
    CMD_DISABLEDEVICE,
    CMD_ENABLEDEVICE,
    CMD_EXIT,
    CMD_FREE_DATA,
    CMD_GET_FREE_SIZES,
    CMD_GET_TIME,
    CMD_REG_EVENT,
    HANDSHAKE_COMMANDS,
    REQUEST_ATTENDANCE_LOGS,
    REQUEST_DISABLE_DEVICE,
    REQUEST_REAL_TIME_EVENT,
    REQUEST_USERS,
    command_name,
)
from zk_terminal.protocol.exceptions import FrameDecodeError, ZKProtocolError
from zk_terminal.protocol.frame import Frame
from zk_terminal.protocol.records import (
    AttendanceRecord,
    RealtimeEvent,
    UserRecord,
    iter_records,
    strip_dataset_prefix,
)
from zk_terminal.protocol.timestamps import DeviceTimestamp, decode_packed_time
from zk_terminal.transport.bulk_transfer import BulkResult, ChunkAccounting, ChunkedTransfer, ProgressCallback
from zk_terminal.transport.correlator import RequestCorrelator
from zk_terminal.transport.exceptions import ChunkTimeout, ExchangeTimeout, ZKConnectionError
from zk_terminal.transport.session import SessionState
from zk_terminal.transport.timeouts import TimeoutConfig

logger = get_logger(__name__)

R = TypeVar("R")

EventCallback = Callable[[RealtimeEvent], object]
CloseListener = Callable[[str], None]
ErrorListener = Callable[[BaseException], None]

# GET_FREE_SIZES counters, offsets into the unwrapped reply frame
USER_COUNT_OFFSET = 24
LOG_COUNT_OFFSET = 40
LOG_CAPACITY_OFFSET = 72


@dataclass(frozen=True)
class DeviceInfo:
    """Storage counters reported by GET_FREE_SIZES."""

    user_count: int
    log_count: int
    log_capacity: int


@dataclass
class RecordSet(Generic[R]):
    """Records decoded from a bulk read.

    ``error`` is set when the transfer stalled; ``records`` then holds what
    could be decoded from the bytes that did arrive.
    """

    records: list[R] = field(default_factory=list)
    error: ChunkTimeout | None = None

    def __iter__(self) -> Iterator[R]:
        return iter(self.records)

    def __len__(self) -> int:
        return len(self.records)


class DeviceTransport(ABC):
    """One connection to a terminal over a specific transport."""

    label: ClassVar[str]
    user_record_width: ClassVar[int]
    attendance_record_width: ClassVar[int]
    # Minimum payload of the reply that ends a bulk negotiation
    data_ready_min_payload: ClassVar[int]
    chunk_accounting: ClassVar[type[ChunkAccounting]]

    def __init__(
        self,
        host: str,
        port: int,
        timeouts: TimeoutConfig,
        on_close: CloseListener | None = None,
        on_error: ErrorListener | None = None,
    ) -> None:
        self.host = host
        self.port = port
        self.timeouts = timeouts
        self.on_close = on_close
        self.on_error = on_error
        self.session = SessionState()
        self.correlator: RequestCorrelator | None = None
        self._lock = asyncio.Lock()
        self._event_tasks: set[asyncio.Task[object]] = set()
        self.log = logger.bind(host=host, port=port, transport=self.label)

    # variant hooks

    @abstractmethod
    async def _open_socket(self) -> None: ...

    @abstractmethod
    async def _close_socket(self) -> None: ...

    @abstractmethod
    async def _write(self, wire: bytes) -> None: ...

    @property
    @abstractmethod
    def is_connected(self) -> bool: ...

    @abstractmethod
    def wrap(self, frame: bytes) -> bytes:
        """Prepare an unwrapped frame for the wire."""

    @abstractmethod
    def is_event(self, frame: Frame) -> bool:
        """True for pushed real-time event frames."""

    @abstractmethod
    def decode_event(self, frame: Frame) -> RealtimeEvent | None:
        """Decode an event frame, or None if it does not have the event width."""

    @abstractmethod
    def decode_user(self, data: bytes) -> UserRecord: ...

    @abstractmethod
    def decode_attendance(self, data: bytes) -> AttendanceRecord: ...

    # connection lifecycle

    async def open(self) -> None:
        """Open the socket with a fresh correlator and session.

        Raises:
            ZKConnectionError: If the socket cannot be opened
        """
        self.session.reset()
        self.correlator = RequestCorrelator(self._send, self.is_event, self.label)
        try:
            await self._open_socket()
        except ZKConnectionError as e:
            if self.on_error is not None:
                self.on_error(e)
            raise
        set_connection_state(self.host, self.label, True)

    async def handshake(self) -> Frame:
        """Send CMD_CONNECT and adopt the session id from the reply."""
        reply = await self.execute(CMD_CONNECT)
        self.log.info("Session %d established", self.session.session_id, extra={"session_id": self.session.session_id})
        return reply

    async def connect(self) -> None:
        """Open the socket and perform the handshake."""
        await self.open()
        await self.handshake()

    async def disconnect(self) -> None:
        """Send CMD_EXIT, ignore its outcome, then always close. Never raises.

        An operation in flight gets up to the handshake timeout to finish
        before CMD_EXIT is sent. If it is still waiting after that, EXIT is
        skipped and the operation fails with a connection error.
        """
        if self.correlator is not None and not self.correlator.is_detached:
            try:
                await asyncio.wait_for(self._lock.acquire(), timeout=self.timeouts.handshake_timeout)
            except TimeoutError:
                self.log.info("Operation still in flight, skipping CMD_EXIT")
            else:
                try:
                    await self._execute(CMD_EXIT)
                except (ZKProtocolError, OSError) as e:
                    self.log.debug("CMD_EXIT failed during disconnect: %s", e)
                finally:
                    self._lock.release()
        await self.close()

    async def close(self) -> None:
        """Detach the correlator and close the socket without CMD_EXIT. Never raises."""
        if self.correlator is not None:
            self.correlator.detach("disconnected")
        for task in list(self._event_tasks):
            task.cancel()
        await self._close_socket()
        set_connection_state(self.host, self.label, False)

    def handle_socket_closed(self, error: BaseException | None) -> None:
        """Socket reported its end; fail any pending wait and notify the listener."""
        if self.correlator is not None and not self.correlator.is_detached:
            if error is not None:
                self.correlator.fail(ZKConnectionError.from_oserror(error, state="closed"))
            self.correlator.detach("connection_closed")
        set_connection_state(self.host, self.label, False)
        if self.on_close is not None:
            self.on_close(self.label)

    def handle_frame(self, raw: bytes) -> None:
        """Parse one unwrapped inbound frame and route it. Never raises."""
        try:
            frame = Frame.parse(raw)
        except FrameDecodeError as e:
            record_decode_error(self.label, e.reason)
            self.log.warning("Dropping undecodable frame: %s", e, extra={"bytes": len(raw)})
            return
        if self.correlator is not None:
            self.correlator.dispatch(frame)

    # frame exchange

    def _require_correlator(self) -> RequestCorrelator:
        if self.correlator is None or self.correlator.is_detached or not self.is_connected:
            raise ZKConnectionError("socket_not_connected", state="disconnected")
        return self.correlator

    async def _send(self, wire: bytes) -> None:
        await self._write(wire)

    def _encode(self, command: int, payload: bytes = b"") -> bytes:
        record_frame_sent(self.label, command_name(command))
        return self.wrap(self.session.encode(command, payload))

    async def execute(self, command: int, payload: bytes = b"") -> Frame:
        """Send ``command`` and return the terminal's reply frame.

        CONNECT and EXIT use the handshake timeout, everything else the
        command timeout.

        Raises:
            ZKConnectionError: If not connected
            ExchangeTimeout: If no reply arrives in time
        """
        async with self._lock:
            return await self._execute(command, payload)

    async def _execute(self, command: int, payload: bytes = b"") -> Frame:
        correlator = self._require_correlator()
        timeout = (
            self.timeouts.handshake_timeout if command in HANDSHAKE_COMMANDS else self.timeouts.command_timeout
        )
        reply = await correlator.exchange(self._encode(command, payload), command, timeout)
        if command == CMD_CONNECT:
            self.session.adopt_reply(reply)
        if reply.command in (CMD_ACK_ERROR, CMD_ACK_UNAUTH):
            self.log.warning(
                "%s answered with %s",
                command_name(command),
                reply.name,
                extra={"command": command, "reply": reply.command},
            )
        return reply

    async def read_bulk(self, descriptor: bytes, on_progress: ProgressCallback | None = None) -> BulkResult:
        """Read the dataset selected by ``descriptor`` (see ChunkedTransfer)."""
        async with self._lock:
            return await self._read_bulk(descriptor, on_progress)

    async def _read_bulk(self, descriptor: bytes, on_progress: ProgressCallback | None) -> BulkResult:
        correlator = self._require_correlator()
        transfer = ChunkedTransfer(
            correlator=correlator,
            session=self.session,
            encode=self._count_and_wrap,
            accounting=self.chunk_accounting,
            data_ready_min_payload=self.data_ready_min_payload,
            command_timeout=self.timeouts.command_timeout,
            chunk_timeout=self.timeouts.chunk_timeout,
        )
        return await transfer.read(descriptor, on_progress)

    def _count_and_wrap(self, frame: bytes) -> bytes:
        record_frame_sent(self.label, command_name(int.from_bytes(frame[:2], "little")))
        return self.wrap(frame)

    # operations

    async def free_data(self) -> None:
        """Release the terminal-side dataset buffer."""
        await self.execute(CMD_FREE_DATA)

    async def list_users(self) -> RecordSet[UserRecord]:
        return await self._list_records(REQUEST_USERS, self.user_record_width, self.decode_user, None)

    async def list_attendance(self, on_progress: ProgressCallback | None = None) -> RecordSet[AttendanceRecord]:
        return await self._list_records(
            REQUEST_ATTENDANCE_LOGS,
            self.attendance_record_width,
            self.decode_attendance,
            on_progress,
        )

    async def _list_records(
        self,
        descriptor: bytes,
        width: int,
        decoder: Callable[[bytes], R],
        on_progress: ProgressCallback | None,
    ) -> RecordSet[R]:
        # FREE_DATA brackets the read so the terminal starts and ends with a clean buffer
        async with self._lock:
            await self._execute(CMD_FREE_DATA)
            result = await self._read_bulk(descriptor, on_progress)
            await self._execute(CMD_FREE_DATA)

        records = list(iter_records(strip_dataset_prefix(result.data), width, decoder))
        self.log.info(
            "Decoded %d records of %d bytes",
            len(records),
            width,
            extra={"records": len(records), "complete": result.complete},
        )
        return RecordSet(records, result.error)

    async def get_info(self) -> DeviceInfo:
        reply = await self.execute(CMD_GET_FREE_SIZES)
        if len(reply.raw) < LOG_CAPACITY_OFFSET + 4:
            reason = "free_sizes_too_short"
            raise FrameDecodeError(reason, reply.raw)
        user_count, log_count, log_capacity = (
            struct.unpack_from("<I", reply.raw, offset)[0]
            for offset in (USER_COUNT_OFFSET, LOG_COUNT_OFFSET, LOG_CAPACITY_OFFSET)
        )
        return DeviceInfo(user_count=user_count, log_count=log_count, log_capacity=log_capacity)

    async def get_time(self) -> DeviceTimestamp:
        reply = await self.execute(CMD_GET_TIME)
        if len(reply.payload) < 4:
            reason = "time_too_short"
            raise FrameDecodeError(reason, reply.raw)
        return decode_packed_time(struct.unpack_from("<I", reply.payload, 0)[0])

    async def clear_attendance_log(self) -> None:
        await self.execute(CMD_CLEAR_ATTLOG)

    async def enable_device(self) -> None:
        await self.execute(CMD_ENABLEDEVICE)

    async def disable_device(self) -> None:
        await self.execute(CMD_DISABLEDEVICE, REQUEST_DISABLE_DEVICE)

    async def subscribe(self, on_event: EventCallback) -> None:
        """Register for real-time attendance events.

        The registration frame is sent on every call; the event callback is
        installed only by the first call on a connection. ``on_event`` may be
        a plain function or a coroutine function.

        The terminal's acknowledgement is consumed here so it cannot answer
        the next request. Terminals that never acknowledge are tolerated.
        """
        async with self._lock:
            correlator = self._require_correlator()
            installed = correlator.set_event_handler(lambda frame: self._deliver_event(frame, on_event))
            if not installed:
                self.log.debug("Event subscriber already installed, keeping the first one")
            try:
                await correlator.exchange(
                    self._encode(CMD_REG_EVENT, REQUEST_REAL_TIME_EVENT),
                    CMD_REG_EVENT,
                    self.timeouts.command_timeout,
                )
            except ExchangeTimeout:
                self.log.debug("CMD_REG_EVENT was not acknowledged, events stay subscribed")

    def _deliver_event(self, frame: Frame, on_event: EventCallback) -> None:
        event = self.decode_event(frame)
        if event is None:
            self.log.debug("Ignoring event frame of unexpected width: %r", frame)
            return
        record_realtime_event(self.label)
        result = on_event(event)
        if inspect.isawaitable(result):
            task = asyncio.ensure_future(_await_event(result))
            self._event_tasks.add(task)
            task.add_done_callback(self._event_tasks.discard)

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"{type(self).__name__}({self.host}:{self.port}, {status})"


async def _await_event(awaitable: Awaitable[object]) -> object:
    try:
        return await awaitable
    except asyncio.CancelledError:
        raise
    except Exception:
        logger.exception("Async real-time event handler failed")
        return None
