"""TCP terminal transport: enveloped frames over a stream connection."""

from __future__ import annotations

from zk_terminal.protocol.commands import CMD_REG_EVENT, EF_ATTLOG
from zk_terminal.protocol.envelope_framer import EnvelopeFramer
from zk_terminal.protocol.exceptions import EnvelopeFramingError
from zk_terminal.protocol.frame import Frame, wrap_envelope
from zk_terminal.protocol.records import (
    ATTENDANCE_RECORD_LONG,
    REALTIME_EVENT_TCP_PAYLOAD,
    USER_RECORD_LONG,
    AttendanceRecord,
    RealtimeEvent,
    UserRecord,
    decode_attendance_40,
    decode_realtime_tcp,
    decode_user_72,
)
from zk_terminal.transport.base import DeviceTransport
from zk_terminal.transport.bulk_transfer import PerChunkAccounting
from zk_terminal.transport.exceptions import ZKConnectionError
from zk_terminal.transport.socket_abstraction import TCPConnection


class TCPTransport(DeviceTransport):
    """Terminal connection over TCP.

    Long record layouts (72-byte users, 40-byte attendance). Pushed events
    carry CMD_REG_EVENT with EF_ATTLOG in the session field.
    """

    label = "tcp"
    user_record_width = USER_RECORD_LONG
    attendance_record_width = ATTENDANCE_RECORD_LONG
    # Any frame longer than a bare header ends the negotiation
    data_ready_min_payload = 1
    chunk_accounting = PerChunkAccounting

    def __init__(self, *args, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.framer = EnvelopeFramer()
        self.connection: TCPConnection | None = None

    async def _open_socket(self) -> None:
        self.framer.reset()
        self.connection = TCPConnection(
            self.host,
            self.port,
            on_data=self._on_data,
            on_close=self._on_connection_closed,
            connect_timeout=self.timeouts.command_timeout,
            io_timeout=self.timeouts.command_timeout,
        )
        await self.connection.connect()

    async def _close_socket(self) -> None:
        connection, self.connection = self.connection, None
        if connection is not None:
            await connection.close()

    async def _write(self, wire: bytes) -> None:
        if self.connection is None:
            raise ZKConnectionError("socket_not_connected", state="disconnected")
        await self.connection.send(wire)

    @property
    def is_connected(self) -> bool:
        return self.connection is not None and self.connection.is_connected

    def _on_data(self, data: bytes) -> None:
        for raw in self.framer.feed(data):
            self.handle_frame(raw)

    def _on_connection_closed(self, error: BaseException | None) -> None:
        try:
            self.framer.finish()
        except EnvelopeFramingError as e:
            self.log.warning("%s (%d bytes dropped)", e, e.buffer_size)
        self.handle_socket_closed(error)

    def wrap(self, frame: bytes) -> bytes:
        return wrap_envelope(frame)

    def is_event(self, frame: Frame) -> bool:
        return frame.command == CMD_REG_EVENT and frame.session_id == EF_ATTLOG

    def decode_event(self, frame: Frame) -> RealtimeEvent | None:
        """Decode a pushed attendance event, or None when the body is too short.

        Any enveloped frame longer than 16 bytes is an event candidate, but the
        timestamp sits at body offsets 26..32, so a body under 32 bytes cannot
        carry one and is dropped.
        """
        if len(frame.payload) < REALTIME_EVENT_TCP_PAYLOAD:
            return None
        return decode_realtime_tcp(frame.payload)

    def decode_user(self, data: bytes) -> UserRecord:
        return decode_user_72(data)

    def decode_attendance(self, data: bytes) -> AttendanceRecord:
        return decode_attendance_40(data, source_address=self.host)
