"""UDP terminal transport: bare frames, one per datagram."""

from __future__ import annotations

from zk_terminal.const import ZK_UDP_LOCAL_PORT
from zk_terminal.protocol.commands import CMD_REG_EVENT
from zk_terminal.protocol.frame import Frame
from zk_terminal.protocol.records import (
    ATTENDANCE_RECORD_SHORT,
    REALTIME_EVENT_UDP_FRAME,
    USER_RECORD_SHORT,
    AttendanceRecord,
    RealtimeEvent,
    UserRecord,
    decode_attendance_16,
    decode_realtime_udp,
    decode_user_28,
)
from zk_terminal.transport.base import DeviceTransport, ErrorListener
from zk_terminal.transport.bulk_transfer import ChunkAccounting
from zk_terminal.transport.exceptions import ZKConnectionError
from zk_terminal.transport.socket_abstraction import UDPConnection


class UDPTransport(DeviceTransport):
    """Terminal connection over UDP.

    Short record layouts (28-byte users, 16-byte attendance). Every frame
    with CMD_REG_EVENT is a pushed event; only 18-byte ones are decoded.
    """

    label = "udp"
    user_record_width = USER_RECORD_SHORT
    attendance_record_width = ATTENDANCE_RECORD_SHORT
    # Negotiation replies are at least 13 bytes on the wire
    data_ready_min_payload = 5
    chunk_accounting = ChunkAccounting

    def __init__(self, *args, local_port: int = ZK_UDP_LOCAL_PORT, **kwargs) -> None:
        super().__init__(*args, **kwargs)
        self.local_port = local_port
        self.connection: UDPConnection | None = None

    async def _open_socket(self) -> None:
        self.connection = UDPConnection(
            self.host,
            self.port,
            on_data=self.handle_frame,
            local_port=self.local_port,
            on_error=self._on_socket_error,
            on_close=self.handle_socket_closed,
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

    def _on_socket_error(self, error: Exception) -> None:
        # ICMP errors (port unreachable) surface here; fail the pending exchange with them
        if self.correlator is not None:
            self.correlator.fail(ZKConnectionError.from_oserror(error, state="connected"))
        listener: ErrorListener | None = self.on_error
        if listener is not None:
            listener(error)

    def wrap(self, frame: bytes) -> bytes:
        return frame

    def is_event(self, frame: Frame) -> bool:
        return frame.command == CMD_REG_EVENT

    def decode_event(self, frame: Frame) -> RealtimeEvent | None:
        if len(frame.raw) != REALTIME_EVENT_UDP_FRAME:
            return None
        return decode_realtime_udp(frame.payload)

    def decode_user(self, data: bytes) -> UserRecord:
        return decode_user_28(data)

    def decode_attendance(self, data: bytes) -> AttendanceRecord:
        return decode_attendance_16(data, source_address=self.host)
