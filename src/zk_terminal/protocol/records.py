"""Record decoders for user, attendance and real-time event data.

Each entity has a short and a long layout. UDP terminals serve the short
layouts (28-byte users, 16-byte attendance records), TCP terminals the long
ones (72-byte users, 40-byte attendance records).

Field offsets:

    user, 28 bytes     uid u16 @0 | role u8 @2 | name [8:16]  | user id u32 @24
    user, 72 bytes     uid u16 @0 | role u8 @2 | password [3:11] | name [11:35]
                       card u32 @35 | user id text [48:57]
    attendance, 16     user id u16 @0 | packed time u32 @4
    attendance, 40     user sn u16 @0 | user id text [2:11] | packed time u32 @27
    event, UDP         user id u8 @0 | raw time [4:10]           (payload offsets)
    event, TCP         user id text [0:9] | raw time [26:32]     (payload offsets)
"""

from __future__ import annotations

import struct
from collections.abc import Callable, Iterator
from dataclasses import dataclass
from typing import Final, TypeVar

from zk_terminal.protocol.timestamps import DeviceTimestamp, decode_packed_time, decode_raw_time

USER_RECORD_SHORT: Final = 28
USER_RECORD_LONG: Final = 72
ATTENDANCE_RECORD_SHORT: Final = 16
ATTENDANCE_RECORD_LONG: Final = 40
REALTIME_EVENT_UDP_FRAME: Final = 18
REALTIME_EVENT_TCP_PAYLOAD: Final = 32
# Bulk datasets start with their own byte count
DATASET_SIZE_PREFIX: Final = 4

R = TypeVar("R")


@dataclass(frozen=True)
class UserRecord:
    """A user enrolled on the terminal.

    ``password`` and ``card_number`` are only present in the long layout.
    """

    uid: int
    role: int
    name: str
    device_user_id: str
    password: str = ""
    card_number: int = 0


@dataclass(frozen=True)
class AttendanceRecord:
    """One attendance log entry.

    Attributes:
        device_user_id: int in the short layout, text in the long one
        timestamp: Decoded packed time
        source_address: Host the record was read from
        user_sn: Serial number (long layout only)
    """

    device_user_id: int | str
    timestamp: DeviceTimestamp
    source_address: str = ""
    user_sn: int | None = None


@dataclass(frozen=True)
class RealtimeEvent:
    """An attendance event pushed by the terminal after subscription."""

    user_id: int | str
    timestamp: DeviceTimestamp


def decode_text(data: bytes) -> str:
    """Decode a fixed-width text field: 7-bit characters up to the first zero byte."""
    end = data.find(b"\x00")
    if end >= 0:
        data = data[:end]
    return bytes(b & 0x7F for b in data).decode("ascii")


def _u16(data: bytes, offset: int) -> int:
    return struct.unpack_from("<H", data, offset)[0]


def _u32(data: bytes, offset: int) -> int:
    return struct.unpack_from("<I", data, offset)[0]


def _require_width(data: bytes, width: int, kind: str) -> None:
    if len(data) < width:
        msg = f"{kind} record needs {width} bytes, got {len(data)}"
        raise ValueError(msg)


def decode_user_28(data: bytes) -> UserRecord:
    _require_width(data, USER_RECORD_SHORT, "user")
    return UserRecord(
        uid=_u16(data, 0),
        role=data[2],
        name=decode_text(data[8:16]),
        device_user_id=str(_u32(data, 24)),
    )


def decode_user_72(data: bytes) -> UserRecord:
    _require_width(data, USER_RECORD_LONG, "user")
    return UserRecord(
        uid=_u16(data, 0),
        role=data[2],
        password=decode_text(data[3:11]),
        name=decode_text(data[11:35]),
        card_number=_u32(data, 35),
        device_user_id=decode_text(data[48:57]),
    )


def decode_attendance_16(data: bytes, source_address: str = "") -> AttendanceRecord:
    _require_width(data, ATTENDANCE_RECORD_SHORT, "attendance")
    return AttendanceRecord(
        device_user_id=_u16(data, 0),
        timestamp=decode_packed_time(_u32(data, 4)),
        source_address=source_address,
    )


def decode_attendance_40(data: bytes, source_address: str = "") -> AttendanceRecord:
    _require_width(data, ATTENDANCE_RECORD_LONG, "attendance")
    return AttendanceRecord(
        user_sn=_u16(data, 0),
        device_user_id=decode_text(data[2:11]),
        timestamp=decode_packed_time(_u32(data, 27)),
        source_address=source_address,
    )


def decode_realtime_udp(payload: bytes) -> RealtimeEvent:
    """Decode the payload of an 18-byte UDP event frame."""
    return RealtimeEvent(user_id=payload[0], timestamp=decode_raw_time(payload[4:10]))


def decode_realtime_tcp(payload: bytes) -> RealtimeEvent:
    """Decode the payload of a TCP event frame.

    The user id is in bytes 0..9 and the timestamp in bytes 26..32, so the
    payload must be at least 32 bytes wide.
    """
    _require_width(payload, REALTIME_EVENT_TCP_PAYLOAD, "real-time event")
    return RealtimeEvent(user_id=decode_text(payload[0:9]), timestamp=decode_raw_time(payload[26:32]))


def iter_records(data: bytes, width: int, decoder: Callable[[bytes], R]) -> Iterator[R]:
    """Decode consecutive ``width``-byte records; a short tail is ignored."""
    for offset in range(0, len(data) - width + 1, width):
        yield decoder(data[offset : offset + width])


def strip_dataset_prefix(data: bytes) -> bytes:
    """Drop the 4-byte size field that opens every bulk dataset."""
    return data[DATASET_SIZE_PREFIX:]
