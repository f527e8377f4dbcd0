"""Frame codec: header layout, frame building and the TCP envelope.

Frame layout (all fields little-endian):

    0      2          4            6             8
    +------+----------+------------+-------------+-----------+
    | cmd  | checksum | session_id | sequence_id | payload...|
    +------+----------+------------+-------------+-----------+

Over TCP every frame travels inside an 8-byte envelope:

    50 50 82 7D lenLo lenHi 00 00 | frame

where ``len`` counts the frame bytes (header + payload). UDP carries bare
frames.
"""

from __future__ import annotations

import logging
import struct
from dataclasses import dataclass
from typing import Final

from zk_terminal.protocol.checksum import HEADER_LENGTH, USHRT_MAX, insert_checksum_in_place
from zk_terminal.protocol.commands import command_name
from zk_terminal.protocol.exceptions import FrameDecodeError

ENVELOPE_MAGIC: Final = b"\x50\x50\x82\x7d"
ENVELOPE_LENGTH: Final = 8

_HEADER: Final = struct.Struct("<HHHH")

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class FrameHeader:
    """The four 16-bit header fields of a frame."""

    command: int
    checksum: int
    session_id: int
    sequence_id: int


@dataclass(frozen=True)
class Frame:
    """A parsed, unwrapped inbound frame.

    Attributes:
        command: Operation code
        checksum: Embedded checksum (exposed, never verified)
        session_id: Session field; pushed TCP events carry EF_ATTLOG here
        sequence_id: Sequence field
        payload: Bytes after the 8-byte header
        raw: Complete unwrapped frame
    """

    command: int
    checksum: int
    session_id: int
    sequence_id: int
    payload: bytes
    raw: bytes

    @classmethod
    def parse(cls, data: bytes) -> Frame:
        """Parse an unwrapped frame (envelope already removed)."""
        header = parse_header(data)
        return cls(
            command=header.command,
            checksum=header.checksum,
            session_id=header.session_id,
            sequence_id=header.sequence_id,
            payload=bytes(data[HEADER_LENGTH:]),
            raw=bytes(data),
        )

    @property
    def name(self) -> str:
        return command_name(self.command)

    def __repr__(self) -> str:
        return (
            f"Frame({self.name}, session={self.session_id}, sequence={self.sequence_id}, "
            f"payload={len(self.payload)}B)"
        )


def build_frame(command: int, session_id: int, sequence_id: int, payload: bytes = b"") -> bytes:
    """Build an unwrapped frame ready for the wire.

    The checksum is computed with ``sequence_id`` in the header; the sequence
    field is then rewritten as ``sequence_id + 1`` (mod 65536). Terminals
    expect this, so the transmitted sequence is one ahead of the checksum's.

    Args:
        command: Operation code
        session_id: Session id from the handshake reply (0 before it)
        sequence_id: Sequence counter value for this frame
        payload: Frame body

    Returns:
        8-byte header followed by ``payload``

    Example:
        >>> build_frame(1000, 0, 0).hex(" ")
        'e8 03 16 fc 00 00 01 00'
    """
    frame = bytearray(HEADER_LENGTH + len(payload))
    _HEADER.pack_into(frame, 0, command, 0, session_id, sequence_id)
    frame[HEADER_LENGTH:] = payload
    insert_checksum_in_place(frame)
    struct.pack_into("<H", frame, 6, (sequence_id + 1) % (USHRT_MAX + 1))
    return bytes(frame)


def parse_header(data: bytes) -> FrameHeader:
    """Read the four LE16 header fields of an unwrapped frame.

    Raises:
        FrameDecodeError: If fewer than 8 bytes are given
    """
    if len(data) < HEADER_LENGTH:
        reason = "too_short"
        raise FrameDecodeError(reason, data)
    command, checksum, session_id, sequence_id = _HEADER.unpack_from(data, 0)
    return FrameHeader(command, checksum, session_id, sequence_id)


def wrap_envelope(frame: bytes) -> bytes:
    """Prefix ``frame`` with the TCP envelope."""
    return ENVELOPE_MAGIC + struct.pack("<HH", len(frame), 0) + frame


def has_envelope(data: bytes) -> bool:
    return data[:4] == ENVELOPE_MAGIC


def strip_envelope(data: bytes) -> bytes:
    """Drop the 8-byte TCP envelope if ``data`` starts with the magic, else return it unchanged."""
    if not has_envelope(data):
        return data
    return data[ENVELOPE_LENGTH:]


def envelope_length(data: bytes) -> int:
    """Frame length announced by an envelope (bytes 4-5)."""
    return int.from_bytes(data[4:6], "little")
