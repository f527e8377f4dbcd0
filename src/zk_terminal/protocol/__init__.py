"""ZK terminal protocol package: frames, checksums, envelopes and records.

Public API:
- Frame codec (build_frame, parse_header, Frame, envelope helpers)
- Stream framing for TCP (EnvelopeFramer)
- Record and timestamp decoders
- Protocol exceptions
"""

from zk_terminal.protocol.checksum import compute_checksum, verify_checksum
from zk_terminal.protocol.envelope_framer import EnvelopeFramer
from zk_terminal.protocol.exceptions import (
    EnvelopeFramingError,
    FrameDecodeError,
    ProtocolViolation,
    ZKProtocolError,
)
from zk_terminal.protocol.frame import (
    Frame,
    FrameHeader,
    build_frame,
    parse_header,
    strip_envelope,
    wrap_envelope,
)
from zk_terminal.protocol.records import AttendanceRecord, RealtimeEvent, UserRecord
from zk_terminal.protocol.timestamps import (
    DeviceTimestamp,
    decode_packed_time,
    decode_raw_time,
    encode_packed_time,
)

__all__ = [
    # Frame codec
    "Frame",
    "FrameHeader",
    "build_frame",
    "parse_header",
    "strip_envelope",
    "wrap_envelope",
    "compute_checksum",
    "verify_checksum",
    "EnvelopeFramer",
    # Records
    "AttendanceRecord",
    "RealtimeEvent",
    "UserRecord",
    "DeviceTimestamp",
    "decode_packed_time",
    "decode_raw_time",
    "encode_packed_time",
    # Exceptions
    "EnvelopeFramingError",
    "FrameDecodeError",
    "ProtocolViolation",
    "ZKProtocolError",
]
