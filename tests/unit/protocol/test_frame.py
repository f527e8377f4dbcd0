"""Unit tests for the frame codec and the TCP envelope."""

from __future__ import annotations

import pytest

from zk_terminal.protocol.commands import CMD_ACK_OK, CMD_CONNECT, CMD_DATA, command_name
from zk_terminal.protocol.exceptions import FrameDecodeError
from zk_terminal.protocol.frame import (
    ENVELOPE_MAGIC,
    Frame,
    build_frame,
    envelope_length,
    has_envelope,
    parse_header,
    strip_envelope,
    wrap_envelope,
)
from tests.helpers.expectations import expect_exception

HANDSHAKE_FRAME = bytes.fromhex("e8 03 16 fc 00 00 01 00")


class TestBuildFrame:
    def test_handshake_bytes(self):
        """First handshake on a fresh session is the well-known 8-byte frame."""
        assert build_frame(CMD_CONNECT, 0, 0) == HANDSHAKE_FRAME

    def test_sequence_field_is_one_ahead(self):
        frame = build_frame(CMD_ACK_OK, 0x0102, 9, b"xy")
        header = parse_header(frame)
        assert header.sequence_id == 10
        assert header.session_id == 0x0102
        assert frame[8:] == b"xy"

    def test_sequence_field_wraps(self):
        assert parse_header(build_frame(CMD_ACK_OK, 0, 0xFFFF)).sequence_id == 0


class TestParse:
    def test_parse_header_fields(self):
        header = parse_header(HANDSHAKE_FRAME)
        assert header.command == CMD_CONNECT
        assert header.checksum == 0xFC16
        assert header.session_id == 0
        assert header.sequence_id == 1

    def test_parse_short_data_raises(self):
        err = expect_exception(parse_header, FrameDecodeError, b"\xe8\x03\x16")
        assert err.reason == "too_short"
        assert err.data_preview == b"\xe8\x03\x16"

    def test_frame_parse_keeps_payload_and_raw(self):
        raw = build_frame(CMD_DATA, 5, 1, b"\x01\x02\x03")
        frame = Frame.parse(raw)
        assert frame.command == CMD_DATA
        assert frame.payload == b"\x01\x02\x03"
        assert frame.raw == raw
        assert frame.name == command_name(CMD_DATA)
        assert "CMD_DATA" in repr(frame)

    def test_header_only_frame_has_empty_payload(self):
        assert Frame.parse(HANDSHAKE_FRAME).payload == b""


class TestEnvelope:
    def test_wrap_envelope_layout(self):
        wrapped = wrap_envelope(HANDSHAKE_FRAME)
        assert wrapped[:8] == bytes.fromhex("50 50 82 7d 08 00 00 00")
        assert wrapped[8:] == HANDSHAKE_FRAME
        assert envelope_length(wrapped) == len(HANDSHAKE_FRAME)

    def test_strip_envelope_removes_first_eight_bytes(self):
        wrapped = wrap_envelope(HANDSHAKE_FRAME)
        assert has_envelope(wrapped)
        assert strip_envelope(wrapped) == HANDSHAKE_FRAME

    @pytest.mark.parametrize(
        "data",
        [HANDSHAKE_FRAME, b"", b"\x50\x50\x82", b"\x50\x50\x82\x7e\x00\x00\x00\x00"],
    )
    def test_strip_envelope_without_magic_is_identity(self, data: bytes):
        assert strip_envelope(data) == data

    def test_magic_constant(self):
        assert ENVELOPE_MAGIC == b"PP\x82}"
