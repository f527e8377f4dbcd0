"""Unit tests for frame checksums."""

from __future__ import annotations

import pytest

from zk_terminal.protocol.checksum import compute_checksum, insert_checksum_in_place, verify_checksum
from zk_terminal.protocol.commands import CMD_CONNECT, CMD_DATA_RDY, CMD_GET_TIME
from zk_terminal.protocol.frame import build_frame


class TestComputeChecksum:
    """Tests for the LE16 word sum."""

    def test_handshake_header(self):
        """CONNECT header with zeroed fields sums to 1000."""
        assert compute_checksum(bytes([0xE8, 0x03, 0, 0, 0, 0, 0, 0])) == 64534

    def test_empty_input(self):
        assert compute_checksum(b"") == 0xFFFE

    def test_odd_trailing_byte_added_raw(self):
        """A trailing odd byte counts as its own value, not as a high byte."""
        assert compute_checksum(b"\x00\x00\x05") == 0xFFFE - 5

    def test_sum_wraps_mod_65536(self):
        # 0xFFFF + 0x0002 wraps to 0x0001
        assert compute_checksum(b"\xff\xff\x02\x00") == 0xFFFE - 1

    def test_sum_of_all_ones_wraps_result(self):
        """65535 - 65535 - 1 wraps to 65535."""
        assert compute_checksum(b"\xff\xff") == 0xFFFF


class TestInsertChecksum:
    def test_zeroes_previous_checksum(self):
        frame = bytearray(b"\xe8\x03\xaa\xbb\x00\x00\x00\x00")
        checksum = insert_checksum_in_place(frame)
        assert checksum == 64534
        assert frame[2:4] == b"\x16\xfc"


class TestVerifyChecksum:
    @pytest.mark.parametrize("payload_length", [0, 1, 2, 3, 7, 8, 63, 64, 255, 1024])
    def test_built_frames_verify_with_sequence_skew(self, payload_length: int):
        """Frames built by build_frame verify once the sequence bump is undone."""
        payload = bytes((i * 7 + 3) % 256 for i in range(payload_length))
        frame = build_frame(CMD_DATA_RDY, 0x1234, 41, payload)
        assert verify_checksum(frame, sequence_skew=1)

    def test_built_frame_fails_without_skew(self):
        frame = build_frame(CMD_GET_TIME, 7, 3)
        assert not verify_checksum(frame)

    def test_corrupted_payload_detected(self):
        frame = bytearray(build_frame(CMD_GET_TIME, 7, 3, b"\x01\x02\x03\x04"))
        frame[9] ^= 0xFF
        assert not verify_checksum(bytes(frame), sequence_skew=1)

    def test_sequence_skew_wraps(self):
        """A frame built at sequence 65535 carries 0 and still verifies."""
        frame = build_frame(CMD_CONNECT, 0, 0xFFFF)
        assert frame[6:8] == b"\x00\x00"
        assert verify_checksum(frame, sequence_skew=1)

    def test_short_frame_is_invalid(self):
        assert not verify_checksum(b"\xe8\x03")
