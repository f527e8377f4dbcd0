"""Unit tests for user, attendance and real-time event decoders."""

from __future__ import annotations

import struct

from zk_terminal.protocol.records import (
    ATTENDANCE_RECORD_LONG,
    USER_RECORD_SHORT,
    decode_attendance_16,
    decode_attendance_40,
    decode_realtime_tcp,
    decode_realtime_udp,
    decode_text,
    decode_user_28,
    decode_user_72,
    iter_records,
    strip_dataset_prefix,
)
from zk_terminal.protocol.timestamps import DeviceTimestamp, encode_packed_time
from tests.helpers.expectations import expect_exception
from tests.helpers.fake_terminal import attendance_16, attendance_40, dataset, user_28, user_72

PACKED = encode_packed_time(DeviceTimestamp(2023, 7, 14, 9, 30, 15))


class TestDecodeText:
    def test_truncates_at_first_zero(self):
        assert decode_text(b"JOHN\x00XYZ") == "JOHN"

    def test_masks_high_bit(self):
        assert decode_text(bytes([0xC1, 0x42])) == "AB"

    def test_full_width_without_terminator(self):
        assert decode_text(b"ABCDEFGH") == "ABCDEFGH"


class TestUserRecords:
    def test_short_layout_name_and_id(self):
        """28-byte user with 'JOHN' in bytes 8..16 and user id 1234 at offset 24."""
        record = bytearray(28)
        record[8:16] = b"JOHN\x00\x00\x00\x00"
        struct.pack_into("<I", record, 24, 1234)
        user = decode_user_28(bytes(record))
        assert user.name == "JOHN"
        assert user.device_user_id == "1234"
        assert user.password == ""
        assert user.card_number == 0

    def test_short_layout_uid_and_role(self):
        user = decode_user_28(user_28(uid=7, name="ANA", user_id=9, role=14))
        assert (user.uid, user.role) == (7, 14)

    def test_long_layout(self):
        user = decode_user_72(user_72(uid=3, name="Maria Lopez", user_id="1001", password="4321", card=987654, role=0))
        assert user.uid == 3
        assert user.name == "Maria Lopez"
        assert user.password == "4321"
        assert user.card_number == 987654
        assert user.device_user_id == "1001"

    def test_short_input_raises(self):
        err = expect_exception(decode_user_72, ValueError, bytes(40))
        assert "72 bytes" in str(err)


class TestAttendanceRecords:
    def test_short_layout(self):
        record = decode_attendance_16(attendance_16(42, PACKED), source_address="10.0.0.5")
        assert record.device_user_id == 42
        assert record.timestamp == DeviceTimestamp(2023, 7, 14, 9, 30, 15)
        assert record.source_address == "10.0.0.5"
        assert record.user_sn is None

    def test_long_layout(self):
        record = decode_attendance_40(attendance_40(17, "1001", PACKED), source_address="10.0.0.5")
        assert record.user_sn == 17
        assert record.device_user_id == "1001"
        assert record.timestamp == DeviceTimestamp(2023, 7, 14, 9, 30, 15)

    def test_packed_zero_is_epoch(self):
        record = decode_attendance_16(attendance_16(1, 0))
        assert record.timestamp == DeviceTimestamp(2000, 1, 1, 0, 0, 0)


class TestRealtimeEvents:
    def test_udp_payload(self):
        payload = bytes([5, 0, 0, 0, 23, 7, 14, 9, 30, 15])
        event = decode_realtime_udp(payload)
        assert event.user_id == 5
        assert event.timestamp == DeviceTimestamp(2023, 7, 14, 9, 30, 15)

    def test_tcp_payload(self):
        payload = bytearray(32)
        payload[0:4] = b"1001"
        payload[26:32] = bytes([24, 1, 2, 3, 4, 5])
        event = decode_realtime_tcp(bytes(payload))
        assert event.user_id == "1001"
        assert event.timestamp == DeviceTimestamp(2024, 1, 2, 3, 4, 5)

    def test_tcp_payload_too_short(self):
        expect_exception(decode_realtime_tcp, ValueError, bytes(20))


class TestIterRecords:
    def test_exact_multiples(self):
        data = user_28(1, "A", 1) + user_28(2, "B", 2)
        users = list(iter_records(data, USER_RECORD_SHORT, decode_user_28))
        assert [u.name for u in users] == ["A", "B"]

    def test_short_tail_dropped(self):
        data = attendance_40(1, "1", PACKED) + bytes(ATTENDANCE_RECORD_LONG - 1)
        assert len(list(iter_records(data, ATTENDANCE_RECORD_LONG, decode_attendance_40))) == 1

    def test_empty_data(self):
        assert list(iter_records(b"", USER_RECORD_SHORT, decode_user_28)) == []

    def test_strip_dataset_prefix(self):
        records = user_28(1, "A", 1)
        assert strip_dataset_prefix(dataset(records)) == records
