"""Unit tests for transport layer exceptions."""

from __future__ import annotations

import errno

import pytest

from zk_terminal.protocol.commands import CMD_CONNECT, CMD_DATA_WRRQ
from zk_terminal.protocol.exceptions import ZKProtocolError
from zk_terminal.transport.exceptions import (
    ChunkTimeout,
    ConnectionFailure,
    ExchangeTimeout,
    ZKConnectionError,
    ZKDeviceError,
    failure_from_oserror,
)


class TestExceptionHierarchy:
    def test_transport_errors_inherit_from_zk_protocol_error(self):
        assert issubclass(ZKConnectionError, ZKProtocolError)
        assert issubclass(ExchangeTimeout, ZKProtocolError)
        assert issubclass(ChunkTimeout, ZKProtocolError)

    def test_device_error_is_outside_protocol_tree(self):
        assert not issubclass(ZKDeviceError, ZKProtocolError)


class TestFailureFromOSError:
    @pytest.mark.parametrize(
        ("error", "expected"),
        [
            (ConnectionRefusedError(), ConnectionFailure.ECONNREFUSED),
            (ConnectionResetError(), ConnectionFailure.ECONNRESET),
            (TimeoutError(), ConnectionFailure.ETIMEDOUT),
            (OSError(errno.EADDRINUSE, "Address already in use"), ConnectionFailure.EADDRINUSE),
            (OSError(errno.EHOSTUNREACH, "No route to host"), None),
            (ValueError("not a socket error"), None),
        ],
    )
    def test_mapping(self, error: BaseException, expected: ConnectionFailure | None):
        assert failure_from_oserror(error) == expected


class TestZKConnectionError:
    def test_reason_only(self):
        error = ZKConnectionError("socket_not_connected")
        assert error.reason == "socket_not_connected"
        assert error.code is None
        assert error.state == "unknown"
        assert "socket_not_connected" in str(error)

    def test_from_oserror_keeps_code(self):
        error = ZKConnectionError.from_oserror(ConnectionRefusedError(errno.ECONNREFUSED, "Connection refused"), "connecting")
        assert error.code == ConnectionFailure.ECONNREFUSED
        assert error.state == "connecting"
        assert "[ECONNREFUSED]" in str(error)

    def test_from_oserror_without_message_uses_type_name(self):
        assert ZKConnectionError.from_oserror(ConnectionResetError()).reason == "ConnectionResetError"


class TestTimeouts:
    def test_exchange_timeout_write_phase(self):
        error = ExchangeTimeout(CMD_CONNECT, "write", 2.0)
        assert str(error) == "TIMEOUT_ON_WRITING_MESSAGE: CMD_CONNECT after 2.0s"

    def test_exchange_timeout_response_phase(self):
        error = ExchangeTimeout(CMD_DATA_WRRQ, "response", 10.0)
        assert error.timeout_seconds == 10.0
        assert str(error).startswith("TIMEOUT_IN_RECEIVING_RESPONSE")

    def test_chunk_timeout_progress(self):
        error = ChunkTimeout(received=5000, total=20000)
        assert error.percent_complete == pytest.approx(25.0)
        assert "5000/20000" in str(error)
        assert "25.0%" in str(error)

    def test_chunk_timeout_empty_dataset(self):
        assert ChunkTimeout(0, 0).percent_complete == 100.0


class TestZKDeviceError:
    def test_wraps_error_with_operation_and_address(self):
        cause = ExchangeTimeout(CMD_CONNECT, "write", 2.0)
        error = ZKDeviceError(cause, "[TCP] GET_USERS", "10.0.0.5")
        assert error.error is cause
        assert error.operation == "[TCP] GET_USERS"
        assert error.address == "10.0.0.5"
        assert "[TCP] GET_USERS failed for 10.0.0.5" in str(error)

    def test_reset_toast(self):
        cause = ZKConnectionError.from_oserror(ConnectionResetError())
        error = ZKDeviceError(cause, "[TCP] GET_ATTENDANCES", "10.0.0.5")
        assert error.code == ConnectionFailure.ECONNRESET
        assert error.toast() == "Another device is connecting to the device so the connection is interrupted"

    def test_refused_toast_from_plain_oserror(self):
        error = ZKDeviceError(ConnectionRefusedError(), "TCP CONNECT", "10.0.0.5")
        assert error.toast() == "IP of the device is refused"

    def test_other_errors_toast_their_message(self):
        cause = ExchangeTimeout(CMD_CONNECT, "write", 2.0)
        assert ZKDeviceError(cause, "UDP CONNECT", "10.0.0.5").toast() == str(cause)

    def test_as_dict(self):
        cause = ZKConnectionError("refused", ConnectionFailure.ECONNREFUSED, "connecting")
        details = ZKDeviceError(cause, "TCP CONNECT", "10.0.0.5").as_dict()
        assert details == {
            "message": str(cause),
            "code": "ECONNREFUSED",
            "address": "10.0.0.5",
            "operation": "TCP CONNECT",
        }

    def test_as_dict_without_code(self):
        details = ZKDeviceError(RuntimeError("boom"), "[UDP] GET_TIME", "10.0.0.5").as_dict()
        assert details["code"] is None
        assert details["message"] == "boom"
