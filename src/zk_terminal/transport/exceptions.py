"""Exception types for the transport layer.

Extends the protocol exception tree with connection, timeout and partial
transfer errors, plus ``ZKDeviceError``, the wrapper the ZKTerminal facade
raises for every failed operation.
"""

from __future__ import annotations

import errno
from enum import StrEnum
from typing import TypedDict

from zk_terminal.protocol.commands import command_name
from zk_terminal.protocol.exceptions import ZKProtocolError


class ConnectionFailure(StrEnum):
    """Socket-level failure codes the facade branches on."""

    ECONNREFUSED = "ECONNREFUSED"
    ECONNRESET = "ECONNRESET"
    EADDRINUSE = "EADDRINUSE"
    ETIMEDOUT = "ETIMEDOUT"


_ERRNO_TO_FAILURE: dict[int, ConnectionFailure] = {
    errno.ECONNREFUSED: ConnectionFailure.ECONNREFUSED,
    errno.ECONNRESET: ConnectionFailure.ECONNRESET,
    errno.EADDRINUSE: ConnectionFailure.EADDRINUSE,
    errno.ETIMEDOUT: ConnectionFailure.ETIMEDOUT,
}


def failure_from_oserror(err: BaseException) -> ConnectionFailure | None:
    """Map an OSError (or TimeoutError) to a ConnectionFailure code."""
    if isinstance(err, ConnectionRefusedError):
        return ConnectionFailure.ECONNREFUSED
    if isinstance(err, ConnectionResetError):
        return ConnectionFailure.ECONNRESET
    if isinstance(err, TimeoutError):
        return ConnectionFailure.ETIMEDOUT
    if isinstance(err, OSError) and err.errno is not None:
        return _ERRNO_TO_FAILURE.get(err.errno)
    return None


class ZKConnectionError(ZKProtocolError):
    """Socket open failed, the connection dropped, or there is no connection.

    Note: Named ZKConnectionError to avoid shadowing Python's built-in ConnectionError.

    Attributes:
        reason: Specific failure reason (e.g., "socket_not_connected")
        code: ConnectionFailure derived from the OS error, if any
        state: Transport state when the error occurred
    """

    def __init__(self, reason: str, code: ConnectionFailure | None = None, state: str = "unknown") -> None:
        self.reason: str = reason
        self.code: ConnectionFailure | None = code
        self.state: str = state
        suffix = f" [{code}]" if code else ""
        super().__init__(f"Connection error: {reason}{suffix} (state: {state})")

    @classmethod
    def from_oserror(cls, err: BaseException, state: str = "unknown") -> ZKConnectionError:
        reason = str(err) or type(err).__name__
        return cls(reason, failure_from_oserror(err), state)


class ExchangeTimeout(ZKProtocolError):
    """No response within the exchange's timeout.

    ``phase`` is "write" for plain command exchanges and "response" when
    waiting for the data-ready reply of a bulk negotiation.

    Attributes:
        command: Operation code of the request that timed out
        phase: "write" or "response"
        timeout_seconds: Timeout that was exceeded
    """

    def __init__(self, command: int, phase: str, timeout_seconds: float) -> None:
        self.command: int = command
        self.phase: str = phase
        self.timeout_seconds: float = timeout_seconds
        label = "TIMEOUT_ON_WRITING_MESSAGE" if phase == "write" else "TIMEOUT_IN_RECEIVING_RESPONSE"
        super().__init__(f"{label}: {command_name(command)} after {timeout_seconds}s")


class ChunkTimeout(ZKProtocolError):
    """A chunked transfer stalled before all announced bytes arrived.

    Returned alongside the partial data rather than raised, so callers keep
    whatever records were received.

    Attributes:
        received: Bytes accumulated before the stall
        total: Bytes the terminal announced
    """

    def __init__(self, received: int, total: int) -> None:
        self.received: int = received
        self.total: int = total
        super().__init__(
            f"Chunked transfer timed out: {received}/{total} bytes ({self.percent_complete:.1f}% complete)",
        )

    @property
    def percent_complete(self) -> float:
        if self.total <= 0:
            return 100.0
        return self.received * 100.0 / self.total


class ErrorDetails(TypedDict):
    message: str
    code: str | None
    address: str
    operation: str


class ZKDeviceError(Exception):
    """A terminal operation failed.

    Wraps the underlying error with the operation label ("[TCP] GET_USERS",
    "TCP CONNECT", ...) and the terminal's address.

    Attributes:
        error: The original exception
        operation: Operation label
        address: Terminal host
    """

    TOAST_MESSAGES: dict[ConnectionFailure, str] = {
        ConnectionFailure.ECONNRESET: "Another device is connecting to the device so the connection is interrupted",
        ConnectionFailure.ECONNREFUSED: "IP of the device is refused",
    }

    def __init__(self, error: BaseException, operation: str, address: str) -> None:
        self.error: BaseException = error
        self.operation: str = operation
        self.address: str = address
        super().__init__(f"{operation} failed for {address}: {error}")

    @property
    def code(self) -> ConnectionFailure | None:
        if isinstance(self.error, ZKConnectionError):
            return self.error.code
        return failure_from_oserror(self.error)

    def toast(self) -> str:
        """Short user-facing description of the failure."""
        code = self.code
        if code in self.TOAST_MESSAGES:
            return self.TOAST_MESSAGES[code]
        return str(self.error)

    def as_dict(self) -> ErrorDetails:
        code = self.code
        return {
            "message": str(self.error),
            "code": str(code) if code else None,
            "address": self.address,
            "operation": self.operation,
        }
