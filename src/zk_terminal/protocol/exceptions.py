"""Custom exception types for ZK protocol errors.

Errors raise exceptions instead of returning None; partial bulk transfers are
the one case reported alongside data (see ``ChunkTimeout``).
"""

from __future__ import annotations

from zk_terminal.protocol.commands import command_name


class ZKProtocolError(Exception):
    """Base exception for all ZK protocol and transport errors."""


class FrameDecodeError(ZKProtocolError):
    """Inbound bytes cannot be parsed as a frame.

    Attributes:
        reason: Specific failure reason (e.g., "too_short")
        data_preview: First 16 bytes of the offending data
    """

    def __init__(self, reason: str, data: bytes = b""):
        self.reason = reason
        # Records can hold names and card numbers, keep only the head
        self.data_preview = data[:16] if data else b""
        super().__init__(f"Frame decode failed: {reason}")


class EnvelopeFramingError(ZKProtocolError):
    """TCP stream framing error.

    Raised by EnvelopeFramer when an envelope announces a length it cannot
    hold.

    Attributes:
        reason: Specific failure reason (e.g., "envelope_too_large")
        buffer_size: Size of buffer when error occurred
    """

    def __init__(self, reason: str, buffer_size: int = 0):
        self.reason = reason
        self.buffer_size = buffer_size
        super().__init__(f"Envelope framing failed: {reason}")


class ProtocolViolation(ZKProtocolError):
    """The terminal answered with a command that was not expected here.

    Attributes:
        command: Offending operation code
        command_name: Symbolic name from the command table
        context: Where the violation happened (e.g., "bulk negotiation")
    """

    def __init__(self, command: int, context: str = ""):
        self.command = command
        self.command_name = command_name(command)
        self.context = context
        where = f" during {context}" if context else ""
        super().__init__(f"Unexpected command {self.command_name} ({command}){where}")
