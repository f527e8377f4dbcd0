"""Per-connection session and sequence state."""

from __future__ import annotations

from dataclasses import dataclass

from zk_terminal.protocol.checksum import USHRT_MAX
from zk_terminal.protocol.commands import CMD_CONNECT
from zk_terminal.protocol.frame import Frame, build_frame


@dataclass
class SessionState:
    """Session id and sequence counter owned by one transport instance.

    The handshake (CMD_CONNECT) resets both to 0 before it is encoded; every
    other frame increments the sequence first. The session id is adopted
    from the handshake reply.
    """

    session_id: int = 0
    sequence: int = 0

    def advance(self, command: int) -> tuple[int, int]:
        """Return the (session_id, sequence_id) to build the next ``command`` frame with."""
        if command == CMD_CONNECT:
            self.session_id = 0
            self.sequence = 0
        else:
            self.sequence = (self.sequence + 1) % (USHRT_MAX + 1)
        return self.session_id, self.sequence

    def encode(self, command: int, payload: bytes = b"") -> bytes:
        """Advance the state and build the unwrapped frame for ``command``."""
        session_id, sequence_id = self.advance(command)
        return build_frame(command, session_id, sequence_id, payload)

    def adopt_reply(self, reply: Frame) -> None:
        self.session_id = reply.session_id

    def reset(self) -> None:
        self.session_id = 0
        self.sequence = 0
