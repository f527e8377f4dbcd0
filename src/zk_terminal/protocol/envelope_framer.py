"""TCP stream framing for enveloped ZK frames.

This module provides EnvelopeFramer for extracting complete frames from the
TCP byte stream, handling partial envelopes, several envelopes per read and
garbage between envelopes.
"""

import logging

from zk_terminal.protocol.checksum import HEADER_LENGTH
from zk_terminal.protocol.exceptions import EnvelopeFramingError
from zk_terminal.protocol.frame import ENVELOPE_LENGTH, ENVELOPE_MAGIC, envelope_length

logger = logging.getLogger(__name__)


class EnvelopeFramer:
    r"""Extract complete frames from the TCP byte stream.

    A single read may end mid-envelope (a 64 KB DATA chunk spans many reads)
    or hold several envelopes (a DATA frame followed by its ACK_OK). The
    framer buffers bytes and yields each complete frame with its envelope
    removed.

    Algorithm:

    1. Buffer all incoming bytes
    2. Find the envelope magic; bytes before it are discarded (resync)
    3. Wait until the 8-byte envelope is buffered, read its frame length
    4. Reject lengths below a header or above MAX_FRAME_SIZE by skipping the magic
    5. Once ``8 + length`` bytes are buffered, emit the frame
    6. Repeat until the buffer holds no complete envelope

    Example:
        framer = EnvelopeFramer()
        frames = framer.feed(b'\x50\x50\x82\x7d\x08\x00')
        assert frames == []  # Incomplete envelope

        frames = framer.feed(b'\x00\x00\xd0\x07\x2f\xf8\x01\x00\x01\x00')
        assert len(frames) == 1  # The ACK_OK frame, envelope removed
    """

    # One full chunk plus its header and slack for terminals that pad
    MAX_FRAME_SIZE: int = 65536 + 1024

    def __init__(self) -> None:
        self.buffer: bytearray = bytearray()
        self.discarded_bytes: int = 0

    def feed(self, data: bytes) -> list[bytes]:
        """Add data to buffer and return every complete frame (unwrapped).

        Args:
            data: Incoming bytes from a TCP read

        Returns:
            Frames in arrival order; may be empty
        """
        self.buffer.extend(data)
        return self._extract_frames()

    def reset(self) -> None:
        self.buffer = bytearray()

    def finish(self) -> None:
        """Signal end of stream.

        Raises:
            EnvelopeFramingError: If a partial envelope is still buffered (it is dropped)
        """
        if self.buffer:
            buffer_size = len(self.buffer)
            self.reset()
            reason = "truncated_envelope"
            raise EnvelopeFramingError(reason, buffer_size)

    def _resync(self) -> bool:
        """Drop bytes before the next magic. Returns False if no magic is buffered."""
        index = self.buffer.find(ENVELOPE_MAGIC)
        if index == 0:
            return True
        if index < 0:
            # Keep a possible partial magic at the tail
            keep = len(ENVELOPE_MAGIC) - 1
            dropped = max(0, len(self.buffer) - keep)
            if dropped:
                self._discard(dropped, "no_magic")
            return False
        self._discard(index, "garbage_before_magic")
        return True

    def _discard(self, count: int, reason: str) -> None:
        logger.warning(
            "Discarding %d bytes from TCP stream (%s)",
            count,
            reason,
            extra={"discarded": count, "reason": reason, "buffer_size": len(self.buffer)},
        )
        self.discarded_bytes += count
        del self.buffer[:count]

    def _extract_frames(self) -> list[bytes]:
        frames: list[bytes] = []

        while len(self.buffer) >= len(ENVELOPE_MAGIC):
            if not self._resync():
                break
            if len(self.buffer) < ENVELOPE_LENGTH:
                break

            frame_length = envelope_length(bytes(self.buffer[:ENVELOPE_LENGTH]))
            if frame_length < HEADER_LENGTH or frame_length > self.MAX_FRAME_SIZE:
                logger.warning(
                    "Invalid envelope frame length: %d (max %d), skipping magic",
                    frame_length,
                    self.MAX_FRAME_SIZE,
                    extra={"frame_length": frame_length, "buffer_size": len(self.buffer)},
                )
                self._discard(len(ENVELOPE_MAGIC), "invalid_frame_length")
                continue

            total_length = ENVELOPE_LENGTH + frame_length
            if len(self.buffer) < total_length:
                break

            frames.append(bytes(self.buffer[ENVELOPE_LENGTH:total_length]))
            del self.buffer[:total_length]

        return frames
