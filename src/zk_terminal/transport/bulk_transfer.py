"""Chunked bulk transfer of user and attendance datasets.

A bulk read starts with DATA_WRRQ carrying a dataset descriptor. The terminal
either answers with the whole dataset in one DATA frame, or announces its
size (PREPARE_DATA or ACK_OK, u32 at payload offset 1). In the second case
the client requests the dataset in MAX_CHUNK pieces with DATA_RDY and
collects the DATA frames that come back:

    client                          terminal
    DATA_WRRQ(descriptor)   --->
                            <---    PREPARE_DATA(size)
    DATA_RDY(0, MAX_CHUNK)  --->
    ...
    DATA_RDY(n*MAX_CHUNK, remainder) --->
                            <---    PREPARE_DATA / DATA ... / ACK_OK

``chunk_count + 1`` requests are sent, the last one even when the remainder
is zero. The transfer completes on an ACK_OK once every announced byte has
arrived. A rolling timeout restarts on every inbound frame; when it lapses
the bytes received so far are returned together with a ``ChunkTimeout``.
"""

from __future__ import annotations

import struct
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Final

from zk_terminal.logging_abstraction import get_logger
from zk_terminal.metrics import record_bulk_transfer
from zk_terminal.protocol.commands import (
    CMD_ACK_OK,
    CMD_DATA,
    CMD_DATA_RDY,
    CMD_DATA_WRRQ,
    CMD_PREPARE_DATA,
    MAX_CHUNK,
    command_name,
)
from zk_terminal.protocol.exceptions import ProtocolViolation
from zk_terminal.protocol.frame import Frame
from zk_terminal.transport.correlator import RequestCorrelator
from zk_terminal.transport.exceptions import ChunkTimeout
from zk_terminal.transport.session import SessionState

logger = get_logger(__name__)

ProgressCallback = Callable[[int, int], None]
Encoder = Callable[[bytes], bytes]

# Offset of the u32 dataset size in a PREPARE_DATA / ACK_OK payload
SIZE_OFFSET: Final = 1


@dataclass
class BulkResult:
    """Outcome of a bulk read.

    Attributes:
        data: Dataset bytes (complete, or what arrived before a stall)
        error: ChunkTimeout when the transfer stalled, otherwise None
    """

    data: bytes
    error: ChunkTimeout | None = None

    @property
    def complete(self) -> bool:
        return self.error is None


def plan_chunks(size: int) -> list[tuple[int, int]]:
    """(offset, length) of every DATA_RDY request for a dataset of ``size`` bytes.

    Always ``size // MAX_CHUNK + 1`` entries; the last covers the remainder
    and is present even when the remainder is 0.
    """
    chunk_count, remainder = divmod(size, MAX_CHUNK)
    plan = [(i * MAX_CHUNK, MAX_CHUNK) for i in range(chunk_count)]
    plan.append((chunk_count * MAX_CHUNK, remainder))
    return plan


@dataclass
class TransferState:
    """Accumulation state of one chunked read."""

    total: int
    buffer: bytearray = field(default_factory=bytearray)

    @property
    def received(self) -> int:
        return len(self.buffer)


class ChunkAccounting:
    """Appends each DATA payload as it arrives (UDP terminals).

    Every datagram is a whole DATA frame, so progress is reported per frame.
    """

    def __init__(self, state: TransferState, plan: list[tuple[int, int]], on_progress: ProgressCallback | None):
        self.state = state
        self.on_progress = on_progress

    def add(self, payload: bytes) -> None:
        self.state.buffer.extend(payload)
        self._progress()

    def _progress(self) -> None:
        if self.on_progress is not None:
            self.on_progress(self.state.received, self.state.total)


class PerChunkAccounting(ChunkAccounting):
    """Commits a logical chunk once all of its bytes have arrived (TCP terminals).

    One requested chunk can come back as several DATA frames spread over many
    reads. Payloads are held until the chunk's requested length is reached,
    then appended and reported in one step.
    """

    def __init__(self, state: TransferState, plan: list[tuple[int, int]], on_progress: ProgressCallback | None):
        super().__init__(state, plan, on_progress)
        self._chunk_sizes = [length for _, length in plan if length > 0]
        self._pending = bytearray()

    def add(self, payload: bytes) -> None:
        self._pending.extend(payload)
        while self._chunk_sizes and len(self._pending) >= self._chunk_sizes[0]:
            size = self._chunk_sizes.pop(0)
            self.state.buffer.extend(self._pending[:size])
            del self._pending[:size]
            self._progress()
        if not self._chunk_sizes and self._pending:
            # More than was requested; keep it rather than drop dataset bytes
            self.state.buffer.extend(self._pending)
            self._pending.clear()
            self._progress()


class ChunkedTransfer:
    """Runs one bulk read over a connection's correlator."""

    def __init__(
        self,
        correlator: RequestCorrelator,
        session: SessionState,
        encode: Encoder,
        accounting: type[ChunkAccounting],
        data_ready_min_payload: int,
        command_timeout: float,
        chunk_timeout: float,
    ) -> None:
        """
        Args:
            correlator: Connection's request/response router
            session: Connection's session state (advanced for every request)
            encode: Wraps an unwrapped frame for the wire (envelope on TCP)
            accounting: ChunkAccounting (per frame) or PerChunkAccounting (per chunk)
            data_ready_min_payload: Payload length that marks the negotiation reply
            command_timeout: Timeout for the negotiation reply
            chunk_timeout: Rolling timeout between frames of the chunk phase
        """
        self.correlator = correlator
        self.session = session
        self.encode = encode
        self.accounting = accounting
        self.data_ready_min_payload = data_ready_min_payload
        self.command_timeout = command_timeout
        self.chunk_timeout = chunk_timeout

    async def read(self, descriptor: bytes, on_progress: ProgressCallback | None = None) -> BulkResult:
        """Read the dataset selected by ``descriptor``.

        Raises:
            ExchangeTimeout: The negotiation reply did not arrive
            ProtocolViolation: The terminal answered with an unexpected command
        """
        transport = self.correlator.transport
        request = self.encode(self.session.encode(CMD_DATA_WRRQ, descriptor))
        reply = await self.correlator.await_data_ready(
            request,
            CMD_DATA_WRRQ,
            self.data_ready_min_payload,
            self.command_timeout,
        )

        if reply.command == CMD_DATA:
            logger.debug("Dataset delivered directly (%d bytes)", len(reply.payload))
            record_bulk_transfer(transport, "direct", "success", len(reply.payload))
            return BulkResult(reply.payload)

        if reply.command not in (CMD_ACK_OK, CMD_PREPARE_DATA):
            record_bulk_transfer(transport, "direct", "violation", 0)
            raise ProtocolViolation(reply.command, "bulk negotiation")

        if len(reply.payload) < SIZE_OFFSET + 4:
            record_bulk_transfer(transport, "chunked", "violation", 0)
            raise ProtocolViolation(reply.command, "bulk negotiation without dataset size")

        (size,) = struct.unpack_from("<I", reply.payload, SIZE_OFFSET)
        return await self._read_chunks(size, on_progress)

    async def _read_chunks(self, size: int, on_progress: ProgressCallback | None) -> BulkResult:
        transport = self.correlator.transport
        state = TransferState(total=size)
        plan = plan_chunks(size)
        accounting = self.accounting(state, plan, on_progress)
        logger.info(
            "Chunked transfer of %d bytes in %d requests",
            size,
            len(plan),
            extra={"size": size, "requests": len(plan), "transport": transport},
        )

        for offset, length in plan:
            chunk_request = struct.pack("<II", offset, length)
            await self.correlator.send(self.encode(self.session.encode(CMD_DATA_RDY, chunk_request)))

        while True:
            try:
                frame = await self.correlator.next_frame(self.chunk_timeout)
            except TimeoutError:
                error = ChunkTimeout(state.received, size)
                logger.warning(
                    "%s",
                    error,
                    extra={"received": state.received, "total": size, "transport": transport},
                )
                record_bulk_transfer(transport, "chunked", "timeout", state.received)
                return BulkResult(bytes(state.buffer), error)

            if self._handle(frame, state, accounting):
                record_bulk_transfer(transport, "chunked", "success", state.received)
                return BulkResult(bytes(state.buffer))

    def _handle(self, frame: Frame, state: TransferState, accounting: ChunkAccounting) -> bool:
        """Apply one inbound frame; True once the transfer is complete."""
        if frame.command == CMD_PREPARE_DATA:
            return False
        if frame.command == CMD_DATA:
            accounting.add(frame.payload)
            return False
        if frame.command == CMD_ACK_OK:
            if state.received == state.total:
                return True
            logger.debug(
                "ACK_OK at %d/%d bytes, transfer continues",
                state.received,
                state.total,
            )
            return False
        record_bulk_transfer(self.correlator.transport, "chunked", "violation", state.received)
        logger.error(
            "Chunked transfer aborted by %s",
            command_name(frame.command),
            extra={"command": frame.command, "received": state.received, "total": state.total},
        )
        raise ProtocolViolation(frame.command, "chunked transfer")
