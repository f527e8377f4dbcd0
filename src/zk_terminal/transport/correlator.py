"""Request/response correlation over a half-duplex terminal connection.

Terminals answer one request at a time, but once real-time events are
subscribed they also push event frames at any moment. Every inbound frame
passes through ``RequestCorrelator.dispatch``:

- event frames (as classified by the transport) go to the event handler and
  never reach a waiting request
- everything else enters a single-consumer queue that exactly one exchange
  awaits at a time

Timeouts are ``asyncio.wait_for`` scopes around the awaiting call, so no
timer outlives the exchange that started it.
"""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Callable

from zk_terminal.logging_abstraction import get_logger
from zk_terminal.metrics import record_exchange_timeout, record_frame_received
from zk_terminal.protocol.commands import command_name
from zk_terminal.protocol.frame import Frame
from zk_terminal.transport.exceptions import ExchangeTimeout, ZKConnectionError

logger = get_logger(__name__)

SendCallable = Callable[[bytes], Awaitable[None]]
EventClassifier = Callable[[Frame], bool]
EventHandler = Callable[[Frame], None]


class RequestCorrelator:
    """Routes inbound frames to the pending exchange or the event handler.

    One instance per connection. ``detach()`` ends it: the event handler is
    dropped and every current or later wait fails with a connection error.
    """

    def __init__(self, send: SendCallable, is_event: EventClassifier, transport: str = "tcp") -> None:
        """
        Args:
            send: Coroutine writing wire bytes to the socket
            is_event: Returns True for frames that are pushed real-time events
            transport: Label used in logs and metrics
        """
        self._send = send
        self._is_event = is_event
        self.transport = transport
        self._queue: asyncio.Queue[Frame | BaseException] = asyncio.Queue()
        self._event_handler: EventHandler | None = None
        self._detached_reason: str | None = None

    # inbound side

    def dispatch(self, frame: Frame) -> None:
        """Route one inbound frame. Never raises."""
        record_frame_received(self.transport, frame.name)
        if self._detached_reason is not None:
            return

        if self._is_event(frame):
            handler = self._event_handler
            if handler is None:
                logger.debug("Dropping event frame with no subscriber: %r", frame)
                return
            try:
                handler(frame)
            except Exception:
                # A subscriber bug must not stop the connection's reader
                logger.exception("Real-time event handler failed", extra={"transport": self.transport})
            return

        self._queue.put_nowait(frame)

    def fail(self, error: BaseException) -> None:
        """Wake the pending exchange (if any) with ``error``."""
        if self._detached_reason is None:
            self._queue.put_nowait(error)

    def set_event_handler(self, handler: EventHandler) -> bool:
        """Install the event handler once. Returns False if one was already installed."""
        if self._event_handler is not None:
            return False
        self._event_handler = handler
        return True

    @property
    def has_event_handler(self) -> bool:
        return self._event_handler is not None

    def detach(self, reason: str = "connection_closed") -> None:
        """Drop the event handler and abandon every pending and future wait."""
        if self._detached_reason is not None:
            return
        self._event_handler = None
        self._detached_reason = reason
        # Wakes a waiter blocked in next_frame
        self._queue.put_nowait(self._closed_error())

    @property
    def is_detached(self) -> bool:
        return self._detached_reason is not None

    def _closed_error(self) -> ZKConnectionError:
        return ZKConnectionError(self._detached_reason or "connection_closed", state="closed")

    # outbound side

    def drain(self) -> int:
        """Discard queued frames left over from earlier exchanges.

        Late replies (the REG_EVENT acknowledgement, ACK_OK after a chunk
        series) would otherwise be taken as the answer to the next request.
        """
        dropped = 0
        while not self._queue.empty():
            item = self._queue.get_nowait()
            if isinstance(item, Frame):
                dropped += 1
                logger.debug("Discarding stale %r", item)
        return dropped

    async def send(self, wire: bytes) -> None:
        if self._detached_reason is not None:
            raise self._closed_error()
        await self._send(wire)

    async def next_frame(self, timeout: float) -> Frame:
        """Wait up to ``timeout`` seconds for the next non-event frame.

        Raises:
            TimeoutError: If nothing arrives in time
            ZKConnectionError: If the correlator is detached or the socket failed
        """
        if self._detached_reason is not None:
            raise self._closed_error()
        item = await asyncio.wait_for(self._queue.get(), timeout=timeout)
        if isinstance(item, BaseException):
            raise item
        return item

    async def exchange(self, wire: bytes, command: int, timeout: float) -> Frame:
        """Send one request and return the next non-event frame.

        Raises:
            ExchangeTimeout: phase "write", when no reply arrives in ``timeout``
        """
        self.drain()
        await self.send(wire)
        try:
            return await self.next_frame(timeout)
        except TimeoutError as e:
            record_exchange_timeout(self.transport, command_name(command), "write")
            raise ExchangeTimeout(command, "write", timeout) from e

    async def await_data_ready(self, wire: bytes, command: int, min_payload: int, timeout: float) -> Frame:
        """Send a bulk negotiation request and wait for its definitive reply.

        Frames whose payload is shorter than ``min_payload`` are treated as a
        prelude: they are skipped and restart the timeout window.

        Raises:
            ExchangeTimeout: phase "response", when the window lapses
        """
        self.drain()
        await self.send(wire)
        while True:
            try:
                frame = await self.next_frame(timeout)
            except TimeoutError as e:
                record_exchange_timeout(self.transport, command_name(command), "response")
                raise ExchangeTimeout(command, "response", timeout) from e
            if len(frame.payload) >= min_payload:
                return frame
            logger.debug("Skipping short prelude %r while waiting for data-ready", frame)
