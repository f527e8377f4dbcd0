"""Timeout configuration for terminal transports."""

from __future__ import annotations

from dataclasses import dataclass

from zk_terminal.const import (
    ZK_HANDSHAKE_TIMEOUT,
    ZK_TCP_CHUNK_TIMEOUT,
    ZK_TIMEOUT,
    ZK_UDP_CHUNK_TIMEOUT,
)


@dataclass(frozen=True)
class TimeoutConfig:
    """Timeouts for one transport, in seconds.

    Attributes:
        command_timeout: General exchange timeout; also bounds socket open
        handshake_timeout: CONNECT and EXIT exchanges
        chunk_timeout: Rolling window between frames of a chunked transfer
    """

    command_timeout: float = ZK_TIMEOUT
    handshake_timeout: float = ZK_HANDSHAKE_TIMEOUT
    chunk_timeout: float = ZK_TCP_CHUNK_TIMEOUT

    @classmethod
    def for_tcp(cls, command_timeout: float = ZK_TIMEOUT) -> TimeoutConfig:
        return cls(command_timeout=command_timeout, chunk_timeout=ZK_TCP_CHUNK_TIMEOUT)

    @classmethod
    def for_udp(cls, command_timeout: float = ZK_TIMEOUT) -> TimeoutConfig:
        return cls(command_timeout=command_timeout, chunk_timeout=ZK_UDP_CHUNK_TIMEOUT)

    def __repr__(self) -> str:
        return (
            f"TimeoutConfig(command={self.command_timeout:.1f}s, "
            f"handshake={self.handshake_timeout:.1f}s, "
            f"chunk={self.chunk_timeout:.1f}s)"
        )
