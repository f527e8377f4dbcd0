"""Asyncio client for ZKTeco time-attendance terminals."""

__version__ = "0.1.0"

from zk_terminal.client import TerminalStatus, ZKTerminal  # noqa: E402
from zk_terminal.transport.exceptions import ZKDeviceError  # noqa: E402

__all__ = [
    "TerminalStatus",
    "ZKDeviceError",
    "ZKTerminal",
    "__version__",
]
