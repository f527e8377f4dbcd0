"""Operation codes and fixed request payloads for the ZK terminal protocol.

Command Overview:
- 1000/1001: Session open (CONNECT) and close (EXIT)
- 1002/1003: Enable / disable the terminal's keypad and sensor
- 1500-1504: Bulk data family (PREPARE_DATA, DATA, FREE_DATA, DATA_WRRQ, DATA_RDY)
- 2000-2005: Acknowledgements sent by the terminal
- 500: Real-time event registration (also the command of pushed events)
"""

from typing import Final

# Session
CMD_CONNECT = 1000  # Handshake: resets session and sequence
CMD_EXIT = 1001  # Teardown handshake

# Device control
CMD_ENABLEDEVICE = 1002
CMD_DISABLEDEVICE = 1003
CMD_GET_FREE_SIZES = 50  # Counters: users, logs, capacity
CMD_CLEAR_ATTLOG = 15
CMD_GET_TIME = 201

# Bulk data
CMD_PREPARE_DATA = 1500  # Terminal announces dataset size
CMD_DATA = 1501  # Frame carries dataset bytes
CMD_FREE_DATA = 1502  # Release the terminal-side dataset buffer
CMD_DATA_WRRQ = 1503  # Write-request: select a dataset
CMD_DATA_RDY = 1504  # Chunk request {offset u32, length u32}

# Acknowledgements
CMD_ACK_OK = 2000
CMD_ACK_ERROR = 2001
CMD_ACK_DATA = 2002
CMD_ACK_RETRY = 2003
CMD_ACK_REPEAT = 2004
CMD_ACK_UNAUTH = 2005
CMD_ACK_UNKNOWN = 0xFFFF
CMD_ACK_ERROR_CMD = 0xFFFD
CMD_ACK_ERROR_INIT = 0xFFFC
CMD_ACK_ERROR_DATA = 0xFFFB

# Real-time events
CMD_REG_EVENT = 500
EF_ATTLOG = 1  # Event flag carried in the session field of pushed attendance events

# Largest chunk a terminal will serve for one DATA_RDY request
MAX_CHUNK: Final = 65472

# Fixed request payloads
REQUEST_DISABLE_DEVICE: Final = b"\x00\x00\x00\x00"
REQUEST_REAL_TIME_EVENT: Final = b"\x01\x00\x00\x00"
REQUEST_ATTENDANCE_LOGS: Final = bytes([0x01, 0x0D, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])
REQUEST_USERS: Final = bytes([0x01, 0x09, 0x00, 0x05, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00, 0x00])

UNKNOWN_COMMAND_NAME: Final = "AN UNKNOWN ERROR"

COMMAND_NAMES: Final[dict[int, str]] = {
    CMD_CONNECT: "CMD_CONNECT",
    CMD_EXIT: "CMD_EXIT",
    CMD_ENABLEDEVICE: "CMD_ENABLEDEVICE",
    CMD_DISABLEDEVICE: "CMD_DISABLEDEVICE",
    CMD_GET_FREE_SIZES: "CMD_GET_FREE_SIZES",
    CMD_CLEAR_ATTLOG: "CMD_CLEAR_ATTLOG",
    CMD_GET_TIME: "CMD_GET_TIME",
    CMD_PREPARE_DATA: "CMD_PREPARE_DATA",
    CMD_DATA: "CMD_DATA",
    CMD_FREE_DATA: "CMD_FREE_DATA",
    CMD_DATA_WRRQ: "CMD_DATA_WRRQ",
    CMD_DATA_RDY: "CMD_DATA_RDY",
    CMD_ACK_OK: "CMD_ACK_OK",
    CMD_ACK_ERROR: "CMD_ACK_ERROR",
    CMD_ACK_DATA: "CMD_ACK_DATA",
    CMD_ACK_RETRY: "CMD_ACK_RETRY",
    CMD_ACK_REPEAT: "CMD_ACK_REPEAT",
    CMD_ACK_UNAUTH: "CMD_ACK_UNAUTH",
    CMD_ACK_UNKNOWN: "CMD_ACK_UNKNOWN",
    CMD_ACK_ERROR_CMD: "CMD_ACK_ERROR_CMD",
    CMD_ACK_ERROR_INIT: "CMD_ACK_ERROR_INIT",
    CMD_ACK_ERROR_DATA: "CMD_ACK_ERROR_DATA",
    CMD_REG_EVENT: "CMD_REG_EVENT",
}

# Commands answered within the short handshake timeout
HANDSHAKE_COMMANDS: Final = frozenset({CMD_CONNECT, CMD_EXIT})


def command_name(command: int) -> str:
    """Symbolic name of ``command``, or "AN UNKNOWN ERROR" when it is not in the table."""
    return COMMAND_NAMES.get(command, UNKNOWN_COMMAND_NAME)
