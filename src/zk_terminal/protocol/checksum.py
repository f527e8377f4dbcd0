"""Frame checksum for the ZK terminal protocol.

The checksum is a one's-complement style sum of little-endian 16-bit words:

1. Sum every LE16 word of the frame (checksum field zeroed), wrapping mod 65536
2. An odd trailing byte is added as its raw value
3. Result = (65535 - sum - 1) mod 65536

Frames built by this client carry a sequence field one greater than the value
the checksum was computed with, so verifying an outbound frame needs a
``sequence_skew`` of 1.
"""

from __future__ import annotations

from typing import Final

USHRT_MAX: Final = 0xFFFF
CHECKSUM_OFFSET: Final = 2
SEQUENCE_OFFSET: Final = 6
HEADER_LENGTH: Final = 8


def compute_checksum(data: bytes | bytearray | memoryview) -> int:
    """Compute the checksum of ``data`` exactly as given.

    Args:
        data: Frame bytes with the checksum field already zeroed

    Returns:
        16-bit checksum value

    Example:
        >>> compute_checksum(bytes([0xE8, 0x03, 0, 0, 0, 0, 0, 0]))
        64534
    """
    total = 0
    view = memoryview(data)
    even_length = len(view) - (len(view) % 2)
    for i in range(0, even_length, 2):
        total = (total + (view[i] | (view[i + 1] << 8))) % (USHRT_MAX + 1)
    if len(view) % 2:
        total = (total + view[-1]) % (USHRT_MAX + 1)
    return (USHRT_MAX - total - 1) % (USHRT_MAX + 1)


def insert_checksum_in_place(frame: bytearray) -> int:
    """Zero the checksum field, compute over the whole frame and write the result.

    Returns:
        The checksum written at offset 2
    """
    frame[CHECKSUM_OFFSET : CHECKSUM_OFFSET + 2] = b"\x00\x00"
    checksum = compute_checksum(frame)
    frame[CHECKSUM_OFFSET : CHECKSUM_OFFSET + 2] = checksum.to_bytes(2, "little")
    return checksum


def verify_checksum(frame: bytes, *, sequence_skew: int = 0) -> bool:
    """Recompute the checksum of an unwrapped frame and compare with its header.

    Diagnostic helper only; inbound traffic is never rejected on a mismatch.

    Args:
        frame: Unwrapped frame (8-byte header + payload)
        sequence_skew: Amount the sequence field was advanced after the
            checksum was computed (1 for frames built by ``build_frame``)

    Returns:
        True when the embedded checksum matches
    """
    if len(frame) < HEADER_LENGTH:
        return False
    scratch = bytearray(frame)
    embedded = int.from_bytes(scratch[CHECKSUM_OFFSET : CHECKSUM_OFFSET + 2], "little")
    sequence = int.from_bytes(scratch[SEQUENCE_OFFSET : SEQUENCE_OFFSET + 2], "little")
    scratch[SEQUENCE_OFFSET : SEQUENCE_OFFSET + 2] = ((sequence - sequence_skew) % (USHRT_MAX + 1)).to_bytes(
        2,
        "little",
    )
    scratch[CHECKSUM_OFFSET : CHECKSUM_OFFSET + 2] = b"\x00\x00"
    return compute_checksum(scratch) == embedded
