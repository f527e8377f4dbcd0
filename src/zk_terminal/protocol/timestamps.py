"""Terminal timestamp encodings.

Two encodings are in use:

- packed: one u32 counting seconds in a synthetic calendar where every month
  has 31 days and every year 12 such months, starting 2000-01-01. Attendance
  records and GET_TIME replies use it. The synthetic calendar yields dates
  like 30 February; they are kept as decoded.
- raw: six bytes (year - 2000, month, day, hour, minute, second), used by
  real-time events.
"""

from __future__ import annotations

import datetime as dt
from dataclasses import dataclass
from typing import Final

from zk_terminal.const import LOCAL_TZ

SECONDS_PER_DAY: Final = 24 * 60 * 60
DAYS_PER_MONTH: Final = 31
MONTHS_PER_YEAR: Final = 12
EPOCH_YEAR: Final = 2000
RAW_TIME_LENGTH: Final = 6


@dataclass(frozen=True)
class DeviceTimestamp:
    """Calendar fields exactly as the terminal encoded them.

    ``month`` is 1-based. The fields may describe a date that does not exist
    (30 February); ``to_datetime`` rolls such dates forward.
    """

    year: int
    month: int
    day: int
    hour: int = 0
    minute: int = 0
    second: int = 0

    @property
    def month_index(self) -> int:
        """Zero-based month, as carried in the packed encoding."""
        return self.month - 1

    def to_datetime(self, tz: dt.tzinfo | None = LOCAL_TZ) -> dt.datetime:
        """Convert to a datetime, normalising overflowing fields.

        Months past 12 carry into the year and days past the month's end
        carry into the next month, so 2023-02-30 becomes 2023-03-02.
        """
        year = self.year + (self.month - 1) // MONTHS_PER_YEAR
        month = (self.month - 1) % MONTHS_PER_YEAR + 1
        start_of_month = dt.datetime(year, month, 1, tzinfo=tz)
        return start_of_month + dt.timedelta(
            days=self.day - 1,
            hours=self.hour,
            minutes=self.minute,
            seconds=self.second,
        )

    @classmethod
    def from_datetime(cls, value: dt.datetime) -> DeviceTimestamp:
        return cls(value.year, value.month, value.day, value.hour, value.minute, value.second)

    def __str__(self) -> str:
        return (
            f"{self.year:04d}-{self.month:02d}-{self.day:02d} "
            f"{self.hour:02d}:{self.minute:02d}:{self.second:02d}"
        )


def decode_packed_time(value: int) -> DeviceTimestamp:
    """Decode a packed u32 timestamp.

    Example:
        >>> decode_packed_time(0)
        DeviceTimestamp(year=2000, month=1, day=1, hour=0, minute=0, second=0)
    """
    value, second = divmod(value, 60)
    value, minute = divmod(value, 60)
    value, hour = divmod(value, 24)
    value, day_index = divmod(value, DAYS_PER_MONTH)
    years, month_index = divmod(value, MONTHS_PER_YEAR)
    return DeviceTimestamp(
        year=EPOCH_YEAR + years,
        month=month_index + 1,
        day=day_index + 1,
        hour=hour,
        minute=minute,
        second=second,
    )


def encode_packed_time(timestamp: DeviceTimestamp | dt.datetime) -> int:
    """Inverse of ``decode_packed_time``.

    Only the last two digits of the year are encoded, as terminals do.
    """
    if isinstance(timestamp, dt.datetime):
        timestamp = DeviceTimestamp.from_datetime(timestamp)
    days = (
        (timestamp.year % 100) * MONTHS_PER_YEAR * DAYS_PER_MONTH
        + timestamp.month_index * DAYS_PER_MONTH
        + timestamp.day
        - 1
    )
    return days * SECONDS_PER_DAY + (timestamp.hour * 60 + timestamp.minute) * 60 + timestamp.second


def decode_raw_time(data: bytes) -> DeviceTimestamp:
    """Decode six single-byte calendar fields.

    Raises:
        ValueError: If fewer than six bytes are given
    """
    if len(data) < RAW_TIME_LENGTH:
        msg = f"raw timestamp needs {RAW_TIME_LENGTH} bytes, got {len(data)}"
        raise ValueError(msg)
    year, month, day, hour, minute, second = data[:RAW_TIME_LENGTH]
    return DeviceTimestamp(EPOCH_YEAR + year, month, day, hour, minute, second)
