"""
Utility functions for extrarundown.

Provides A1 coordinate helpers, show-time parsing, and spreadsheet id parsing.
"""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta

_MS_PER_SECOND = 1000


def column_index_to_letter(index: int) -> str:
    """Convert a zero-based column index to A1 notation letter(s).

    Examples:
        0 -> A, 1 -> B, 25 -> Z, 26 -> AA, 27 -> AB, 702 -> AAA
    """
    result = ""
    while True:
        result = chr(ord("A") + (index % 26)) + result
        index = index // 26 - 1
        if index < 0:
            break
    return result


def cell_to_a1(row_index: int, col_index: int) -> str:
    """Convert zero-based row and column indices to A1 notation.

    Examples:
        (0, 0) -> A1, (0, 1) -> B1, (9, 2) -> C10
    """
    return f"{column_index_to_letter(col_index)}{row_index + 1}"


def parse_spreadsheet_id(id_or_url: str) -> str:
    """Extract spreadsheet ID from a URL or return as-is if already an ID."""
    # https://docs.google.com/spreadsheets/d/SPREADSHEET_ID/edit...
    url_pattern = r"docs\.google\.com/spreadsheets/d/([a-zA-Z0-9_-]+)"
    match = re.search(url_pattern, id_or_url)
    if match:
        return match.group(1)
    return id_or_url


@dataclass(frozen=True)
class ShowTime:
    """Wall-clock time of day parsed from a sheet cell."""

    hour: int
    minute: int
    second: int

    @property
    def millis(self) -> int:
        """Milliseconds since midnight."""
        return (self.hour * 3600 + self.minute * 60 + self.second) * _MS_PER_SECOND


def show_time_from_string(time_string: str) -> ShowTime:
    """Parse a 12 or 24 hour time of the form ``HH:MM:SS [AM|PM]``.

    Dots are accepted as separators too (``HH.MM.SS``). ``12`` is treated as
    midnight/noon the way a 12 hour clock reads it.

    Raises:
        ValueError: If the string is not a valid time
    """
    parts = time_string.strip().split()
    if not parts or len(parts) > 2:
        raise ValueError(f"Invalid show time: {time_string!r}")

    clock = parts[0]
    modifier = parts[1].upper() if len(parts) == 2 else None
    if modifier not in (None, "AM", "PM"):
        raise ValueError(f"Invalid show time: {time_string!r}")

    fields = re.split(r"[:.]", clock)
    if len(fields) != 3 or not all(f.isdigit() for f in fields):
        raise ValueError(f"Invalid show time: {time_string!r}")

    hour, minute, second = (int(f) for f in fields)
    if modifier is not None:
        if hour == 12:
            hour = 0
        if modifier == "PM":
            hour += 12

    if hour > 23 or minute > 59 or second > 59:
        raise ValueError(f"Invalid show time: {time_string!r}")

    return ShowTime(hour=hour, minute=minute, second=second)


def show_times_to_millis(
    start_string: str, end_string: str, *, day: date | None = None
) -> tuple[int, int]:
    """Convert a show's start and end times to epoch milliseconds.

    The show is assumed to start on ``day`` (today by default, local time).
    An end time earlier than the start time is taken to be on the next day.
    """
    day = day or date.today()
    start = show_time_from_string(start_string)
    end = show_time_from_string(end_string)

    start_dt = datetime.combine(day, time(start.hour, start.minute, start.second))
    end_day = day + timedelta(days=1) if start.millis > end.millis else day
    end_dt = datetime.combine(end_day, time(end.hour, end.minute, end.second))

    return (
        int(start_dt.timestamp() * _MS_PER_SECOND),
        int(end_dt.timestamp() * _MS_PER_SECOND),
    )


def duration_to_millis(value: str | None) -> int:
    """Convert a ``HH.MM.SS[.mmm]`` or ``HH:MM:SS[.mmm]`` cell to milliseconds.

    Empty or malformed values count as 0.
    """
    if not value:
        return 0

    fields = re.split(r"[:.]", value.strip())
    if len(fields) not in (3, 4) or not all(f.isdigit() for f in fields):
        return 0

    hours, minutes, seconds = (int(f) for f in fields[:3])
    millis = int(fields[3].ljust(3, "0")[:3]) if len(fields) == 4 else 0
    return (hours * 3600 + minutes * 60 + seconds) * _MS_PER_SECOND + millis
