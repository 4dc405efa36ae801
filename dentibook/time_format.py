from __future__ import annotations

import re

from dentibook.domain import InvalidTimeFormat

# "09:00-09:50" as sent by clients, "9:00-9:50" as stored.
_INTERVAL_RE = re.compile(r"^\d{1,2}:\d{2}-\d{1,2}:\d{2}$")

# Offset of the end-hour tens digit once the start hour has lost its zero.
_END_HOUR_OFFSET = 5


def normalize_time(raw: str) -> str:
    """Bring a time interval to the stored form.

    Only two zeros are ever removed: the leading zero of the start hour and,
    when that one was removed, the zero that then sits at offset 5 (the end
    hour's tens digit). "09:05-09:55" -> "9:05-9:55", "09:00-10:00" ->
    "9:00-10:00", "10:00-10:50" stays as is.
    """
    if not isinstance(raw, str):
        raise InvalidTimeFormat(f"Time interval must be a string, got {type(raw).__name__}")

    value = raw.strip()
    if not _INTERVAL_RE.match(value):
        raise InvalidTimeFormat(f"Unexpected time interval format: {raw!r}")

    if value[0] == "0" and value[1].isdigit():
        value = value[1:]
        end_hour = value[_END_HOUR_OFFSET:].split(":", 1)[0]
        if len(end_hour) == 2 and end_hour[0] == "0":
            value = value[:_END_HOUR_OFFSET] + value[_END_HOUR_OFFSET + 1 :]

    return value
