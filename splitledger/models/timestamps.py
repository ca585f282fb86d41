"""
Timestamp conversion at the storage boundary.

Documents coming out of the hosted store carry timestamps in several shapes:
raw epoch milliseconds, driver timestamp objects, datetimes, ISO strings.
Everything is converted ONCE, here, into plain integer epoch milliseconds.
The models and the core never see anything else.
"""

import time
from datetime import date, datetime, timezone
from decimal import Decimal
from typing import Any


def now_millis() -> int:
    """Current time as epoch milliseconds."""
    return time.time_ns() // 1_000_000


def _datetime_to_millis(value: datetime) -> int:
    if value.tzinfo is None:
        # Naive datetimes are treated as UTC
        value = value.replace(tzinfo=timezone.utc)
    return int(value.timestamp() * 1000)


def to_epoch_millis(raw: Any) -> int:
    """
    Convert a raw timestamp value into epoch milliseconds.

    Accepts:
    - int / float / Decimal epoch milliseconds
    - datetime (naive values are UTC) and date (midnight UTC)
    - numeric strings and ISO-8601 strings
    - driver objects exposing ToMilliseconds(), to_datetime(), toDate()
      or timestamp()

    Raises:
        ValueError: If the value cannot be interpreted as a timestamp
    """
    if raw is None or isinstance(raw, bool):
        raise ValueError(f"Not a timestamp: {raw!r}")

    if isinstance(raw, int):
        return raw

    if isinstance(raw, (float, Decimal)):
        if raw != raw:  # NaN
            raise ValueError("Timestamp cannot be NaN")
        return int(round(raw))

    if isinstance(raw, datetime):
        return _datetime_to_millis(raw)

    if isinstance(raw, date):
        return _datetime_to_millis(datetime(raw.year, raw.month, raw.day))

    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            raise ValueError("Timestamp string is empty")
        try:
            return int(text)
        except ValueError:
            pass
        if text.endswith("Z"):
            text = text[:-1] + "+00:00"
        try:
            return _datetime_to_millis(datetime.fromisoformat(text))
        except ValueError:
            raise ValueError(f"Unrecognized timestamp string: {raw!r}")

    # Driver-specific timestamp objects
    if callable(getattr(raw, "ToMilliseconds", None)):
        return int(raw.ToMilliseconds())
    for converter in ("to_datetime", "toDate"):
        if callable(getattr(raw, converter, None)):
            return to_epoch_millis(getattr(raw, converter)())
    if callable(getattr(raw, "timestamp", None)):
        return int(float(raw.timestamp()) * 1000)

    raise ValueError(f"Unsupported timestamp type: {type(raw).__name__}")


def millis_to_datetime(millis: int) -> datetime:
    """Epoch milliseconds back to an aware UTC datetime (for display)."""
    return datetime.fromtimestamp(millis / 1000, tz=timezone.utc)
