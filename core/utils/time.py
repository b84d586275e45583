"""
Time Utilities

Exchanges report trade times in different formats:
- Binance, Bybit: milliseconds since epoch (int)
- OKX: milliseconds since epoch as a string ("1630048897897")
- KuCoin: nanoseconds since epoch (int)
- Coinbase: ISO8601 strings ("2024-01-01T12:00:00.123456Z")

The engine works in integer milliseconds throughout; these helpers
normalize every format into that unit.
"""

import math
from datetime import datetime, timezone
from typing import Any

from dateutil import parser as dateparser


def to_epoch_ms(timestamp: Any) -> int:
    """
    Convert a numeric timestamp (s, ms, us or ns) to milliseconds.

    Detection Logic:
        - > 1e17: nanoseconds
        - > 1e14: microseconds
        - > 1e11: milliseconds
        - otherwise: seconds

    Raises:
        ValueError: If the timestamp is negative, infinite or not numeric

    Examples:
        >>> to_epoch_ms(1704110400)
        1704110400000
        >>> to_epoch_ms("1704110400123")
        1704110400123
        >>> to_epoch_ms(1704110400123456789)
        1704110400123
    """
    try:
        value = float(timestamp)
    except (TypeError, ValueError, OverflowError) as e:
        raise ValueError(f"Timestamp is not numeric: {timestamp!r}") from e
    if not math.isfinite(value):
        raise ValueError(f"Timestamp is not finite: {timestamp!r}")
    if value < 0:
        raise ValueError(f"Timestamp cannot be negative: {timestamp}")

    if value > 1e17:
        return int(value // 1_000_000)
    if value > 1e14:
        return int(value // 1_000)
    if value > 1e11:
        return int(value)
    return int(value * 1000)


def iso8601_to_ms(value: str) -> int:
    """
    Parse an ISO8601 timestamp to milliseconds since epoch.

    Naive timestamps are treated as UTC.

    Raises:
        ValueError: If the string cannot be parsed

    Example:
        >>> iso8601_to_ms("2024-01-01T12:00:00.250Z")
        1704110400250
    """
    try:
        dt = dateparser.isoparse(value)
    except (TypeError, AttributeError, OverflowError) as e:
        raise ValueError(f"Invalid ISO8601 timestamp: {value!r}. Error: {e}") from e

    if dt.tzinfo is None:
        dt = dt.replace(tzinfo=timezone.utc)

    return int(dt.timestamp() * 1000)


def current_utc_timestamp(milliseconds: bool = False) -> int:
    """
    Get current UTC timestamp.

    Examples:
        >>> current_utc_timestamp()
        1704110400

        >>> current_utc_timestamp(milliseconds=True)
        1704110400000
    """
    ts = datetime.now(timezone.utc).timestamp()
    return int(ts * 1000) if milliseconds else int(ts)
