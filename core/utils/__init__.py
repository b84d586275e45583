"""
Core Utilities Package

Helpers used throughout the application.

Modules:
    - time: Timestamp normalization to integer milliseconds
    - symbols: Canonical symbol <-> exchange instrument helpers
    - fallback: Ordered "first candidate that succeeds" helper
"""

from core.utils.time import to_epoch_ms, iso8601_to_ms, current_utc_timestamp
from core.utils.symbols import split_symbol, dashed_instrument, undash_instrument

__all__ = [
    "to_epoch_ms",
    "iso8601_to_ms",
    "current_utc_timestamp",
    "split_symbol",
    "dashed_instrument",
    "undash_instrument",
]
