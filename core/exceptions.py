"""
Error Taxonomy

Every error the engine raises derives from WhaleTrackerError. None of them is
fatal to the process:

    TransportError         socket/poll failure, the supervisor reconnects
    ParseError             one malformed message, dropped
    MarketDataUnavailable  24h activity fetch failed, the cutoff falls back
    ConfigurationError     unknown exchange/symbol/transport, surfaced to the caller
"""

from typing import Optional


class WhaleTrackerError(Exception):
    """Base class for all engine errors."""

    def __init__(self, message: str, exchange: Optional[str] = None):
        super().__init__(message)
        self.exchange = exchange


class TransportError(WhaleTrackerError):
    """Connection-level failure (socket closed abnormally, poll request failed)."""


class ParseError(WhaleTrackerError):
    """A raw message could not be decoded into trades."""


class MarketDataUnavailable(WhaleTrackerError):
    """24h activity for a symbol could not be fetched or was unusable."""

    def __init__(self, message: str, exchange: Optional[str] = None, symbol: Optional[str] = None):
        super().__init__(message, exchange)
        self.symbol = symbol


class ConfigurationError(WhaleTrackerError):
    """Unknown exchange, symbol or transport requested."""
