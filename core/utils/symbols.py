"""
Symbol Utilities

Canonical symbols are uppercase base+quote concatenations ("BTCUSDT").
Exchanges spell instruments differently ("BTC-USD", "BTC-USDT",
"BTC-USDT-SWAP"); adapters use these helpers to move between the two.
"""

from typing import Tuple

# Longest first so "USDT" wins over "USD"
KNOWN_QUOTES = ("FDUSD", "USDT", "USDC", "BUSD", "TUSD", "USDP", "DAI", "USD", "EUR", "BTC", "ETH")


def split_symbol(symbol: str) -> Tuple[str, str]:
    """
    Split a canonical symbol into (base, quote).

    Examples:
        >>> split_symbol("BTCUSDT")
        ('BTC', 'USDT')
        >>> split_symbol("ETHBTC")
        ('ETH', 'BTC')
        >>> split_symbol("WEIRD")
        ('WEIRD', '')
    """
    s = symbol.upper()
    for quote in KNOWN_QUOTES:
        if s.endswith(quote) and len(s) > len(quote):
            return s[: -len(quote)], quote
    return s, ""


def join_symbol(base: str, quote: str) -> str:
    """Build a canonical symbol from its parts."""
    return f"{base}{quote}".upper()


def dashed_instrument(symbol: str, quote_override: str = None) -> str:
    """
    Build a dash-separated instrument id ("BTC-USDT").

    Args:
        symbol: Canonical symbol
        quote_override: Replace the quote asset (Coinbase lists USD books)

    Raises:
        ValueError: If the symbol has no recognizable quote asset
    """
    base, quote = split_symbol(symbol)
    if not quote:
        raise ValueError(f"Cannot determine quote asset of '{symbol}'")
    return f"{base}-{quote_override or quote}"


def undash_instrument(instrument: str) -> str:
    """
    Convert a dash-separated instrument id back to a canonical symbol.

    Examples:
        >>> undash_instrument("ETH-USDT-SWAP")
        'ETHUSDT'
        >>> undash_instrument("BTC-USD")
        'BTCUSD'
    """
    parts = instrument.upper().split("-")
    return join_symbol(parts[0], parts[1] if len(parts) > 1 else "")
