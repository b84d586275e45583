"""
Exchange Adapters Package

One subpackage per exchange, each exporting a single ExchangeAdapter subclass
from its __init__.py:
- binance:  aggTrade socket per symbol, or REST aggTrades polling
- bybit:    publicTrade topics on the v5 spot socket
- coinbase: matches channel, or REST trades polling
- okx:      trades channel on the v5 public socket
- kucoin:   REST trade-history polling

Adapters are looked up by name through core.exchange_manager.AdapterRegistry.
"""
