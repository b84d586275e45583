"""
Adapter Registry — Central Registry for Exchange Adapters

This module maps exchange names to adapter classes and builds the adapter
instances a tracking session runs with.

Design Benefits:
    - Single source of truth for the supported exchanges (closed set)
    - Adapter choice driven entirely by configuration
    - Adding an exchange means one adapter class and one registry entry;
      the supervisor, threshold calculator and API do not change

Example Usage:
    registry = AdapterRegistry()
    adapters = registry.build_from_settings(settings)
    # {"binance": <BinanceAdapter(transport='push')>, "bybit": ...}

    registry.get_adapter("kraken")   # raises ConfigurationError
"""

from typing import Dict, List, Optional, Type

from core.config import Settings, settings as default_settings
from core.exceptions import ConfigurationError
from core.exchange_interface import ExchangeAdapter
from core.logging import logger


class AdapterRegistry:
    """
    Registry of Exchange Adapter Classes

    Attributes:
        adapters: Mapping of exchange name to adapter class

    Example:
        >>> registry = AdapterRegistry()
        >>> registry.list_exchanges()
        ['binance', 'bybit', 'coinbase', 'okx', 'kucoin']
        >>> registry.get_adapter("coinbase", transport="poll")
        <CoinbaseAdapter(name='coinbase', transport='poll')>
    """

    def __init__(self):
        # Each adapter module imports from core, so they are imported here
        from exchanges.binance import BinanceAdapter
        from exchanges.bybit import BybitAdapter
        from exchanges.coinbase import CoinbaseAdapter
        from exchanges.kucoin import KuCoinAdapter
        from exchanges.okx import OkxAdapter

        self.adapters: Dict[str, Type[ExchangeAdapter]] = {
            "binance": BinanceAdapter,
            "bybit": BybitAdapter,
            "coinbase": CoinbaseAdapter,
            "okx": OkxAdapter,
            "kucoin": KuCoinAdapter,
        }

        logger.debug(f"AdapterRegistry initialized with {len(self.adapters)} adapter(s): {', '.join(self.adapters)}")

    # ============================================
    # Adapter Retrieval Methods
    # ============================================

    def get_adapter(self, name: str, transport: Optional[str] = None) -> ExchangeAdapter:
        """
        Build an adapter by exchange name.

        Args:
            name: Exchange name (case-insensitive)
            transport: "push" or "poll"; None uses the adapter's default

        Raises:
            ConfigurationError: If the exchange is unknown or does not speak
                the requested transport
        """
        name = name.lower()

        if name not in self.adapters:
            available = ", ".join(self.adapters.keys())
            logger.error(f"Exchange '{name}' not found. Available: {available}")
            raise ConfigurationError(
                f"Exchange '{name}' is not supported. Available exchanges: {available}",
                exchange=name,
            )

        return self.adapters[name](transport=transport)

    def list_exchanges(self) -> List[str]:
        return list(self.adapters.keys())

    def build_from_settings(self, config: Optional[Settings] = None) -> Dict[str, ExchangeAdapter]:
        """
        Build one adapter per enabled exchange, honouring transport overrides.

        Raises:
            ConfigurationError: On any unknown exchange or unsupported transport
        """
        config = config or default_settings
        overrides = config.transports

        built: Dict[str, ExchangeAdapter] = {}
        for name in config.exchanges_list:
            built[name] = self.get_adapter(name, transport=overrides.get(name))

        logger.info("Adapters: " + ", ".join(f"{n} ({a.transport})" for n, a in built.items()))
        return built

    def __repr__(self) -> str:
        return f"<AdapterRegistry(exchanges={self.list_exchanges()})>"

    def __len__(self) -> int:
        return len(self.adapters)


# ============================================
# Global Registry Instance
# ============================================

_registry: Optional[AdapterRegistry] = None


def get_registry() -> AdapterRegistry:
    """
    Get the global AdapterRegistry instance (singleton pattern).

    Example:
        >>> from core.exchange_manager import get_registry
        >>> adapter = get_registry().get_adapter("okx")
    """
    global _registry
    if _registry is None:
        _registry = AdapterRegistry()
    return _registry
