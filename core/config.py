"""
Configuration Management Module

This module handles loading, validating, and providing access to application configuration
from environment variables (.env file).

Uses Pydantic Settings for automatic validation and type conversion.

Key Features:
- Loads configuration from .env file
- Converts comma-separated strings to lists (exchanges, symbols)
- Holds the single threshold/classification profile used by the engine
- Validates the profile on startup (bounds, tier multiples, exchanges)

Usage:
    from core.config import settings

    print(settings.exchanges_list)   # ["binance", "bybit", "coinbase", "okx"]
    print(settings.symbols_list)     # ["BTCUSDT"]
"""

from typing import Dict, List
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic import Field

from core.exceptions import ConfigurationError


# Exchanges the engine ships adapters for
KNOWN_EXCHANGES = ("binance", "bybit", "coinbase", "okx", "kucoin")

# Fallback cutoffs (USD) used when no live market activity is available
DEFAULT_SYMBOL_THRESHOLDS: Dict[str, float] = {
    "BTCUSDT": 15_000,
    "ETHUSDT": 7_000,
    "SOLUSDT": 1_500,
    "BNBUSDT": 2_500,
    "XRPUSDT": 800,
    "DOGEUSDT": 500,
    "AVAXUSDT": 1_200,
    "ADAUSDT": 600,
    "LINKUSDT": 1_200,
    "TRXUSDT": 500,
}

# Static symbol list used when symbol discovery fails
DEFAULT_SYMBOLS: List[str] = list(DEFAULT_SYMBOL_THRESHOLDS.keys())


class Settings(BaseSettings):
    """
    Application Settings

    All values are loaded from environment variables or the .env file.

    Attributes:
        enabled_exchanges: Comma-separated exchanges to connect to
        tracked_symbols: Comma-separated canonical symbols (e.g. "BTCUSDT,ETHUSDT")
        binance_transport: "push" (aggTrade socket per symbol) or "poll" (REST aggTrades)
        coinbase_transport: "push" (matches channel) or "poll" (REST trades)
        threshold_multiplier: Cutoff = average trade size x this multiplier
        threshold_min_usd: Lower clamp for any computed cutoff
        threshold_max_usd: Upper clamp for any computed cutoff
        threshold_default_usd: Cutoff for symbols missing from the static table
        threshold_refresh_seconds: Periodic cutoff refresh (0 disables)
        tier_medium_max_multiple: K1, values below cutoff*K1 are "medium"
        tier_large_max_multiple: K2, values at or above cutoff*K2 are "mega"
        correlation_span_ms: Time window for cross-exchange correlation
        correlation_price_tolerance: Max relative price distance for correlation
        dedup_cap: Trade ids remembered per exchange
        rolling_window_size: Whale trades kept for display and statistics
        ws_reconnect_delay: Fixed delay before reconnecting a dropped feed (seconds)
        poll_interval_seconds: Period of REST poll cycles (seconds)
        request_timeout: Timeout for HTTP requests (seconds)
    """

    # ============================================
    # Tracked Markets
    # ============================================

    enabled_exchanges: str = Field(
        default="binance,bybit,coinbase,okx",
        description="Comma-separated list of exchanges to ingest from"
    )

    tracked_symbols: str = Field(
        default="BTCUSDT",
        description="Comma-separated list of canonical symbols"
    )

    binance_transport: str = Field(
        default="push",
        description="Binance feed transport: push or poll"
    )

    coinbase_transport: str = Field(
        default="push",
        description="Coinbase feed transport: push or poll"
    )

    # ============================================
    # Threshold Profile
    # ============================================

    threshold_multiplier: float = Field(
        default=20.0,
        gt=0,
        description="Average 24h trade size multiplier for the whale cutoff"
    )

    threshold_min_usd: float = Field(
        default=2_000.0,
        gt=0,
        description="Minimum whale cutoff in USD"
    )

    threshold_max_usd: float = Field(
        default=300_000.0,
        gt=0,
        description="Maximum whale cutoff in USD"
    )

    threshold_default_usd: float = Field(
        default=2_000.0,
        gt=0,
        description="Fallback cutoff for symbols without a static default"
    )

    threshold_refresh_seconds: int = Field(
        default=0,
        ge=0,
        description="Recompute cutoffs every N seconds (0 = only on start/symbol change)"
    )

    # ============================================
    # Classification & Correlation
    # ============================================

    tier_medium_max_multiple: float = Field(
        default=2.0,
        description="K1: upper bound (exclusive) of the medium tier, in cutoffs"
    )

    tier_large_max_multiple: float = Field(
        default=5.0,
        description="K2: upper bound (exclusive) of the large tier, in cutoffs"
    )

    correlation_span_ms: int = Field(
        default=3_000,
        gt=0,
        description="Max timestamp distance between correlated trades (ms)"
    )

    correlation_price_tolerance: float = Field(
        default=0.0015,
        gt=0,
        description="Max relative price distance between correlated trades"
    )

    # ============================================
    # Rolling State
    # ============================================

    dedup_cap: int = Field(
        default=500,
        gt=0,
        description="Trade ids remembered per exchange for deduplication"
    )

    rolling_window_size: int = Field(
        default=100,
        gt=0,
        description="Number of most recent whale trades retained"
    )

    # ============================================
    # Connections
    # ============================================

    ws_reconnect_delay: float = Field(
        default=5.0,
        gt=0,
        description="Fixed delay before reconnecting a dropped feed (seconds)"
    )

    poll_interval_seconds: float = Field(
        default=3.0,
        gt=0,
        description="Period between REST poll cycles (seconds)"
    )

    request_timeout: int = Field(
        default=10,
        gt=0,
        description="HTTP request timeout in seconds"
    )

    # ============================================
    # Application Configuration
    # ============================================

    app_host: str = Field(
        default="0.0.0.0",
        description="FastAPI server host address"
    )

    app_port: int = Field(
        default=8000,
        description="FastAPI server port"
    )

    log_level: str = Field(
        default="INFO",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)"
    )

    cors_origins: str = Field(
        default="http://localhost:3000,http://localhost:5173",
        description="Comma-separated list of allowed CORS origins"
    )

    model_config = SettingsConfigDict(
        env_file=".env",
        extra="ignore",
        case_sensitive=False
    )

    # ============================================
    # Custom Properties
    # ============================================

    @property
    def exchanges_list(self) -> List[str]:
        """
        Convert comma-separated exchanges string to a list.

        Example:
            >>> settings.exchanges_list
            ['binance', 'bybit', 'coinbase', 'okx']
        """
        return [e.strip().lower() for e in self.enabled_exchanges.split(",") if e.strip()]

    @property
    def symbols_list(self) -> List[str]:
        """
        Convert comma-separated symbols string to a list.

        Example:
            >>> settings.symbols_list
            ['BTCUSDT']
        """
        return [s.strip().upper() for s in self.tracked_symbols.split(",") if s.strip()]

    @property
    def cors_origins_list(self) -> List[str]:
        return [origin.strip() for origin in self.cors_origins.split(",") if origin.strip()]

    @property
    def transports(self) -> Dict[str, str]:
        """Transport override per exchange (exchanges not listed use their default)."""
        return {
            "binance": self.binance_transport.lower(),
            "coinbase": self.coinbase_transport.lower(),
        }

    def default_threshold(self, symbol: str) -> float:
        """
        Static fallback cutoff for a symbol, clamped to the configured bounds.

        Example:
            >>> settings.default_threshold("BTCUSDT")
            15000.0
        """
        raw = DEFAULT_SYMBOL_THRESHOLDS.get(symbol.upper(), self.threshold_default_usd)
        return float(min(max(raw, self.threshold_min_usd), self.threshold_max_usd))


# ============================================
# Global Settings Instance
# ============================================

settings = Settings()


# ============================================
# Configuration Validation
# ============================================

def validate_configuration(config: Settings = None) -> None:
    """
    Validate critical configuration settings on application startup.

    Raises:
        ConfigurationError: If the profile is inconsistent or references
            unknown exchanges/transports
    """
    # logging.py imports config.py, so the logger is imported lazily
    from core.logging import logger

    config = config or settings

    if not config.exchanges_list:
        raise ConfigurationError("ENABLED_EXCHANGES must contain at least one exchange")

    for exchange in config.exchanges_list:
        if exchange not in KNOWN_EXCHANGES:
            raise ConfigurationError(
                f"Unknown exchange '{exchange}'. "
                f"Must be one of: {', '.join(KNOWN_EXCHANGES)}"
            )

    if not config.symbols_list:
        raise ConfigurationError("TRACKED_SYMBOLS must contain at least one symbol")

    for exchange, transport in config.transports.items():
        if transport not in ("push", "poll"):
            raise ConfigurationError(f"Invalid transport '{transport}' for {exchange}. Must be push or poll")

    if config.threshold_min_usd > config.threshold_max_usd:
        raise ConfigurationError(
            f"THRESHOLD_MIN_USD ({config.threshold_min_usd}) cannot exceed "
            f"THRESHOLD_MAX_USD ({config.threshold_max_usd})"
        )

    if not (1 < config.tier_medium_max_multiple < config.tier_large_max_multiple):
        raise ConfigurationError(
            "Tier multiples must satisfy 1 < TIER_MEDIUM_MAX_MULTIPLE < TIER_LARGE_MAX_MULTIPLE "
            f"(got {config.tier_medium_max_multiple}, {config.tier_large_max_multiple})"
        )

    if not (1 <= config.app_port <= 65535):
        raise ConfigurationError(f"Invalid port number: {config.app_port}. Must be between 1 and 65535")

    valid_log_levels = ["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
    if config.log_level.upper() not in valid_log_levels:
        raise ConfigurationError(
            f"Invalid LOG_LEVEL: '{config.log_level}'. "
            f"Must be one of: {', '.join(valid_log_levels)}"
        )

    logger.info("Configuration validated successfully")
    logger.info(f"Exchanges: {', '.join(config.exchanges_list)}")
    logger.info(f"Tracking symbols: {', '.join(config.symbols_list)}")
    logger.info(
        f"Threshold profile: x{config.threshold_multiplier:g} "
        f"clamped to ${config.threshold_min_usd:,.0f}-${config.threshold_max_usd:,.0f}, "
        f"tiers K1={config.tier_medium_max_multiple:g} K2={config.tier_large_max_multiple:g}"
    )
    logger.info(f"Server: {config.app_host}:{config.app_port}")
    logger.info(f"Log level: {config.log_level.upper()}")
