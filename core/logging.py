"""
Unified Logging Configuration

This module sets up a centralized logging system for the entire application.
All modules should import and use the logger from this module instead of
using print() statements.

Usage:
    from core.logging import get_logger

    logger = get_logger(__name__)
    logger.info("Connected to Bybit")

Log Levels (from most to least verbose):
    DEBUG    - Per-message detail (e.g., "Dropped duplicate binance:12345")
    INFO     - Lifecycle events (e.g., "okx:* subscribed")
    WARNING  - Degradations (e.g., "Using fallback cutoff for BTCUSDT on bybit")
    ERROR    - Failures that trigger recovery (e.g., "Transport error, reconnecting")
    CRITICAL - Unused by the engine; nothing here is fatal

Configuration:
    Log level is controlled by the LOG_LEVEL setting in .env file.
"""

import logging
import sys
from typing import Optional

ROOT_LOGGER_NAME = "whaletracker"


def setup_logging(
    log_level: str = "INFO",
    log_format: Optional[str] = None,
    include_timestamp: bool = True,
    include_module: bool = True
) -> logging.Logger:
    """
    Configure and return the application logger.

    Args:
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
        log_format: Custom log format string (uses default if None)
        include_timestamp: Include timestamp in log messages
        include_module: Include logger name in log messages

    Returns:
        logging.Logger: Configured logger instance

    Example:
        >>> logger = setup_logging(log_level="DEBUG")
        >>> logger.info("Engine started")
        2024-01-01 12:00:00 [INFO] whaletracker: Engine started
    """
    if log_format is None:
        format_parts = []

        if include_timestamp:
            format_parts.append("%(asctime)s")

        format_parts.append("[%(levelname)s]")

        if include_module:
            format_parts.append("%(name)s:")

        format_parts.append("%(message)s")

        log_format = " ".join(format_parts)

    logging.basicConfig(
        level=getattr(logging, log_level.upper(), logging.INFO),
        format=log_format,
        datefmt="%Y-%m-%d %H:%M:%S",
        stream=sys.stdout,
        force=True
    )

    logger = logging.getLogger(ROOT_LOGGER_NAME)
    logger.setLevel(getattr(logging, log_level.upper(), logging.INFO))

    return logger


# ============================================
# Initialize Logger with Settings
# ============================================

try:
    from core.config import settings
    log_level = settings.log_level
except ImportError:
    log_level = "INFO"

logger = setup_logging(log_level=log_level)


# ============================================
# Convenience Functions
# ============================================

def get_logger(name: str) -> logging.Logger:
    """
    Get a child logger for a specific module.

    Example:
        # In engine/supervisor.py:
        logger = get_logger(__name__)   # "whaletracker.engine.supervisor"
    """
    return logging.getLogger(f"{ROOT_LOGGER_NAME}.{name}")


def set_log_level(level: str) -> None:
    """Change the log level at runtime."""
    logger.setLevel(getattr(logging, level.upper(), logging.INFO))
    logging.getLogger().setLevel(getattr(logging, level.upper(), logging.INFO))


# ============================================
# Log Helper Functions
# ============================================

def log_api_request(exchange: str, url: str, params: dict = None) -> None:
    """
    Log an API request with consistent formatting.

    Example:
        >>> log_api_request("binance", "https://api.binance.com/api/v3/ticker/24hr", {"symbol": "BTCUSDT"})
        [DEBUG] API Request: binance https://api.binance.com/api/v3/ticker/24hr | Params: {'symbol': 'BTCUSDT'}
    """
    if params:
        logger.debug(f"API Request: {exchange} {url} | Params: {params}")
    else:
        logger.debug(f"API Request: {exchange} {url}")


def log_api_response(exchange: str, url: str, status: int, response_time: float = None) -> None:
    """Log an API response with status and timing information."""
    time_str = f" | Time: {response_time:.3f}s" if response_time else ""
    logger.debug(f"API Response: {exchange} {url} | Status: {status}{time_str}")


def log_websocket_event(exchange: str, event: str, symbol: str = None, details: str = None) -> None:
    """
    Log a WebSocket event with consistent formatting.

    Example:
        >>> log_websocket_event("bybit", "connected", "BTCUSDT")
        [INFO] WebSocket: bybit connected | Symbol: BTCUSDT

        >>> log_websocket_event("okx", "error", details="Connection reset")
        [ERROR] WebSocket: okx error | Connection reset
    """
    symbol_str = f" | Symbol: {symbol}" if symbol else ""
    details_str = f" | {details}" if details else ""

    level = logging.ERROR if event == "error" else logging.INFO
    logger.log(level, f"WebSocket: {exchange} {event}{symbol_str}{details_str}")


def log_connection_state(key: str, old: str, new: str, details: str = None) -> None:
    """
    Log a supervisor state transition.

    Example:
        >>> log_connection_state("binance:BTCUSDT", "connecting", "subscribed")
        [INFO] Connection: binance:BTCUSDT connecting -> subscribed
    """
    details_str = f" | {details}" if details else ""
    level = logging.WARNING if new == "disconnected" else logging.INFO
    logger.log(level, f"Connection: {key} {old} -> {new}{details_str}")


logger.debug("Logging system initialized")
