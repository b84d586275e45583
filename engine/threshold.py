"""
Dynamic Whale Threshold

A fixed dollar cutoff is wrong for most markets: $50,000 is routine on
BTCUSDT and enormous on a small-cap pair. The cutoff is therefore derived
from each market's own 24h activity:

    average trade = quote_volume / trade_count
    cutoff        = clamp(average trade x multiplier, MIN, MAX)

With the default profile (multiplier 20, MIN $2,000, MAX $300,000) a market
averaging $900 per trade gets an $18,000 cutoff.

Fallback:
    When the exchange does not publish a trade count, the previously
    computed cutoff stays in effect, or, if there is none, the symbol's
    static default (BTCUSDT $15,000, ETHUSDT $7,000, ..., $2,000 for
    unlisted symbols). That case is expected and logged once per exchange.
    A failed fetch or an unparseable ticker falls back the same way but is
    also reported through ``on_error``. recompute never raises.

Usage:
    calc = ThresholdCalculator(adapters, client, on_error=handle_error)
    await calc.recompute_all(["BTCUSDT", "ETHUSDT"])
    calc.cutoff_for("binance", "BTCUSDT")
"""

import asyncio
from typing import Callable, Dict, List, Optional, Set, Tuple

from core.config import DEFAULT_SYMBOLS, Settings, settings as default_settings
from core.exceptions import MarketDataUnavailable, WhaleTrackerError
from core.exchange_interface import ExchangeAdapter
from core.http_client import MarketDataClient
from core.logging import get_logger
from core.schemas import EngineError, MarketActivity
from core.utils.fallback import AllCandidatesFailed
from core.utils.time import current_utc_timestamp


def compute_cutoff(activity: MarketActivity, multiplier: float, min_usd: float, max_usd: float) -> float:
    """
    Cutoff for one market, clamped to [min_usd, max_usd].

    Raises:
        MarketDataUnavailable: If the activity carries no usable trade count
    """
    if not activity.trade_count or activity.trade_count <= 0:
        raise MarketDataUnavailable(
            f"No 24h trade count for {activity.symbol}",
            exchange=activity.exchange,
            symbol=activity.symbol,
        )

    average = activity.quote_volume / activity.trade_count
    return float(min(max(average * multiplier, min_usd), max_usd))


class ThresholdCalculator:
    """
    Holds the cutoff for every (exchange, symbol) pair of a session.

    Attributes:
        adapters: Adapters by exchange name
        client: Open MarketDataClient used for ticker requests
        config: Settings carrying the threshold profile
        on_error: Called with an EngineError when a ticker fetch or parse fails
    """

    def __init__(
        self,
        adapters: Dict[str, ExchangeAdapter],
        client: MarketDataClient,
        config: Optional[Settings] = None,
        on_error: Optional[Callable[[EngineError], None]] = None,
    ) -> None:
        self.adapters = adapters
        self.client = client
        self.config = config or default_settings
        self.on_error = on_error
        self._cutoffs: Dict[Tuple[str, str], float] = {}
        self._countless: Set[str] = set()
        self._logger = get_logger(__name__)

    # ============================================
    # Cutoff Access
    # ============================================

    def cutoff_for(self, exchange: str, symbol: str) -> float:
        """Current cutoff; the static default when never computed."""
        key = (exchange, symbol.upper())
        if key in self._cutoffs:
            return self._cutoffs[key]
        return self.config.default_threshold(symbol)

    def set_cutoff(self, exchange: str, symbol: str, cutoff: float) -> None:
        """Pin a cutoff, clamped to the configured bounds."""
        self._cutoffs[(exchange, symbol.upper())] = float(
            min(max(cutoff, self.config.threshold_min_usd), self.config.threshold_max_usd)
        )

    def snapshot(self) -> Dict[str, Dict[str, float]]:
        """Current cutoffs as {exchange: {symbol: cutoff}}."""
        out: Dict[str, Dict[str, float]] = {}
        for (exchange, symbol), cutoff in sorted(self._cutoffs.items()):
            out.setdefault(exchange, {})[symbol] = cutoff
        return out

    def clear(self) -> None:
        self._cutoffs.clear()

    # ============================================
    # Recomputation
    # ============================================

    async def recompute(self, exchange: str, symbol: str) -> float:
        """
        Refresh the cutoff of one market from its 24h ticker.

        Returns:
            The cutoff now in effect (computed or fallback)
        """
        symbol = symbol.upper()
        try:
            activity = await self._fetch_activity(exchange, symbol)
            if activity.trade_count is None:
                return self._fall_back_quietly(exchange, symbol)
            cutoff = compute_cutoff(
                activity,
                self.config.threshold_multiplier,
                self.config.threshold_min_usd,
                self.config.threshold_max_usd,
            )
        except MarketDataUnavailable as e:
            return self._fall_back(exchange, symbol, e)

        self._cutoffs[(exchange, symbol)] = cutoff
        self._logger.info(f"Cutoff {exchange}:{symbol} = ${cutoff:,.0f}")
        return cutoff

    async def recompute_all(self, symbols: List[str]) -> Dict[Tuple[str, str], float]:
        """Refresh every (exchange, symbol) pair concurrently."""
        pairs = [(exchange, s.upper()) for exchange in self.adapters for s in symbols]
        results = await asyncio.gather(*(self.recompute(e, s) for e, s in pairs))
        return dict(zip(pairs, results))

    async def _fetch_activity(self, exchange: str, symbol: str) -> MarketActivity:
        adapter = self.adapters.get(exchange)
        if adapter is None:
            raise MarketDataUnavailable(f"No adapter for {exchange}", exchange=exchange, symbol=symbol)

        try:
            urls = adapter.ticker_endpoints(symbol)
            params = adapter.ticker_params(symbol)
            payload = await self.client.get_first_json(urls, params)
            return adapter.parse_ticker(payload, symbol)
        except (AllCandidatesFailed, WhaleTrackerError, ValueError) as e:
            raise MarketDataUnavailable(
                f"24h ticker unavailable: {e}", exchange=exchange, symbol=symbol
            ) from e

    def _keep_or_default(self, exchange: str, symbol: str) -> Tuple[float, str]:
        key = (exchange, symbol)
        previous = self._cutoffs.get(key)
        cutoff = previous if previous is not None else self.config.default_threshold(symbol)
        self._cutoffs[key] = cutoff
        return cutoff, "previous" if previous is not None else "default"

    def _fall_back_quietly(self, exchange: str, symbol: str) -> float:
        # Expected for exchanges whose ticker has no trade count
        cutoff, source = self._keep_or_default(exchange, symbol)
        if exchange not in self._countless:
            self._countless.add(exchange)
            self._logger.info(f"{exchange} publishes no 24h trade count; using previous or default cutoffs")
        self._logger.debug(f"Using {source} cutoff ${cutoff:,.0f} for {exchange}:{symbol}")
        return cutoff

    def _fall_back(self, exchange: str, symbol: str, error: MarketDataUnavailable) -> float:
        cutoff, source = self._keep_or_default(exchange, symbol)
        self._logger.warning(f"Using {source} cutoff ${cutoff:,.0f} for {exchange}:{symbol} ({error})")
        if self.on_error:
            self.on_error(EngineError(
                kind="market_data",
                exchange=exchange,
                symbol=symbol,
                message=f"{error} (using {source} cutoff ${cutoff:,.0f})",
                at_ms=current_utc_timestamp(milliseconds=True),
            ))
        return cutoff

    # ============================================
    # Symbol Discovery
    # ============================================

    async def discover_symbols(self, limit: int = 10) -> List[str]:
        """
        Top ``limit`` USDT symbols by 24h quote volume on Binance.

        Falls back to the static default list when Binance is unreachable.
        """
        from exchanges.binance import BinanceAdapter

        adapter = self.adapters.get("binance") or BinanceAdapter()
        try:
            payload = await self.client.get_first_json(adapter.all_tickers_endpoints())
            symbols = adapter.parse_top_symbols(payload, limit)
        except (AllCandidatesFailed, WhaleTrackerError) as e:
            self._logger.warning(f"Symbol discovery failed, using defaults: {e}")
            return DEFAULT_SYMBOLS[:limit]

        return symbols or DEFAULT_SYMBOLS[:limit]
