"""
FastAPI Application - Multi-Exchange Whale Tracker API

Exposes the whale engine's state over REST and relays its live events over
a WebSocket.

Supported Exchanges:
    - Binance (spot aggTrade socket or REST polling)
    - Bybit (spot publicTrade socket)
    - Coinbase (matches channel or REST polling)
    - OKX (spot trades channel)
    - KuCoin (REST polling)

Usage:
    uvicorn app.main:app --reload --host 0.0.0.0 --port 8000

Docs:
    - Swagger: http://localhost:8000/docs
    - ReDoc: http://localhost:8000/redoc
"""

import asyncio
from contextlib import asynccontextmanager
from typing import Any, Dict, List, Optional

from fastapi import FastAPI, Query, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse
from pydantic import BaseModel, Field

from core.config import settings, validate_configuration
from core.exceptions import ConfigurationError
from core.exchange_manager import get_registry
from core.logging import logger
from core.schemas import ConnectionState
from services.event_bus import TOPICS, TOPIC_WHALE_TRADES, bus
from services.whale_tracker import get_whale_tracker_service


# ============================================
# Lifespan Management
# ============================================

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Handle application startup and shutdown."""
    logger.info("=== Application Starting ===")
    try:
        validate_configuration()
        await get_whale_tracker_service().start()
        logger.info("=== Started Successfully ===")
    except Exception as e:
        logger.error(f"Startup failed: {e}")
        raise

    yield

    logger.info("=== Shutting Down ===")
    try:
        await get_whale_tracker_service().stop()
        logger.info("=== Shutdown Complete ===")
    except Exception as e:
        logger.error(f"Shutdown error: {e}")


# ============================================
# FastAPI Application
# ============================================

app = FastAPI(
    title="Multi-Exchange Whale Tracker API",
    description=(
        "Live whale-trade detection across Binance, Bybit, Coinbase, OKX and KuCoin.\n\n"
        "## REST Endpoints\n"
        "- `GET /exchanges` - Supported exchanges and transports\n"
        "- `GET /thresholds` - Whale cutoff per exchange and symbol\n"
        "- `GET /stats` - Rolling window statistics (totals, per exchange, per coin)\n"
        "- `GET /trades` - Retained whale trades, newest first\n"
        "- `GET /connections` - Connection states\n"
        "- `GET /symbols/discover` - Top symbols by 24h quote volume\n"
        "- `POST /track` - Change tracked symbols\n"
        "- `POST /reset` - Clear the rolling window\n\n"
        "## WebSocket Stream\n"
        "- `ws://{host}/ws/whales?min_value_usd=50000&exchange=binance`\n"
        "  Relays `whale_trades`, `connection_status` and `engine_errors` events.\n\n"
        "All WebSocket messages are JSON objects using our Pydantic schemas.\n"
        "Clients should handle reconnects on disconnect."
    ),
    version="1.0.0",
    lifespan=lifespan,
    docs_url="/docs",
    redoc_url="/redoc"
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins_list,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"]
)


class TrackRequest(BaseModel):
    symbols: List[str] = Field(..., min_length=1, examples=[["BTCUSDT", "ETHUSDT"]])


# ============================================
# System Endpoints
# ============================================

@app.get("/", tags=["System"])
async def root():
    """API information, enabled exchanges and tracked symbols."""
    service = get_whale_tracker_service()
    return {
        "name": "Multi-Exchange Whale Tracker API",
        "version": "1.0.0",
        "status": "tracking" if service.running else "idle",
        "docs": "/docs",
        "exchanges": settings.exchanges_list,
        "symbols": service.symbols,
    }


@app.get("/health", tags=["System"])
async def health_check():
    """Healthy when every connection is subscribed, streaming or polling."""
    service = get_whale_tracker_service()
    if not service.running:
        return {"status": "stopped", "connections": {}}

    live = (ConnectionState.SUBSCRIBED, ConnectionState.STREAMING, ConnectionState.POLLING)
    states = {s.key: s.state for s in service.session.supervisor.statuses()}
    return {
        "status": "healthy" if all(state in live for state in states.values()) else "degraded",
        "connections": {key: state.value for key, state in states.items()},
    }


@app.get("/exchanges", tags=["System"])
async def list_exchanges():
    """List all supported exchanges and their transports."""
    registry = get_registry()
    enabled = settings.exchanges_list
    exchanges = []
    for name in registry.list_exchanges():
        adapter_cls = registry.adapters[name]
        exchanges.append({
            "name": name,
            "enabled": name in enabled,
            "transports": list(adapter_cls.supported_transports),
            "default_transport": adapter_cls.default_transport,
        })
    return {"exchanges": exchanges}


# ============================================
# Engine State Endpoints
# ============================================

@app.get("/thresholds", tags=["Engine"])
async def get_thresholds():
    """Whale cutoff in effect for every (exchange, symbol) pair."""
    service = get_whale_tracker_service()
    session = service.session
    if session is None:
        return {"thresholds": {}}

    return {
        "thresholds": {
            exchange: {symbol: session.thresholds.cutoff_for(exchange, symbol) for symbol in session.symbols}
            for exchange in session.adapters
        }
    }


@app.get("/stats", tags=["Engine"])
async def get_stats():
    """Statistics over the retained rolling window."""
    return get_whale_tracker_service().snapshot()


@app.get("/trades", tags=["Engine"])
async def get_trades(
    limit: int = Query(default=100, ge=1, le=1000),
    exchange: Optional[str] = Query(default=None, description="Only trades from this exchange"),
    min_value_usd: float = Query(default=0.0, ge=0, description="Minimum notional value"),
):
    """Retained whale trades, newest first."""
    session = get_whale_tracker_service().session
    if session is None:
        return []

    trades = [
        t for t in session.aggregator.trades()
        if (exchange is None or t.exchange == exchange.lower()) and t.notional_value >= min_value_usd
    ]
    return [t.model_dump(mode="json") for t in trades[:limit]]


@app.get("/connections", tags=["Engine"])
async def get_connections():
    """Current state of every supervised connection."""
    session = get_whale_tracker_service().session
    if session is None:
        return []
    return [s.model_dump(mode="json") for s in session.supervisor.statuses()]


@app.get("/symbols/discover", tags=["Engine"])
async def discover_symbols(limit: int = Query(default=10, ge=1, le=100)):
    """Top USDT symbols by 24h quote volume (static defaults when unreachable)."""
    return {"symbols": await get_whale_tracker_service().discover_symbols(limit)}


@app.post("/track", tags=["Engine"])
async def track_symbols(request: TrackRequest):
    """Replace the tracked symbols; cutoffs are recomputed and feeds reconnect."""
    symbols = await get_whale_tracker_service().track(request.symbols)
    return {"symbols": symbols}


@app.post("/reset", tags=["Engine"])
async def reset_state():
    """Clear the rolling window, dedup and correlation state."""
    get_whale_tracker_service().reset()
    return {"status": "reset"}


# ============================================
# WebSocket Endpoint
# ============================================

def filter_event(event: Dict[str, Any], min_value_usd: float, exchange: Optional[str]) -> Optional[Dict[str, Any]]:
    """
    Apply per-connection filters to a bus event.

    whale_trades events keep only matching trades and are dropped when none
    remain; other events are filtered by exchange only.
    """
    if event.get("type") != "whale_trades":
        if exchange and event.get("exchange") not in (None, exchange):
            return None
        return event

    def keep(trade: Dict[str, Any]) -> bool:
        if exchange and trade.get("exchange") != exchange:
            return False
        return float(trade.get("notional_value", 0)) >= min_value_usd

    trades = [t for t in event.get("trades", []) if keep(t)]
    annotated = [t for t in event.get("annotated", []) if keep(t)]
    if not trades and not annotated:
        return None
    return {**event, "trades": trades, "annotated": annotated}


@app.websocket("/ws/whales")
async def websocket_whales(
    websocket: WebSocket,
    min_value_usd: float = Query(default=0.0, description="Minimum USD value to forward to client"),
    exchange: Optional[str] = Query(default=None, description="Only forward events from this exchange"),
    topics: str = Query(default=",".join(TOPICS), description="Comma-separated topics to relay"),
):
    """
    Live whale trades, connection status and engine errors.

    Example:
        ws://localhost:8000/ws/whales?min_value_usd=50000&topics=whale_trades
    """
    await websocket.accept()
    selected = [t.strip() for t in topics.split(",") if t.strip() in TOPICS] or [TOPIC_WHALE_TRADES]
    exchange = exchange.lower() if exchange else None
    logger.info(f"WS connected: whales ({', '.join(selected)})")

    queues = {topic: await bus.subscribe(topic) for topic in selected}

    async def forward(queue: asyncio.Queue) -> None:
        while True:
            event = await queue.get()
            out = filter_event(event, float(min_value_usd), exchange)
            if out is not None:
                await websocket.send_json(out)

    async def receive() -> None:
        # Client messages are ignored; this only notices disconnects
        while True:
            await websocket.receive_text()

    tasks = [asyncio.create_task(forward(q)) for q in queues.values()]
    tasks.append(asyncio.create_task(receive()))
    try:
        done, _ = await asyncio.wait(tasks, return_when=asyncio.FIRST_COMPLETED)
        for task in done:
            exc = task.exception()
            if exc is not None and not isinstance(exc, WebSocketDisconnect):
                logger.error(f"WS error whales: {exc}")
    finally:
        for task in tasks:
            task.cancel()
        await asyncio.gather(*tasks, return_exceptions=True)
        for topic, queue in queues.items():
            await bus.unsubscribe(topic, queue)
        logger.info("WS ended: whales")


# ============================================
# Error Handlers
# ============================================

@app.exception_handler(ConfigurationError)
async def configuration_error_handler(request: Request, exc: ConfigurationError):
    """Unknown exchange, symbol or transport."""
    return JSONResponse(status_code=400, content={"detail": str(exc), "exchange": exc.exchange})


@app.exception_handler(404)
async def not_found_handler(request, exc):
    """Handle 404 errors."""
    return JSONResponse(status_code=404, content={"detail": "Not found", "path": str(request.url)})


@app.exception_handler(500)
async def internal_error_handler(request, exc):
    """Handle 500 errors."""
    logger.error(f"Internal error: {exc}")
    return JSONResponse(status_code=500, content={"detail": "Internal server error"})
