#!/usr/bin/env python3
"""
WebSocket test client for /ws/whales.

Prints whale trades, connection status changes and engine errors as the
server relays them.

Usage examples:
  python scripts/ws_test.py
  python scripts/ws_test.py --host 127.0.0.1 --port 8000 --min-value-usd 50000 --exchange okx --duration 600
"""

import asyncio
import argparse
import json
import sys
from typing import Any, Dict, Optional

import websockets


def describe(data: Dict[str, Any]) -> str:
    kind = data.get("type")
    if kind == "whale_trades":
        lines = []
        for t in data.get("trades", []):
            corr = f" (with {t['correlated_with']})" if t.get("correlated_with") else ""
            lines.append(
                f"{t['whale_tier'].upper():6} {t['exchange']:8} {t['side']:4} {t['symbol']:10} "
                f"${t['notional_value']:>14,.0f} @ {t['price']}{corr}"
            )
        for t in data.get("annotated", []):
            lines.append(f"  ~ {t['id']} now correlated with {t['correlated_with']}")
        totals = data.get("snapshot", {}).get("totals", {})
        lines.append(f"  window: {totals.get('count', 0)} trades, net flow ${totals.get('net_flow', 0):,.0f}")
        return "\n".join(lines)
    if kind == "connection_status":
        detail = f" ({data['detail']})" if data.get("detail") else ""
        return f"[status] {data['key']} -> {data['state']}{detail}"
    if kind == "engine_error":
        return f"[error] {data['kind']} {data.get('exchange') or ''} {data['message']}"
    return str(data)


async def stream_loop(url: str, duration: Optional[int] = None) -> None:
    """
    Connect to the whale stream and print incoming messages.
    Reconnects on error with exponential backoff.
    """
    attempt = 0
    end_time = (asyncio.get_running_loop().time() + duration) if duration else None

    while True:
        if end_time is not None and asyncio.get_running_loop().time() >= end_time:
            print("[WHALES] Duration reached; stopping.")
            return

        try:
            async with websockets.connect(url) as ws:
                attempt = 0
                print(f"[WHALES] Connected: {url}")
                while True:
                    msg = await asyncio.wait_for(ws.recv(), timeout=300)
                    try:
                        print(describe(json.loads(msg)))
                    except (ValueError, KeyError, TypeError, AttributeError):
                        print(f"[WHALES] {msg}")
        except asyncio.TimeoutError:
            print("[WHALES] No messages for 300s; reconnecting...")
        except Exception as e:
            attempt += 1
            backoff = min(2 ** (attempt - 1), 30)
            print(f"[WHALES] Disconnected/error ({e}); reconnecting in {backoff}s...")
            try:
                await asyncio.sleep(backoff)
            except asyncio.CancelledError:
                return


async def main() -> None:
    parser = argparse.ArgumentParser(description="Test the /ws/whales stream")
    parser.add_argument("--host", default="localhost", help="Server host (default: localhost)")
    parser.add_argument("--port", type=int, default=8000, help="Server port (default: 8000)")
    parser.add_argument("--min-value-usd", type=float, default=0.0, help="Only forward trades at or above this value")
    parser.add_argument("--exchange", default=None, help="Only forward events from this exchange")
    parser.add_argument("--topics", default="whale_trades,connection_status,engine_errors",
                        help="Comma-separated topics to subscribe to")
    parser.add_argument("--duration", type=int, default=0, help="Seconds to run (0 = run indefinitely)")
    args = parser.parse_args()

    url = f"ws://{args.host}:{args.port}/ws/whales?min_value_usd={args.min_value_usd}&topics={args.topics}"
    if args.exchange:
        url += f"&exchange={args.exchange}"
    duration = args.duration if args.duration and args.duration > 0 else None

    print(f"[Info] Connecting to:\n  - {url}\n")
    await stream_loop(url, duration)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        print("\n[Info] Interrupted. Bye.")
        sys.exit(0)
