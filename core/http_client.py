"""
REST Client

Async HTTP client shared by every adapter that needs REST data: 24h ticker
stats for the Threshold Calculator and trade polling for poll-style feeds.
It handles:
- One aiohttp ClientSession per tracking session
- Retry with linear backoff on rate limits (429, 418, 503) and timeouts
- Request/response logging
- Ordered endpoint candidates via core.utils.fallback.first_success

Usage:
    async with MarketDataClient() as client:
        data = await client.get_json("https://api.binance.com/api/v3/ticker/24hr",
                                     params={"symbol": "BTCUSDT"})
"""

import asyncio
import time
from typing import Any, Dict, List, Optional

import aiohttp

from core.exceptions import TransportError
from core.logging import get_logger, log_api_request, log_api_response
from core.utils.fallback import first_success


class MarketDataClient:
    """
    Async HTTP client for public exchange REST endpoints.

    Attributes:
        timeout: Per-request timeout in seconds
        max_attempts: Attempts per URL before giving up
        session: aiohttp ClientSession (created in __aenter__)

    Example:
        >>> async with MarketDataClient(timeout=10) as client:
        ...     trades = await client.get_json(url, params={"symbol": "BTCUSDT", "limit": 100})

    Notes:
        - No API keys; every endpoint used is public
        - Raises TransportError so callers can treat it like a socket failure
    """

    RETRY_STATUSES = (429, 418, 503)

    def __init__(self, timeout: int = 10, max_attempts: int = 2):
        self.timeout = timeout
        self.max_attempts = max_attempts
        self.logger = get_logger(__name__)
        self.session: Optional[aiohttp.ClientSession] = None

    # ============================================
    # Context Manager for Session Management
    # ============================================

    async def __aenter__(self):
        await self.open()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def open(self) -> None:
        """Create the HTTP session (idempotent)."""
        if self.session is None or self.session.closed:
            self.session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout)
            )
            self.logger.debug("MarketDataClient session created")

    async def close(self) -> None:
        """Close the HTTP session. Safe to call multiple times."""
        if self.session and not self.session.closed:
            await self.session.close()
            self.logger.debug("MarketDataClient session closed")
        self.session = None

    # ============================================
    # HTTP Request Handler with Retry Logic
    # ============================================

    async def get_json(self, url: str, params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET a URL and decode the JSON body.

        Rate Limit Handling:
            - 429: Too many requests
            - 418: IP banned (temporary)
            - 503: Service unavailable

            Retry delay: 1.0s * (attempt + 1)

        Raises:
            RuntimeError: If the session is not open
            TransportError: If every attempt failed or the status is not retryable
        """
        if not self.session:
            raise RuntimeError("Client session not initialized. Use 'async with' statement.")

        host = url.split("/")[2] if "//" in url else url
        log_api_request(host, url, params)

        for attempt in range(self.max_attempts):
            started = time.monotonic()
            try:
                async with self.session.get(url, params=params) as resp:
                    log_api_response(host, url, resp.status, time.monotonic() - started)

                    if resp.status == 200:
                        return await resp.json(content_type=None)

                    if resp.status in self.RETRY_STATUSES:
                        delay = 1.0 * (attempt + 1)
                        self.logger.warning(
                            f"Rate limited (HTTP {resp.status}) on {url}. "
                            f"Retrying in {delay:.1f}s... (attempt {attempt + 1}/{self.max_attempts})"
                        )
                        await asyncio.sleep(delay)
                        continue

                    text = await resp.text()
                    raise TransportError(f"HTTP {resp.status} on {url}: {text[:200]}")

            except asyncio.TimeoutError:
                self.logger.warning(f"Timeout on {url} (attempt {attempt + 1}/{self.max_attempts})")
                await asyncio.sleep(1.0 * (attempt + 1))

            except aiohttp.ClientError as e:
                self.logger.warning(f"Request failed on {url}: {e} (attempt {attempt + 1}/{self.max_attempts})")
                await asyncio.sleep(1.0 * (attempt + 1))

        raise TransportError(f"Failed to fetch {url} after {self.max_attempts} attempts")

    async def get_first_json(self, urls: List[str], params: Optional[Dict[str, Any]] = None) -> Any:
        """
        GET the first URL in ``urls`` that answers successfully.

        Raises:
            AllCandidatesFailed: If every URL failed
        """
        return await first_success(urls, lambda url: self.get_json(url, params))
