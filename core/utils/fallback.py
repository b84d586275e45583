"""
Ordered Fallback Helper

Several exchanges publish the same REST API on multiple hosts
(api.binance.com, api1.binance.com, data-api.binance.vision, ...). Rather than
hard-coding retries per exchange, callers pass an ordered list of candidates
and an attempt function; the first candidate that succeeds wins.
"""

from typing import Awaitable, Callable, Iterable, List, TypeVar

from core.logging import get_logger

C = TypeVar("C")
R = TypeVar("R")

logger = get_logger(__name__)


class AllCandidatesFailed(Exception):
    """Raised when every candidate failed; carries each candidate's error."""

    def __init__(self, errors: List[Exception]):
        self.errors = errors
        summary = "; ".join(f"{type(e).__name__}: {e}" for e in errors) or "no candidates"
        super().__init__(f"All {len(errors)} candidates failed ({summary})")


async def first_success(candidates: Iterable[C], attempt: Callable[[C], Awaitable[R]]) -> R:
    """
    Try candidates in order and return the first successful result.

    Args:
        candidates: Ordered candidates (URLs, hosts, ...)
        attempt: Async function called with one candidate

    Returns:
        The first result that did not raise

    Raises:
        AllCandidatesFailed: If every candidate raised

    Example:
        >>> urls = ["https://api.binance.com/x", "https://data-api.binance.vision/x"]
        >>> data = await first_success(urls, client.get_json)
    """
    errors: List[Exception] = []
    for candidate in candidates:
        try:
            return await attempt(candidate)
        except Exception as e:
            logger.debug(f"Candidate {candidate} failed: {e}")
            errors.append(e)

    raise AllCandidatesFailed(errors)
