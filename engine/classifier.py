"""
Whale Classifier

Tiers a whale trade by how many cutoffs its notional value spans:

    cutoff      <= v < K1 * cutoff   medium
    K1 * cutoff <= v < K2 * cutoff   large
    K2 * cutoff <= v                 mega

With the default profile (K1 = 2, K2 = 5) and a $20,000 cutoff, a $25,000
trade is medium, $40,000 is large and $100,000 is mega.
"""

from core.schemas import WhaleTier


def classify(notional: float, cutoff: float, k1: float = 2.0, k2: float = 5.0) -> WhaleTier:
    """
    Classify a trade that already passed the cutoff.

    Args:
        notional: Trade value in quote currency
        cutoff: Whale cutoff in effect for the trade's exchange and symbol
        k1: Upper bound (exclusive) of the medium tier, in cutoffs
        k2: Upper bound (exclusive) of the large tier, in cutoffs

    Raises:
        ValueError: If ``notional`` is below ``cutoff``; such trades are not
            whales and must be filtered out first
    """
    if notional < cutoff:
        raise ValueError(f"Notional {notional:,.2f} is below cutoff {cutoff:,.2f}")

    if notional < cutoff * k1:
        return WhaleTier.MEDIUM
    if notional < cutoff * k2:
        return WhaleTier.LARGE
    return WhaleTier.MEGA
