"""
Price feed clients.

Provides prices from:
- Synthetic: seeded random walk (offline/demo)
- CoinGecko: live USD quotes
- Fallback: live quotes with synthetic backup
"""

from .base import PriceFeed
from .synthetic import SyntheticPriceFeed, SeededRandom
from .coingecko import CoinGeckoPriceFeed
from .fallback import FallbackPriceFeed


def create_feed(source: str, markets: list[str], history_points: int = 50) -> PriceFeed:
    """Build a feed by name: synthetic, coingecko or fallback."""
    source = source.lower()
    if source == "synthetic":
        return SyntheticPriceFeed(markets, history_points)
    if source == "coingecko":
        return CoinGeckoPriceFeed(markets, history_points)
    if source == "fallback":
        return FallbackPriceFeed(
            CoinGeckoPriceFeed(markets, history_points),
            SyntheticPriceFeed(markets, history_points),
            history_points,
        )
    raise ValueError(f"Unknown price feed: {source}. Valid options: ['synthetic', 'coingecko', 'fallback']")


__all__ = [
    "PriceFeed",
    "SyntheticPriceFeed",
    "SeededRandom",
    "CoinGeckoPriceFeed",
    "FallbackPriceFeed",
    "create_feed",
]
