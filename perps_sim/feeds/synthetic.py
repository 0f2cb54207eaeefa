"""
Synthetic Price Feed

Deterministic random walk per market for demo and offline runs. Each
market has its own seeded linear congruential generator, so two feeds
built with the same seeds produce the same price path.
"""

from typing import Optional

from ..config import MarketConfig, get_market_config
from .base import PriceFeed

# Numerical Recipes LCG constants
LCG_MULTIPLIER = 1664525
LCG_INCREMENT = 1013904223
LCG_MODULUS = 2 ** 32


class SeededRandom:
    """Linear congruential generator returning floats in [0, 1)."""

    def __init__(self, seed: int):
        self.state = seed

    def __call__(self) -> float:
        self.state = (self.state * LCG_MULTIPLIER + LCG_INCREMENT) % LCG_MODULUS
        return self.state / LCG_MODULUS


class SyntheticPriceFeed(PriceFeed):
    """
    Seeded random-walk feed.

    Each step moves a price by at most +/- volatility:
        price * (1 + (r - 0.5) * volatility * 2)
    """

    name = "synthetic"

    def __init__(
        self,
        markets: list[str],
        history_points: int = 50,
        market_configs: Optional[dict[str, MarketConfig]] = None,
    ):
        super().__init__(markets, history_points)
        self.market_configs = market_configs or {m: get_market_config(m) for m in self.markets}
        self._generators = {
            m: SeededRandom(self.market_configs[m].seed) for m in self.markets
        }
        self._walk: dict[str, float] = {}

    def step(self) -> dict[str, float]:
        """Next prices. The first call returns the initial prices."""
        if not self._walk:
            self._walk = {m: self.market_configs[m].initial_price for m in self.markets}
            return dict(self._walk)

        for symbol in self.markets:
            volatility = self.market_configs[symbol].volatility
            r = self._generators[symbol]()
            self._walk[symbol] = self._walk[symbol] * (1 + (r - 0.5) * volatility * 2)
        return dict(self._walk)

    async def fetch(self) -> dict[str, float]:
        return self.step()
