"""
Price Feed Base

Holds the latest price per market and a bounded price history. Refresh
failures never clear prices: the feed keeps serving its last known good
values and records the error.
"""

from abc import ABC, abstractmethod
import math
from collections import deque
from datetime import datetime
from typing import Optional

from ..monitoring import get_logger

logger = get_logger("feeds")


class PriceFeed(ABC):
    """
    Abstract price source for a fixed set of markets.

    A market with no price yet maps to None, which is distinct from any
    numeric price. Non-positive quotes are rejected.
    """

    name = "feed"

    def __init__(self, markets: list[str], history_points: int = 50):
        self.markets = [m.upper() for m in markets]
        self.history_points = history_points
        self._prices: dict[str, Optional[float]] = {m: None for m in self.markets}
        self._history: dict[str, deque] = {
            m: deque(maxlen=history_points) for m in self.markets
        }
        self.last_error: Optional[str] = None
        self.last_fetch_time: Optional[datetime] = None

    @abstractmethod
    async def fetch(self) -> dict[str, float]:
        """Fetch new quotes. May return a subset of markets; may raise."""

    async def refresh(self) -> dict[str, Optional[float]]:
        """
        Fetch and record new prices.

        Returns:
            Current prices for every market (last known good on failure)
        """
        try:
            quotes = await self.fetch()
        except Exception as e:
            self.last_error = str(e)
            logger.warning(f"[{self.name}] Price fetch failed, keeping last known prices: {e}")
            return self.get_prices()

        self.record(quotes)
        self.last_error = None
        self.last_fetch_time = datetime.now()
        return self.get_prices()

    def record(self, quotes: dict[str, float]) -> None:
        """Store valid quotes and append them to the history buffers."""
        for symbol, price in quotes.items():
            symbol = symbol.upper()
            if symbol not in self._prices:
                continue
            if price is None or not math.isfinite(price) or price <= 0:
                logger.debug(f"[{self.name}] Ignoring invalid quote for {symbol}: {price}")
                continue
            self._prices[symbol] = float(price)
            self._history[symbol].append(float(price))

    def get_price(self, symbol: str) -> Optional[float]:
        return self._prices.get(symbol.upper())

    def get_prices(self) -> dict[str, Optional[float]]:
        return dict(self._prices)

    def get_history(self, symbol: str) -> list[float]:
        """Most recent prices for a market, oldest first."""
        return list(self._history.get(symbol.upper(), ()))

    @property
    def has_all_prices(self) -> bool:
        return all(p is not None for p in self._prices.values())

    @property
    def is_stale(self) -> bool:
        """True while the latest refresh failed."""
        return self.last_error is not None

    async def close(self):
        """Release resources held by the feed."""

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
