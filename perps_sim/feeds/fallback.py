"""
Fallback Price Feed

Prefers a primary (live) feed and fills any market the primary cannot
price from a backup feed, typically the synthetic one.
"""

from .base import PriceFeed, logger


class FallbackPriceFeed(PriceFeed):
    """Primary feed with per-market backup."""

    name = "fallback"

    def __init__(self, primary: PriceFeed, backup: PriceFeed, history_points: int = 50):
        super().__init__(primary.markets, history_points)
        self.primary = primary
        self.backup = backup

    async def fetch(self) -> dict[str, float]:
        primary_prices = await self.primary.refresh()
        missing = [m for m, p in primary_prices.items() if p is None]

        if self.primary.is_stale or missing:
            # Only advance the backup walk while it is actually needed
            backup_prices = await self.backup.refresh()
            if self.primary.is_stale:
                logger.warning(f"Primary feed error - using backup prices: {self.primary.last_error}")
        else:
            backup_prices = {}

        quotes = {}
        for symbol in self.markets:
            if self.primary.is_stale or primary_prices.get(symbol) is None:
                price = backup_prices.get(symbol)
            else:
                price = primary_prices[symbol]
            if price is not None:
                quotes[symbol] = price
        return quotes

    async def close(self):
        await self.primary.close()
        await self.backup.close()
