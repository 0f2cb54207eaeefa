"""
CoinGecko Price Feed

Polls the free CoinGecko simple-price endpoint for USD quotes.

Free API with no key required.
"""

import httpx
from datetime import datetime, timedelta
from typing import Optional

from ..config import config, get_market_config
from .base import PriceFeed, logger

BASE_BACKOFF = 2.0  # seconds
MAX_COOLDOWN = 300  # seconds


class CoinGeckoPriceFeed(PriceFeed):
    """Live quotes from CoinGecko."""

    name = "coingecko"

    def __init__(
        self,
        markets: list[str],
        history_points: int = 50,
        base_url: Optional[str] = None,
        timeout: Optional[float] = None,
    ):
        super().__init__(markets, history_points)
        self.base_url = base_url or config.feed.coingecko_base_url
        self.client = httpx.AsyncClient(timeout=timeout or config.feed.request_timeout)

        # CoinGecko id -> internal symbol
        self.symbol_map = {get_market_config(m).coingecko_id: m for m in self.markets}

        # Rate limiting state
        self._rate_limit_until: Optional[datetime] = None
        self._consecutive_failures = 0

    async def close(self):
        """Close the HTTP client."""
        await self.client.aclose()

    async def fetch(self) -> dict[str, float]:
        if self._rate_limit_until and datetime.now() < self._rate_limit_until:
            wait_seconds = (self._rate_limit_until - datetime.now()).total_seconds()
            raise RuntimeError(f"Rate limited - retry after {wait_seconds:.0f}s")

        params = {
            "ids": ",".join(self.symbol_map.keys()),
            "vs_currencies": "usd",
        }
        response = await self.client.get(f"{self.base_url}/simple/price", params=params)

        if response.status_code == 429:
            self._consecutive_failures += 1
            cooldown = min(MAX_COOLDOWN, BASE_BACKOFF ** (self._consecutive_failures + 2))
            self._rate_limit_until = datetime.now() + timedelta(seconds=cooldown)
            raise RuntimeError(f"CoinGecko rate limited (429). Cooldown: {cooldown:.0f}s")

        response.raise_for_status()
        self._consecutive_failures = 0
        data = response.json()

        quotes = {}
        for coin_id, symbol in self.symbol_map.items():
            usd = (data.get(coin_id) or {}).get("usd")
            if usd:
                quotes[symbol] = float(usd)
            else:
                logger.debug(f"[coingecko] No quote for {coin_id}")
        return quotes
