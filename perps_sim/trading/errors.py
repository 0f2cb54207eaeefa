"""Errors raised by the trading engine before any state is touched."""

from typing import Optional


class TradingError(Exception):
    """Base class for rejected trading commands."""


class NoPriceAvailable(TradingError):
    """No current price for the requested market yet."""

    def __init__(self, market: str):
        self.market = market
        super().__init__(f"No price available for {market}")


class InsufficientBalance(TradingError):
    """Available balance does not cover the capital the order requires."""

    def __init__(self, required: float, available: float, market: Optional[str] = None):
        self.required = required
        self.available = available
        self.market = market
        super().__init__(
            f"Insufficient balance. Required: ${required:.2f}, Available: ${available:.2f}"
        )
