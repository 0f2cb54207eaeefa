"""
Positions and Valuation

A position is one leveraged exposure sized by the capital the trader is
willing to lose. Core principle: the liquidation price sits exactly where
the unrealized loss equals the risk amount, so no position can lose more
than was committed to it.
"""

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Optional


class Direction(Enum):
    """Side of a perpetual position."""
    LONG = "LONG"
    SHORT = "SHORT"

    @property
    def multiplier(self) -> int:
        """+1 for LONG, -1 for SHORT."""
        return 1 if self is Direction.LONG else -1


class PositionStatus(Enum):
    """Position lifecycle states."""
    OPEN = "open"                       # Position is active
    CLOSED_BY_TP = "closed_by_tp"       # Take-profit price reached
    CLOSED_BY_SL = "closed_by_sl"       # Stop-loss price reached
    LIQUIDATED = "liquidated"           # Loss reached the risk amount
    CLOSED_MANUAL = "closed_manual"     # User-initiated close

    @property
    def is_terminal(self) -> bool:
        return self is not PositionStatus.OPEN


@dataclass
class Position:
    """
    Represents an open leveraged position.

    notional_size is derived from risk_amount and leverage so the two can
    never drift apart. liquidation_price is fixed at creation.
    """
    # Identity
    position_id: str
    market: str
    direction: Direction

    # Entry details
    entry_price: float
    leverage: float
    risk_amount: float            # Capital committed, and the maximum loss
    liquidation_price: float
    opened_at: datetime = field(default_factory=datetime.now)
    risk_mode: str = "BALANCED"

    # Optional triggers
    take_profit_price: Optional[float] = None
    stop_loss_price: Optional[float] = None

    # Current state
    status: PositionStatus = PositionStatus.OPEN
    unrealized_pnl: float = 0.0
    mark_price: Optional[float] = None
    closed_at: Optional[datetime] = None

    @property
    def notional_size(self) -> float:
        """Exposure used in PnL math: risk_amount * leverage."""
        return self.risk_amount * self.leverage

    @property
    def is_open(self) -> bool:
        return self.status == PositionStatus.OPEN

    @property
    def unrealized_pnl_pct(self) -> float:
        """Unrealized P/L as a fraction of the risk amount."""
        if self.risk_amount == 0:
            return 0.0
        return self.unrealized_pnl / self.risk_amount

    def to_dict(self) -> dict:
        """Flat, JSON-safe representation for persistence."""
        return {
            "position_id": self.position_id,
            "market": self.market,
            "direction": self.direction.value,
            "entry_price": self.entry_price,
            "leverage": self.leverage,
            "risk_amount": self.risk_amount,
            "notional_size": self.notional_size,
            "liquidation_price": self.liquidation_price,
            "take_profit_price": self.take_profit_price,
            "stop_loss_price": self.stop_loss_price,
            "unrealized_pnl": self.unrealized_pnl,
            "mark_price": self.mark_price,
            "risk_mode": self.risk_mode,
            "status": self.status.value,
            "opened_at": self.opened_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: dict) -> "Position":
        """
        Restore a stored position.

        Restored positions are always OPEN and keep their stored
        liquidation price; nothing is recomputed from current prices.
        """
        opened_at = data.get("opened_at")
        return cls(
            position_id=str(data["position_id"]),
            market=data["market"],
            direction=Direction(data["direction"]),
            entry_price=float(data["entry_price"]),
            leverage=float(data["leverage"]),
            risk_amount=float(data["risk_amount"]),
            liquidation_price=float(data["liquidation_price"]),
            opened_at=datetime.fromisoformat(opened_at) if opened_at else datetime.now(),
            risk_mode=data.get("risk_mode", "BALANCED"),
            take_profit_price=data.get("take_profit_price"),
            stop_loss_price=data.get("stop_loss_price"),
            status=PositionStatus.OPEN,
            unrealized_pnl=float(data.get("unrealized_pnl", 0.0)),
            mark_price=data.get("mark_price"),
        )


class PositionValuator:
    """PnL and liquidation math for positions."""

    @staticmethod
    def unrealized_pnl(position: Position, price: float) -> float:
        """
        Unrealized P/L at a price.

        pnl = ((price - entry) / entry) * notional * direction_multiplier
        """
        price_change = (price - position.entry_price) / position.entry_price
        return price_change * position.notional_size * position.direction.multiplier

    @staticmethod
    def liquidation_price(entry_price: float, direction: Direction, leverage: float) -> float:
        """
        Price at which the loss equals the risk amount.

        Solving pnl = -risk with notional = risk * leverage gives a
        fractional distance of 1/leverage from entry, whatever the risk.
        """
        if direction is Direction.LONG:
            return entry_price * (1 - 1 / leverage)
        return entry_price * (1 + 1 / leverage)

    @staticmethod
    def pnl_at(
        entry_price: float,
        target_price: float,
        direction: Direction,
        risk_amount: float,
        leverage: float,
    ) -> float:
        """Projected P/L if a prospective order were closed at target_price."""
        notional = risk_amount * leverage
        return (target_price - entry_price) / entry_price * notional * direction.multiplier


def get_position_summary(position: Position) -> dict:
    """Get a summary dict of position state for display/logging."""
    return {
        "position_id": position.position_id,
        "market": position.market,
        "direction": position.direction.value,
        "leverage": round(position.leverage, 2),
        "risk_amount": round(position.risk_amount, 2),
        "notional_size": round(position.notional_size, 2),
        "entry_price": round(position.entry_price, 4),
        "mark_price": round(position.mark_price, 4) if position.mark_price is not None else None,
        "liquidation_price": round(position.liquidation_price, 4),
        "take_profit_price": position.take_profit_price,
        "stop_loss_price": position.stop_loss_price,
        "unrealized_pnl": round(position.unrealized_pnl, 2),
        "unrealized_pnl_pct": round(position.unrealized_pnl_pct * 100, 1),
        "status": position.status.value,
    }
