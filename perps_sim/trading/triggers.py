"""
Trigger Evaluation

Decides, for one position and one price, whether take-profit, stop-loss or
liquidation fires. Checks run in a fixed order: TP, then SL, then
liquidation. A user-placed trigger always wins over liquidation when both
are satisfied in the same tick.
"""

from dataclasses import dataclass

from .position import Direction, Position, PositionStatus, PositionValuator


@dataclass(frozen=True)
class TriggerResult:
    """Outcome of evaluating one position against one price."""
    status: PositionStatus
    unrealized_pnl: float
    price: float

    @property
    def closed(self) -> bool:
        return self.status.is_terminal


class TriggerEvaluator:
    """Pure per-position trigger checks; never mutates the position."""

    @staticmethod
    def take_profit_hit(position: Position, price: float) -> bool:
        if position.take_profit_price is None:
            return False
        if position.direction is Direction.LONG:
            return price >= position.take_profit_price
        return price <= position.take_profit_price

    @staticmethod
    def stop_loss_hit(position: Position, price: float) -> bool:
        if position.stop_loss_price is None:
            return False
        if position.direction is Direction.LONG:
            return price <= position.stop_loss_price
        return price >= position.stop_loss_price

    @staticmethod
    def liquidation_hit(position: Position, price: float) -> bool:
        if position.direction is Direction.LONG:
            return price <= position.liquidation_price
        return price >= position.liquidation_price

    def evaluate(self, position: Position, price: float) -> TriggerResult:
        """
        Revalue a position and decide its status for this tick.

        Exit triggers (in priority order):
        1. Take-profit
        2. Stop-loss
        3. Liquidation - fires when the price reaches the stored liquidation
           price or the PnL reaches -risk_amount, whichever comes first.
           PnL is clamped to exactly -risk_amount, however far the price
           overshot the threshold.

        TP/SL exits settle at the computed PnL, except that a price which
        gapped past liquidation is settled at -risk_amount rather than
        below it. No exit ever loses more than the risk amount.
        """
        pnl = PositionValuator.unrealized_pnl(position, price)
        floor = -position.risk_amount

        if self.take_profit_hit(position, price):
            return TriggerResult(PositionStatus.CLOSED_BY_TP, max(pnl, floor), price)

        if self.stop_loss_hit(position, price):
            return TriggerResult(PositionStatus.CLOSED_BY_SL, max(pnl, floor), price)

        if self.liquidation_hit(position, price) or pnl <= floor:
            return TriggerResult(PositionStatus.LIQUIDATED, floor, price)

        return TriggerResult(PositionStatus.OPEN, pnl, price)
