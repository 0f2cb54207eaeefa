"""
P&L Tracker

Keeps the history of settled positions and calculates performance metrics.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Optional
from collections import defaultdict
import numpy as np

from .ledger import SettlementResult
from .position import Position, PositionStatus


@dataclass
class TradeRecord:
    """Record of a settled position."""
    trade_id: str
    position_id: str
    market: str
    direction: str              # LONG or SHORT
    leverage: float
    risk_amount: float

    entry_time: datetime
    entry_price: float
    exit_time: datetime
    exit_price: Optional[float]

    exit_status: PositionStatus
    realized_pnl: float
    realized_pnl_pct: float     # Fraction of the risk amount
    hold_duration_hours: float


@dataclass
class PerformanceMetrics:
    """Aggregated performance statistics."""
    total_trades: int = 0
    winning_trades: int = 0
    losing_trades: int = 0
    win_rate: float = 0.0

    total_pnl: float = 0.0
    total_profit: float = 0.0
    total_loss: float = 0.0
    average_pnl: float = 0.0
    average_win: float = 0.0
    average_loss: float = 0.0
    profit_factor: float = 0.0          # gross profit / gross loss

    # Mean / std of per-trade return on risk
    sharpe_ratio: float = 0.0

    liquidations: int = 0
    average_hold_hours: float = 0.0

    exits_by_reason: dict = field(default_factory=dict)
    pnl_by_market: dict = field(default_factory=dict)


class PnLTracker:
    """
    Tracks settled positions and calculates performance metrics.

    Features:
    - Trade history
    - Performance metric calculation
    - Equity curve for drawdown
    """

    def __init__(self):
        self.trades: list[TradeRecord] = []
        self._trade_counter = 0
        self._equity_curve: list[tuple[datetime, float]] = []

    def record_settlement(self, position: Position, result: SettlementResult) -> TradeRecord:
        """
        Record a settled position.

        Args:
            position: The position as it was when settled
            result: Ledger settlement result for it

        Returns:
            The created TradeRecord
        """
        self._trade_counter += 1
        trade_id = f"TRD-{self._trade_counter:06d}"

        hold_duration = (result.settled_at - position.opened_at).total_seconds() / 3600

        trade = TradeRecord(
            trade_id=trade_id,
            position_id=position.position_id,
            market=position.market,
            direction=position.direction.value,
            leverage=position.leverage,
            risk_amount=position.risk_amount,
            entry_time=position.opened_at,
            entry_price=position.entry_price,
            exit_time=result.settled_at,
            exit_price=result.exit_price,
            exit_status=result.status,
            realized_pnl=result.realized_pnl,
            realized_pnl_pct=result.realized_pnl / position.risk_amount if position.risk_amount else 0.0,
            hold_duration_hours=max(hold_duration, 0.0),
        )

        self.trades.append(trade)
        return trade

    def update_equity(self, current_equity: float) -> None:
        """Append a point to the equity curve."""
        self._equity_curve.append((datetime.now(), current_equity))

    @property
    def max_drawdown_pct(self) -> float:
        peak = 0.0
        max_dd = 0.0
        for _, equity in self._equity_curve:
            if equity > peak:
                peak = equity
            dd = (peak - equity) / peak if peak > 0 else 0.0
            if dd > max_dd:
                max_dd = dd
        return max_dd

    def get_metrics(self, market: Optional[str] = None) -> PerformanceMetrics:
        """
        Calculate performance metrics.

        Args:
            market: Filter to a specific market (default: all markets)
        """
        filtered = self.trades
        if market:
            filtered = [t for t in filtered if t.market == market.upper()]

        if not filtered:
            return PerformanceMetrics()

        metrics = PerformanceMetrics()
        metrics.total_trades = len(filtered)

        wins = [t for t in filtered if t.realized_pnl > 0]
        losses = [t for t in filtered if t.realized_pnl < 0]

        metrics.winning_trades = len(wins)
        metrics.losing_trades = len(losses)
        metrics.win_rate = metrics.winning_trades / metrics.total_trades

        metrics.total_pnl = sum(t.realized_pnl for t in filtered)
        metrics.total_profit = sum(t.realized_pnl for t in wins)
        metrics.total_loss = abs(sum(t.realized_pnl for t in losses))

        metrics.average_pnl = metrics.total_pnl / metrics.total_trades
        metrics.average_win = metrics.total_profit / len(wins) if wins else 0.0
        metrics.average_loss = metrics.total_loss / len(losses) if losses else 0.0

        metrics.profit_factor = (
            metrics.total_profit / metrics.total_loss
            if metrics.total_loss > 0 else float('inf')
        )

        returns = np.array([t.realized_pnl_pct for t in filtered])
        if len(returns) > 1 and returns.std() > 0:
            metrics.sharpe_ratio = float(returns.mean() / returns.std())

        metrics.liquidations = sum(1 for t in filtered if t.exit_status == PositionStatus.LIQUIDATED)
        metrics.average_hold_hours = sum(t.hold_duration_hours for t in filtered) / len(filtered)

        exits_by_reason = defaultdict(int)
        for trade in filtered:
            exits_by_reason[trade.exit_status.value] += 1
        metrics.exits_by_reason = dict(exits_by_reason)

        pnl_by_market = defaultdict(float)
        for trade in filtered:
            pnl_by_market[trade.market] += trade.realized_pnl
        metrics.pnl_by_market = dict(pnl_by_market)

        return metrics

    def get_recent_trades(self, limit: int = 20) -> list[TradeRecord]:
        """Get most recent trades."""
        return sorted(self.trades, key=lambda t: t.exit_time, reverse=True)[:limit]

    def get_trade_summary(self, trade: TradeRecord) -> dict:
        """Get summary dict of a trade for display."""
        return {
            "trade_id": trade.trade_id,
            "market": trade.market,
            "direction": trade.direction,
            "leverage": trade.leverage,
            "entry_time": trade.entry_time.strftime("%Y-%m-%d %H:%M:%S"),
            "exit_time": trade.exit_time.strftime("%Y-%m-%d %H:%M:%S"),
            "entry_price": round(trade.entry_price, 4),
            "exit_price": round(trade.exit_price, 4) if trade.exit_price is not None else None,
            "risk": round(trade.risk_amount, 2),
            "pnl": round(trade.realized_pnl, 2),
            "pnl_pct": round(trade.realized_pnl_pct * 100, 1),
            "exit_status": trade.exit_status.value,
        }
