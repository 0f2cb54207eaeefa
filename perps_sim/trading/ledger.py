"""
Ledger

Owns the account aggregate and the settlement rules applied when a
position opens or closes. Every change that touches both the balance and
the open-position set happens inside a single method call here, so the two
are never observed out of step.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Iterable, Optional

from .config import SettlementPolicy
from .position import Position, PositionStatus


@dataclass
class Account:
    """Balance, open positions and the position id counter of one account."""
    balance: float
    positions: dict[str, Position] = field(default_factory=dict)
    position_counter: int = 0

    @property
    def open_positions(self) -> list[Position]:
        return list(self.positions.values())

    @property
    def total_unrealized_pnl(self) -> float:
        return sum(p.unrealized_pnl for p in self.positions.values())

    @property
    def committed_risk(self) -> float:
        """Sum of risk amounts across open positions."""
        return sum(p.risk_amount for p in self.positions.values())

    @property
    def equity(self) -> float:
        """balance + unrealized P/L of open positions (derived, never stored)."""
        return self.balance + self.total_unrealized_pnl

    def next_position_id(self) -> str:
        self.position_counter += 1
        return f"POS-{self.position_counter:06d}"


@dataclass
class SettlementResult:
    """Result of settling a position against the ledger."""
    position_id: str
    market: str
    status: PositionStatus
    realized_pnl: float
    balance_credit: float         # Amount actually added to the balance
    exit_price: Optional[float]
    settled_at: datetime = field(default_factory=datetime.now)


class Ledger:
    """
    Applies the account's settlement policy.

    MARGIN_RESERVED: risk is deducted at open; close credits risk + pnl.
    MARK_TO_CLOSE: nothing is deducted at open; close credits pnl.

    Either way a full lifecycle changes the balance by the realized pnl,
    which is never worse than -risk_amount.
    """

    def __init__(self, account: Account, policy: SettlementPolicy = SettlementPolicy.MARGIN_RESERVED):
        self.account = account
        self.policy = policy

    @property
    def balance(self) -> float:
        return self.account.balance

    @property
    def available_balance(self) -> float:
        """Capital that can still back a new position."""
        if self.policy is SettlementPolicy.MARGIN_RESERVED:
            return self.account.balance
        return self.account.balance - self.account.committed_risk

    def opening_debit(self, risk_amount: float) -> float:
        if self.policy is SettlementPolicy.MARGIN_RESERVED:
            return risk_amount
        return 0.0

    def closing_credit(self, position: Position) -> float:
        if self.policy is SettlementPolicy.MARGIN_RESERVED:
            return position.risk_amount + position.unrealized_pnl
        return position.unrealized_pnl

    def can_open(self, risk_amount: float) -> bool:
        return self.available_balance >= risk_amount

    def open(self, position: Position) -> None:
        """Debit the opening capital and add the position in one step."""
        self.account.balance -= self.opening_debit(position.risk_amount)
        self.account.positions[position.position_id] = position

    def settle(
        self,
        positions: Iterable[Position],
        closed_at: Optional[datetime] = None,
    ) -> list[SettlementResult]:
        """
        Settle a batch of positions that have reached a terminal status.

        The summed credit is applied as one balance update and the positions
        are removed from the open set in the same call.
        """
        closed_at = closed_at or datetime.now()
        batch = list(positions)
        results = []
        total_credit = 0.0
        seen = set()

        for position in batch:
            if position.position_id in seen:
                raise ValueError(f"Position {position.position_id} settled twice in one batch")
            seen.add(position.position_id)
            if not position.status.is_terminal:
                raise ValueError(f"Position {position.position_id} has no terminal status")
            if position.position_id not in self.account.positions:
                raise ValueError(f"Position {position.position_id} is not open")

            credit = self.closing_credit(position)
            total_credit += credit
            results.append(SettlementResult(
                position_id=position.position_id,
                market=position.market,
                status=position.status,
                realized_pnl=position.unrealized_pnl,
                balance_credit=credit,
                exit_price=position.mark_price,
                settled_at=closed_at,
            ))

        self.account.balance += total_credit
        for position in batch:
            position.closed_at = closed_at
            del self.account.positions[position.position_id]

        return results
