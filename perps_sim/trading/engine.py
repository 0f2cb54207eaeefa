"""
Trading Engine

Accepts open/close commands, runs the per-tick revaluation pass and exposes
the current book. Commands and ticks are serialized by one lock: every
change crossing the balance and the open-position set is applied as a
single step, and subscribers only ever see committed state.
"""

from dataclasses import dataclass, replace
from datetime import datetime
from typing import Callable, Optional, Union
import math
import re
import threading

from ..monitoring import get_logger, trade_logger, TradeLogger
from .config import EngineConfig, SettlementPolicy, default_config
from .errors import InsufficientBalance, NoPriceAvailable
from .ledger import Account, Ledger, SettlementResult
from .pnl_tracker import PnLTracker
from .position import Direction, Position, PositionStatus, PositionValuator
from .risk_profile import RiskProfile
from .triggers import TriggerEvaluator

logger = get_logger("engine")


@dataclass(frozen=True)
class OrderSpec:
    """Fields shared by every order. Use MarketOrder or LimitOrder."""
    market: str
    direction: Direction
    risk_amount: float
    risk_mode: Optional[str] = None         # Default risk mode when None
    leverage: Optional[float] = None        # Overrides the risk mode
    take_profit: Optional[float] = None
    stop_loss: Optional[float] = None

    def __post_init__(self):
        object.__setattr__(self, "market", self.market.upper())
        if not isinstance(self.direction, Direction):
            object.__setattr__(self, "direction", Direction(str(self.direction).upper()))
        if self.risk_amount is None or self.risk_amount <= 0:
            raise ValueError(f"Risk amount must be positive, got {self.risk_amount}")
        for name in ("take_profit", "stop_loss"):
            value = getattr(self, name)
            if value is not None and value <= 0:
                raise ValueError(f"{name} must be a positive price, got {value}")


@dataclass(frozen=True)
class MarketOrder(OrderSpec):
    """Fill immediately at the current market price."""
    order_type = "MARKET"


@dataclass(frozen=True)
class LimitOrder(OrderSpec):
    """
    Fill immediately at the limit price.

    There is no resting order book: the limit price is treated as a
    synthetic instant fill.
    """
    order_type = "LIMIT"

    limit_price: Optional[float] = None

    def __post_init__(self):
        super().__post_init__()
        if self.limit_price is None or self.limit_price <= 0:
            raise ValueError(f"Limit price must be positive, got {self.limit_price}")


OrderType = Union[MarketOrder, LimitOrder]


@dataclass(frozen=True)
class BookSnapshot:
    """Read-only view of the account for the presentation layer."""
    balance: float
    equity: float
    available_balance: float
    positions: tuple[Position, ...]
    prices: dict
    taken_at: datetime

    @property
    def total_unrealized_pnl(self) -> float:
        return self.equity - self.balance


class TradingEngine:
    """
    Orchestrates risk profile, valuation, triggers and the ledger.

    Per-tick flow:
    1. Record the latest prices
    2. Revalue every OPEN position that has a price this tick
    3. Evaluate TP -> SL -> liquidation per position
    4. Settle all closures in one ledger batch and remove them
    5. Publish a snapshot to subscribers
    """

    def __init__(
        self,
        config: EngineConfig = None,
        account: Account = None,
        tracker: PnLTracker = None,
        trade_log: TradeLogger = None,
    ):
        self.config = config or default_config
        self.account = account or Account(balance=self.config.starting_balance)
        self.ledger = Ledger(self.account, self.config.settlement_policy)
        self.risk_profile = RiskProfile(self.config)
        self.evaluator = TriggerEvaluator()
        self.tracker = tracker or PnLTracker()
        self.trade_log = trade_log or trade_logger

        # UI selections carried through persistence untouched
        self.selections: dict = {}

        self._prices: dict[str, Optional[float]] = {m: None for m in self.config.markets}
        self._subscribers: list[Callable[[BookSnapshot], None]] = []
        self._lock = threading.Lock()

    # ------------------------------------------------------------------
    # Read side
    # ------------------------------------------------------------------

    @property
    def balance(self) -> float:
        return self.account.balance

    @property
    def equity(self) -> float:
        return self.account.equity

    @property
    def open_positions(self) -> list[Position]:
        return self.account.open_positions

    def get_position(self, position_id: str) -> Optional[Position]:
        return self.account.positions.get(position_id)

    def get_price(self, market: str) -> Optional[float]:
        """Latest known price, or None when no price has arrived yet."""
        return self._prices.get(market.upper())

    def snapshot(self) -> BookSnapshot:
        with self._lock:
            return self._snapshot_unlocked()

    def _snapshot_unlocked(self) -> BookSnapshot:
        return BookSnapshot(
            balance=self.account.balance,
            equity=self.account.equity,
            available_balance=self.ledger.available_balance,
            positions=tuple(replace(p) for p in self.account.open_positions),
            prices=dict(self._prices),
            taken_at=datetime.now(),
        )

    def subscribe(self, callback: Callable[[BookSnapshot], None]) -> None:
        """Register a listener called with a snapshot after every tick and command."""
        self._subscribers.append(callback)

    def _publish(self) -> None:
        snap = self.snapshot()
        for callback in list(self._subscribers):
            try:
                callback(snap)
            except Exception as e:
                logger.error(f"Snapshot subscriber failed: {e}")

    # ------------------------------------------------------------------
    # Commands
    # ------------------------------------------------------------------

    def open_position(self, order: OrderType) -> Position:
        """
        Open a position from an order.

        All preconditions are checked before anything is mutated.

        Raises:
            ValueError: unknown market or risk mode, bad order type
            NoPriceAvailable: no current price for the market
            InsufficientBalance: available balance below the risk amount
        """
        if not isinstance(order, (MarketOrder, LimitOrder)):
            raise TypeError(f"Unsupported order type: {type(order).__name__}")
        if order.market not in self.config.markets:
            raise ValueError(f"Unknown market: {order.market}. Valid options: {self.config.markets}")

        with self._lock:
            current_price = self._prices.get(order.market)
            if current_price is None:
                raise NoPriceAvailable(order.market)

            leverage, risk_mode = self.risk_profile.resolve(order.risk_mode, order.leverage)

            if not self.ledger.can_open(order.risk_amount):
                available = self.ledger.available_balance
                logger.warning(
                    f"Insufficient balance. Required: ${order.risk_amount:.2f}, "
                    f"Available: ${available:.2f}"
                )
                raise InsufficientBalance(order.risk_amount, available, order.market)

            if isinstance(order, LimitOrder):
                entry_price = order.limit_price
            else:
                entry_price = current_price

            position = Position(
                position_id=self.account.next_position_id(),
                market=order.market,
                direction=order.direction,
                entry_price=entry_price,
                leverage=leverage,
                risk_amount=order.risk_amount,
                liquidation_price=PositionValuator.liquidation_price(
                    entry_price, order.direction, leverage
                ),
                risk_mode=risk_mode,
                take_profit_price=order.take_profit,
                stop_loss_price=order.stop_loss,
                mark_price=entry_price,
            )
            self.ledger.open(position)

        logger.info(
            f"Opened {position.direction.value} {position.market} position: "
            f"{position.notional_size:.2f} at {leverage:g}x leverage. "
            f"Risk: ${position.risk_amount:.2f}"
        )
        self.trade_log.log_open(
            position_id=position.position_id,
            market=position.market,
            direction=position.direction.value,
            entry_price=position.entry_price,
            leverage=position.leverage,
            risk_amount=position.risk_amount,
            notional_size=position.notional_size,
            liquidation_price=position.liquidation_price,
            order_type=order.order_type,
        )
        self._publish()
        return position

    def close_position(self, position_id: str) -> Optional[SettlementResult]:
        """
        Close an open position at its current unrealized P/L.

        Unknown or already-closed ids are a no-op and return None.
        """
        with self._lock:
            position = self.account.positions.get(position_id)
            if position is None:
                logger.debug(f"Close ignored, {position_id} is not open")
                return None

            position.status = PositionStatus.CLOSED_MANUAL
            result = self.ledger.settle([position])[0]
            self.tracker.record_settlement(position, result)
            balance = self.account.balance

        logger.info(
            f"Closed {position.direction.value} {position.market} position "
            f"{position_id}. PnL: {result.realized_pnl:+.2f}"
        )
        self._log_settlement(position, result, balance)
        self._publish()
        return result

    def close_all_positions(self) -> list[SettlementResult]:
        """Close every open position in one ledger update."""
        with self._lock:
            positions = self.account.open_positions
            if not positions:
                return []

            for position in positions:
                position.status = PositionStatus.CLOSED_MANUAL
            results = self.ledger.settle(positions)
            for position, result in zip(positions, results):
                self.tracker.record_settlement(position, result)
            balance = self.account.balance

        total_pnl = sum(r.realized_pnl for r in results)
        logger.info(f"Closed all positions ({len(results)}). Total PnL: {total_pnl:+.2f}")
        self.trade_log.log_close_all(count=len(results), total_pnl=total_pnl, balance=balance)
        self._publish()
        return results

    def on_prices(self, prices: dict[str, Optional[float]]) -> list[SettlementResult]:
        """
        Run one revaluation pass over a price snapshot.

        Markets with no usable price in the snapshot (missing, None,
        non-positive or non-finite) are skipped; their positions stay OPEN
        with their previous P/L.

        Returns:
            Settlement results for positions closed by a trigger this tick
        """
        with self._lock:
            prices = {
                market: float(price) for market, price in prices.items()
                if _valid_price(price)
            }
            for market, price in prices.items():
                if market in self._prices:
                    self._prices[market] = price

            closing: list[Position] = []
            for position in self.account.open_positions:
                price = prices.get(position.market)
                if price is None:
                    continue

                result = self.evaluator.evaluate(position, price)
                position.unrealized_pnl = result.unrealized_pnl
                position.mark_price = result.price
                if result.closed:
                    position.status = result.status
                    closing.append(position)

            settlements = self.ledger.settle(closing) if closing else []
            for position, result in zip(closing, settlements):
                self.tracker.record_settlement(position, result)
            self.tracker.update_equity(self.account.equity)
            balance = self.account.balance

        for position, result in zip(closing, settlements):
            if result.status == PositionStatus.LIQUIDATED:
                logger.warning(
                    f"Position liquidated! {position.direction.value} {position.market} "
                    f"{position.notional_size:.2f} at {position.leverage:g}x leverage. "
                    f"Loss: ${result.realized_pnl:.2f}"
                )
            else:
                logger.info(
                    f"{position.position_id} {result.status.value} at {result.exit_price}. "
                    f"PnL: {result.realized_pnl:+.2f}"
                )
            self._log_settlement(position, result, balance)

        self._publish()
        return settlements

    def preview_order(self, order: OrderType) -> dict:
        """
        Projected figures for an order without opening it.

        Returns entry, leverage, notional, liquidation price and the P/L at
        the take-profit and stop-loss prices (None when not set or when no
        entry price is known yet).
        """
        leverage, risk_mode = self.risk_profile.resolve(order.risk_mode, order.leverage)
        if isinstance(order, LimitOrder):
            entry = order.limit_price
        else:
            entry = self.get_price(order.market)

        preview = {
            "entry_price": entry,
            "leverage": leverage,
            "risk_mode": risk_mode,
            "notional_size": order.risk_amount * leverage,
            "liquidation_price": None,
            "take_profit_pnl": None,
            "stop_loss_pnl": None,
        }
        if entry is None:
            return preview

        preview["liquidation_price"] = PositionValuator.liquidation_price(entry, order.direction, leverage)
        if order.take_profit is not None:
            preview["take_profit_pnl"] = PositionValuator.pnl_at(
                entry, order.take_profit, order.direction, order.risk_amount, leverage
            )
        if order.stop_loss is not None:
            preview["stop_loss_pnl"] = PositionValuator.pnl_at(
                entry, order.stop_loss, order.direction, order.risk_amount, leverage
            )
        return preview

    def _log_settlement(self, position: Position, result: SettlementResult, balance: float) -> None:
        self.trade_log.log_close(
            position_id=position.position_id,
            market=position.market,
            status=result.status.value,
            exit_price=result.exit_price,
            pnl=result.realized_pnl,
            balance=balance,
        )

    # ------------------------------------------------------------------
    # Persistence boundary
    # ------------------------------------------------------------------

    def to_state(self) -> dict:
        """Flat, JSON-safe engine state."""
        with self._lock:
            return {
                "balance": self.account.balance,
                "positions": [p.to_dict() for p in self.account.open_positions],
                "position_counter": self.account.position_counter,
                "settlement_policy": self.ledger.policy.value,
                "selections": dict(self.selections),
                "last_saved": datetime.now().isoformat(),
            }

    @classmethod
    def from_state(cls, state: dict, config: EngineConfig = None, **kwargs) -> "TradingEngine":
        """
        Rebuild an engine from to_state() output.

        Positions come back OPEN with their stored fields, including the
        liquidation price. The account keeps the settlement policy it was
        saved under, so restored margin is never dropped or credited twice.
        """
        config = config or default_config
        stored_policy = state.get("settlement_policy")
        if stored_policy and stored_policy != config.settlement_policy.value:
            logger.warning(
                f"State was saved under {stored_policy} settlement, "
                f"keeping it instead of {config.settlement_policy.value}"
            )
            config = replace(config, settlement_policy=SettlementPolicy(stored_policy))

        positions = [Position.from_dict(d) for d in state.get("positions", [])]

        counter = state.get("position_counter")
        if counter is None:
            counter = max((_id_number(p.position_id) for p in positions), default=0)

        account = Account(
            balance=float(state.get("balance", config.starting_balance)),
            positions={p.position_id: p for p in positions},
            position_counter=int(counter),
        )
        engine = cls(config=config, account=account, **kwargs)
        engine.selections = dict(state.get("selections") or {})

        logger.info(f"Restored account: balance ${account.balance:.2f}, {len(positions)} open positions")
        return engine


def _valid_price(price) -> bool:
    return price is not None and math.isfinite(price) and price > 0


def _id_number(position_id: str) -> int:
    match = re.search(r"(\d+)$", position_id)
    return int(match.group(1)) if match else 0
