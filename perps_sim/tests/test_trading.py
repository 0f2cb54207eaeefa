"""
Tests for positions, valuation, triggers, risk profile and ledger.
"""

import pytest
from datetime import datetime

from perps_sim.trading.config import EngineConfig, SettlementPolicy
from perps_sim.trading.ledger import Account, Ledger
from perps_sim.trading.pnl_tracker import PnLTracker
from perps_sim.trading.position import (
    Direction, Position, PositionStatus, PositionValuator
)
from perps_sim.trading.risk_profile import RiskProfile, CUSTOM_RISK_MODE
from perps_sim.trading.triggers import TriggerEvaluator


def _make_position(
    direction=Direction.LONG,
    entry=100.0,
    leverage=10.0,
    risk=50.0,
    tp=None,
    sl=None,
    position_id="POS-000001",
    market="BTC",
):
    """Helper to create an OPEN position with a derived liquidation price."""
    return Position(
        position_id=position_id,
        market=market,
        direction=direction,
        entry_price=entry,
        leverage=leverage,
        risk_amount=risk,
        liquidation_price=PositionValuator.liquidation_price(entry, direction, leverage),
        take_profit_price=tp,
        stop_loss_price=sl,
    )


class TestPositionValuator:
    """Tests for PnL and liquidation math."""

    def test_notional_size(self):
        position = _make_position(risk=50.0, leverage=5.0)
        assert position.notional_size == 250.0

    def test_long_liquidation_price(self):
        assert PositionValuator.liquidation_price(95000.0, Direction.LONG, 5.0) == pytest.approx(76000.0)

    def test_short_liquidation_price(self):
        assert PositionValuator.liquidation_price(3500.0, Direction.SHORT, 10.0) == pytest.approx(3850.0)

    def test_liquidation_independent_of_risk(self):
        """Liquidation distance depends only on leverage."""
        small = _make_position(risk=1.0, leverage=20.0)
        large = _make_position(risk=10000.0, leverage=20.0)
        assert small.liquidation_price == large.liquidation_price

    def test_loss_at_liquidation_equals_risk(self):
        for direction in Direction:
            position = _make_position(direction=direction, entry=250.0, leverage=4.0, risk=80.0)
            pnl = PositionValuator.unrealized_pnl(position, position.liquidation_price)
            assert pnl == pytest.approx(-80.0)

    def test_long_pnl(self):
        position = _make_position(entry=95000.0, leverage=5.0, risk=50.0)
        pnl = PositionValuator.unrealized_pnl(position, 94000.0)
        assert pnl == pytest.approx(-2.6316, abs=1e-4)

    def test_short_pnl_is_mirrored(self):
        long_pos = _make_position(direction=Direction.LONG)
        short_pos = _make_position(direction=Direction.SHORT)
        assert PositionValuator.unrealized_pnl(short_pos, 103.0) == pytest.approx(
            -PositionValuator.unrealized_pnl(long_pos, 103.0)
        )

    def test_direction_multiplier(self):
        assert Direction.LONG.multiplier == 1
        assert Direction.SHORT.multiplier == -1

    def test_pnl_at_projection(self):
        pnl = PositionValuator.pnl_at(100.0, 110.0, Direction.LONG, risk_amount=10.0, leverage=5.0)
        assert pnl == pytest.approx(5.0)


class TestPositionSerialization:
    """Tests for the persistence representation."""

    def test_restored_position_is_open_with_stored_liquidation(self):
        position = _make_position(tp=120.0, sl=95.0)
        data = position.to_dict()
        data["status"] = "liquidated"
        data["liquidation_price"] = 12.34

        restored = Position.from_dict(data)

        assert restored.status == PositionStatus.OPEN
        assert restored.liquidation_price == 12.34
        assert restored.take_profit_price == 120.0
        assert restored.stop_loss_price == 95.0
        assert restored.direction == Direction.LONG
        assert restored.opened_at == position.opened_at


class TestTriggerEvaluator:
    """Tests for TP -> SL -> liquidation ordering."""

    @pytest.fixture
    def evaluator(self):
        return TriggerEvaluator()

    def test_stays_open(self, evaluator):
        position = _make_position(tp=120.0, sl=90.0)
        result = evaluator.evaluate(position, 101.0)
        assert result.status == PositionStatus.OPEN
        assert not result.closed
        assert result.unrealized_pnl == pytest.approx(5.0)

    def test_long_take_profit(self, evaluator):
        position = _make_position(tp=105.0)
        result = evaluator.evaluate(position, 105.0)
        assert result.status == PositionStatus.CLOSED_BY_TP
        assert result.unrealized_pnl == pytest.approx(25.0)

    def test_short_take_profit(self, evaluator):
        position = _make_position(direction=Direction.SHORT, tp=95.0)
        result = evaluator.evaluate(position, 94.0)
        assert result.status == PositionStatus.CLOSED_BY_TP
        assert result.unrealized_pnl == pytest.approx(30.0)

    def test_take_profit_wins_over_stop_loss(self, evaluator):
        """Both conditions true in one tick: TP fires, SL is never checked."""
        position = _make_position(tp=105.0, sl=110.0)
        result = evaluator.evaluate(position, 107.0)
        assert evaluator.stop_loss_hit(position, 107.0)
        assert result.status == PositionStatus.CLOSED_BY_TP

    def test_short_stop_loss_before_liquidation(self, evaluator):
        position = _make_position(direction=Direction.SHORT, entry=3500.0, leverage=10.0, sl=3600.0)
        result = evaluator.evaluate(position, 3600.0)
        assert result.status == PositionStatus.CLOSED_BY_SL
        assert result.unrealized_pnl == pytest.approx(-14.2857, abs=1e-4)

    def test_stop_loss_wins_over_liquidation(self, evaluator):
        """A gap through both SL and liquidation exits via SL, loss bounded."""
        position = _make_position(leverage=10.0, risk=50.0, sl=95.0)
        result = evaluator.evaluate(position, 80.0)
        assert result.status == PositionStatus.CLOSED_BY_SL
        assert result.unrealized_pnl == -50.0

    def test_liquidation_at_threshold(self, evaluator):
        position = _make_position(entry=95000.0, leverage=5.0, risk=50.0)
        result = evaluator.evaluate(position, 76000.0)
        assert result.status == PositionStatus.LIQUIDATED
        assert result.unrealized_pnl == -50.0

    def test_liquidation_overshoot_is_clamped(self, evaluator):
        position = _make_position(direction=Direction.SHORT, leverage=10.0, risk=50.0)
        result = evaluator.evaluate(position, 200.0)
        assert result.status == PositionStatus.LIQUIDATED
        assert result.unrealized_pnl == -50.0

    @pytest.mark.parametrize("direction", [Direction.LONG, Direction.SHORT])
    @pytest.mark.parametrize("entry", [95000.0, 3500.0, 140.0])
    @pytest.mark.parametrize("leverage", [3.0, 6.0, 7.0, 12.5, 100.0])
    def test_liquidates_exactly_at_liquidation_price(self, evaluator, direction, entry, leverage):
        position = _make_position(direction=direction, entry=entry, leverage=leverage, risk=50.0)
        result = evaluator.evaluate(position, position.liquidation_price)
        assert result.status == PositionStatus.LIQUIDATED
        assert result.unrealized_pnl == -50.0

    def test_stays_open_just_inside_liquidation_price(self, evaluator):
        position = _make_position(leverage=3.0, risk=50.0)
        result = evaluator.evaluate(position, position.liquidation_price + 0.01)
        assert result.status == PositionStatus.OPEN
        assert result.unrealized_pnl > -50.0

    def test_evaluate_does_not_mutate(self, evaluator):
        position = _make_position(tp=105.0)
        evaluator.evaluate(position, 110.0)
        assert position.status == PositionStatus.OPEN
        assert position.unrealized_pnl == 0.0


class TestRiskProfile:
    """Tests for risk mode lookup and leverage clamping."""

    @pytest.fixture
    def profile(self):
        return RiskProfile(EngineConfig(leverage_range=(1, 100), markets=["BTC"]))

    def test_default_modes(self, profile):
        assert profile.leverage_for("SAFE") == 2.0
        assert profile.leverage_for("balanced") == 5.0
        assert profile.leverage_for("DEGENERATE") == 10.0

    def test_unknown_mode(self, profile):
        with pytest.raises(ValueError):
            profile.leverage_for("YOLO")

    def test_override_is_custom_and_clamped(self, profile):
        assert profile.resolve("SAFE", 500.0) == (100.0, CUSTOM_RISK_MODE)
        assert profile.resolve(None, 0.5) == (1.0, CUSTOM_RISK_MODE)

    def test_default_mode_when_none(self, profile):
        assert profile.resolve(None) == (5.0, "BALANCED")

    def test_non_positive_override_rejected(self, profile):
        with pytest.raises(ValueError):
            profile.resolve(None, -3.0)

    def test_mode_leverage_clamped_to_range(self):
        profile = RiskProfile(EngineConfig(leverage_range=(1, 4), markets=["BTC"]))
        assert profile.leverage_for("DEGENERATE") == 4.0


class TestEngineConfig:
    """Tests for injected configuration."""

    def test_from_dict_recognized_options(self):
        cfg = EngineConfig.from_dict({
            "riskModes": {"low": 3, "high": 50},
            "leverageRange": [1, 200],
            "markets": ["btc", "eth"],
        })
        assert cfg.risk_modes == {"LOW": 3.0, "HIGH": 50.0}
        assert cfg.leverage_range == (1.0, 200.0)
        assert cfg.markets == ["BTC", "ETH"]
        assert cfg.default_risk_mode == "LOW"

    def test_policy_from_string(self):
        cfg = EngineConfig(settlement_policy="mark_to_close", markets=["BTC"])
        assert cfg.settlement_policy is SettlementPolicy.MARK_TO_CLOSE

    def test_invalid_range(self):
        with pytest.raises(AssertionError):
            EngineConfig(leverage_range=(10, 5), markets=["BTC"])


class TestLedger:
    """Tests for settlement policies."""

    def _closed(self, position, status, pnl):
        position.status = status
        position.unrealized_pnl = pnl
        return position

    def test_margin_reserved_open_and_close(self):
        account = Account(balance=1000.0)
        ledger = Ledger(account, SettlementPolicy.MARGIN_RESERVED)
        position = _make_position(risk=50.0)

        ledger.open(position)
        assert account.balance == 950.0
        assert ledger.available_balance == 950.0

        self._closed(position, PositionStatus.CLOSED_MANUAL, 12.5)
        results = ledger.settle([position])

        assert account.balance == 1012.5
        assert results[0].balance_credit == 62.5
        assert results[0].realized_pnl == 12.5
        assert position.position_id not in account.positions
        assert position.closed_at is not None

    def test_margin_reserved_liquidation_forfeits_margin(self):
        account = Account(balance=1000.0)
        ledger = Ledger(account, SettlementPolicy.MARGIN_RESERVED)
        position = _make_position(risk=50.0)
        ledger.open(position)

        self._closed(position, PositionStatus.LIQUIDATED, -50.0)
        ledger.settle([position])

        assert account.balance == 950.0

    def test_mark_to_close_open_and_liquidation(self):
        account = Account(balance=1000.0)
        ledger = Ledger(account, SettlementPolicy.MARK_TO_CLOSE)
        position = _make_position(risk=50.0)

        ledger.open(position)
        assert account.balance == 1000.0
        assert ledger.available_balance == 950.0

        self._closed(position, PositionStatus.LIQUIDATED, -50.0)
        ledger.settle([position])
        assert account.balance == 950.0

    @pytest.mark.parametrize("policy", list(SettlementPolicy))
    def test_policies_agree_on_lifecycle_change(self, policy):
        account = Account(balance=500.0)
        ledger = Ledger(account, policy)
        position = _make_position(risk=40.0)
        ledger.open(position)
        self._closed(position, PositionStatus.CLOSED_BY_TP, 17.0)
        ledger.settle([position])
        assert account.balance == pytest.approx(517.0)

    def test_can_open(self):
        ledger = Ledger(Account(balance=100.0))
        assert ledger.can_open(100.0)
        assert not ledger.can_open(100.01)

    def test_settle_rejects_open_position_without_mutation(self):
        account = Account(balance=1000.0)
        ledger = Ledger(account)
        closed = _make_position(position_id="POS-000001")
        still_open = _make_position(position_id="POS-000002")
        ledger.open(closed)
        ledger.open(still_open)
        self._closed(closed, PositionStatus.CLOSED_MANUAL, 5.0)

        with pytest.raises(ValueError):
            ledger.settle([closed, still_open])

        assert account.balance == 900.0
        assert len(account.positions) == 2

    def test_settle_batch_single_update(self):
        account = Account(balance=1000.0)
        ledger = Ledger(account)
        positions = [_make_position(position_id=f"POS-00000{i}") for i in range(1, 4)]
        for p in positions:
            ledger.open(p)
        for p, pnl in zip(positions, (10.0, -5.0, -50.0)):
            self._closed(p, PositionStatus.CLOSED_BY_SL, pnl)

        at = datetime(2025, 1, 1, 12, 0)
        results = ledger.settle(positions, closed_at=at)

        assert account.balance == pytest.approx(1000.0 - 150.0 + 150.0 - 45.0)
        assert account.positions == {}
        assert all(r.settled_at == at for r in results)

    def test_account_ids_are_monotonic(self):
        account = Account(balance=0.0)
        assert account.next_position_id() == "POS-000001"
        assert account.next_position_id() == "POS-000002"
        assert account.position_counter == 2

    def test_equity_is_derived(self):
        account = Account(balance=900.0)
        ledger = Ledger(account)
        position = _make_position()
        ledger.open(position)
        position.unrealized_pnl = 7.5
        assert account.equity == pytest.approx(857.5)


class TestPnLTracker:
    """Tests for trade history and performance metrics."""

    @pytest.fixture
    def ledger(self):
        return Ledger(Account(balance=1000.0))

    def _settle(self, tracker, ledger, position, pnl, status, closed_at=None):
        ledger.open(position)
        position.unrealized_pnl = pnl
        position.status = status
        result = ledger.settle([position], closed_at=closed_at)[0]
        return tracker.record_settlement(position, result)

    def test_record_settlement(self, ledger):
        tracker = PnLTracker()
        trade = self._settle(tracker, ledger, _make_position(), 25.0, PositionStatus.CLOSED_BY_TP)

        assert trade.trade_id == "TRD-000001"
        assert trade.realized_pnl_pct == pytest.approx(0.5)
        assert trade.exit_status == PositionStatus.CLOSED_BY_TP

        summary = tracker.get_trade_summary(trade)
        assert summary["pnl"] == 25.0
        assert summary["pnl_pct"] == 50.0
        assert summary["exit_status"] == "closed_by_tp"

    def test_metrics(self, ledger):
        tracker = PnLTracker()
        self._settle(tracker, ledger, _make_position(position_id="POS-000001"), 30.0, PositionStatus.CLOSED_BY_TP)
        self._settle(tracker, ledger, _make_position(position_id="POS-000002", market="ETH"),
                     -10.0, PositionStatus.CLOSED_BY_SL)
        self._settle(tracker, ledger, _make_position(position_id="POS-000003"), -50.0, PositionStatus.LIQUIDATED)

        metrics = tracker.get_metrics()
        assert metrics.total_trades == 3
        assert metrics.winning_trades == 1
        assert metrics.losing_trades == 2
        assert metrics.total_pnl == pytest.approx(-30.0)
        assert metrics.profit_factor == pytest.approx(0.5)
        assert metrics.liquidations == 1
        assert metrics.pnl_by_market == {"BTC": pytest.approx(-20.0), "ETH": pytest.approx(-10.0)}

        btc = tracker.get_metrics(market="btc")
        assert btc.total_trades == 2

    def test_empty_metrics(self):
        metrics = PnLTracker().get_metrics()
        assert metrics.total_trades == 0
        assert metrics.win_rate == 0.0

    def test_max_drawdown(self):
        tracker = PnLTracker()
        for equity in (1000.0, 1100.0, 880.0, 990.0):
            tracker.update_equity(equity)
        assert tracker.max_drawdown_pct == pytest.approx(0.2)

    def test_recent_trades_newest_first(self, ledger):
        tracker = PnLTracker()
        self._settle(tracker, ledger, _make_position(position_id="POS-000001"), 1.0,
                     PositionStatus.CLOSED_MANUAL, closed_at=datetime(2026, 1, 1, 12, 0))
        second = self._settle(tracker, ledger, _make_position(position_id="POS-000002"), 2.0,
                              PositionStatus.CLOSED_MANUAL, closed_at=datetime(2026, 1, 1, 13, 0))
        assert tracker.get_recent_trades(limit=1) == [second]
