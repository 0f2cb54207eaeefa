"""
Trading Engine Module

Leveraged position book: risk profile, valuation, triggers, ledger and the
engine that orchestrates them.
"""

from .position import (
    Direction,
    Position,
    PositionStatus,
    PositionValuator,
    get_position_summary,
)
from .risk_profile import RiskProfile, CUSTOM_RISK_MODE
from .triggers import TriggerEvaluator, TriggerResult
from .ledger import (
    Account,
    Ledger,
    SettlementResult,
)
from .engine import (
    TradingEngine,
    OrderSpec,
    MarketOrder,
    LimitOrder,
    BookSnapshot,
)
from .errors import TradingError, NoPriceAvailable, InsufficientBalance
from .pnl_tracker import (
    PnLTracker,
    PerformanceMetrics,
    TradeRecord,
)
from .config import EngineConfig, SettlementPolicy, default_config

__all__ = [
    # Positions
    "Direction",
    "Position",
    "PositionStatus",
    "PositionValuator",
    "get_position_summary",
    # Risk profile
    "RiskProfile",
    "CUSTOM_RISK_MODE",
    # Triggers
    "TriggerEvaluator",
    "TriggerResult",
    # Ledger
    "Account",
    "Ledger",
    "SettlementResult",
    # Engine
    "TradingEngine",
    "OrderSpec",
    "MarketOrder",
    "LimitOrder",
    "BookSnapshot",
    # Errors
    "TradingError",
    "NoPriceAvailable",
    "InsufficientBalance",
    # P&L Tracker
    "PnLTracker",
    "PerformanceMetrics",
    "TradeRecord",
    # Config
    "EngineConfig",
    "SettlementPolicy",
    "default_config",
]
