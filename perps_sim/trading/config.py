"""
Trading Configuration

Injected parameters for the trading engine: risk modes, leverage bounds,
instrument set and ledger settlement policy.
"""

from dataclasses import dataclass, field
from enum import Enum

from ..config import DEFAULT_RISK_MODES, config


class SettlementPolicy(Enum):
    """When committed capital leaves the available balance."""
    MARGIN_RESERVED = "margin_reserved"     # Deduct risk at open, return it on close
    MARK_TO_CLOSE = "mark_to_close"         # Deduct nothing at open, credit PnL on close


@dataclass
class EngineConfig:
    """
    Trading engine configuration parameters.

    Risk modes, leverage range and markets are injected rather than hardcoded
    so a different demo account can run with a different book.
    """

    # ========================
    # RISK PROFILE
    # ========================

    # Named risk mode -> leverage multiplier
    risk_modes: dict[str, float] = field(default_factory=lambda: dict(DEFAULT_RISK_MODES))

    # Inclusive (min, max) bound applied to every leverage
    leverage_range: tuple[float, float] = field(
        default_factory=lambda: (config.min_leverage, config.max_leverage)
    )

    # Risk mode used when an order does not name one
    default_risk_mode: str = "BALANCED"

    # ========================
    # INSTRUMENTS
    # ========================

    markets: list[str] = field(default_factory=lambda: list(config.markets))

    # ========================
    # LEDGER
    # ========================

    starting_balance: float = field(
        default_factory=lambda: config.starting_balance
    )

    settlement_policy: SettlementPolicy = field(
        default_factory=lambda: SettlementPolicy(config.settlement_policy)
    )

    def __post_init__(self):
        """Validate configuration values."""
        if isinstance(self.settlement_policy, str):
            self.settlement_policy = SettlementPolicy(self.settlement_policy)
        self.leverage_range = (float(self.leverage_range[0]), float(self.leverage_range[1]))
        self.markets = [m.upper() for m in self.markets]

        low, high = self.leverage_range
        assert low >= 1, "minimum leverage must be at least 1"
        assert low <= high, "leverage_range must be (min, max)"
        assert self.markets, "at least one market must be configured"
        assert self.starting_balance >= 0, "starting_balance must be non-negative"
        assert self.risk_modes, "at least one risk mode must be configured"
        assert all(lev > 0 for lev in self.risk_modes.values()), "risk mode leverage must be positive"
        assert self.default_risk_mode in self.risk_modes, "default_risk_mode must be a configured risk mode"

    @classmethod
    def from_dict(cls, options: dict) -> "EngineConfig":
        """
        Build a config from the recognized option names.

        Accepts ``riskModes``, ``leverageRange`` and ``markets`` plus the
        snake_case engine fields. Missing options keep their defaults.
        """
        kwargs = {}
        if "riskModes" in options:
            kwargs["risk_modes"] = {k.upper(): float(v) for k, v in options["riskModes"].items()}
            if "BALANCED" not in kwargs["risk_modes"] and kwargs["risk_modes"]:
                kwargs["default_risk_mode"] = next(iter(kwargs["risk_modes"]))
        if "leverageRange" in options:
            kwargs["leverage_range"] = tuple(options["leverageRange"])
        if "markets" in options:
            kwargs["markets"] = list(options["markets"])
        for name in ("starting_balance", "settlement_policy", "default_risk_mode"):
            if name in options:
                kwargs[name] = options[name]
        return cls(**kwargs)


# Global default configuration
default_config = EngineConfig()
