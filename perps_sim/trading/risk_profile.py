"""
Risk Profile

Maps a named risk mode to a leverage multiplier and keeps every leverage
inside the configured bound.
"""

from typing import Optional

from .config import EngineConfig, default_config

CUSTOM_RISK_MODE = "CUSTOM"


class RiskProfile:
    """Lookup of risk mode -> leverage, clamped to the leverage range."""

    def __init__(self, config: EngineConfig = None):
        self.config = config or default_config

    @property
    def modes(self) -> list[str]:
        return list(self.config.risk_modes.keys())

    def clamp(self, leverage: float) -> float:
        low, high = self.config.leverage_range
        return min(max(float(leverage), low), high)

    def leverage_for(self, risk_mode: str) -> float:
        """Leverage for a named risk mode (case-insensitive)."""
        key = risk_mode.upper()
        if key not in self.config.risk_modes:
            raise ValueError(f"Unknown risk mode: {risk_mode}. Valid options: {self.modes}")
        return self.clamp(self.config.risk_modes[key])

    def resolve(self, risk_mode: Optional[str], leverage: Optional[float] = None) -> tuple[float, str]:
        """
        Pick the leverage for an order.

        An explicit leverage overrides the risk mode and is reported as the
        CUSTOM mode, mirroring the advanced order panel.

        Returns:
            (leverage, risk_mode_label)
        """
        if leverage is not None:
            if leverage <= 0:
                raise ValueError(f"Leverage must be positive, got {leverage}")
            return self.clamp(leverage), CUSTOM_RISK_MODE

        mode = (risk_mode or self.config.default_risk_mode).upper()
        return self.leverage_for(mode), mode
