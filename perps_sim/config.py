"""
Configuration module for PerpsSim.

Contains the instrument set, risk modes, leverage bounds, price feed
settings and runtime parameters.
"""

from dataclasses import dataclass, field
import os
from dotenv import load_dotenv

load_dotenv()


@dataclass
class MarketConfig:
    """Configuration for a tradeable perpetual market."""
    symbol: str
    name: str
    coingecko_id: str             # Quote id on CoinGecko
    initial_price: float          # Seed price for the synthetic feed
    volatility: float             # Max fractional move per synthetic tick
    seed: int                     # LCG seed for the synthetic feed


# Instrument set - the synthetic defaults match the demo account's seed prices
MARKET_CONFIGS: dict[str, MarketConfig] = {
    "BTC": MarketConfig(
        symbol="BTC",
        name="Bitcoin",
        coingecko_id="bitcoin",
        initial_price=95000.0,
        volatility=0.002,
        seed=12345,
    ),
    "ETH": MarketConfig(
        symbol="ETH",
        name="Ethereum",
        coingecko_id="ethereum",
        initial_price=3500.0,
        volatility=0.003,
        seed=67890,
    ),
    "SOL": MarketConfig(
        symbol="SOL",
        name="Solana",
        coingecko_id="solana",
        initial_price=140.0,
        volatility=0.004,
        seed=11111,
    ),
}

DEFAULT_RISK_MODES: dict[str, float] = {
    "SAFE": 2.0,
    "BALANCED": 5.0,
    "DEGENERATE": 10.0,
}


def _env_markets() -> list[str]:
    raw = os.getenv("PERPS_MARKETS", ",".join(get_all_markets()))
    return [s.strip().upper() for s in raw.split(",") if s.strip()]


@dataclass
class FeedConfig:
    # "synthetic", "coingecko" or "fallback" (coingecko with synthetic backup)
    source: str = field(default_factory=lambda: os.getenv("PERPS_FEED", "synthetic"))

    # Seconds between price refreshes
    poll_interval: float = field(
        default_factory=lambda: float(os.getenv("PERPS_POLL_INTERVAL", "2.0"))
    )

    # Most-recent-N prices kept per market
    history_points: int = field(
        default_factory=lambda: int(os.getenv("PERPS_HISTORY_POINTS", "50"))
    )

    # CoinGecko (no API key required)
    coingecko_base_url: str = field(
        default_factory=lambda: os.getenv("COINGECKO_BASE_URL", "https://api.coingecko.com/api/v3")
    )
    request_timeout: float = 10.0


@dataclass
class Config:
    feed: FeedConfig = field(default_factory=FeedConfig)

    markets: list[str] = field(default_factory=_env_markets)

    starting_balance: float = field(
        default_factory=lambda: float(os.getenv("PERPS_STARTING_BALANCE", "1000"))
    )
    settlement_policy: str = field(
        default_factory=lambda: os.getenv("PERPS_SETTLEMENT_POLICY", "margin_reserved")
    )
    min_leverage: float = field(
        default_factory=lambda: float(os.getenv("PERPS_MIN_LEVERAGE", "1"))
    )
    max_leverage: float = field(
        default_factory=lambda: float(os.getenv("PERPS_MAX_LEVERAGE", "100"))
    )

    state_file: str = field(
        default_factory=lambda: os.getenv("PERPS_STATE_FILE", "data/perps_state.json")
    )

    log_level: str = field(
        default_factory=lambda: os.getenv("LOG_LEVEL", "INFO")
    )
    env: str = field(
        default_factory=lambda: os.getenv("ENV", "development")
    )

    @property
    def is_production(self) -> bool:
        return self.env == "production"


def get_market_config(symbol: str) -> MarketConfig:
    symbol = symbol.upper()
    if symbol not in MARKET_CONFIGS:
        raise ValueError(f"Unknown market: {symbol}. Valid options: {list(MARKET_CONFIGS.keys())}")
    return MARKET_CONFIGS[symbol]


def get_all_markets() -> list[str]:
    return list(MARKET_CONFIGS.keys())


# Global configuration instance
config = Config()
