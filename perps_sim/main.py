"""
Main Simulation Loop

Orchestrates the demo account:
1. Restore the account from disk (or start fresh)
2. Refresh prices from the feed
3. Revalue the book and settle triggered positions
4. Persist state
"""

import asyncio
from typing import Optional

from .config import config
from .feeds import PriceFeed, create_feed
from .monitoring import setup_logging, get_logger
from .state_store import StateStore
from .trading import (
    Direction,
    EngineConfig,
    MarketOrder,
    TradingEngine,
    TradingError,
    get_position_summary,
)


logger = get_logger("main")


class PerpsSimulator:
    """
    Main simulation system that coordinates feed, engine and persistence.
    """

    def __init__(
        self,
        engine_config: Optional[EngineConfig] = None,
        feed: Optional[PriceFeed] = None,
        store: Optional[StateStore] = None,
        restore: bool = True,
    ):
        """
        Initialize the simulator.

        Args:
            engine_config: Engine configuration (default from environment)
            feed: Price feed (default built from config.feed.source)
            store: State store (default config.state_file)
            restore: Restore saved state when present
        """
        self.engine_config = engine_config or EngineConfig()
        self.restore = restore

        self._feed = feed
        self._store = store
        self._engine: Optional[TradingEngine] = None
        self._ticks = 0

    @property
    def engine(self) -> TradingEngine:
        if self._engine is None:
            raise RuntimeError("Simulator not initialized")
        return self._engine

    @property
    def feed(self) -> PriceFeed:
        if self._feed is None:
            raise RuntimeError("Simulator not initialized")
        return self._feed

    async def initialize(self):
        """Initialize all components."""
        logger.info("Initializing PerpsSim...")

        if self._feed is None:
            self._feed = create_feed(
                config.feed.source,
                self.engine_config.markets,
                config.feed.history_points,
            )
        if self._store is None:
            self._store = StateStore()

        state = self._store.load() if self.restore else None
        if state:
            self._engine = TradingEngine.from_state(state, config=self.engine_config)
        else:
            self._engine = TradingEngine(config=self.engine_config)

        logger.info(f"Initialized with balance: ${self._engine.balance:.2f}")
        logger.info(f"Settlement policy: {self._engine.ledger.policy.value}")
        logger.info(f"Price feed: {self._feed.name}")

    async def close(self):
        """Persist state and clean up resources."""
        if self._engine is not None and self._store is not None:
            self._store.save(self._engine.to_state())
        if self._feed is not None:
            await self._feed.close()

    async def __aenter__(self):
        await self.initialize()
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()

    async def run_tick(self) -> dict:
        """
        Run one price refresh and revaluation pass.

        Returns:
            Summary of the tick
        """
        prices = await self.feed.refresh()
        settlements = self.engine.on_prices(prices)
        self._store.save(self.engine.to_state())
        self._ticks += 1

        snapshot = self.engine.snapshot()
        summary = {
            "tick": self._ticks,
            "prices": prices,
            "balance": round(snapshot.balance, 2),
            "equity": round(snapshot.equity, 2),
            "open_positions": len(snapshot.positions),
            "closed": [s.position_id for s in settlements],
            "feed_error": self.feed.last_error,
            "all_prices": self.feed.has_all_prices,
        }
        if not summary["all_prices"]:
            missing = [m for m, p in prices.items() if p is None]
            logger.warning(f"No price yet for {missing}, positions there are not revalued")
        logger.debug(f"Tick complete: {summary}")
        return summary

    def report(self, recent: int = 10) -> dict:
        """Open positions, recent closed trades and drawdown for display."""
        tracker = self.engine.tracker
        return {
            "positions": [get_position_summary(p) for p in self.engine.snapshot().positions],
            "recent_trades": [tracker.get_trade_summary(t) for t in tracker.get_recent_trades(recent)],
            "max_drawdown_pct": tracker.max_drawdown_pct,
        }

    async def run(self, ticks: int = 0, interval: Optional[float] = None):
        """
        Run ticks in a loop.

        Args:
            ticks: Number of ticks to run (0 = until cancelled)
            interval: Seconds between ticks (default config.feed.poll_interval)
        """
        interval = config.feed.poll_interval if interval is None else interval
        count = 0
        while ticks <= 0 or count < ticks:
            summary = await self.run_tick()
            count += 1
            logger.info(
                f"Tick {summary['tick']}: balance ${summary['balance']:.2f}, "
                f"equity ${summary['equity']:.2f}, "
                f"{summary['open_positions']} open"
            )
            if ticks <= 0 or count < ticks:
                await asyncio.sleep(interval)


async def main():
    """Main entry point."""
    import argparse

    parser = argparse.ArgumentParser(description="PerpsSim - leveraged perpetuals demo account")
    parser.add_argument("--feed", choices=["synthetic", "coingecko", "fallback"], default=None,
                        help="Price source (default: PERPS_FEED or synthetic)")
    parser.add_argument("--ticks", type=int, default=10,
                        help="Number of price ticks to run (0 = run forever)")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between ticks (default: PERPS_POLL_INTERVAL)")
    parser.add_argument("--balance", type=float, default=None,
                        help="Starting balance for a fresh account")
    parser.add_argument("--reset", action="store_true",
                        help="Clear saved state before starting")
    parser.add_argument("--state-file", default=None,
                        help="Path of the saved state file")
    parser.add_argument("--open", nargs=3, metavar=("MARKET", "DIRECTION", "RISK"),
                        help="Open a market order after the first tick, e.g. --open BTC LONG 50")
    parser.add_argument("--risk-mode", default=None,
                        help="Risk mode for --open (SAFE, BALANCED, DEGENERATE)")

    args = parser.parse_args()

    setup_logging()

    if args.feed:
        config.feed.source = args.feed

    engine_config = EngineConfig()
    if args.balance is not None:
        engine_config.starting_balance = args.balance

    store = StateStore(args.state_file)
    if args.reset:
        store.clear()

    async with PerpsSimulator(engine_config=engine_config, store=store) as sim:
        await sim.run_tick()

        if args.open:
            market, direction, risk = args.open
            try:
                sim.engine.open_position(MarketOrder(
                    market=market,
                    direction=Direction(direction.upper()),
                    risk_amount=float(risk),
                    risk_mode=args.risk_mode,
                ))
            except (TradingError, ValueError) as e:
                logger.error(f"Open rejected: {e}")

        remaining = args.ticks - 1 if args.ticks > 0 else 0
        if args.ticks <= 0 or remaining > 0:
            await sim.run(ticks=remaining, interval=args.interval)

        report = sim.report()
        for position in report["positions"]:
            logger.info(f"Open: {position}")
        for trade in report["recent_trades"]:
            logger.info(f"Closed: {trade}")
        logger.info(f"Max drawdown: {report['max_drawdown_pct']:.1%}")


def cli():
    asyncio.run(main())


if __name__ == "__main__":
    cli()
