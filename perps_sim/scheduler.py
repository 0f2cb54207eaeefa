"""
Task Scheduler

Schedules the recurring simulation jobs:
- Price refresh + revaluation pass every poll interval
- Periodic account summary

The tick job runs with max_instances=1 and coalesce=True, so a slow tick
is never overlapped by the next one and missed runs collapse into one.
"""

import asyncio
from datetime import datetime
from typing import Optional
import signal

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger

from .config import config
from .main import PerpsSimulator
from .monitoring import get_logger

logger = get_logger("scheduler")


class TradingScheduler:
    """
    Manages scheduled simulation tasks.
    """

    def __init__(
        self,
        simulator: PerpsSimulator,
        interval: Optional[float] = None,
        summary_minutes: int = 5,
    ):
        """
        Initialize scheduler.

        Args:
            simulator: Initialized PerpsSimulator instance
            interval: Seconds between ticks (default config.feed.poll_interval)
            summary_minutes: Minutes between account summaries
        """
        self.simulator = simulator
        self.interval = interval or config.feed.poll_interval
        self.summary_minutes = summary_minutes
        self.scheduler = AsyncIOScheduler()

        self._running = False
        self._ticks = 0
        self._last_tick_time: Optional[datetime] = None

    def setup_jobs(self):
        """Configure scheduled jobs."""
        self.scheduler.add_job(
            self._run_tick,
            IntervalTrigger(seconds=self.interval),
            id="price_tick",
            name="Price Tick",
            max_instances=1,
            coalesce=True,
        )

        self.scheduler.add_job(
            self._log_summary,
            IntervalTrigger(minutes=self.summary_minutes),
            id="account_summary",
            name="Account Summary",
        )

        logger.info("Scheduled jobs configured")

    async def _run_tick(self):
        """Execute one tick."""
        if not self._running:
            return

        try:
            await self.simulator.run_tick()
            self._ticks += 1
            self._last_tick_time = datetime.now()
        except Exception as e:
            logger.error(f"Tick failed: {e}")

    async def _log_summary(self):
        """Log the account state and performance so far."""
        try:
            engine = self.simulator.engine
            snapshot = engine.snapshot()
            metrics = engine.tracker.get_metrics()
            logger.info(
                f"Account: balance ${snapshot.balance:.2f}, equity ${snapshot.equity:.2f}, "
                f"{len(snapshot.positions)} open | trades {metrics.total_trades}, "
                f"win rate {metrics.win_rate:.0%}, realized {metrics.total_pnl:+.2f}, "
                f"liquidations {metrics.liquidations}, "
                f"max drawdown {engine.tracker.max_drawdown_pct:.1%}"
            )
        except Exception as e:
            logger.error(f"Account summary failed: {e}")

    def start(self):
        """Start the scheduler."""
        if self._running:
            logger.warning("Scheduler already running")
            return

        self._running = True
        self.setup_jobs()
        self.scheduler.start()
        logger.info("Scheduler started")

    def stop(self):
        """Stop the scheduler."""
        if not self._running:
            return

        self._running = False
        self.scheduler.shutdown(wait=False)
        logger.info("Scheduler stopped")

    async def run_forever(self):
        """Run the scheduler until interrupted."""
        self.start()

        loop = asyncio.get_running_loop()

        stop_event = asyncio.Event()

        def shutdown():
            logger.info("Shutdown signal received")
            stop_event.set()

        for sig in (signal.SIGTERM, signal.SIGINT):
            loop.add_signal_handler(sig, shutdown)

        logger.info("Running scheduler... Press Ctrl+C to stop")

        try:
            await stop_event.wait()
        except asyncio.CancelledError:
            pass
        finally:
            self.stop()


async def run_scheduler(interval: Optional[float] = None):
    """
    Main entry point for running the scheduler.

    Args:
        interval: Seconds between ticks
    """
    async with PerpsSimulator() as simulator:
        scheduler = TradingScheduler(simulator, interval=interval)

        logger.info("Running initial tick...")
        await simulator.run_tick()

        await scheduler.run_forever()


if __name__ == "__main__":
    import argparse
    from .monitoring import setup_logging

    parser = argparse.ArgumentParser(description="PerpsSim Scheduler")
    parser.add_argument("--interval", type=float, default=None,
                        help="Seconds between ticks")

    args = parser.parse_args()

    setup_logging()
    asyncio.run(run_scheduler(interval=args.interval))
