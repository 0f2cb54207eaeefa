"""
Logging Configuration

Uses loguru for structured, colorful logging with:
- Console output with colors
- File rotation
- JSON format for trade events
"""

import sys
from pathlib import Path
from loguru import logger

from ..config import config


def setup_logging(
    log_dir: str = "logs",
    log_level: str = None,
    rotation: str = "10 MB",
    retention: str = "30 days",
) -> None:
    """
    Configure logging for the application.

    Args:
        log_dir: Directory for log files
        log_level: Logging level (DEBUG, INFO, WARNING, ERROR)
        rotation: Log file rotation size
        retention: How long to keep old logs
    """
    log_level = log_level or config.log_level

    log_path = Path(log_dir)
    log_path.mkdir(parents=True, exist_ok=True)

    # Remove default handler
    logger.remove()

    logger.add(
        sys.stderr,
        level=log_level,
        format="<green>{time:YYYY-MM-DD HH:mm:ss}</green> | <level>{level: <8}</level> | <cyan>{extra[name]}</cyan>:<cyan>{function}</cyan>:<cyan>{line}</cyan> - <level>{message}</level>",
        colorize=not config.is_production,
        filter=lambda record: not record["extra"].get("trade_log", False),
    )

    logger.add(
        log_path / "perps_sim.log",
        level=log_level,
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    # Trade events (JSON format for analysis)
    logger.add(
        log_path / "trades.json",
        level="INFO",
        format="{message}",
        filter=lambda record: record["extra"].get("trade_log", False),
        rotation="1 day",
        retention="90 days",
        serialize=True,
    )

    logger.add(
        log_path / "errors.log",
        level="ERROR",
        format="{time:YYYY-MM-DD HH:mm:ss} | {level: <8} | {extra[name]}:{function}:{line} - {message}\n{exception}",
        rotation=rotation,
        retention=retention,
        compression="gz",
    )

    logger.info(f"Logging initialized at level {log_level}")


# Records logged without get_logger() still render the {extra[name]} field
logger.configure(extra={"name": "perps_sim"})


def get_logger(name: str = "perps_sim"):
    """
    Get a named logger instance.

    Args:
        name: Logger name for context

    Returns:
        Logger instance bound to the name
    """
    return logger.bind(name=name)


class TradeLogger:
    """
    Specialized logger for position lifecycle events.

    Logs opens, closes and liquidations in a structured format suitable
    for analysis.
    """

    def __init__(self):
        self.logger = logger.bind(trade_log=True, name="trades")

    def log_open(
        self,
        position_id: str,
        market: str,
        direction: str,
        entry_price: float,
        leverage: float,
        risk_amount: float,
        notional_size: float,
        liquidation_price: float,
        order_type: str,
    ):
        """Log a position open."""
        self.logger.info({
            "event": "open",
            "position_id": position_id,
            "market": market,
            "direction": direction,
            "entry_price": entry_price,
            "leverage": leverage,
            "risk_amount": risk_amount,
            "notional_size": notional_size,
            "liquidation_price": liquidation_price,
            "order_type": order_type,
        })

    def log_close(
        self,
        position_id: str,
        market: str,
        status: str,
        exit_price: float,
        pnl: float,
        balance: float,
    ):
        """Log a position close (manual, TP, SL or liquidation)."""
        self.logger.info({
            "event": "liquidation" if status == "liquidated" else "close",
            "position_id": position_id,
            "market": market,
            "status": status,
            "exit_price": exit_price,
            "pnl": pnl,
            "balance": balance,
        })

    def log_close_all(
        self,
        count: int,
        total_pnl: float,
        balance: float,
    ):
        """Log a close-all command."""
        self.logger.info({
            "event": "close_all",
            "count": count,
            "total_pnl": total_pnl,
            "balance": balance,
        })


# Global trade logger instance
trade_logger = TradeLogger()
