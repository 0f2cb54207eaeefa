"""
PerpsSim - Leveraged Perpetual Futures Demo Account

A simulated position book for a single demo account: risk-sized leveraged
positions, take-profit / stop-loss / liquidation triggers, and an exact
ledger, driven by a synthetic or live price feed.
"""

__version__ = "0.1.0"
