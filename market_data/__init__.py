"""Market-data reconciliation pipeline for the trading-card marketplace."""

__version__ = "0.1.0"
