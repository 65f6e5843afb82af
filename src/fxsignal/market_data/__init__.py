"""Market data layer -- rolling per-pair price history."""

from fxsignal.market_data.history import HistoryStore

__all__ = ["HistoryStore"]
