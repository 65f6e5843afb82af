"""Trade journal: user-reported trades and their running statistics."""

from fxsignal.journal.tracker import (
    CloseOutcome,
    JournalStats,
    TradeJournal,
    realized_profit,
    win_rate,
)

__all__ = ["CloseOutcome", "JournalStats", "TradeJournal", "realized_profit", "win_rate"]
