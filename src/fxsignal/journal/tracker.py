"""Best-effort journal of trades the user reports having taken.

A trade is recorded from the current Analysis of a pair (entry, stop,
target and suggested lots are copied at that moment) and later closed by
the user as a profit or a loss. The realized amount is the price distance
to the target (profit) or to the stop (loss) times lots times lot size.

This is a convenience record, not a ledger: no order is placed and no
fill price is verified.
"""

from __future__ import annotations

import asyncio
import time
import uuid
from dataclasses import dataclass
from decimal import Decimal
from enum import Enum
from typing import TYPE_CHECKING

from fxsignal.exceptions import TradeNotFound
from fxsignal.logging import get_logger
from fxsignal.models import TradeDirection, TradeRecord, TradeStatus
from fxsignal.risk.sizer import to_decimal

if TYPE_CHECKING:
    from fxsignal.data.store import EngineStore
    from fxsignal.models import PairSpec
    from fxsignal.signals.models import Analysis

logger = get_logger(__name__)

_MONEY_QUANTUM = Decimal("0.01")


class CloseOutcome(str, Enum):
    PROFIT = "profit"
    LOSS = "loss"


@dataclass(frozen=True)
class JournalStats:
    total_trades: int
    open_trades: int
    closed_trades: int
    win_rate: Decimal  # percent, 0 when nothing is closed
    total_profit: Decimal


def realized_profit(trade: TradeRecord, outcome: CloseOutcome, lot_size: Decimal) -> Decimal:
    """Amount booked when ``trade`` closes with ``outcome``.

    Profit closes are positive and loss closes negative for either direction.
    """
    if outcome is CloseOutcome.PROFIT:
        distance = abs(to_decimal(trade.take_profit) - to_decimal(trade.entry_price))
        sign = Decimal("1")
    else:
        distance = abs(to_decimal(trade.stop_loss) - to_decimal(trade.entry_price))
        sign = Decimal("-1")
    return (sign * distance * trade.lots * lot_size).quantize(_MONEY_QUANTUM)


def win_rate(trades: list[TradeRecord]) -> Decimal:
    """Percentage of closed trades with positive profit."""
    closed = [t for t in trades if t.status is TradeStatus.CLOSED]
    if not closed:
        return Decimal("0")
    wins = sum(1 for t in closed if t.profit > 0)
    return (Decimal(wins) / Decimal(len(closed)) * 100).quantize(Decimal("0.1"))


class TradeJournal:
    """Records and closes journal trades, with optional SQLite write-through.

    Args:
        lot_size: Units per lot used for the realized amount.
        store: Optional persistence.
    """

    def __init__(self, lot_size: Decimal, store: EngineStore | None = None) -> None:
        self._lot_size = lot_size
        self._store = store
        self._trades: dict[str, TradeRecord] = {}
        self._lock = asyncio.Lock()

    async def load(self) -> None:
        if self._store is None:
            return
        trades = await self._store.load_trades()
        async with self._lock:
            self._trades = {t.id: t for t in trades}
        logger.info("journal_loaded", trades=len(trades))

    async def record_trade(
        self, pair: PairSpec, analysis: Analysis, direction: TradeDirection
    ) -> TradeRecord:
        """Record a trade at the analysis' entry, stop and target.

        Raises:
            ValueError: the analysis has no trade parameters yet.
        """
        if (
            not analysis.sufficient_data
            or analysis.entry_price is None
            or analysis.stop_loss is None
            or analysis.take_profit is None
        ):
            raise ValueError(f"No trade parameters available for {pair.id} yet")

        lots = analysis.risk_plan.optimal_lots if analysis.risk_plan else Decimal("0.01")
        trade = TradeRecord(
            id=uuid.uuid4().hex,
            pair_id=pair.id,
            pair_name=pair.name,
            direction=direction,
            entry_price=analysis.entry_price,
            stop_loss=analysis.stop_loss,
            take_profit=analysis.take_profit,
            lots=lots,
        )
        async with self._lock:
            self._trades[trade.id] = trade
            if self._store is not None:
                await self._store.save_trade(trade)

        logger.info(
            "trade_recorded",
            trade_id=trade.id,
            pair_id=pair.id,
            direction=direction.value,
            entry_price=trade.entry_price,
            lots=str(lots),
        )
        return trade

    async def close_trade(
        self,
        trade_id: str,
        outcome: CloseOutcome,
        exit_price: float | None = None,
    ) -> TradeRecord:
        """Close an open trade as a profit or a loss.

        exit_price defaults to the target (profit) or the stop (loss).
        Closing an already-closed trade returns it unchanged.

        Raises:
            TradeNotFound: trade_id is unknown.
        """
        async with self._lock:
            trade = self._trades.get(trade_id)
            if trade is None:
                raise TradeNotFound(f"unknown trade: {trade_id}")
            if trade.status is TradeStatus.CLOSED:
                return trade

            trade.profit = realized_profit(trade, outcome, self._lot_size)
            trade.status = TradeStatus.CLOSED
            if exit_price is None:
                exit_price = trade.take_profit if outcome is CloseOutcome.PROFIT else trade.stop_loss
            trade.exit_price = exit_price
            trade.closed_at = time.time()
            if self._store is not None:
                await self._store.save_trade(trade)

        logger.info(
            "trade_closed",
            trade_id=trade_id,
            outcome=outcome.value,
            profit=str(trade.profit),
        )
        return trade

    async def list_trades(self, limit: int | None = None) -> list[TradeRecord]:
        """Trades newest first."""
        async with self._lock:
            trades = sorted(self._trades.values(), key=lambda t: t.opened_at, reverse=True)
        return trades[:limit] if limit is not None else trades

    async def get_stats(self) -> JournalStats:
        async with self._lock:
            trades = list(self._trades.values())
        closed = [t for t in trades if t.status is TradeStatus.CLOSED]
        return JournalStats(
            total_trades=len(trades),
            open_trades=len(trades) - len(closed),
            closed_trades=len(closed),
            win_rate=win_rate(trades),
            total_profit=sum((t.profit for t in closed), Decimal("0")),
        )
