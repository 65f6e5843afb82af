"""Typed SQLite read/write abstraction for engine state.

Persists subscriptions, price alerts, journal trades and user settings.
All SQL is isolated behind this interface. Prices and money are stored as
TEXT and restored as float/Decimal on read.

A row that cannot be parsed on load is skipped and logged; it never stops
startup.
"""

import json
import time
from decimal import Decimal, InvalidOperation

from fxsignal.data.database import EngineDatabase
from fxsignal.logging import get_logger
from fxsignal.models import (
    AlertDirection,
    PriceAlert,
    Subscription,
    TradeDirection,
    TradeRecord,
    TradeStatus,
)

logger = get_logger(__name__)


class EngineStore:
    """Async SQLite store for registry, journal and settings state.

    Args:
        database: Connected EngineDatabase.
    """

    def __init__(self, database: EngineDatabase) -> None:
        self._database = database

    # ──────────────────────────────────────────────
    # Subscriptions
    # ──────────────────────────────────────────────

    async def save_subscription(self, subscription: Subscription) -> None:
        """Insert or replace a subscription keyed by endpoint."""
        await self._database.db.execute(
            "INSERT OR REPLACE INTO subscriptions "
            "(endpoint, subscriber_id, keys_json, subscribed_at, expiration_time) "
            "VALUES (?, ?, ?, ?, ?)",
            (
                subscription.endpoint,
                subscription.subscriber_id,
                json.dumps(subscription.keys),
                subscription.subscribed_at,
                subscription.expiration_time,
            ),
        )
        await self._database.db.commit()

    async def delete_subscriptions(self, endpoints: list[str]) -> int:
        """Delete subscriptions by endpoint. Returns the number of rows removed."""
        if not endpoints:
            return 0
        cursor = await self._database.db.executemany(
            "DELETE FROM subscriptions WHERE endpoint = ?",
            [(e,) for e in endpoints],
        )
        await self._database.db.commit()
        return cursor.rowcount

    async def load_subscriptions(self) -> list[Subscription]:
        cursor = await self._database.db.execute(
            "SELECT endpoint, subscriber_id, keys_json, subscribed_at, expiration_time "
            "FROM subscriptions ORDER BY subscribed_at ASC"
        )
        rows = await cursor.fetchall()
        result: list[Subscription] = []
        for row in rows:
            try:
                keys = json.loads(row[2])
                if not isinstance(keys, dict):
                    raise ValueError("keys_json is not an object")
                result.append(
                    Subscription(
                        endpoint=row[0],
                        subscriber_id=row[1],
                        keys={str(k): str(v) for k, v in keys.items()},
                        subscribed_at=float(row[3]),
                        expiration_time=row[4],
                    )
                )
            except (ValueError, TypeError) as e:
                logger.warning("malformed_subscription_row_skipped", endpoint=row[0], error=str(e))
        return result

    # ──────────────────────────────────────────────
    # Price alerts
    # ──────────────────────────────────────────────

    async def save_alert(self, alert: PriceAlert) -> None:
        await self._database.db.execute(
            "INSERT OR REPLACE INTO price_alerts "
            "(id, subscriber_id, pair_id, target_price, direction, triggered, "
            "created_at, triggered_at) VALUES (?, ?, ?, ?, ?, ?, ?, ?)",
            (
                alert.id,
                alert.subscriber_id,
                alert.pair_id,
                repr(alert.target_price),
                alert.direction.value,
                int(alert.triggered),
                alert.created_at,
                alert.triggered_at,
            ),
        )
        await self._database.db.commit()

    async def mark_alerts_triggered(self, alerts: list[PriceAlert]) -> None:
        """Persist the triggered flag and timestamp of already-mutated alerts."""
        if not alerts:
            return
        await self._database.db.executemany(
            "UPDATE price_alerts SET triggered = 1, triggered_at = ? WHERE id = ?",
            [(a.triggered_at, a.id) for a in alerts],
        )
        await self._database.db.commit()

    async def load_alerts(self) -> list[PriceAlert]:
        cursor = await self._database.db.execute(
            "SELECT id, subscriber_id, pair_id, target_price, direction, triggered, "
            "created_at, triggered_at FROM price_alerts ORDER BY created_at ASC"
        )
        rows = await cursor.fetchall()
        result: list[PriceAlert] = []
        for row in rows:
            try:
                result.append(
                    PriceAlert(
                        id=row[0],
                        subscriber_id=row[1],
                        pair_id=row[2],
                        target_price=float(row[3]),
                        direction=AlertDirection(row[4]),
                        triggered=bool(row[5]),
                        created_at=float(row[6]),
                        triggered_at=row[7],
                    )
                )
            except (ValueError, TypeError) as e:
                logger.warning("malformed_alert_row_skipped", alert_id=row[0], error=str(e))
        return result

    # ──────────────────────────────────────────────
    # Trades
    # ──────────────────────────────────────────────

    async def save_trade(self, trade: TradeRecord) -> None:
        await self._database.db.execute(
            "INSERT OR REPLACE INTO trades "
            "(id, pair_id, pair_name, direction, entry_price, stop_loss, take_profit, "
            "lots, opened_at, status, profit, exit_price, closed_at) "
            "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
            (
                trade.id,
                trade.pair_id,
                trade.pair_name,
                trade.direction.value,
                repr(trade.entry_price),
                repr(trade.stop_loss),
                repr(trade.take_profit),
                str(trade.lots),
                trade.opened_at,
                trade.status.value,
                str(trade.profit),
                repr(trade.exit_price) if trade.exit_price is not None else None,
                trade.closed_at,
            ),
        )
        await self._database.db.commit()

    async def load_trades(self) -> list[TradeRecord]:
        """Load all trades, newest first."""
        cursor = await self._database.db.execute(
            "SELECT id, pair_id, pair_name, direction, entry_price, stop_loss, take_profit, "
            "lots, opened_at, status, profit, exit_price, closed_at "
            "FROM trades ORDER BY opened_at DESC"
        )
        rows = await cursor.fetchall()
        result: list[TradeRecord] = []
        for row in rows:
            try:
                result.append(
                    TradeRecord(
                        id=row[0],
                        pair_id=row[1],
                        pair_name=row[2],
                        direction=TradeDirection(row[3]),
                        entry_price=float(row[4]),
                        stop_loss=float(row[5]),
                        take_profit=float(row[6]),
                        lots=Decimal(row[7]),
                        opened_at=float(row[8]),
                        status=TradeStatus(row[9]),
                        profit=Decimal(row[10]),
                        exit_price=float(row[11]) if row[11] is not None else None,
                        closed_at=row[12],
                    )
                )
            except (ValueError, TypeError, InvalidOperation) as e:
                logger.warning("malformed_trade_row_skipped", trade_id=row[0], error=str(e))
        return result

    # ──────────────────────────────────────────────
    # Settings
    # ──────────────────────────────────────────────

    async def load_setting(self, key: str) -> str | None:
        cursor = await self._database.db.execute(
            "SELECT value FROM settings WHERE key = ?", (key,)
        )
        row = await cursor.fetchone()
        return row[0] if row is not None else None

    async def save_setting(self, key: str, value: str) -> None:
        await self._database.db.execute(
            "INSERT OR REPLACE INTO settings (key, value, updated_at) VALUES (?, ?, ?)",
            (key, value, time.time()),
        )
        await self._database.db.commit()

    async def delete_setting(self, key: str) -> None:
        await self._database.db.execute("DELETE FROM settings WHERE key = ?", (key,))
        await self._database.db.commit()
