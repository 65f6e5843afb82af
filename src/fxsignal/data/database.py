"""Async SQLite database manager for engine state persistence.

Uses aiosqlite for non-blocking database operations with WAL mode so the
API and the monitor loops can read while a cycle writes.
"""

from pathlib import Path
from typing import Self

import aiosqlite

from fxsignal.exceptions import ConfigurationError
from fxsignal.logging import get_logger

logger = get_logger(__name__)

SCHEMA_VERSION = 1

_SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS subscriptions (
    endpoint TEXT PRIMARY KEY,
    subscriber_id TEXT NOT NULL UNIQUE,
    keys_json TEXT NOT NULL,
    subscribed_at REAL NOT NULL,
    expiration_time REAL
);

CREATE TABLE IF NOT EXISTS price_alerts (
    id TEXT PRIMARY KEY,
    subscriber_id TEXT NOT NULL,
    pair_id TEXT NOT NULL,
    target_price TEXT NOT NULL,
    direction TEXT NOT NULL,
    triggered INTEGER NOT NULL DEFAULT 0,
    created_at REAL NOT NULL,
    triggered_at REAL
);
CREATE INDEX IF NOT EXISTS idx_alerts_pair_triggered
    ON price_alerts(pair_id, triggered);

CREATE TABLE IF NOT EXISTS trades (
    id TEXT PRIMARY KEY,
    pair_id TEXT NOT NULL,
    pair_name TEXT NOT NULL,
    direction TEXT NOT NULL,
    entry_price TEXT NOT NULL,
    stop_loss TEXT NOT NULL,
    take_profit TEXT NOT NULL,
    lots TEXT NOT NULL,
    opened_at REAL NOT NULL,
    status TEXT NOT NULL,
    profit TEXT NOT NULL DEFAULT '0',
    exit_price TEXT,
    closed_at REAL
);
CREATE INDEX IF NOT EXISTS idx_trades_opened
    ON trades(opened_at);

CREATE TABLE IF NOT EXISTS settings (
    key TEXT PRIMARY KEY,
    value TEXT NOT NULL,
    updated_at REAL NOT NULL
);
"""


class EngineDatabase:
    """Owns the single aiosqlite connection behind EngineStore.

    ``":memory:"`` is accepted for tests. The schema version is kept in
    ``PRAGMA user_version``; a file written by a newer schema is refused
    rather than read with missing columns.
    """

    def __init__(self, db_path: str = "data/fxsignal.db") -> None:
        self._db_path = db_path
        self._connection: aiosqlite.Connection | None = None

    @property
    def db(self) -> aiosqlite.Connection:
        if self._connection is None:
            raise RuntimeError("EngineDatabase is not open; use connect() or 'async with'")
        return self._connection

    async def connect(self) -> None:
        """Open the file, apply pragmas and bring the schema up to date."""
        if self._db_path != ":memory:":
            Path(self._db_path).parent.mkdir(parents=True, exist_ok=True)

        connection = await aiosqlite.connect(self._db_path)
        try:
            await connection.execute("PRAGMA journal_mode=WAL")
            await connection.execute("PRAGMA synchronous=NORMAL")
            await self._migrate(connection)
        except BaseException:
            await connection.close()
            raise

        self._connection = connection
        logger.info("engine_db_connected", db_path=self._db_path, schema=SCHEMA_VERSION)

    async def close(self) -> None:
        if self._connection is None:
            return
        await self._connection.close()
        self._connection = None
        logger.info("engine_db_closed", db_path=self._db_path)

    async def _migrate(self, connection: aiosqlite.Connection) -> None:
        async with connection.execute("PRAGMA user_version") as cursor:
            row = await cursor.fetchone()
        found = row[0] if row else 0

        if found > SCHEMA_VERSION:
            raise ConfigurationError(
                f"{self._db_path} has schema {found}, this build understands {SCHEMA_VERSION}"
            )

        await connection.executescript(_SCHEMA_SQL)
        if found < SCHEMA_VERSION:
            # PRAGMA does not accept bound parameters
            await connection.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.info("engine_db_schema_upgraded", old=found, new=SCHEMA_VERSION)
        await connection.commit()

    async def __aenter__(self) -> Self:
        await self.connect()
        return self

    async def __aexit__(self, *exc_info: object) -> None:
        await self.close()
