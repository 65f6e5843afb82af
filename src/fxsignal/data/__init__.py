"""Engine state persistence.

EngineDatabase manages the aiosqlite connection and schema; EngineStore
provides typed read/write methods for subscriptions, price alerts, journal
trades and user settings.
"""

from fxsignal.data.database import EngineDatabase
from fxsignal.data.store import EngineStore

__all__ = ["EngineDatabase", "EngineStore"]
