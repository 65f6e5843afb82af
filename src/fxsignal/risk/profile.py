"""Process-wide account risk settings with persisted user overrides.

Risk settings change only by explicit user action. Readers get an immutable
snapshot so a RiskPlan is always computed from one consistent set of values.
Persisted overrides that fail validation are discarded with a warning and
the configured defaults stay in force.
"""

from __future__ import annotations

import asyncio
import json
from typing import TYPE_CHECKING

from pydantic import ValidationError

from fxsignal.config import RiskSettings, RiskSettingsUpdate
from fxsignal.exceptions import ConfigurationError
from fxsignal.logging import get_logger

if TYPE_CHECKING:
    from fxsignal.data.store import EngineStore

logger = get_logger(__name__)

_SETTINGS_KEY = "risk_settings"
_USER_FIELDS = ("capital", "risk_percent", "leverage")


def parse_risk_settings(raw: str, defaults: RiskSettings) -> RiskSettings:
    """Parse a persisted JSON override on top of ``defaults``.

    Raises:
        ConfigurationError: the JSON is malformed or fails validation.
    """
    try:
        data = json.loads(raw)
    except json.JSONDecodeError as e:
        raise ConfigurationError(f"risk settings are not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise ConfigurationError("risk settings must be a JSON object")

    merged = defaults.model_dump()
    merged.update({k: v for k, v in data.items() if k in _USER_FIELDS})
    try:
        return RiskSettings(**merged)
    except ValidationError as e:
        raise ConfigurationError(f"invalid risk settings: {e}") from e


class RiskProfile:
    """Holder for the current RiskSettings.

    Args:
        defaults: Settings loaded from the environment.
        store: Optional persistence for user overrides.
    """

    def __init__(self, defaults: RiskSettings, store: EngineStore | None = None) -> None:
        self._defaults = defaults
        self._current = defaults.model_copy()
        self._store = store
        self._lock = asyncio.Lock()

    def snapshot(self) -> RiskSettings:
        """Return an independent copy of the current settings."""
        return self._current.model_copy()

    async def load(self) -> RiskSettings:
        """Apply persisted overrides. Malformed data resets to defaults."""
        if self._store is None:
            return self.snapshot()

        raw = await self._store.load_setting(_SETTINGS_KEY)
        if raw is None:
            return self.snapshot()

        try:
            loaded = parse_risk_settings(raw, self._defaults)
        except ConfigurationError as e:
            logger.warning("risk_settings_reset_to_defaults", error=str(e))
            async with self._lock:
                self._current = self._defaults.model_copy()
            await self._store.delete_setting(_SETTINGS_KEY)
            return self.snapshot()

        async with self._lock:
            self._current = loaded
        logger.info(
            "risk_settings_loaded",
            capital=str(loaded.capital),
            risk_percent=str(loaded.risk_percent),
            leverage=loaded.leverage,
        )
        return self.snapshot()

    async def update(self, change: RiskSettingsUpdate) -> RiskSettings:
        """Apply a user change, persist it and return the new snapshot."""
        async with self._lock:
            merged = self._current.model_dump()
            merged.update(change.model_dump(exclude_none=True))
            try:
                updated = RiskSettings(**merged)
            except ValidationError as e:
                raise ConfigurationError(f"invalid risk settings: {e}") from e
            self._current = updated

        if self._store is not None:
            payload = updated.model_dump(mode="json", include=set(_USER_FIELDS))
            await self._store.save_setting(_SETTINGS_KEY, json.dumps(payload))

        logger.info(
            "risk_settings_updated",
            capital=str(updated.capital),
            risk_percent=str(updated.risk_percent),
            leverage=updated.leverage,
        )
        return updated.model_copy()
