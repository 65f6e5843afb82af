"""Notification payload variants and their wire serialization.

The service worker on the client reads a fixed JSON shape:

    {
      "title": str, "body": str, "icon": str, "tag": str,
      "requireInteraction": bool,
      "data": {"type": "volatility" | "user-alert" | "test", ...}
    }

Each variant carries only the fields relevant to its trigger and renders
them through to_wire(); field names on the wire are camelCase and must not
change.
"""

import json
import time
from dataclasses import dataclass, field
from typing import Any, Union

DEFAULT_ICON = "/icon-192.png"


@dataclass(frozen=True)
class VolatilityPayload:
    """Broadcast when a pair moved at least the volatility threshold in one tick."""

    pair_id: str
    pair_name: str
    change_pct: float
    rate: float
    icon: str = DEFAULT_ICON
    badge: str | None = None

    kind = "volatility"

    def to_wire(self) -> dict[str, Any]:
        rising = self.change_pct > 0
        wire: dict[str, Any] = {
            "title": f"{'📈' if rising else '📉'} {self.pair_name} {'up' if rising else 'down'}",
            "body": f"{abs(self.change_pct):.2f}% move | now: {self.rate:.3f}",
            "icon": self.icon,
            "tag": f"volatility-{self.pair_id}",
            "requireInteraction": True,
            "data": {
                "type": self.kind,
                "pairId": self.pair_id,
                "pairName": self.pair_name,
                "change": self.change_pct,
                "rate": self.rate,
            },
        }
        if self.badge:
            wire["badge"] = self.badge
        return wire


@dataclass(frozen=True)
class UserAlertPayload:
    """Sent to one subscriber when their price alert fires."""

    pair_id: str
    pair_name: str
    alert_id: str
    target_price: float
    current_rate: float
    icon: str = DEFAULT_ICON

    kind = "user-alert"

    def to_wire(self) -> dict[str, Any]:
        return {
            "title": f"🎯 {self.pair_name} target reached",
            "body": f"Target {self.target_price} reached | now: {self.current_rate:.3f}",
            "icon": self.icon,
            "tag": f"alert-{self.alert_id}",
            "requireInteraction": True,
            "data": {
                "type": self.kind,
                "pairId": self.pair_id,
                "alertId": self.alert_id,
                "targetPrice": self.target_price,
                "currentRate": self.current_rate,
                "rate": self.current_rate,
            },
        }


@dataclass(frozen=True)
class TestPayload:
    """Operator-triggered delivery check."""

    __test__ = False  # not a pytest test class

    timestamp: float = field(default_factory=time.time)
    icon: str = DEFAULT_ICON

    kind = "test"

    def to_wire(self) -> dict[str, Any]:
        return {
            "title": "💹 FX Signal",
            "body": "Test notification delivered successfully!",
            "icon": self.icon,
            "tag": "test",
            "requireInteraction": False,
            "data": {"type": self.kind, "timestamp": int(self.timestamp * 1000)},
        }


Payload = Union[VolatilityPayload, UserAlertPayload, TestPayload]


def serialize(payload: Payload) -> str:
    """Render a payload to the JSON string handed to the push transport."""
    return json.dumps(payload.to_wire(), ensure_ascii=False)
