"""Shared data models for the FX signal and alert engine.

Rates and indicator inputs are plain floats (the feeds publish binary
floating point and the indicator math is statistical). Account money
(capital, loss budget, margin, journal profit) uses Decimal.
"""

import math
import time
from dataclasses import dataclass, field
from decimal import Decimal
from enum import Enum
from types import MappingProxyType
from typing import Mapping

#: Source id stamped on the last-resort snapshot so consumers can flag non-live data.
OFFLINE_SOURCE = "offline/demo"


@dataclass(frozen=True)
class PairSpec:
    """Static descriptor of a monitored currency pair."""

    id: str
    base: str
    quote: str
    name: str

    @property
    def symbol(self) -> str:
        return f"{self.base}/{self.quote}"


DEFAULT_PAIRS: tuple[PairSpec, ...] = (
    PairSpec(id="USD_JPY", base="USD", quote="JPY", name="US Dollar/Yen"),
    PairSpec(id="EUR_JPY", base="EUR", quote="JPY", name="Euro/Yen"),
    PairSpec(id="GBP_JPY", base="GBP", quote="JPY", name="Pound/Yen"),
    PairSpec(id="AUD_JPY", base="AUD", quote="JPY", name="Aussie/Yen"),
    PairSpec(id="EUR_USD", base="EUR", quote="USD", name="Euro/Dollar"),
    PairSpec(id="GBP_USD", base="GBP", quote="USD", name="Pound/Dollar"),
)


@dataclass(frozen=True)
class RateSnapshot:
    """Units of each currency per 1 unit of the reference currency.

    The rates mapping is wrapped read-only on construction.
    """

    rates: Mapping[str, float]
    source: str
    reference: str
    captured_at: float = field(default_factory=time.time)

    def __post_init__(self) -> None:
        object.__setattr__(self, "rates", MappingProxyType(dict(self.rates)))

    @property
    def is_live(self) -> bool:
        return self.source != OFFLINE_SOURCE

    def get(self, currency: str) -> float | None:
        return self.rates.get(currency)


@dataclass(frozen=True)
class PricePoint:
    """A single observed rate for a pair."""

    rate: float
    timestamp: float

    def __post_init__(self) -> None:
        if not math.isfinite(self.rate) or self.rate <= 0:
            raise ValueError(f"PricePoint rate must be finite and positive, got {self.rate}")


@dataclass(frozen=True)
class RiskPlan:
    """Position size and margin for one trade recommendation."""

    optimal_lots: Decimal
    max_loss_amount: Decimal
    required_margin: Decimal
    stop_distance: Decimal = Decimal("0")


class AlertDirection(str, Enum):
    """Which side of the target price fires a price alert."""

    ABOVE = "above"
    BELOW = "below"


@dataclass
class Subscription:
    """A registered push endpoint. At most one per endpoint URL."""

    endpoint: str
    keys: dict[str, str]
    subscriber_id: str
    subscribed_at: float = field(default_factory=time.time)
    expiration_time: float | None = None

    def to_webpush_info(self) -> dict:
        """Subscription descriptor in the shape the Web Push transport expects."""
        return {"endpoint": self.endpoint, "keys": dict(self.keys)}


@dataclass
class PriceAlert:
    """One-shot user price target.

    Moves from untriggered to triggered exactly once. Triggered alerts are
    kept as a firing record.
    """

    id: str
    subscriber_id: str
    pair_id: str
    target_price: float
    direction: AlertDirection
    triggered: bool = False
    created_at: float = field(default_factory=time.time)
    triggered_at: float | None = None

    def is_satisfied_by(self, rate: float) -> bool:
        if self.direction is AlertDirection.ABOVE:
            return rate >= self.target_price
        return rate <= self.target_price


class TradeDirection(str, Enum):
    BUY = "buy"
    SELL = "sell"


class TradeStatus(str, Enum):
    OPEN = "open"
    CLOSED = "closed"


@dataclass
class TradeRecord:
    """Best-effort journal entry for a trade the user says they took."""

    id: str
    pair_id: str
    pair_name: str
    direction: TradeDirection
    entry_price: float
    stop_loss: float
    take_profit: float
    lots: Decimal
    opened_at: float = field(default_factory=time.time)
    status: TradeStatus = TradeStatus.OPEN
    profit: Decimal = Decimal("0")
    exit_price: float | None = None
    closed_at: float | None = None
