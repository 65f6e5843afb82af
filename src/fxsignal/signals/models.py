"""Signal analysis data models."""

from dataclasses import dataclass, field
from enum import Enum

from fxsignal.models import RiskPlan


class SignalLabel(str, Enum):
    """Five-level directional label plus the collecting-data placeholder."""

    STRONG_BUY = "strong-buy"
    BUY = "buy"
    HOLD = "hold"
    SELL = "sell"
    STRONG_SELL = "strong-sell"
    INSUFFICIENT_DATA = "insufficient-data"


#: Display order for sorting pairs, strongest buy first.
SIGNAL_ORDER: dict[SignalLabel, int] = {
    SignalLabel.STRONG_BUY: 0,
    SignalLabel.BUY: 1,
    SignalLabel.HOLD: 2,
    SignalLabel.SELL: 3,
    SignalLabel.STRONG_SELL: 4,
    SignalLabel.INSUFFICIENT_DATA: 5,
}


@dataclass(frozen=True)
class MacdResult:
    macd: float = 0.0
    signal: float = 0.0
    histogram: float = 0.0


@dataclass(frozen=True)
class BollingerBands:
    upper: float
    middle: float
    lower: float


@dataclass
class Analysis:
    """Per-pair analysis for one update cycle. Never persisted.

    entry/stop/target are None and sufficient_data is False for the
    collecting-data placeholder. risk_reward is None when the stop distance
    is zero. change_pct is the move from the oldest to the newest stored
    point and is reported for placeholders too.
    """

    pair_id: str
    signal: SignalLabel
    confidence: int
    rsi: float
    macd: MacdResult
    atr: float
    current_price: float | None = None
    sma_short: float | None = None
    sma_long: float | None = None
    bollinger: BollingerBands | None = None
    entry_price: float | None = None
    stop_loss: float | None = None
    take_profit: float | None = None
    risk_reward: float | None = None
    net_score: float = 0.0
    reasons: list[str] = field(default_factory=list)
    risk_plan: RiskPlan | None = None
    sufficient_data: bool = True
    data_points: int = 0
    change_pct: float = 0.0

    @property
    def is_long(self) -> bool:
        return self.net_score > 0

    @property
    def recommendation(self) -> str:
        """One-line human summary, e.g. 'buy (confidence 65%)'."""
        if not self.sufficient_data:
            return "collecting data"
        return f"{self.signal.value} (confidence {self.confidence}%)"
