"""Rule-based signal scoring with ATR-derived trade levels.

Four independent rules add points to a buy or sell tally:

    RSI        < 30: buy +3     < 40: buy +1.5     > 70: sell +3     > 60: sell +1.5
    MACD       histogram > 0 and MACD > signal: buy +2 (mirror for sell)
    Bollinger  price below lower band: buy +2, above upper band: sell +2
    Averages   price above SMA20 and SMA50: buy +1, below both: sell +1

net = buy - sell maps to a label:

    net >= 5  strong-buy     net >= 2  buy     net <= -5  strong-sell
    net <= -2 sell           otherwise hold

Confidence stays within [50, 95] and grows with |net|. Trades are long when
net > 0 and short otherwise; the stop sits 1.5 ATR and the target 3 ATR
away from the entry (the current price).
"""

from collections.abc import Sequence

from fxsignal.config import RiskSettings
from fxsignal.logging import get_logger
from fxsignal.models import PairSpec, PricePoint
from fxsignal.risk.sizer import RiskSizer
from fxsignal.signals import indicators
from fxsignal.signals.models import Analysis, MacdResult, SignalLabel

logger = get_logger(__name__)

#: Minimum history length for a concrete signal.
MIN_HISTORY = 20

STOP_LOSS_ATR_MULTIPLE = 1.5
TAKE_PROFIT_ATR_MULTIPLE = 3.0

STRONG_THRESHOLD = 5.0
MODERATE_THRESHOLD = 2.0

MIN_CONFIDENCE = 50
MAX_CONFIDENCE = 95

SHORT_MA_PERIOD = 20
LONG_MA_PERIOD = 50


def classify(net_score: float) -> SignalLabel:
    """Map a net score onto the five-level label."""
    if net_score >= STRONG_THRESHOLD:
        return SignalLabel.STRONG_BUY
    if net_score >= MODERATE_THRESHOLD:
        return SignalLabel.BUY
    if net_score <= -STRONG_THRESHOLD:
        return SignalLabel.STRONG_SELL
    if net_score <= -MODERATE_THRESHOLD:
        return SignalLabel.SELL
    return SignalLabel.HOLD


def confidence_for(label: SignalLabel, net_score: float) -> int:
    """Confidence percentage in [50, 95], increasing with |net_score|."""
    magnitude = abs(net_score)
    if label in (SignalLabel.STRONG_BUY, SignalLabel.STRONG_SELL):
        raw = 60 + magnitude * 5
    elif label in (SignalLabel.BUY, SignalLabel.SELL):
        raw = 55 + magnitude * 5
    else:
        raw = MIN_CONFIDENCE
    return int(min(max(round(raw), MIN_CONFIDENCE), MAX_CONFIDENCE))


def insufficient_data(pair_id: str, data_points: int, change_pct: float = 0.0) -> Analysis:
    """Placeholder analysis while fewer than MIN_HISTORY points exist."""
    return Analysis(
        pair_id=pair_id,
        signal=SignalLabel.INSUFFICIENT_DATA,
        confidence=0,
        rsi=indicators.NEUTRAL_RSI,
        macd=MacdResult(),
        atr=0.0,
        reasons=[f"collecting data ({data_points}/{MIN_HISTORY} points)"],
        sufficient_data=False,
        data_points=data_points,
        change_pct=change_pct,
    )


class SignalScorer:
    """Combines indicator outputs into an Analysis for one pair.

    Args:
        sizer: Risk sizer used to attach a RiskPlan to each analysis.
    """

    def __init__(self, sizer: RiskSizer | None = None) -> None:
        self._sizer = sizer or RiskSizer()

    def score(
        self,
        history: Sequence[PricePoint],
        pair: PairSpec,
        risk_settings: RiskSettings,
    ) -> Analysis:
        """Score the pair's history.

        Args:
            history: Price points oldest first (a snapshot from HistoryStore).
            pair: The pair being scored.
            risk_settings: Settings snapshot used for the risk plan.

        Returns:
            A concrete Analysis, or the insufficient-data placeholder when
            len(history) < MIN_HISTORY.
        """
        prices = [p.rate for p in history]
        change_pct = indicators.change_percent(prices)
        if len(history) < MIN_HISTORY:
            return insufficient_data(pair.id, len(history), change_pct)

        current = prices[-1]

        rsi = indicators.rsi(prices)
        macd = indicators.macd(prices)
        bands = indicators.bollinger_bands(prices)
        sma_short = indicators.sma(prices, SHORT_MA_PERIOD)
        sma_long = indicators.sma(prices, min(LONG_MA_PERIOD, len(prices)))
        atr = indicators.atr(prices)

        buy = 0.0
        sell = 0.0
        reasons: list[str] = []

        if rsi < 30:
            buy += 3
            reasons.append("RSI oversold (buying opportunity)")
        elif rsi < 40:
            buy += 1.5
            reasons.append("RSI leaning oversold")
        elif rsi > 70:
            sell += 3
            reasons.append("RSI overbought (selling opportunity)")
        elif rsi > 60:
            sell += 1.5
            reasons.append("RSI leaning overbought")

        if macd.histogram > 0 and macd.macd > macd.signal:
            buy += 2
            reasons.append("MACD bullish crossover")
        elif macd.histogram < 0 and macd.macd < macd.signal:
            sell += 2
            reasons.append("MACD bearish crossover")

        if current < bands.lower:
            buy += 2
            reasons.append("price below lower Bollinger band (rebound expected)")
        elif current > bands.upper:
            sell += 2
            reasons.append("price above upper Bollinger band (pullback expected)")

        if current > sma_short and current > sma_long:
            buy += 1
            reasons.append("price above moving averages (uptrend)")
        elif current < sma_short and current < sma_long:
            sell += 1
            reasons.append("price below moving averages (downtrend)")

        net = buy - sell
        label = classify(net)
        confidence = confidence_for(label, net)

        stop_distance = atr * STOP_LOSS_ATR_MULTIPLE
        target_distance = atr * TAKE_PROFIT_ATR_MULTIPLE
        if net > 0:
            stop_loss = current - stop_distance
            take_profit = current + target_distance
        else:
            stop_loss = current + stop_distance
            take_profit = current - target_distance

        risk_reward = target_distance / stop_distance if stop_distance > 0 else None

        risk_plan = self._sizer.size(current, stop_loss, risk_settings)

        logger.debug(
            "signal_scored",
            pair_id=pair.id,
            signal=label.value,
            net_score=net,
            confidence=confidence,
            rsi=round(rsi, 2),
            atr=atr,
        )

        return Analysis(
            pair_id=pair.id,
            signal=label,
            confidence=confidence,
            rsi=rsi,
            macd=macd,
            atr=atr,
            current_price=current,
            sma_short=sma_short,
            sma_long=sma_long,
            bollinger=bands,
            entry_price=current,
            stop_loss=stop_loss,
            take_profit=take_profit,
            risk_reward=risk_reward,
            net_score=net,
            reasons=reasons,
            risk_plan=risk_plan,
            sufficient_data=True,
            data_points=len(history),
            change_pct=change_pct,
        )

    def resize(self, analysis: Analysis, risk_settings: RiskSettings) -> Analysis:
        """Recompute only the risk plan after a risk settings change."""
        if not analysis.sufficient_data or analysis.entry_price is None or analysis.stop_loss is None:
            return analysis
        analysis.risk_plan = self._sizer.size(
            analysis.entry_price, analysis.stop_loss, risk_settings
        )
        return analysis
