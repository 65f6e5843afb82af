"""Signal analysis module.

Provides the indicator library (SMA, EMA, RSI, MACD, Bollinger Bands, ATR),
the analysis data models and the SignalScorer that turns a pair's rate
history into a labelled, risk-sized trade recommendation.
"""

from fxsignal.signals.indicators import atr, bollinger_bands, ema, ema_series, macd, rsi, sma
from fxsignal.signals.models import Analysis, BollingerBands, MacdResult, SignalLabel
from fxsignal.signals.scorer import MIN_HISTORY, SignalScorer

__all__ = [
    "Analysis",
    "BollingerBands",
    "MIN_HISTORY",
    "MacdResult",
    "SignalLabel",
    "SignalScorer",
    "atr",
    "bollinger_bands",
    "ema",
    "ema_series",
    "macd",
    "rsi",
    "sma",
]
