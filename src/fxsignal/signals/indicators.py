"""Technical indicators over a single rate series.

Every function is pure and total: short or empty input yields a neutral
default instead of an exception (RSI 50, ATR MIN_ATR, zero MACD, flat bands).

The feeds publish a single traded rate per tick, not OHLC candles. ATR
therefore uses the rate as high, low and close at once, which reduces the
true range of an interval to |rate[i] - rate[i-1]|. This is an approximation
of Wilder's ATR, not a defect.
"""

import math
from collections.abc import Sequence

from fxsignal.signals.models import BollingerBands, MacdResult

#: ATR reported when there is not enough history for a real value.
MIN_ATR = 0.01

#: Neutral RSI reported when there is not enough history.
NEUTRAL_RSI = 50.0


def sma(prices: Sequence[float], period: int) -> float:
    """Simple moving average of the last min(period, len) prices. 0.0 when empty."""
    if not prices or period < 1:
        return 0.0
    window = prices[-period:]
    return sum(window) / len(window)


def ema_series(prices: Sequence[float], period: int) -> list[float]:
    """Exponential moving average at every point, seeded with the first price.

        k = 2 / (period + 1)
        ema[0] = price[0]
        ema[i] = price[i] * k + ema[i-1] * (1 - k)

    Returns a list the same length as the input. Empty input -> empty list.
    """
    if not prices:
        return []

    k = 2.0 / (period + 1)
    result = [float(prices[0])]
    for price in prices[1:]:
        result.append(price * k + result[-1] * (1.0 - k))
    return result


def ema(prices: Sequence[float], period: int) -> float:
    """Latest EMA value. 0.0 when empty."""
    series = ema_series(prices, period)
    return series[-1] if series else 0.0


def rsi(prices: Sequence[float], period: int = 14) -> float:
    """Relative Strength Index over the trailing ``period`` deltas.

    Uses simple averages of gains and losses (not Wilder smoothing).
    Returns 50 when fewer than period + 1 prices exist and 100 when the
    average loss is zero. Result is always within [0, 100].
    """
    if period < 1 or len(prices) < period + 1:
        return NEUTRAL_RSI

    window = prices[-(period + 1):]
    gains = 0.0
    losses = 0.0
    for prev, curr in zip(window, window[1:]):
        change = curr - prev
        if change > 0:
            gains += change
        else:
            losses -= change

    avg_gain = gains / period
    avg_loss = losses / period
    if avg_loss == 0:
        return 100.0

    rs = avg_gain / avg_loss
    value = 100.0 - 100.0 / (1.0 + rs)
    return min(max(value, 0.0), 100.0)


def macd(
    prices: Sequence[float],
    fast: int = 12,
    slow: int = 26,
    signal_period: int = 9,
) -> MacdResult:
    """MACD line, signal line and histogram.

    MACD line = EMA(fast) - EMA(slow) at every point; the signal line is the
    ``signal_period`` EMA of that series, seeded the same way as ema_series.
    """
    if len(prices) < 2:
        return MacdResult()

    fast_series = ema_series(prices, fast)
    slow_series = ema_series(prices, slow)
    macd_series = [f - s for f, s in zip(fast_series, slow_series)]

    macd_line = macd_series[-1]
    signal_line = ema(macd_series, signal_period)
    return MacdResult(
        macd=macd_line,
        signal=signal_line,
        histogram=macd_line - signal_line,
    )


def bollinger_bands(
    prices: Sequence[float], period: int = 20, multiplier: float = 2.0
) -> BollingerBands:
    """Bollinger Bands over the last min(period, len) prices.

    middle = SMA, upper/lower = middle +/- multiplier * population stddev.
    Empty input -> all zeros.
    """
    if not prices:
        return BollingerBands(upper=0.0, middle=0.0, lower=0.0)

    window = prices[-period:]
    middle = sum(window) / len(window)
    variance = sum((p - middle) ** 2 for p in window) / len(window)
    std_dev = math.sqrt(variance)
    return BollingerBands(
        upper=middle + multiplier * std_dev,
        middle=middle,
        lower=middle - multiplier * std_dev,
    )


def true_ranges(prices: Sequence[float]) -> list[float]:
    """True range of each interval using the rate as high, low and close."""
    ranges = []
    for prev_close, rate in zip(prices, prices[1:]):
        high = low = rate
        ranges.append(max(high - low, abs(high - prev_close), abs(low - prev_close)))
    return ranges


def atr(prices: Sequence[float], period: int = 14) -> float:
    """Average True Range over the trailing ``period`` intervals.

    Returns MIN_ATR when fewer than period + 1 prices exist. A perfectly
    flat series yields 0.0; callers must guard the resulting zero distances.
    """
    if period < 1 or len(prices) < period + 1:
        return MIN_ATR

    recent = true_ranges(prices[-(period + 1):])
    return sum(recent) / len(recent)


def change_percent(prices: Sequence[float]) -> float:
    """Percent move from the oldest to the newest price. 0.0 below two prices."""
    if len(prices) < 2 or prices[0] == 0:
        return 0.0
    return (prices[-1] - prices[0]) / prices[0] * 100
