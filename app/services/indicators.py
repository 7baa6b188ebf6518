# app/services/indicators.py
"""
Technical indicators over a close-price series (oldest -> newest).

Every function returns a list with the same length as its input, using None
where the indicator is not defined yet. Insufficient history never raises; it
just yields None values.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Sequence

from app.schemas.stock_data import DailyBar


# --- periods (shared by the chart endpoints and the screening rules) ---
MA_SHORT = 5
MA_MID = 25
MA_LONG = 75

RSI_LIST_PERIOD = 9       # list / card view
RSI_DETAIL_PERIOD = 14    # single stock view

MACD_FAST = 12
MACD_SLOW = 26
MACD_SIGNAL = 9

# display windows (indicators are computed on the full series, then sliced)
LIST_VIEW_DAYS = 45
DETAIL_VIEW_DAYS = 100

# list cards show no RSI below this many bars
LIST_RSI_MIN_BARS = 15


def _round(value: float, ndigits: int | None) -> float:
    return round(value, ndigits) if ndigits is not None else value


def moving_average(closes: Sequence[float], period: int, ndigits: int | None = 2) -> list[float | None]:
    """Simple moving average with a ramp-up window.

    Index 0 is always None. Index i averages the trailing min(i + 1, period)
    closes, so the first period-1 points use a shorter window instead of
    being left undefined.
    """
    result: list[float | None] = []
    for i in range(len(closes)):
        available = min(i + 1, period)
        # at least 2 points are needed for an average
        if available < 2:
            result.append(None)
            continue
        window = closes[i - available + 1 : i + 1]
        result.append(_round(sum(window) / available, ndigits))
    return result


def rsi(closes: Sequence[float], period: int = RSI_LIST_PERIOD, ndigits: int | None = None) -> list[float | None]:
    """Wilder RSI.

    First value at index `period` from the simple average of the first
    `period` gains/losses, then exponential smoothing. When the average loss
    is exactly 0, RS is taken as 100 (RSI = 100 - 100/101), not infinity.
    """
    n = len(closes)
    if period < 1 or n < period + 1:
        return [None] * n

    gains: list[float] = []
    losses: list[float] = []
    for i in range(1, n):
        change = closes[i] - closes[i - 1]
        gains.append(change if change > 0 else 0.0)
        losses.append(-change if change < 0 else 0.0)

    avg_gain = sum(gains[:period]) / period
    avg_loss = sum(losses[:period]) / period

    result: list[float | None] = [None] * period
    for i in range(period, n):
        if i > period:
            # gains[i - 1] is the change from close[i-1] to close[i]
            avg_gain = (avg_gain * (period - 1) + gains[i - 1]) / period
            avg_loss = (avg_loss * (period - 1) + losses[i - 1]) / period
        rs = 100.0 if avg_loss == 0 else avg_gain / avg_loss
        result.append(_round(100.0 - 100.0 / (1.0 + rs), ndigits))
    return result


def ema(values: Sequence[float], period: int) -> list[float | None]:
    """EMA seeded with the simple average of the first `period` values."""
    n = len(values)
    result: list[float | None] = [None] * n
    if period < 1 or n < period:
        return result

    multiplier = 2.0 / (period + 1)
    prev = sum(values[:period]) / period
    result[period - 1] = prev
    for i in range(period, n):
        prev = (values[i] - prev) * multiplier + prev
        result[i] = prev
    return result


@dataclass
class MacdSeries:
    macd: list[float | None]
    signal: list[float | None]
    histogram: list[float | None]


def macd(closes: Sequence[float]) -> MacdSeries:
    """MACD(12, 26) with a 9 period signal line.

    The MACD line starts at index 25, the signal line 8 points later (33).
    """
    n = len(closes)
    if n < MACD_SLOW:
        return MacdSeries(macd=[None] * n, signal=[None] * n, histogram=[None] * n)

    fast = ema(closes, MACD_FAST)
    slow = ema(closes, MACD_SLOW)

    start = MACD_SLOW - 1
    line: list[float | None] = [None] * n
    for i in range(start, n):
        line[i] = fast[i] - slow[i]  # type: ignore[operator]

    signal: list[float | None] = [None] * n
    line_values = [v for v in line[start:] if v is not None]
    for offset, value in enumerate(ema(line_values, MACD_SIGNAL)):
        signal[start + offset] = value

    histogram: list[float | None] = [
        (m - s) if (m is not None and s is not None) else None for m, s in zip(line, signal)
    ]
    return MacdSeries(macd=line, signal=signal, histogram=histogram)


@dataclass
class IndicatorSeries:
    ma_short: list[float | None]
    ma_mid: list[float | None]
    ma_long: list[float | None]
    rsi: list[float | None]
    macd: list[float | None]
    signal: list[float | None]
    histogram: list[float | None]

    def tail(self, days: int) -> "IndicatorSeries":
        return IndicatorSeries(
            ma_short=tail(self.ma_short, days),
            ma_mid=tail(self.ma_mid, days),
            ma_long=tail(self.ma_long, days),
            rsi=tail(self.rsi, days),
            macd=tail(self.macd, days),
            signal=tail(self.signal, days),
            histogram=tail(self.histogram, days),
        )


def tail(series: list, days: int) -> list:
    if days <= 0:
        return []
    return series[-days:]


def closes_of(bars: Sequence[DailyBar]) -> list[float]:
    return [float(b.close) for b in bars]


def compute_indicators(bars: Sequence[DailyBar], rsi_period: int = RSI_DETAIL_PERIOD) -> IndicatorSeries:
    closes = closes_of(bars)
    m = macd(closes)
    return IndicatorSeries(
        ma_short=moving_average(closes, MA_SHORT),
        ma_mid=moving_average(closes, MA_MID),
        ma_long=moving_average(closes, MA_LONG),
        rsi=rsi(closes, rsi_period),
        macd=m.macd,
        signal=m.signal,
        histogram=m.histogram,
    )


def latest_rsi(
    bars: Sequence[DailyBar], period: int = RSI_LIST_PERIOD, ndigits: int | None = 2
) -> float | None:
    """Last defined RSI over the full series, as shown on list cards."""
    if len(bars) < LIST_RSI_MIN_BARS:
        return None
    for value in reversed(rsi(closes_of(bars), period)):
        if value is not None:
            return _round(value, ndigits)
    return None
