# app/services/screening_service.py
from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Sequence

from app.schemas.stock_data import DailyBar, Dataset, StockSnapshot
from app.services.indicators import MA_LONG, MA_MID, MA_SHORT, closes_of, moving_average


# 75MA needs the latest day included
MIN_BARS = MA_LONG + 1


class ScreeningBucket(str, Enum):
    TURNBACK = "turnback"
    CROSS_V = "cross_v"


@dataclass
class Classification:
    turnback: bool
    cross_v: bool


def _latest_mas(bars: Sequence[DailyBar], periods: Sequence[int]) -> list[float | None] | None:
    """MAs at the latest bar, or None when there is not enough history."""
    if len(bars) < MIN_BARS:
        return None
    closes = closes_of(bars)
    return [moving_average(closes, p)[-1] for p in periods]


def _straddles(high: float, low: float, ma: float) -> bool:
    # down through the line within the day, or the inverted case
    cross_down = high > ma and low < ma
    cross_up = high < ma and low > ma
    return cross_down or cross_up


def is_turnback(bars: Sequence[DailyBar]) -> bool:
    """Latest candle (wicks included) crosses the 25MA or the 75MA."""
    mas = _latest_mas(bars, (MA_MID, MA_LONG))
    if mas is None:
        return False
    ma25, ma75 = mas
    if ma25 is None or ma75 is None:
        return False

    latest = bars[-1]
    return _straddles(latest.high, latest.low, ma25) or _straddles(latest.high, latest.low, ma75)


def is_cross_v(bars: Sequence[DailyBar]) -> bool:
    """Latest 5MA is below the 25MA or below the 75MA."""
    mas = _latest_mas(bars, (MA_SHORT, MA_MID, MA_LONG))
    if mas is None:
        return False
    ma5, ma25, ma75 = mas
    if ma5 is None or ma25 is None or ma75 is None:
        return False
    return ma5 < ma25 or ma5 < ma75


def classify(bars: Sequence[DailyBar]) -> Classification:
    return Classification(turnback=is_turnback(bars), cross_v=is_cross_v(bars))


_PREDICATES = {
    ScreeningBucket.TURNBACK: is_turnback,
    ScreeningBucket.CROSS_V: is_cross_v,
}


def matches(bucket: ScreeningBucket, bars: Sequence[DailyBar]) -> bool:
    return _PREDICATES[ScreeningBucket(bucket)](bars)


def screen_dataset(dataset: Dataset | None, bucket: ScreeningBucket) -> list[StockSnapshot]:
    """All stocks of the dataset currently in `bucket`, in dataset order."""
    if dataset is None:
        return []

    selected: list[StockSnapshot] = []
    for stock in dataset.stocks:
        bars = dataset.daily_data_map.get(stock.code)
        if bars and matches(bucket, bars):
            selected.append(stock)
    return selected
