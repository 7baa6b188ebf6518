"""
Stock data records.

Persisted JSON uses camelCase keys (closePrice, dailyDataMap, ...); python code
uses the snake_case attribute names. Both are accepted on input.
"""
from __future__ import annotations

import datetime as dt

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel


DATA_VERSION = "1.2.0"
# older dataset versions that can be upgraded in place
LEGACY_DATA_VERSIONS = ("1.0.0", "1.1.0")


class CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DailyBar(CamelModel):
    date: dt.date
    open: float = Field(gt=0)
    high: float = Field(gt=0)
    low: float = Field(gt=0)
    close: float = Field(gt=0)
    volume: float = Field(ge=0)


class StockSnapshot(CamelModel):
    code: str
    name: str
    close_price: float
    open_price: float
    high_price: float
    low_price: float
    previous_close_price: float
    last_updated: dt.date

    @property
    def price_change(self) -> float:
        return self.close_price - self.previous_close_price

    @property
    def price_change_percent(self) -> float | None:
        if not self.previous_close_price:
            return None
        return self.price_change / self.previous_close_price


class AffectedStock(CamelModel):
    code: str
    name: str = ""
    null_dates: list[str] = Field(default_factory=list)


class NullDataSummary(CamelModel):
    """Missing-day report produced by one batch fetch."""

    total_stocks_with_null_data: int = 0
    total_null_days: int = 0
    affected_stocks: list[AffectedStock] = Field(default_factory=list)


class NullDataWarning(CamelModel):
    """Missing-day report as stored with the dataset."""

    has_null_data: bool = False
    total_stocks_with_null_data: int = 0
    total_null_days: int = 0
    last_occurrence: str = ""
    summary: str = ""


class Dataset(CamelModel):
    stocks: list[StockSnapshot] = Field(default_factory=list)
    daily_data_map: dict[str, list[DailyBar]] = Field(default_factory=dict)
    last_update: str
    version: str = DATA_VERSION
    total_stocks: int = 0
    is_compressed: bool = False
    null_data_warning: NullDataWarning | None = None

    @property
    def snapshots(self) -> dict[str, StockSnapshot]:
        return {s.code: s for s in self.stocks}


class StockEntry(CamelModel):
    stock: StockSnapshot
    daily_data: list[DailyBar]
