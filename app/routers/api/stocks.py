# app/routers/api/stocks.py
from __future__ import annotations

from typing import Any, Dict, List, Sequence

from fastapi import APIRouter, Depends, HTTPException, Query

from app.routers.deps import get_dataset_store
from app.schemas.stock_data import DailyBar, StockSnapshot
from app.services.dataset_store import DatasetStore
from app.services.indicators import (
    DETAIL_VIEW_DAYS,
    LIST_VIEW_DAYS,
    RSI_DETAIL_PERIOD,
    RSI_LIST_PERIOD,
    compute_indicators,
    latest_rsi,
    tail,
)
from app.services.screening_service import classify

router = APIRouter(prefix="/api/stocks", tags=["stocks"])


def chart_window(bars: Sequence[DailyBar], days: int, rsi_period: int) -> Dict[str, Any]:
    """Bars and indicator series for the last `days`, computed on the full history."""
    indicators = compute_indicators(bars, rsi_period=rsi_period).tail(days)
    return {
        "bars": [b.model_dump(mode="json") for b in tail(list(bars), days)],
        "indicators": {
            "ma5": indicators.ma_short,
            "ma25": indicators.ma_mid,
            "ma75": indicators.ma_long,
            "rsi": indicators.rsi,
            "rsi_period": rsi_period,
            "macd": indicators.macd,
            "signal": indicators.signal,
            "histogram": indicators.histogram,
        },
    }


def stock_row(
    stock: StockSnapshot,
    bars: Sequence[DailyBar] | None = None,
    chart: bool = False,
) -> Dict[str, Any]:
    """Snapshot plus the derived price change and the card RSI, for list responses."""
    row = {
        **stock.model_dump(mode="json", by_alias=True),
        "priceChange": stock.price_change,
        "priceChangePercent": stock.price_change_percent,
        "rsi": latest_rsi(bars, RSI_LIST_PERIOD) if bars else None,
    }
    if chart and bars:
        row["chart"] = chart_window(bars, LIST_VIEW_DAYS, RSI_LIST_PERIOD)
    return row


def list_rows(store: DatasetStore, stocks: Sequence[StockSnapshot], chart: bool = False) -> List[Dict[str, Any]]:
    series = store.dataset.daily_data_map if store.dataset else {}
    return [stock_row(s, series.get(s.code), chart=chart) for s in stocks]


@router.get("/status")
async def dataset_status(store: DatasetStore = Depends(get_dataset_store)):
    dataset = store.dataset
    warning = dataset.null_data_warning if dataset else None
    return {
        "ok": True,
        "is_available": store.is_available,
        "data_age": store.data_age,
        "storage_usage": await store.storage_usage(),
        "total_stocks": dataset.total_stocks if dataset else 0,
        "is_compressed": dataset.is_compressed if dataset else False,
        "null_data_warning": warning.model_dump(by_alias=True) if warning else None,
        "error": store.error,
    }


@router.get("")
async def list_stocks(
    q: str = Query(default=""),
    chart: bool = Query(default=False),
    store: DatasetStore = Depends(get_dataset_store),
):
    stocks = await store.search(q)
    return {"ok": True, "count": len(stocks), "items": list_rows(store, stocks, chart=chart)}


@router.get("/{code}")
async def get_stock(
    code: str,
    days: int = Query(default=DETAIL_VIEW_DAYS, ge=1, le=1000),
    rsi_period: int = Query(default=RSI_DETAIL_PERIOD, ge=2, le=100),
    store: DatasetStore = Depends(get_dataset_store),
):
    entry = await store.get_stock(code)
    if entry is None:
        raise HTTPException(status_code=404, detail=f"stock not found: {code}")

    flags = classify(entry.daily_data)
    return {
        "ok": True,
        "stock": stock_row(entry.stock, entry.daily_data),
        **chart_window(entry.daily_data, days, rsi_period),
        "screening": {"turnback": flags.turnback, "cross_v": flags.cross_v},
    }
