# app/routers/api/screening.py
from __future__ import annotations

from fastapi import APIRouter, Depends, Query

from app.routers.api.stocks import list_rows
from app.routers.deps import get_dataset_store
from app.services.dataset_store import DatasetStore
from app.services.screening_service import ScreeningBucket, screen_dataset

router = APIRouter(prefix="/api/screening", tags=["screening"])


@router.get("/{bucket}")
async def get_bucket(
    bucket: ScreeningBucket,
    chart: bool = Query(default=False),
    store: DatasetStore = Depends(get_dataset_store),
):
    if store.dataset is None:
        return {"ok": True, "bucket": bucket.value, "count": 0, "items": [], "error": store.error}

    stocks = screen_dataset(store.dataset, bucket)
    return {
        "ok": True,
        "bucket": bucket.value,
        "data_age": store.data_age,
        "count": len(stocks),
        "items": list_rows(store, stocks, chart=chart),
    }
