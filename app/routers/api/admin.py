from __future__ import annotations

import logging

from fastapi import APIRouter, Depends, Query

from app.core.db import create_tables
from app.core.settings import settings
from app.routers.deps import get_dataset_store
from app.services.dataset_store import DatasetStore
from app.services.ingest_service import refresh_dataset
from app.services.universe_service import load_universe

router = APIRouter(prefix="/api/admin", tags=["admin"])
logger = logging.getLogger(__name__)


@router.post("/init-db")
async def init_db():
    await create_tables()
    return {"ok": True}


@router.post("/refresh")
async def admin_refresh(
    # omitted -> FETCH_MAX_STOCKS from settings (None = whole universe)
    max_stocks: int | None = Query(default=None, ge=1, le=5000),
    store: DatasetStore = Depends(get_dataset_store),
):
    try:
        universe = load_universe(settings.UNIVERSE_CSV_PATH)
    except FileNotFoundError as exc:
        logger.error("%s", exc)
        return {"ok": False, "error": str(exc)}

    limit = max_stocks if max_stocks is not None else settings.FETCH_MAX_STOCKS
    return await refresh_dataset(store, universe, max_stocks=limit)


@router.delete("/dataset")
async def admin_clear_dataset(store: DatasetStore = Depends(get_dataset_store)):
    await store.clear()
    return {"ok": True, "storage_usage": await store.storage_usage()}
