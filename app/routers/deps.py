# app/routers/deps.py
from __future__ import annotations

from fastapi import Depends
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.services.annotation_store import NotesStore, StockStatusManager
from app.services.dataset_store import DatasetStore
from app.services.storage_gateway import StorageGateway


async def get_storage(db: AsyncSession = Depends(get_db)) -> StorageGateway:
    return StorageGateway(db)


async def get_dataset_store(storage: StorageGateway = Depends(get_storage)) -> DatasetStore:
    store = DatasetStore(storage)
    await store.load()
    return store


async def get_status_manager(storage: StorageGateway = Depends(get_storage)) -> StockStatusManager:
    return StockStatusManager(storage)


async def get_notes_store(storage: StorageGateway = Depends(get_storage)) -> NotesStore:
    return NotesStore(storage)
