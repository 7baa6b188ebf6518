# app/services/storage_gateway.py
from __future__ import annotations

from datetime import datetime, timezone

from sqlalchemy import insert, text, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.errors import StorageUnavailable
from app.models.storage_record import StorageRecord


# persisted record keys
STOCK_DATA_KEY = "jpx400_stock_data_v1"
FAVORITES_KEY = "jpx400_favorites_v1"
CONSIDERING_KEY = "jpx400_considering_v1"
HOLDINGS_KEY = "jpx400_holdings_v1"
MEMOS_KEY = "jpx400_stock_memos_v1"

ALL_KEYS = (STOCK_DATA_KEY, FAVORITES_KEY, CONSIDERING_KEY, HOLDINGS_KEY, MEMOS_KEY)


class StorageGateway:
    """Text key/value access to the storage table.

    Reads always go to the database (never a cached row), and every write is
    committed immediately, so callers can do read -> merge -> write without a
    shared in-memory copy. Database errors are rolled back and re-raised as
    StorageUnavailable.
    """

    def __init__(self, db: AsyncSession):
        self.db = db

    async def _fail(self, action: str, key: str | None, exc: SQLAlchemyError) -> StorageUnavailable:
        await self.db.rollback()
        target = f" ({key})" if key else ""
        return StorageUnavailable(f"storage {action} failed{target}: {getattr(exc, 'orig', None) or exc}")

    async def get(self, key: str) -> str | None:
        q = text("SELECT value FROM storage_records WHERE record_key=:k")
        try:
            row = (await self.db.execute(q, {"k": key})).mappings().first()
        except SQLAlchemyError as exc:
            raise await self._fail("read", key, exc) from exc
        return row["value"] if row else None

    async def set(self, key: str, value: str) -> int:
        """Write `value` under `key`, returns its size in bytes."""
        size = len(value.encode("utf-8"))
        now = datetime.now(timezone.utc).replace(tzinfo=None)
        try:
            result = await self.db.execute(
                update(StorageRecord)
                .where(StorageRecord.record_key == key)
                .values(value=value, size_bytes=size, updated_at=now)
            )
            if result.rowcount == 0:
                await self.db.execute(
                    insert(StorageRecord).values(record_key=key, value=value, size_bytes=size, updated_at=now)
                )
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("write", key, exc) from exc
        return size

    async def remove(self, key: str) -> None:
        try:
            await self.db.execute(text("DELETE FROM storage_records WHERE record_key=:k"), {"k": key})
            await self.db.commit()
        except SQLAlchemyError as exc:
            raise await self._fail("delete", key, exc) from exc

    async def sizes(self, keys: tuple[str, ...] = ALL_KEYS) -> dict[str, int]:
        """Byte size per existing key."""
        q = text("SELECT record_key, size_bytes FROM storage_records")
        try:
            rows = (await self.db.execute(q)).mappings().all()
        except SQLAlchemyError as exc:
            raise await self._fail("read", None, exc) from exc
        return {r["record_key"]: int(r["size_bytes"] or 0) for r in rows if r["record_key"] in keys}
