# app/services/annotation_store.py
"""
User annotations: favorites / considering / holdings code sets, per-stock notes
and the combined stock status.

Each store is persisted under its own key, independent of the price dataset.
Mutations never trust an in-memory copy: the current record is re-read from
storage, the single change is merged, and the result is written back.
"""
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from enum import Enum
from typing import Any

from app.core.errors import NoteTooLong, StorageUnavailable
from app.services.storage_gateway import (
    CONSIDERING_KEY,
    FAVORITES_KEY,
    HOLDINGS_KEY,
    MEMOS_KEY,
    StorageGateway,
)

logger = logging.getLogger(__name__)

ANNOTATION_VERSION = "1.0.0"
NOTE_MAX_LENGTH = 500


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


class _VersionedRecordStore:
    """Shared read/write of one `{<field>: ..., version, lastUpdate}` record."""

    key: str
    field: str

    def __init__(self, gateway: StorageGateway):
        self.gateway = gateway
        self.error: str | None = None

    def _empty(self) -> Any:
        raise NotImplementedError

    def _valid(self, payload: Any) -> bool:
        raise NotImplementedError

    async def _read(self, for_update: bool = False) -> Any:
        """Stored payload, empty when missing or unreadable.

        Plain reads evict an unreadable record and degrade to empty when storage
        is down; reads for an update leave the record alone and let
        StorageUnavailable through, so a write never replaces data it could
        not see.
        """
        try:
            raw = await self.gateway.get(self.key)
        except StorageUnavailable as exc:
            if for_update:
                raise
            logger.error("%s: %s", self.key, exc)
            self.error = str(exc)
            return self._empty()
        if not raw:
            return self._empty()
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None

        reason = None
        if not isinstance(data, dict) or not self._valid(data.get(self.field)):
            reason = "unreadable record"
        elif data.get("version") != ANNOTATION_VERSION:
            reason = f"version {data.get('version')!r} != {ANNOTATION_VERSION}"

        if reason is not None:
            logger.warning("%s: discarding stored %s (%s)", self.key, self.field, reason)
            if not for_update:
                try:
                    await self.gateway.remove(self.key)
                except StorageUnavailable as exc:
                    logger.error("%s: stale record not removed: %s", self.key, exc)
            return self._empty()
        return data[self.field]

    async def _write(self, payload: Any) -> None:
        record = {self.field: payload, "lastUpdate": _now_iso(), "version": ANNOTATION_VERSION}
        await self.gateway.set(self.key, json.dumps(record, ensure_ascii=False))


class CodeSetStore(_VersionedRecordStore):
    """An ordered set of stock codes (favorites, considering, holdings)."""

    def __init__(self, gateway: StorageGateway, key: str, field: str):
        super().__init__(gateway)
        self.key = key
        self.field = field

    def _empty(self) -> list[str]:
        return []

    def _valid(self, payload: Any) -> bool:
        return isinstance(payload, list) and all(isinstance(c, str) for c in payload)

    async def list(self) -> list[str]:
        return list(await self._read())

    async def count(self) -> int:
        return len(await self._read())

    async def contains(self, code: str) -> bool:
        return code in await self._read()

    async def add(self, code: str) -> bool:
        """False if `code` was already present."""
        current = await self._read(for_update=True)
        if code in current:
            return False
        await self._write([*current, code])
        logger.info("%s: added %s", self.field, code)
        return True

    async def remove(self, code: str) -> bool:
        """False if `code` was not present (nothing is written then)."""
        current = await self._read(for_update=True)
        if code not in current:
            return False
        await self._write([c for c in current if c != code])
        logger.info("%s: removed %s", self.field, code)
        return True

    async def toggle(self, code: str) -> bool:
        """Flip membership, returns the new state."""
        if await self.contains(code):
            await self.remove(code)
            return False
        await self.add(code)
        return True


class NotesStore(_VersionedRecordStore):
    key = MEMOS_KEY
    field = "notes"

    def _empty(self) -> dict[str, str]:
        return {}

    def _valid(self, payload: Any) -> bool:
        return isinstance(payload, dict) and all(isinstance(v, str) for v in payload.values())

    async def get(self, code: str) -> str:
        return (await self._read()).get(code, "")

    async def all(self) -> dict[str, str]:
        return dict(await self._read())

    async def set(self, code: str, note: str) -> None:
        """Save a note; a blank note removes the entry."""
        if len(note) > NOTE_MAX_LENGTH:
            raise NoteTooLong(len(note), NOTE_MAX_LENGTH)

        notes = dict(await self._read(for_update=True))
        if note.strip():
            notes[code] = note
        else:
            notes.pop(code, None)
        await self._write(notes)
        logger.info("note saved: %s", code)

    async def delete(self, code: str) -> None:
        notes = dict(await self._read(for_update=True))
        if notes.pop(code, None) is not None:
            await self._write(notes)
            logger.info("note deleted: %s", code)


def favorites_store(gateway: StorageGateway) -> CodeSetStore:
    return CodeSetStore(gateway, FAVORITES_KEY, "favorites")


def considering_store(gateway: StorageGateway) -> CodeSetStore:
    return CodeSetStore(gateway, CONSIDERING_KEY, "considering")


def holdings_store(gateway: StorageGateway) -> CodeSetStore:
    return CodeSetStore(gateway, HOLDINGS_KEY, "holdings")


class StockStatus(str, Enum):
    NONE = "none"
    WATCHING = "watching"
    CONSIDERING = "considering"
    HOLDING = "holding"


class StockStatusManager:
    """One status per stock on top of the favorites / considering / holdings sets.

    The sets are kept mutually exclusive here, by the writer; storage itself
    does not enforce it.
    """

    def __init__(self, gateway: StorageGateway):
        self.favorites = favorites_store(gateway)
        self.considering = considering_store(gateway)
        self.holdings = holdings_store(gateway)

    def _set_for(self, status: StockStatus) -> CodeSetStore | None:
        return {
            StockStatus.WATCHING: self.favorites,
            StockStatus.CONSIDERING: self.considering,
            StockStatus.HOLDING: self.holdings,
        }.get(status)

    async def get_status(self, code: str) -> StockStatus:
        if await self.favorites.contains(code):
            return StockStatus.WATCHING
        if await self.considering.contains(code):
            return StockStatus.CONSIDERING
        if await self.holdings.contains(code):
            return StockStatus.HOLDING
        return StockStatus.NONE

    async def set_status(self, code: str, status: StockStatus | str) -> StockStatus:
        status = StockStatus(status)
        for store in (self.favorites, self.considering, self.holdings):
            await store.remove(code)

        target = self._set_for(status)
        if target is not None:
            await target.add(code)
        return status
