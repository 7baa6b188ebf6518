import json

import pytest

from app.core.errors import NoteTooLong, StorageUnavailable
from app.services.annotation_store import (
    NOTE_MAX_LENGTH,
    NotesStore,
    StockStatus,
    StockStatusManager,
    considering_store,
    favorites_store,
    holdings_store,
)
from app.services.storage_gateway import FAVORITES_KEY, HOLDINGS_KEY, MEMOS_KEY, StorageGateway


# --- code sets ---

async def test_code_set_add_remove_toggle(gateway):
    favorites = favorites_store(gateway)
    assert await favorites.list() == []

    assert await favorites.add("7203") is True
    assert await favorites.add("6758") is True
    assert await favorites.add("7203") is False
    assert await favorites.list() == ["7203", "6758"]
    assert await favorites.count() == 2
    assert await favorites.contains("6758") is True

    assert await favorites.remove("7203") is True
    assert await favorites.remove("7203") is False
    assert await favorites.list() == ["6758"]

    assert await favorites.toggle("9984") is True
    assert await favorites.toggle("9984") is False
    assert await favorites.list() == ["6758"]


async def test_code_set_record_shape(gateway):
    await holdings_store(gateway).add("7203")
    record = json.loads(await gateway.get(HOLDINGS_KEY))
    assert record["holdings"] == ["7203"]
    assert record["version"] == "1.0.0"
    assert record["lastUpdate"]


async def test_code_sets_are_independent_records(gateway):
    await favorites_store(gateway).add("7203")
    await considering_store(gateway).add("6758")
    assert await favorites_store(gateway).list() == ["7203"]
    assert await considering_store(gateway).list() == ["6758"]
    assert await holdings_store(gateway).list() == []


async def test_mutations_merge_with_stored_state(session_maker):
    # two independent sessions, neither sees the other's in-memory copy
    async with session_maker() as s1, session_maker() as s2:
        a = favorites_store(StorageGateway(s1))
        b = favorites_store(StorageGateway(s2))
        await a.add("7203")
        await b.add("6758")
        await a.remove("9999")
        assert await a.list() == ["7203", "6758"]
        assert await b.list() == ["7203", "6758"]


@pytest.mark.parametrize(
    "raw",
    [
        json.dumps({"favorites": ["7203"], "version": "0.1.0", "lastUpdate": ""}),
        json.dumps({"favorites": "7203", "version": "1.0.0"}),
        "not json",
    ],
)
async def test_unreadable_record_is_discarded(gateway, raw):
    await gateway.set(FAVORITES_KEY, raw)
    favorites = favorites_store(gateway)
    assert await favorites.list() == []
    assert await gateway.get(FAVORITES_KEY) is None


async def test_add_over_stale_record_starts_fresh(gateway):
    await gateway.set(FAVORITES_KEY, json.dumps({"favorites": ["1111"], "version": "0.1.0"}))
    favorites = favorites_store(gateway)
    await favorites.add("7203")
    assert await favorites.list() == ["7203"]


# --- notes ---

async def test_notes_set_get_delete(gateway):
    notes = NotesStore(gateway)
    assert await notes.get("7203") == ""

    await notes.set("7203", "決算発表 5/10")
    await notes.set("6758", "watch the 75 day line")
    assert await notes.get("7203") == "決算発表 5/10"
    assert await notes.all() == {"7203": "決算発表 5/10", "6758": "watch the 75 day line"}

    record = json.loads(await gateway.get(MEMOS_KEY))
    assert record["notes"]["7203"] == "決算発表 5/10"

    await notes.delete("7203")
    await notes.delete("7203")
    assert await notes.all() == {"6758": "watch the 75 day line"}


async def test_blank_note_removes_entry(gateway):
    notes = NotesStore(gateway)
    await notes.set("7203", "memo")
    await notes.set("7203", "   ")
    assert await notes.get("7203") == ""
    assert "7203" not in await notes.all()


async def test_note_length_limit(gateway):
    notes = NotesStore(gateway)
    await notes.set("7203", "x" * NOTE_MAX_LENGTH)
    with pytest.raises(NoteTooLong) as excinfo:
        await notes.set("7203", "y" * (NOTE_MAX_LENGTH + 1))
    assert excinfo.value.length == NOTE_MAX_LENGTH + 1
    assert await notes.get("7203") == "x" * NOTE_MAX_LENGTH


# --- status ---

async def test_status_is_exclusive(gateway):
    manager = StockStatusManager(gateway)
    assert await manager.get_status("7203") == StockStatus.NONE

    await manager.set_status("7203", StockStatus.WATCHING)
    assert await manager.get_status("7203") == StockStatus.WATCHING

    await manager.set_status("7203", "holding")
    assert await manager.get_status("7203") == StockStatus.HOLDING
    assert await manager.favorites.list() == []
    assert await manager.holdings.list() == ["7203"]

    await manager.set_status("7203", StockStatus.NONE)
    assert await manager.get_status("7203") == StockStatus.NONE
    for store in (manager.favorites, manager.considering, manager.holdings):
        assert await store.list() == []


async def test_status_precedence_when_sets_overlap(gateway):
    # written directly to the sets, bypassing the manager
    await holdings_store(gateway).add("7203")
    await considering_store(gateway).add("7203")
    manager = StockStatusManager(gateway)
    assert await manager.get_status("7203") == StockStatus.CONSIDERING

    await favorites_store(gateway).add("7203")
    assert await manager.get_status("7203") == StockStatus.WATCHING

    await manager.set_status("7203", StockStatus.CONSIDERING)
    assert await manager.holdings.list() == []
    assert await manager.favorites.list() == []
    assert await manager.get_status("7203") == StockStatus.CONSIDERING


async def test_invalid_status(gateway):
    with pytest.raises(ValueError):
        await StockStatusManager(gateway).set_status("7203", "sold")


# --- unusable storage ---

async def test_reads_degrade_when_storage_is_unusable(broken_gateway):
    favorites = favorites_store(broken_gateway)
    assert await favorites.list() == []
    assert "storage read failed" in favorites.error
    assert await NotesStore(broken_gateway).all() == {}
    assert await StockStatusManager(broken_gateway).get_status("7203") == StockStatus.NONE


async def test_mutations_fail_when_storage_is_unusable(broken_gateway):
    with pytest.raises(StorageUnavailable):
        await favorites_store(broken_gateway).add("7203")
    with pytest.raises(StorageUnavailable):
        await holdings_store(broken_gateway).remove("7203")
    with pytest.raises(StorageUnavailable):
        await NotesStore(broken_gateway).set("7203", "memo")
