# app/routers/api/annotations.py
from __future__ import annotations

from enum import Enum

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel

from app.core.errors import NoteTooLong
from app.routers.api.stocks import list_rows
from app.routers.deps import get_dataset_store, get_notes_store, get_status_manager
from app.services.annotation_store import CodeSetStore, NotesStore, StockStatus, StockStatusManager
from app.services.dataset_store import DatasetStore

router = APIRouter(prefix="/api/annotations", tags=["annotations"])


class CodeSetKind(str, Enum):
    FAVORITES = "favorites"
    CONSIDERING = "considering"
    HOLDINGS = "holdings"


class NoteBody(BaseModel):
    note: str


class StatusBody(BaseModel):
    status: StockStatus


def _code_set(kind: CodeSetKind, manager: StockStatusManager) -> CodeSetStore:
    return {
        CodeSetKind.FAVORITES: manager.favorites,
        CodeSetKind.CONSIDERING: manager.considering,
        CodeSetKind.HOLDINGS: manager.holdings,
    }[kind]


# --- notes (registered before /{kind}/{code}) ---

@router.get("/notes")
async def list_notes(notes: NotesStore = Depends(get_notes_store)):
    return {"ok": True, "notes": await notes.all()}


@router.get("/notes/{code}")
async def get_note(code: str, notes: NotesStore = Depends(get_notes_store)):
    return {"ok": True, "code": code, "note": await notes.get(code)}


@router.put("/notes/{code}")
async def put_note(code: str, body: NoteBody, notes: NotesStore = Depends(get_notes_store)):
    try:
        await notes.set(code, body.note)
    except NoteTooLong as exc:
        raise HTTPException(status_code=422, detail=str(exc))
    return {"ok": True, "code": code, "note": await notes.get(code)}


@router.delete("/notes/{code}")
async def delete_note(code: str, notes: NotesStore = Depends(get_notes_store)):
    await notes.delete(code)
    return {"ok": True, "code": code}


# --- combined status ---

@router.get("/status/{code}")
async def get_status(code: str, manager: StockStatusManager = Depends(get_status_manager)):
    return {"ok": True, "code": code, "status": (await manager.get_status(code)).value}


@router.put("/status/{code}")
async def put_status(
    code: str,
    body: StatusBody,
    manager: StockStatusManager = Depends(get_status_manager),
):
    status = await manager.set_status(code, body.status)
    return {"ok": True, "code": code, "status": status.value}


# --- favorites / considering / holdings ---

@router.get("/{kind}")
async def list_code_set(
    kind: CodeSetKind,
    manager: StockStatusManager = Depends(get_status_manager),
    store: DatasetStore = Depends(get_dataset_store),
):
    set_store = _code_set(kind, manager)
    codes = await set_store.list()
    stocks = await store.stocks_for(codes)
    return {
        "ok": True,
        "kind": kind.value,
        "codes": codes,
        "count": len(codes),
        "items": list_rows(store, stocks),
        "error": set_store.error,
    }


@router.get("/{kind}/{code}")
async def contains_code(kind: CodeSetKind, code: str, manager: StockStatusManager = Depends(get_status_manager)):
    return {"ok": True, "kind": kind.value, "code": code, "member": await _code_set(kind, manager).contains(code)}


@router.post("/{kind}/{code}")
async def add_code(kind: CodeSetKind, code: str, manager: StockStatusManager = Depends(get_status_manager)):
    added = await _code_set(kind, manager).add(code)
    return {"ok": True, "kind": kind.value, "code": code, "added": added}


@router.delete("/{kind}/{code}")
async def remove_code(kind: CodeSetKind, code: str, manager: StockStatusManager = Depends(get_status_manager)):
    removed = await _code_set(kind, manager).remove(code)
    return {"ok": True, "kind": kind.value, "code": code, "removed": removed}


@router.post("/{kind}/{code}/toggle")
async def toggle_code(kind: CodeSetKind, code: str, manager: StockStatusManager = Depends(get_status_manager)):
    member = await _code_set(kind, manager).toggle(code)
    return {"ok": True, "kind": kind.value, "code": code, "member": member}
