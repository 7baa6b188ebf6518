from fastapi import APIRouter, Depends
from sqlalchemy import text
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.db import get_db
from app.services.storage_gateway import StorageGateway

router = APIRouter(prefix="/api/health", tags=["health"])


@router.get("")
async def health():
    return {"ok": True}


@router.get("/db")
async def health_db(db: AsyncSession = Depends(get_db)):
    row = (await db.execute(text("SELECT COUNT(*) AS n FROM storage_records"))).mappings().first()
    sizes = await StorageGateway(db).sizes()
    return {
        "ok": row is not None,
        "records": int(row["n"]) if row else 0,
        "bytes": sizes,
    }
