from __future__ import annotations

from contextlib import asynccontextmanager

from fastapi import FastAPI, Request
from fastapi.responses import JSONResponse
import logging
import traceback

from app.core.db import create_tables
from app.core.errors import StorageUnavailable
from app.core.settings import settings
from app.routers.api.health import router as health_router
from app.routers.api.admin import router as admin_router
from app.routers.api.stocks import router as stocks_router
from app.routers.api.screening import router as screening_router
from app.routers.api.annotations import router as annotations_router


@asynccontextmanager
async def lifespan(app: FastAPI):
    await create_tables()
    yield


def create_app() -> FastAPI:
    app = FastAPI(title=settings.APP_NAME, lifespan=lifespan)

    # Dev-only: return full traceback as JSON to speed up debugging
    if str(getattr(settings, "ENV", "")).lower() in {"local", "dev", "development"}:
        logger = logging.getLogger("uvicorn.error")

        @app.exception_handler(Exception)
        async def _unhandled_exception_handler(request: Request, exc: Exception):
            logger.exception("Unhandled exception: %s %s", request.method, request.url)
            return JSONResponse(
                status_code=500,
                content={
                    "ok": False,
                    "error": str(exc),
                    "type": exc.__class__.__name__,
                    "path": str(request.url),
                    "trace": traceback.format_exc(),
                },
            )

    @app.exception_handler(StorageUnavailable)
    async def _storage_unavailable_handler(request: Request, exc: StorageUnavailable):
        logging.getLogger("uvicorn.error").error("%s %s: %s", request.method, request.url.path, exc)
        return JSONResponse(status_code=503, content={"ok": False, "error": str(exc)})

    # Routers
    app.include_router(health_router)
    app.include_router(admin_router)
    app.include_router(stocks_router)
    app.include_router(screening_router)
    app.include_router(annotations_router)
    return app


app = create_app()
