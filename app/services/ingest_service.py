# app/services/ingest_service.py
from __future__ import annotations

import logging
from typing import Any, Sequence

from app.core.errors import SerializationFailure, StorageQuotaExceeded, StorageUnavailable
from app.services.dataset_store import DatasetStore
from app.services.retrieval_service import build_null_summary, fetch_many
from app.services.universe_service import UniverseStock, limit_universe

logger = logging.getLogger(__name__)


async def refresh_dataset(
    store: DatasetStore,
    universe: Sequence[UniverseStock],
    max_stocks: int | None = None,
    **fetch_kwargs: Any,
) -> dict[str, Any]:
    """
    Fetch every stock of the universe (or the first `max_stocks`) and replace
    the stored dataset with the successful results.

    - one request at a time with a fixed interval (rate limit)
    - failed stocks are reported, they never abort the batch
    - the previous dataset is kept if nothing succeeded or the save fails
    """
    targets = limit_universe(list(universe), max_stocks)
    if not targets:
        return {"ok": False, "error": "stock universe is empty"}

    results = await fetch_many([(s.code, s.name) for s in targets], **fetch_kwargs)

    ok_results = [r for r in results if r.success and r.snapshot is not None]
    failures = [{"code": r.code, "name": r.name, "error": r.error} for r in results if not r.success]
    null_summary = build_null_summary(results)

    out: dict[str, Any] = {
        "requested": len(targets),
        "succeeded": len(ok_results),
        "failed": len(failures),
        "failures": failures,
        "null_data": null_summary.model_dump(by_alias=True),
    }

    if not ok_results:
        return {"ok": False, "error": "no stock could be fetched", **out}

    try:
        dataset = await store.save(
            [r.snapshot for r in ok_results],
            {r.code: r.series for r in ok_results},
            null_summary,
        )
    except StorageQuotaExceeded as exc:
        logger.error("dataset not saved: %s", exc)
        return {"ok": False, "error": str(exc), "size_bytes": exc.size_bytes, **out}
    except (SerializationFailure, StorageUnavailable) as exc:
        logger.error("dataset not saved: %s", exc)
        return {"ok": False, "error": str(exc), **out}

    return {
        "ok": True,
        "saved": dataset.total_stocks,
        "is_compressed": dataset.is_compressed,
        "storage_usage": await store.storage_usage(),
        **out,
    }
