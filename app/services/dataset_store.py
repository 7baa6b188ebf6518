# app/services/dataset_store.py
from __future__ import annotations

import json
import logging
from datetime import datetime, timezone
from typing import Any, Mapping, Sequence

from pydantic import ValidationError

from app.core.errors import (
    CorruptPersistedData,
    SerializationFailure,
    StorageQuotaExceeded,
    StorageUnavailable,
)
from app.core.settings import settings
from app.schemas.stock_data import (
    DATA_VERSION,
    LEGACY_DATA_VERSIONS,
    DailyBar,
    Dataset,
    NullDataSummary,
    NullDataWarning,
    StockEntry,
    StockSnapshot,
)
from app.services import storage_codec
from app.services.storage_gateway import STOCK_DATA_KEY, StorageGateway

logger = logging.getLogger(__name__)


def _now_iso() -> str:
    return datetime.now(timezone.utc).isoformat()


def _mb(n: int) -> str:
    return f"{n / 1024 / 1024:.2f}MB"


def build_null_warning(summary: NullDataSummary | Mapping[str, Any] | None) -> NullDataWarning | None:
    """Stored warning for a fetch summary; None when nothing was missing."""
    if summary is None:
        return None
    if not isinstance(summary, NullDataSummary):
        summary = NullDataSummary.model_validate(summary)
    if summary.total_stocks_with_null_data == 0:
        return None
    return NullDataWarning(
        has_null_data=True,
        total_stocks_with_null_data=summary.total_stocks_with_null_data,
        total_null_days=summary.total_null_days,
        last_occurrence=_now_iso(),
        summary=(
            f"missing data detected for {summary.total_stocks_with_null_data} stocks "
            f"({summary.total_null_days} days)"
        ),
    )


def _normalize_series(code: str, raw: Sequence[DailyBar | Mapping[str, Any]] | None) -> list[DailyBar] | None:
    """Validated series, or None if the stock has to be dropped."""
    if not raw:
        return None
    try:
        bars = [b if isinstance(b, DailyBar) else DailyBar.model_validate(b) for b in raw]
    except ValidationError as exc:
        logger.warning("dropping %s: malformed daily data (%s)", code, exc.error_count())
        return None
    for prev, cur in zip(bars, bars[1:]):
        if cur.date <= prev.date:
            logger.warning("dropping %s: dates not strictly increasing at %s", code, cur.date)
            return None
    return bars


class DatasetStore:
    """The persisted price dataset (all snapshots + daily series).

    Replaced wholesale by save(), removed by clear(). Saved plain while it fits
    under the threshold, otherwise compressed; if even the compressed form is
    too large the save fails and the previous record stays as it was.
    """

    def __init__(self, gateway: StorageGateway, threshold_bytes: int | None = None):
        self.gateway = gateway
        self.threshold_bytes = (
            threshold_bytes if threshold_bytes is not None else settings.COMPRESSION_THRESHOLD_BYTES
        )
        self.dataset: Dataset | None = None
        self.error: str | None = None
        self._loaded = False

    # --- write ---

    async def save(
        self,
        stocks: Sequence[StockSnapshot | Mapping[str, Any]],
        daily_data_map: Mapping[str, Sequence[DailyBar | Mapping[str, Any]]],
        null_data_summary: NullDataSummary | Mapping[str, Any] | None = None,
    ) -> Dataset:
        logger.info("saving dataset: %d stocks", len(stocks))

        kept_stocks: list[StockSnapshot] = []
        kept_series: dict[str, list[DailyBar]] = {}
        for raw in stocks:
            try:
                stock = raw if isinstance(raw, StockSnapshot) else StockSnapshot.model_validate(raw)
            except ValidationError as exc:
                logger.warning("dropping stock: malformed snapshot (%s)", exc.error_count())
                continue
            if stock.code in kept_series:
                continue
            bars = _normalize_series(stock.code, daily_data_map.get(stock.code))
            if bars is None:
                continue
            kept_stocks.append(stock)
            kept_series[stock.code] = bars

        dataset = Dataset(
            stocks=kept_stocks,
            daily_data_map=kept_series,
            last_update=_now_iso(),
            version=DATA_VERSION,
            total_stocks=len(kept_stocks),
            is_compressed=False,
            null_data_warning=build_null_warning(null_data_summary),
        )

        payload = self._encode(dataset)
        size = len(payload.encode("utf-8"))
        logger.info("dataset size: %s", _mb(size))

        if size > self.threshold_bytes:
            logger.info("dataset exceeds %s, compressing", _mb(self.threshold_bytes))
            dataset.is_compressed = True
            payload = storage_codec.compress(self._encode(dataset))
            size = len(payload.encode("utf-8"))
            if size > self.threshold_bytes:
                raise StorageQuotaExceeded(size, self.threshold_bytes)

        await self.gateway.set(STOCK_DATA_KEY, payload)

        self.dataset = dataset
        self.error = None
        self._loaded = True
        logger.info(
            "dataset saved (%s, %s)", _mb(size), "compressed" if dataset.is_compressed else "uncompressed"
        )
        return dataset

    @staticmethod
    def _encode(dataset: Dataset) -> str:
        try:
            return dataset.model_dump_json(by_alias=True)
        except (ValueError, TypeError) as exc:
            raise SerializationFailure(f"could not encode dataset: {exc}") from exc

    async def clear(self) -> None:
        await self.gateway.remove(STOCK_DATA_KEY)
        self.dataset = None
        self.error = None
        self._loaded = True
        logger.info("dataset cleared")

    # --- read ---

    async def load(self) -> Dataset | None:
        """Stored dataset, or None (with `error` set when something went wrong)."""
        self._loaded = True
        try:
            raw = await self.gateway.get(STOCK_DATA_KEY)
        except StorageUnavailable as exc:
            logger.error("dataset not loaded: %s", exc)
            self.dataset = None
            self.error = f"stored data could not be read: {exc}"
            return None
        if not raw:
            self.dataset = None
            return None

        try:
            dataset = self._decode(raw)
        except CorruptPersistedData as exc:
            logger.warning("evicting stored dataset: %s", exc)
            self.dataset = None
            self.error = f"stored data could not be read and was removed: {exc}"
            try:
                await self.gateway.remove(STOCK_DATA_KEY)
            except StorageUnavailable as remove_exc:
                logger.error("corrupt dataset could not be removed: %s", remove_exc)
                self.error = f"stored data could not be read: {exc}"
            return None

        logger.info("loaded %d stocks (last update %s)", dataset.total_stocks, dataset.last_update)
        if dataset.null_data_warning and dataset.null_data_warning.has_null_data:
            logger.info("previous null data warning: %s", dataset.null_data_warning.summary)
        self.dataset = dataset
        return dataset

    @staticmethod
    def _decode(raw: str) -> Dataset:
        compressed = False
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
        if not isinstance(data, dict):
            try:
                data = json.loads(storage_codec.decompress(raw))
            except json.JSONDecodeError as exc:
                raise CorruptPersistedData(f"unparseable dataset: {exc}") from exc
            compressed = True
        if not isinstance(data, dict):
            raise CorruptPersistedData("dataset is not an object")

        version = data.get("version")
        if version != DATA_VERSION and version not in LEGACY_DATA_VERSIONS:
            raise CorruptPersistedData(f"unsupported dataset version {version!r} (current {DATA_VERSION})")

        try:
            dataset = Dataset.model_validate(data)
        except ValidationError as exc:
            raise CorruptPersistedData(f"invalid dataset record: {exc.error_count()} errors") from exc

        if version != DATA_VERSION:
            # written back as DATA_VERSION by the next save
            dataset.version = DATA_VERSION
            if dataset.null_data_warning is None:
                dataset.null_data_warning = NullDataWarning()
        dataset.is_compressed = compressed
        return dataset

    async def _ensure_loaded(self) -> Dataset | None:
        if not self._loaded:
            await self.load()
        return self.dataset

    async def get_stock(self, code: str) -> StockEntry | None:
        dataset = await self._ensure_loaded()
        if dataset is None:
            return None
        stock = dataset.snapshots.get(code)
        daily = dataset.daily_data_map.get(code)
        if stock is None or daily is None:
            return None
        return StockEntry(stock=stock, daily_data=daily)

    async def search(self, query: str) -> list[StockSnapshot]:
        """Code or name substring match (case-insensitive); everything for a blank query."""
        dataset = await self._ensure_loaded()
        if dataset is None:
            return []
        q = (query or "").strip().lower()
        if not q:
            return list(dataset.stocks)
        return [s for s in dataset.stocks if q in s.code.lower() or q in s.name.lower()]

    async def stocks_for(self, codes: Sequence[str]) -> list[StockSnapshot]:
        """Snapshots for `codes` that exist in the dataset, ordered by numeric code."""
        dataset = await self._ensure_loaded()
        if dataset is None:
            return []
        wanted = set(codes)
        selected = [s for s in dataset.stocks if s.code in wanted]
        return sorted(selected, key=lambda s: (0, int(s.code), s.code) if s.code.isdigit() else (1, 0, s.code))

    # --- status ---

    @property
    def is_available(self) -> bool:
        return self.dataset is not None and len(self.dataset.stocks) > 0

    @property
    def data_age(self) -> str | None:
        """Last save time as 'YYYY-MM-DD HH:MM' in local time."""
        if self.dataset is None:
            return None
        stamp = self.dataset.last_update
        if stamp.endswith("Z"):
            # older records carry JavaScript-style UTC stamps
            stamp = stamp[:-1] + "+00:00"
        try:
            ts = datetime.fromisoformat(stamp)
        except ValueError:
            return None
        if ts.tzinfo is None:
            ts = ts.replace(tzinfo=timezone.utc)
        return ts.astimezone().strftime("%Y-%m-%d %H:%M")

    async def storage_usage(self) -> str:
        """Bytes used by the dataset and every annotation record."""
        try:
            sizes = await self.gateway.sizes()
        except StorageUnavailable as exc:
            logger.error("storage usage unavailable: %s", exc)
            return "unknown"
        total = sum(sizes.values())

        info = ""
        if STOCK_DATA_KEY in sizes:
            if self.dataset is not None:
                compressed = self.dataset.is_compressed
            else:
                raw = await self.gateway.get(STOCK_DATA_KEY)
                compressed = bool(raw) and storage_codec.looks_compressed(raw)
            info = " (compressed)" if compressed else " (uncompressed)"
        return f"{_mb(total)}{info}"
