# app/services/retrieval_service.py
from __future__ import annotations

import asyncio
import logging
import re
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Awaitable, Callable, Sequence

import requests

from app.core.errors import MalformedUpstreamData, NetworkFailure
from app.core.settings import settings
from app.schemas.stock_data import AffectedStock, DailyBar, NullDataSummary, StockSnapshot

logger = logging.getLogger(__name__)

YAHOO_CHART_URL = "https://query1.finance.yahoo.com/v8/finance/chart/{code}.T"
_HEADERS = {
    "User-Agent": (
        "Mozilla/5.0 (Windows NT 10.0; Win64; x64) AppleWebKit/537.36 "
        "(KHTML, like Gecko) Chrome/91.0.4472.124 Safari/537.36"
    ),
    "Accept": "application/json, text/plain, */*",
    "Accept-Language": "en-US,en;q=0.9",
    "Cache-Control": "no-cache",
}
_CODE_RE = re.compile(r"^\d{4}$")


@dataclass
class NullDayWarning:
    null_dates: list[str] = field(default_factory=list)

    @property
    def has_null_data(self) -> bool:
        return bool(self.null_dates)

    @property
    def total_null_days(self) -> int:
        return len(self.null_dates)


@dataclass
class FetchResult:
    success: bool
    code: str
    name: str
    snapshot: StockSnapshot | None = None
    series: list[DailyBar] = field(default_factory=list)
    null_data_warning: NullDayWarning | None = None
    error: str | None = None


def _fetch_chart_json(code: str) -> dict[str, Any]:
    """Blocking HTTP call; run it in a thread."""
    url = YAHOO_CHART_URL.format(code=code)
    params = {"interval": "1d", "range": settings.YAHOO_CHART_RANGE}
    try:
        resp = requests.get(url, params=params, headers=_HEADERS, timeout=settings.FETCH_TIMEOUT)
    except requests.RequestException as exc:
        raise NetworkFailure(f"request failed: {exc}") from exc
    if not resp.ok:
        raise NetworkFailure(f"HTTP Error: {resp.status_code} {resp.reason}")
    try:
        return resp.json()
    except ValueError as exc:
        raise MalformedUpstreamData(f"response is not JSON: {exc}") from exc


def _ts_to_date(ts: int) -> str:
    return datetime.fromtimestamp(int(ts), tz=timezone.utc).strftime("%Y-%m-%d")


def parse_chart(payload: dict[str, Any], code: str, name: str) -> tuple[StockSnapshot, list[DailyBar], NullDayWarning]:
    """Yahoo chart response -> (snapshot, series, dropped days).

    Days where any of open/high/low/close/volume is missing are dropped (not
    filled). If no day survives the stock is reported as malformed.
    """
    chart = (payload or {}).get("chart") or {}
    if chart.get("error"):
        raise MalformedUpstreamData(f"Yahoo Finance API error: {chart['error']}")
    results = chart.get("result") or []
    if not results:
        raise MalformedUpstreamData(f"no data found for {code}")

    result = results[0]
    timestamps = result.get("timestamp")
    quotes = (result.get("indicators") or {}).get("quote") or []
    if not timestamps or not quotes:
        raise MalformedUpstreamData(f"incomplete data returned for {code}")
    quote = quotes[0]

    columns = {k: quote.get(k) or [] for k in ("open", "high", "low", "close", "volume")}
    warning = NullDayWarning()
    bars: list[DailyBar] = []
    for i, ts in enumerate(timestamps):
        values = {k: (col[i] if i < len(col) else None) for k, col in columns.items()}
        day = _ts_to_date(ts)
        if any(v is None for v in values.values()):
            warning.null_dates.append(day)
            continue
        if bars and day <= bars[-1].date.isoformat():
            # duplicate / out of order stamp, keep the first one
            continue
        try:
            bars.append(DailyBar(date=day, **values))
        except ValueError:
            warning.null_dates.append(day)

    if warning.has_null_data:
        logger.warning(
            "%s (%s): dropped %d days with null data - %s",
            code, name, warning.total_null_days, ", ".join(warning.null_dates),
        )
    if not bars:
        raise MalformedUpstreamData(f"no valid daily data for {code}")

    last = bars[-1]
    previous_close = bars[-2].close if len(bars) > 1 else last.close
    snapshot = StockSnapshot(
        code=code,
        name=name,
        close_price=last.close,
        open_price=last.open,
        high_price=last.high,
        low_price=last.low,
        previous_close_price=previous_close,
        last_updated=last.date,
    )
    return snapshot, bars, warning


async def fetch_stock(
    code: str,
    name: str,
    max_retries: int | None = None,
    retry_delay: float | None = None,
    fetcher: Callable[[str], dict[str, Any]] = _fetch_chart_json,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
) -> FetchResult:
    """One stock with retries. Never raises for network or data problems."""
    max_retries = max_retries if max_retries is not None else settings.FETCH_MAX_RETRIES
    retry_delay = retry_delay if retry_delay is not None else settings.FETCH_RETRY_DELAY

    if not _CODE_RE.match(code or ""):
        return FetchResult(success=False, code=code, name=name, error=f"invalid stock code: {code!r}")

    error = "max retries reached"
    for attempt in range(1, max_retries + 1):
        try:
            logger.debug("%s (%s): attempt %d/%d", code, name, attempt, max_retries)
            payload = await asyncio.to_thread(fetcher, code)
            snapshot, bars, warning = parse_chart(payload, code, name)
            logger.info("%s (%s): %d days", code, name, len(bars))
            return FetchResult(
                success=True,
                code=code,
                name=name,
                snapshot=snapshot,
                series=bars,
                null_data_warning=warning,
            )
        except (NetworkFailure, MalformedUpstreamData) as exc:
            error = str(exc)
            logger.warning("%s (%s): attempt %d failed - %s", code, name, attempt, error)
        if attempt < max_retries:
            await sleep(retry_delay)

    logger.error("%s (%s): giving up after %d attempts", code, name, max_retries)
    return FetchResult(success=False, code=code, name=name, error=error)


async def fetch_many(
    stocks: Sequence[tuple[str, str]],
    max_stocks: int | None = None,
    request_interval: float | None = None,
    sleep: Callable[[float], Awaitable[Any]] = asyncio.sleep,
    **fetch_kwargs: Any,
) -> list[FetchResult]:
    """Fetch (code, name) pairs one at a time, waiting between requests."""
    interval = request_interval if request_interval is not None else settings.FETCH_REQUEST_INTERVAL
    targets = list(stocks)[:max_stocks] if max_stocks is not None else list(stocks)
    logger.info("fetching %d stocks", len(targets))

    results: list[FetchResult] = []
    for i, (code, name) in enumerate(targets):
        results.append(await fetch_stock(code, name, sleep=sleep, **fetch_kwargs))
        if i < len(targets) - 1:
            await sleep(interval)

    ok = sum(1 for r in results if r.success)
    logger.info("fetch done: %d ok, %d failed", ok, len(results) - ok)
    return results


def build_null_summary(results: Sequence[FetchResult]) -> NullDataSummary:
    affected = [
        AffectedStock(code=r.code, name=r.name, null_dates=list(r.null_data_warning.null_dates))
        for r in results
        if r.success and r.null_data_warning and r.null_data_warning.has_null_data
    ]
    return NullDataSummary(
        total_stocks_with_null_data=len(affected),
        total_null_days=sum(len(a.null_dates) for a in affected),
        affected_stocks=affected,
    )
