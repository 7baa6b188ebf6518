from __future__ import annotations

from datetime import date, timedelta

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine

import app.models  # noqa: F401  registers storage_records
from app.core.db import Base
from app.schemas.stock_data import DailyBar, StockSnapshot
from app.services.storage_gateway import StorageGateway


@pytest.fixture
async def engine(tmp_path):
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'storage.db'}")
    async with eng.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield eng
    await eng.dispose()


@pytest.fixture
def session_maker(engine):
    return async_sessionmaker(bind=engine, expire_on_commit=False, class_=AsyncSession)


@pytest.fixture
async def session(session_maker):
    async with session_maker() as s:
        yield s


@pytest.fixture
def gateway(session) -> StorageGateway:
    return StorageGateway(session)


@pytest.fixture
async def bare_session_maker(tmp_path):
    """Sessions on a database file that has no storage table."""
    eng = create_async_engine(f"sqlite+aiosqlite:///{tmp_path / 'bare.db'}")
    yield async_sessionmaker(bind=eng, expire_on_commit=False, class_=AsyncSession)
    await eng.dispose()


@pytest.fixture
async def broken_gateway(bare_session_maker) -> StorageGateway:
    async with bare_session_maker() as s:
        yield StorageGateway(s)


def _bars(closes, start=date(2024, 1, 1), spread=0.5, last=None):
    """Daily bars for `closes`; `last` overrides fields of the final bar."""
    bars = []
    for i, c in enumerate(closes):
        bars.append(
            DailyBar(
                date=start + timedelta(days=i),
                open=c,
                high=c + spread,
                low=c - spread,
                close=c,
                volume=1000 + i,
            )
        )
    if last and bars:
        bars[-1] = bars[-1].model_copy(update=last)
    return bars


def _snapshot(code, bars, name=None):
    last = bars[-1]
    prev = bars[-2].close if len(bars) > 1 else last.close
    return StockSnapshot(
        code=code,
        name=name or f"stock {code}",
        close_price=last.close,
        open_price=last.open,
        high_price=last.high,
        low_price=last.low,
        previous_close_price=prev,
        last_updated=last.date,
    )


@pytest.fixture
def make_bars():
    return _bars


@pytest.fixture
def make_snapshot():
    return _snapshot


# --- Yahoo chart payloads ---

DAY0 = 1704326400  # 2024-01-04 00:00 UTC
DAY = 86400


def _chart(closes, nulls=()):
    """Minimal Yahoo chart payload; days listed in `nulls` get a null close."""
    n = len(closes)
    close = [None if i in nulls else c for i, c in enumerate(closes)]
    return {
        "chart": {
            "result": [
                {
                    "timestamp": [DAY0 + i * DAY for i in range(n)],
                    "indicators": {
                        "quote": [
                            {
                                "open": list(closes),
                                "high": [c + 1 for c in closes],
                                "low": [c - 1 for c in closes],
                                "close": close,
                                "volume": [1000] * n,
                            }
                        ]
                    },
                }
            ],
            "error": None,
        }
    }


class FakeSleep:
    def __init__(self):
        self.calls = []

    async def __call__(self, seconds):
        self.calls.append(seconds)


@pytest.fixture
def chart():
    return _chart


@pytest.fixture
def fake_sleep():
    return FakeSleep()
