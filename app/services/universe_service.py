# app/services/universe_service.py
from __future__ import annotations

import io
import logging
from dataclasses import dataclass
from pathlib import Path

import pandas as pd

logger = logging.getLogger(__name__)

# accepted header spellings, first match wins
HEADER_ALIASES: dict[str, tuple[str, ...]] = {
    "code": ("ｺｰﾄﾞ", "コード", "code", "Code", "CODE"),
    "market": ("市場", "market", "Market", "MARKET"),
    "name": ("銘柄", "銘柄名", "name", "Name", "NAME", "会社名"),
}

ENCODINGS = ("utf-8-sig", "cp932")  # cp932 = Windows Shift-JIS
DELIMITERS = (",", "\t", "|", ";")


@dataclass(frozen=True)
class UniverseStock:
    code: str
    market: str
    name: str


def _decode(raw: bytes) -> str:
    for enc in ENCODINGS:
        try:
            text = raw.decode(enc)
            logger.info("universe csv decoded as %s", enc)
            return text
        except UnicodeDecodeError:
            continue
    logger.warning("could not detect csv encoding, falling back to utf-8")
    return raw.decode("utf-8", errors="replace")


def _pick_column(columns: list[str], aliases: tuple[str, ...]) -> str | None:
    stripped = {str(c).strip(): c for c in columns}
    for alias in aliases:
        if alias in stripped:
            return stripped[alias]
    return None


def _sniff_delimiter(text: str) -> str:
    header = text.splitlines()[0] if text else ""
    return max(DELIMITERS, key=header.count)


def parse_universe(text: str) -> list[UniverseStock]:
    """CSV text -> stocks. Rows without a code or a name are skipped."""
    df = pd.read_csv(
        io.StringIO(text),
        sep=_sniff_delimiter(text),
        dtype=str,
        keep_default_na=False,
        skip_blank_lines=True,
    )

    cols = {field: _pick_column(list(df.columns), aliases) for field, aliases in HEADER_ALIASES.items()}
    logger.debug("csv headers: %s -> %s", list(df.columns), cols)

    def column(field: str) -> pd.Series:
        src = cols[field]
        if src is None:
            return pd.Series([""] * len(df), index=df.index, dtype=str)
        return df[src].astype(str).str.strip()

    out = pd.DataFrame({"code": column("code"), "market": column("market"), "name": column("name")})
    out = out[(out["code"] != "") & (out["name"] != "")]
    return [UniverseStock(code=r.code, market=r.market, name=r.name) for r in out.itertuples(index=False)]


def load_universe(path: str | Path) -> list[UniverseStock]:
    path = Path(path)
    try:
        raw = path.read_bytes()
    except OSError as exc:
        raise FileNotFoundError(f"universe csv could not be read: {path} ({exc})") from exc
    stocks = parse_universe(_decode(raw))
    logger.info("universe loaded: %d stocks from %s", len(stocks), path.name)
    return stocks


def limit_universe(stocks: list[UniverseStock], max_stocks: int | None) -> list[UniverseStock]:
    """First `max_stocks` entries (None = all)."""
    if max_stocks is None:
        return list(stocks)
    return stocks[: max(0, max_stocks)]


def name_map(stocks: list[UniverseStock]) -> dict[str, str]:
    return {s.code: s.name for s in stocks}
