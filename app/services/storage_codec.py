# app/services/storage_codec.py
"""DEFLATE + base64 encoding for records that only fit the storage compressed."""
from __future__ import annotations

import base64
import binascii
import logging
import re
import zlib

from app.core.errors import CorruptPersistedData

logger = logging.getLogger(__name__)

_BASE64_RE = re.compile(r"^[A-Za-z0-9+/]*={0,2}$")


def compress(json_text: str) -> str:
    raw = json_text.encode("utf-8")
    packed = base64.b64encode(zlib.compress(raw)).decode("ascii")
    logger.info(
        "compressed %.2fMB -> %.2fMB (%.1f%% smaller)",
        len(raw) / 1024 / 1024,
        len(packed) / 1024 / 1024,
        (1 - len(packed) / len(raw)) * 100 if raw else 0.0,
    )
    return packed


def decompress(packed: str) -> str:
    try:
        raw = zlib.decompress(base64.b64decode(packed, validate=True))
        return raw.decode("utf-8")
    except (binascii.Error, zlib.error, UnicodeDecodeError, ValueError) as exc:
        raise CorruptPersistedData(f"could not decompress stored data: {exc}") from exc


def looks_compressed(value: str) -> bool:
    """Shape check for stored text: compressed records are long base64 strings."""
    return len(value) > 100 and bool(_BASE64_RE.match(value))
