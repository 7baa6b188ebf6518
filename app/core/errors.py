# app/core/errors.py
from __future__ import annotations


class ScreenerError(Exception):
    """Base class for errors raised by the storage and retrieval layers."""


class NetworkFailure(ScreenerError):
    """Quote request failed (HTTP error, timeout, connection error)."""


class MalformedUpstreamData(ScreenerError):
    """Upstream payload is missing required fields or has no usable day."""


class SerializationFailure(ScreenerError):
    """A record could not be encoded for storage."""


class StorageQuotaExceeded(ScreenerError):
    def __init__(self, size_bytes: int, limit_bytes: int):
        self.size_bytes = size_bytes
        self.limit_bytes = limit_bytes
        super().__init__(
            f"data size exceeds the storage limit even after compression: "
            f"{size_bytes / 1024 / 1024:.2f}MB (limit: {limit_bytes / 1024 / 1024:.2f}MB)"
        )


class CorruptPersistedData(ScreenerError):
    """Persisted record is unparseable or has an unsupported version."""


class NoteTooLong(ScreenerError, ValueError):
    def __init__(self, length: int, limit: int):
        self.length = length
        self.limit = limit
        super().__init__(f"note is {length} characters (limit: {limit})")


class StorageUnavailable(ScreenerError):
    """The storage table could not be read or written."""
