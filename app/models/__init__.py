# app/models/__init__.py
from app.models.storage_record import StorageRecord

__all__ = ["StorageRecord"]
