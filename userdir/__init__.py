"""Core utilities for the user directory service."""

from __future__ import annotations

from typing import Any

from .directory import UserDirectory
from .errors import (
    ConflictError,
    DirectoryError,
    NotFound,
    SelfDeletionError,
    StoreUnavailable,
    ValidationError,
)
from .models import Principal, Role, UserRecord
from .pagination import PageResult, paginate
from .store import JsonFileRecordStore, MemoryRecordStore, RecordStore, SqliteRecordStore, build_store


def create_app(*args: Any, **kwargs: Any):
    """Factory function that returns the HTTP application."""

    from .service import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "UserDirectory",
    "DirectoryError",
    "ValidationError",
    "ConflictError",
    "NotFound",
    "SelfDeletionError",
    "StoreUnavailable",
    "Principal",
    "Role",
    "UserRecord",
    "PageResult",
    "paginate",
    "RecordStore",
    "MemoryRecordStore",
    "JsonFileRecordStore",
    "SqliteRecordStore",
    "build_store",
    "create_app",
]
