"""Durable storage for the user collection.

Every store loads and saves the collection as a single unit. ``save`` fully
replaces what was stored before and either commits completely or leaves the
previous content in place.
"""
from __future__ import annotations

import json
import logging
import os
import sqlite3
import tempfile
import threading
from contextlib import closing
from datetime import datetime, timezone
from pathlib import Path
from typing import List, Optional, Protocol, Sequence, Tuple, runtime_checkable

from .config import DirectoryConfig
from .errors import StoreUnavailable
from .models import UserRecord

logger = logging.getLogger("userdir.store")

_SQLITE_TIMEOUT_SECONDS = 5.0


def _ensure_directory(path: Path) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)


def _fsync_directory(path: Path) -> None:
    """Flush a directory entry so a completed rename survives power loss."""

    if os.name != "posix":
        return
    fd = os.open(str(path), os.O_RDONLY)
    try:
        os.fsync(fd)
    finally:
        os.close(fd)


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _decode_collection(raw: object, source: str) -> List[UserRecord]:
    if not isinstance(raw, list):
        raise StoreUnavailable(f"Stored collection in {source} is not a list")
    records: List[UserRecord] = []
    for item in raw:
        if not isinstance(item, dict):
            raise StoreUnavailable(f"Stored collection in {source} contains a non-object entry")
        try:
            records.append(UserRecord.from_dict(item))
        except ValueError as exc:
            raise StoreUnavailable(f"Stored collection in {source} contains an invalid record") from exc
    return records


def _encode_collection(records: Sequence[UserRecord]) -> str:
    return json.dumps([record.to_dict() for record in records], ensure_ascii=False, indent=2)


@runtime_checkable
class RecordStore(Protocol):
    """Load/save contract for the whole user collection."""

    def load(self) -> List[UserRecord]:
        ...

    def save(self, records: Sequence[UserRecord]) -> None:
        ...


class MemoryRecordStore:
    """Non-persistent store holding an immutable snapshot of the collection."""

    def __init__(self, records: Sequence[UserRecord] = ()) -> None:
        self._snapshot: Tuple[UserRecord, ...] = tuple(records)
        self._lock = threading.Lock()

    def load(self) -> List[UserRecord]:
        with self._lock:
            return list(self._snapshot)

    def save(self, records: Sequence[UserRecord]) -> None:
        snapshot = tuple(records)
        with self._lock:
            self._snapshot = snapshot


class JsonFileRecordStore:
    """Stores the collection as a JSON list in a single file."""

    def __init__(self, path: Path) -> None:
        self._path = path

    @property
    def path(self) -> Path:
        return self._path

    def load(self) -> List[UserRecord]:
        try:
            with self._path.open("r", encoding="utf-8") as handle:
                raw = json.load(handle)
        except FileNotFoundError:
            return []
        except json.JSONDecodeError as exc:
            logger.error("User collection at %s is not valid JSON", self._path)
            raise StoreUnavailable(f"User collection at {self._path} is corrupt") from exc
        except OSError as exc:
            logger.error("Failed to read user collection at %s: %s", self._path, exc)
            raise StoreUnavailable(f"User collection at {self._path} could not be read") from exc

        return _decode_collection(raw, str(self._path))

    def save(self, records: Sequence[UserRecord]) -> None:
        payload = _encode_collection(records)
        tmp_name: Optional[str] = None
        try:
            _ensure_directory(self._path)
            fd, tmp_name = tempfile.mkstemp(
                prefix=f".{self._path.name}.", suffix=".tmp", dir=str(self._path.parent)
            )
            with os.fdopen(fd, "w", encoding="utf-8") as handle:
                handle.write(payload)
                handle.flush()
                os.fsync(handle.fileno())
            os.replace(tmp_name, self._path)
            tmp_name = None
            _fsync_directory(self._path.parent)
        except OSError as exc:
            logger.error("Failed to write user collection to %s: %s", self._path, exc)
            raise StoreUnavailable(f"User collection at {self._path} could not be written") from exc
        finally:
            if tmp_name is not None:
                try:
                    os.unlink(tmp_name)
                except OSError:
                    logger.warning("Could not remove temporary file %s", tmp_name)


class SqliteRecordStore:
    """Stores the collection as one JSON payload row in an SQLite database."""

    def __init__(self, path: Path, *, collection: str = "users") -> None:
        self._path = path
        self._collection = collection

    @property
    def path(self) -> Path:
        return self._path

    def _connect(self) -> sqlite3.Connection:
        _ensure_directory(self._path)
        conn = sqlite3.connect(self._path, timeout=_SQLITE_TIMEOUT_SECONDS, check_same_thread=False)
        conn.row_factory = sqlite3.Row
        return conn

    def initialize(self) -> None:
        """Create the backing table if it does not already exist."""

        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    CREATE TABLE IF NOT EXISTS collections (
                        name TEXT PRIMARY KEY,
                        payload TEXT NOT NULL,
                        updated_at TEXT NOT NULL
                    )
                    """
                )
        except sqlite3.Error as exc:
            logger.error("Failed to initialise user store at %s: %s", self._path, exc)
            raise StoreUnavailable(f"User store at {self._path} could not be initialised") from exc

    def load(self) -> List[UserRecord]:
        try:
            with closing(self._connect()) as conn, conn:
                row = conn.execute(
                    "SELECT payload FROM collections WHERE name = ?",
                    (self._collection,),
                ).fetchone()
        except sqlite3.OperationalError as exc:
            if "no such table" in str(exc):
                return []
            logger.error("Failed to read user collection from %s: %s", self._path, exc)
            raise StoreUnavailable(f"User store at {self._path} could not be read") from exc
        except sqlite3.Error as exc:
            logger.error("Failed to read user collection from %s: %s", self._path, exc)
            raise StoreUnavailable(f"User store at {self._path} could not be read") from exc

        if row is None:
            return []

        try:
            raw = json.loads(str(row["payload"]))
        except json.JSONDecodeError as exc:
            logger.error("User collection in %s is not valid JSON", self._path)
            raise StoreUnavailable(f"User store at {self._path} is corrupt") from exc

        return _decode_collection(raw, str(self._path))

    def save(self, records: Sequence[UserRecord]) -> None:
        payload = _encode_collection(records)
        self.initialize()
        try:
            with closing(self._connect()) as conn, conn:
                conn.execute(
                    """
                    INSERT INTO collections (name, payload, updated_at)
                    VALUES (?, ?, ?)
                    ON CONFLICT(name) DO UPDATE SET
                        payload = excluded.payload,
                        updated_at = excluded.updated_at
                    """,
                    (self._collection, payload, _current_timestamp().isoformat()),
                )
        except sqlite3.Error as exc:
            logger.error("Failed to write user collection to %s: %s", self._path, exc)
            raise StoreUnavailable(f"User store at {self._path} could not be written") from exc


def build_store(config: DirectoryConfig) -> RecordStore:
    """Instantiate the store selected by ``config``."""

    if config.store_backend == "memory":
        return MemoryRecordStore()
    if config.store_path is None:
        raise ValueError(f"Store backend '{config.store_backend}' requires a path")
    if config.store_backend == "json":
        return JsonFileRecordStore(config.store_path)
    if config.store_backend == "sqlite":
        store = SqliteRecordStore(config.store_path)
        store.initialize()
        return store
    raise ValueError(f"Unknown store backend '{config.store_backend}'")


__all__ = [
    "RecordStore",
    "MemoryRecordStore",
    "JsonFileRecordStore",
    "SqliteRecordStore",
    "build_store",
]
