"""Identifier generation and lookups over a loaded collection."""
from __future__ import annotations

import uuid
from typing import Optional, Sequence

from .models import UserRecord


def assign_id() -> str:
    """Return a fresh random identifier for a new record."""

    return str(uuid.uuid4())


def normalise_email(email: str) -> str:
    return email.strip().lower()


def find_by_email(records: Sequence[UserRecord], email: str) -> Optional[UserRecord]:
    wanted = normalise_email(email)
    for record in records:
        if normalise_email(record.email) == wanted:
            return record
    return None


def find_by_id(records: Sequence[UserRecord], record_id: object) -> Optional[int]:
    wanted = str(record_id)
    for index, record in enumerate(records):
        if record.id == wanted:
            return index
    return None


__all__ = ["assign_id", "normalise_email", "find_by_email", "find_by_id"]
