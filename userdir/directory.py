"""User directory operations over a record store."""

from __future__ import annotations

import logging
import threading
from dataclasses import replace
from datetime import datetime, timezone
from typing import Callable, List, Optional

from .credentials import hash_password
from .errors import ConflictError, NotFound, SelfDeletionError, ValidationError
from .identity import assign_id, find_by_email, find_by_id, normalise_email
from .models import DeletedUser, RedactedUser, Role, UserRecord, parse_role
from .pagination import PageResult, paginate
from .store import RecordStore

logger = logging.getLogger("userdir.directory")

_MISSING_FIELDS_MESSAGE = "Missing required fields: email, password, role"


def _current_timestamp() -> datetime:
    return datetime.now(timezone.utc)


def _clean(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    stripped = value.strip()
    return stripped or None


class UserDirectory:
    """Create, fetch, list and delete user records.

    ``create`` and ``delete`` run their load, check, mutate and save steps
    under one lock, so two concurrent creates for the same email cannot both
    pass the uniqueness check. Reads go straight to the store, which only
    ever exposes fully written collections.
    """

    def __init__(
        self,
        store: RecordStore,
        *,
        encode_credential: Callable[[str], str] = hash_password,
    ) -> None:
        self._store = store
        self._encode_credential = encode_credential
        self._lock = threading.Lock()

    @property
    def store(self) -> RecordStore:
        return self._store

    # ------------------------------------------------------------------
    # Mutations
    # ------------------------------------------------------------------
    def create(
        self,
        *,
        email: Optional[str],
        password: Optional[str],
        role: Optional[str | Role],
        name: Optional[str] = None,
    ) -> RedactedUser:
        """Add a new record and return its redacted view.

        Raises :class:`ValidationError` when email, password or role is
        missing, :class:`ConflictError` when the email is already taken and
        :class:`StoreUnavailable` when the store cannot be read or written.
        """

        cleaned_email = _clean(email)
        raw_role = role.value if isinstance(role, Role) else _clean(role)
        if cleaned_email is None or not password or raw_role is None:
            raise ValidationError(_MISSING_FIELDS_MESSAGE)

        parsed_role = parse_role(raw_role)
        if parsed_role is None:
            allowed = ", ".join(item.value for item in Role)
            raise ValidationError(f"Unknown role '{raw_role}'. Expected one of: {allowed}")

        normalised_email = normalise_email(cleaned_email)
        display_name = _clean(name) or normalised_email.split("@", 1)[0]
        credential = self._encode_credential(password)

        with self._lock:
            records = self._store.load()
            if find_by_email(records, normalised_email) is not None:
                raise ConflictError("User with this email already exists")

            record = UserRecord(
                id=assign_id(),
                email=normalised_email,
                name=display_name,
                role=parsed_role.value,
                password_credential=credential,
                created_at=_current_timestamp(),
            )
            self._store.save([*records, record])

        logger.info("Created user %s with role %s", record.id, record.role)
        return record.summary()

    def delete(self, record_id: str, requester_id: Optional[str] = None) -> DeletedUser:
        """Remove the record ``record_id`` and return its id and email.

        Raises :class:`NotFound` when no record matches and
        :class:`SelfDeletionError` when ``requester_id`` names the same record.
        """

        with self._lock:
            records = self._store.load()
            index = find_by_id(records, record_id)
            if index is None:
                raise NotFound("User not found")
            if requester_id is not None and str(requester_id) == str(record_id):
                raise SelfDeletionError("Cannot delete yourself")

            removed = records[index]
            self._store.save(records[:index] + records[index + 1 :])

        logger.info("Deleted user %s", removed.id)
        return removed.deletion_summary()

    def replace_credential(self, record_id: str, expected: str, credential: str) -> bool:
        """Swap an outdated stored credential for a re-encoded one.

        Only applies when the record still holds ``expected``; returns whether
        the swap happened. Used to upgrade legacy credentials on login.
        """

        with self._lock:
            records = self._store.load()
            index = find_by_id(records, record_id)
            if index is None or records[index].password_credential != expected:
                return False

            records[index] = replace(records[index], password_credential=credential)
            self._store.save(records)

        logger.info("Upgraded stored credential for user %s", record_id)
        return True

    # ------------------------------------------------------------------
    # Reads
    # ------------------------------------------------------------------
    def get_by_id(self, record_id: str) -> UserRecord:
        records = self._store.load()
        index = find_by_id(records, record_id)
        if index is None:
            raise NotFound("User not found")
        return records[index]

    def get_by_email(self, email: str) -> Optional[UserRecord]:
        return find_by_email(self._store.load(), email)

    def list_all(self) -> List[UserRecord]:
        return self._store.load()

    def list_paged(self, page: object = None, limit: object = None) -> PageResult[UserRecord]:
        return paginate(self._store.load(), page, limit)

    def count(self) -> int:
        return len(self._store.load())


__all__ = ["UserDirectory"]
