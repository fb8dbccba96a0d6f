"""Behavioural tests for the user directory service."""

from __future__ import annotations

import threading
import time
from pathlib import Path
from typing import List, Sequence

import pytest

from userdir.directory import UserDirectory
from userdir.errors import (
    ConflictError,
    NotFound,
    SelfDeletionError,
    StoreUnavailable,
    ValidationError,
)
from userdir.models import Role, UserRecord
from userdir.store import JsonFileRecordStore, MemoryRecordStore, RecordStore, SqliteRecordStore


def _encode(password: str) -> str:
    return f"encoded:{password}"


class FailingSaveStore(MemoryRecordStore):
    """Memory store whose writes can be switched off."""

    def __init__(self) -> None:
        super().__init__()
        self.fail_saves = False

    def save(self, records: Sequence[UserRecord]) -> None:
        if self.fail_saves:
            raise StoreUnavailable("write refused")
        super().save(records)


class SlowStore(MemoryRecordStore):
    """Memory store that widens the window between load and save."""

    def load(self) -> List[UserRecord]:
        records = super().load()
        time.sleep(0.01)
        return records


@pytest.fixture()
def directory() -> UserDirectory:
    return UserDirectory(MemoryRecordStore(), encode_credential=_encode)


def test_create_then_get_round_trip(directory: UserDirectory) -> None:
    created = directory.create(email="alice@example.com", password="pw", name="Alice", role="admin")

    fetched = directory.get_by_id(created.id)
    assert fetched.summary() == created
    assert (fetched.email, fetched.name, fetched.role) == ("alice@example.com", "Alice", Role.ADMIN)
    assert fetched.password_credential == "encoded:pw"
    assert fetched.created_at.tzinfo is not None


def test_name_defaults_to_email_local_part(directory: UserDirectory) -> None:
    created = directory.create(email="a@b.com", password="x", role="user")

    assert created.name == "a"
    assert created.to_dict() == {"id": created.id, "email": "a@b.com", "name": "a", "role": "user"}


def test_blank_name_also_defaults(directory: UserDirectory) -> None:
    created = directory.create(email="carol@example.com", password="x", name="   ", role="user")

    assert created.name == "carol"


@pytest.mark.parametrize(
    "fields",
    [
        {"email": None, "password": "pw", "role": "user"},
        {"email": "x@example.com", "password": None, "role": "user"},
        {"email": "x@example.com", "password": "pw", "role": None},
        {"email": "  ", "password": "pw", "role": "user"},
        {"email": "x@example.com", "password": "", "role": "user"},
    ],
)
def test_missing_required_fields_are_rejected(directory: UserDirectory, fields) -> None:
    with pytest.raises(ValidationError) as excinfo:
        directory.create(**fields)

    assert excinfo.value.message == "Missing required fields: email, password, role"
    assert directory.list_all() == []


def test_unknown_role_is_rejected(directory: UserDirectory) -> None:
    with pytest.raises(ValidationError):
        directory.create(email="x@example.com", password="pw", role="superuser")


def test_duplicate_email_conflicts_without_mutation(directory: UserDirectory) -> None:
    first = directory.create(email="dup@example.com", password="pw", role="user")

    with pytest.raises(ConflictError):
        directory.create(email="dup@example.com", password="other", role="admin")

    assert [record.id for record in directory.list_all()] == [first.id]


def test_email_uniqueness_ignores_case_and_whitespace(directory: UserDirectory) -> None:
    directory.create(email="Dup@Example.com", password="pw", role="user")

    with pytest.raises(ConflictError):
        directory.create(email="  dup@example.COM ", password="pw", role="user")

    assert directory.get_by_email("DUP@example.com") is not None


def test_ids_are_unique(directory: UserDirectory) -> None:
    ids = {directory.create(email=f"u{i}@example.com", password="pw", role="user").id for i in range(50)}

    assert len(ids) == 50


def test_get_unknown_id_raises_not_found(directory: UserDirectory) -> None:
    with pytest.raises(NotFound):
        directory.get_by_id("missing")


def test_list_all_preserves_insertion_order(directory: UserDirectory) -> None:
    emails = ["c@example.com", "a@example.com", "b@example.com"]
    for email in emails:
        directory.create(email=email, password="pw", role="user")

    assert [record.email for record in directory.list_all()] == emails
    assert directory.count() == 3


def test_list_paged_over_twenty_five_users(directory: UserDirectory) -> None:
    for index in range(25):
        directory.create(email=f"user{index}@example.com", password="pw", role="user")

    page = directory.list_paged(page=3, limit=10)

    assert len(page.items) == 5
    assert page.total_items == 25
    assert page.total_pages == 3
    assert page.items[0].email == "user20@example.com"


def test_delete_removes_exactly_one_record(directory: UserDirectory) -> None:
    keep = directory.create(email="keep@example.com", password="pw", role="user")
    drop = directory.create(email="drop@example.com", password="pw", role="user")

    removed = directory.delete(drop.id, requester_id="someone-else")

    assert removed.to_dict() == {"id": drop.id, "email": "drop@example.com"}
    assert [record.id for record in directory.list_all()] == [keep.id]


def test_delete_unknown_id_raises_not_found(directory: UserDirectory) -> None:
    directory.create(email="keep@example.com", password="pw", role="user")

    with pytest.raises(NotFound):
        directory.delete("does-not-exist", requester_id="admin")

    assert directory.count() == 1


def test_admin_cannot_delete_themselves(directory: UserDirectory) -> None:
    admin = directory.create(email="root@example.com", password="pw", role="admin")

    with pytest.raises(SelfDeletionError):
        directory.delete(admin.id, requester_id=admin.id)

    assert [record.id for record in directory.list_all()] == [admin.id]


def test_missing_record_is_reported_before_self_deletion(directory: UserDirectory) -> None:
    with pytest.raises(NotFound):
        directory.delete("ghost", requester_id="ghost")


def test_deleted_email_can_be_registered_again(directory: UserDirectory) -> None:
    first = directory.create(email="again@example.com", password="pw", role="user")
    directory.delete(first.id)

    second = directory.create(email="again@example.com", password="pw", role="user")

    assert second.id != first.id


def test_failed_save_during_create_leaves_no_trace() -> None:
    store = FailingSaveStore()
    directory = UserDirectory(store, encode_credential=_encode)
    existing = directory.create(email="existing@example.com", password="pw", role="user")

    store.fail_saves = True
    with pytest.raises(StoreUnavailable):
        directory.create(email="new@example.com", password="pw", role="user")
    store.fail_saves = False

    assert [record.id for record in directory.list_all()] == [existing.id]
    retried = directory.create(email="new@example.com", password="pw", role="user")
    assert [record.id for record in directory.list_all()] == [existing.id, retried.id]


def test_failed_save_during_delete_keeps_record() -> None:
    store = FailingSaveStore()
    directory = UserDirectory(store, encode_credential=_encode)
    record = directory.create(email="stay@example.com", password="pw", role="user")

    store.fail_saves = True
    with pytest.raises(StoreUnavailable):
        directory.delete(record.id)

    assert directory.get_by_id(record.id).summary() == record


def test_corrupt_store_surfaces_store_unavailable(tmp_path: Path) -> None:
    path = tmp_path / "users.json"
    path.write_text("not json", encoding="utf-8")
    directory = UserDirectory(JsonFileRecordStore(path), encode_credential=_encode)

    with pytest.raises(StoreUnavailable):
        directory.list_all()
    with pytest.raises(StoreUnavailable):
        directory.create(email="x@example.com", password="pw", role="user")


def test_concurrent_creates_with_same_email_admit_one() -> None:
    directory = UserDirectory(SlowStore(), encode_credential=_encode)
    barrier = threading.Barrier(8)
    outcomes: List[str] = []
    outcomes_lock = threading.Lock()

    def worker() -> None:
        barrier.wait()
        try:
            directory.create(email="race@example.com", password="pw", role="user")
            result = "created"
        except ConflictError:
            result = "conflict"
        with outcomes_lock:
            outcomes.append(result)

    threads = [threading.Thread(target=worker) for _ in range(8)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert sorted(outcomes) == ["conflict"] * 7 + ["created"]
    assert directory.count() == 1


def test_concurrent_creates_with_distinct_emails_all_persist(tmp_path: Path) -> None:
    directory = UserDirectory(JsonFileRecordStore(tmp_path / "users.json"), encode_credential=_encode)

    threads = [
        threading.Thread(
            target=directory.create,
            kwargs={"email": f"user{index}@example.com", "password": "pw", "role": "user"},
        )
        for index in range(10)
    ]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    emails = {record.email for record in directory.list_all()}
    assert emails == {f"user{index}@example.com" for index in range(10)}


def test_default_encoder_does_not_store_plain_password() -> None:
    directory = UserDirectory(MemoryRecordStore())

    created = directory.create(email="hash@example.com", password="Sup3rSecret!", role="user")
    record = directory.get_by_id(created.id)

    assert record.password_credential != "Sup3rSecret!"
    assert record.password_credential.startswith("$pbkdf2-sha256$")


def test_create_and_delete_never_hand_back_the_credential(directory: UserDirectory) -> None:
    created = directory.create(email="quiet@example.com", password="pw", role="user")
    removed = directory.delete(created.id)

    assert not hasattr(created, "password_credential")
    assert set(created.to_dict()) == {"id", "email", "name", "role"}
    assert not hasattr(removed, "password_credential")
    assert set(removed.to_dict()) == {"id", "email"}


def test_replace_credential_swaps_only_the_expected_value(directory: UserDirectory) -> None:
    created = directory.create(email="legacy@example.com", password="pw", role="user")

    assert directory.replace_credential(created.id, "encoded:pw", "rehashed")
    assert not directory.replace_credential(created.id, "encoded:pw", "rehashed-again")
    assert not directory.replace_credential("missing", "rehashed", "other")

    record = directory.get_by_id(created.id)
    assert record.password_credential == "rehashed"
    assert record.summary() == created


@pytest.mark.parametrize("backend", ["json", "sqlite"])
def test_reads_during_creates_see_consistent_prefixes(tmp_path: Path, backend: str) -> None:
    store: RecordStore
    if backend == "json":
        store = JsonFileRecordStore(tmp_path / "users.json")
    else:
        store = SqliteRecordStore(tmp_path / "users.sqlite3")
        store.initialize()
    directory = UserDirectory(store, encode_credential=_encode)

    done = threading.Event()
    snapshots: List[List[UserRecord]] = []
    failures: List[Exception] = []
    results_lock = threading.Lock()

    def reader() -> None:
        while not done.is_set():
            try:
                loaded = store.load()
            except Exception as exc:
                with results_lock:
                    failures.append(exc)
                return
            with results_lock:
                snapshots.append(loaded)

    def writer(offset: int) -> None:
        for index in range(offset, offset + 10):
            directory.create(email=f"user{index}@example.com", password="pw", role="user")

    readers = [threading.Thread(target=reader) for _ in range(4)]
    writers = [threading.Thread(target=writer, args=(offset,)) for offset in (0, 100, 200)]
    for thread in readers + writers:
        thread.start()
    for thread in writers:
        thread.join()
    done.set()
    for thread in readers:
        thread.join()

    assert failures == []
    final_ids = [record.id for record in store.load()]
    assert len(final_ids) == 30
    assert snapshots
    for snapshot in snapshots:
        ids = [record.id for record in snapshot]
        emails = [record.email for record in snapshot]
        assert ids == final_ids[: len(ids)]
        assert len(set(emails)) == len(emails)
