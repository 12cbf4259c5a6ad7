from datetime import UTC, datetime, timedelta, timezone

import pytest

from retention_scheduler.errors import StorageError
from retention_scheduler.models import ItemType, MemoryItem, ReviewPatch
from retention_scheduler.store import SQLiteItemStore
from retention_scheduler.store.common import from_db_timestamp, to_db_timestamp

NOW = datetime(2026, 10, 19, 9, 0, tzinfo=UTC)


def _item(item_id: str, *, owner: str = "alice", difficulty: int = 3, due_in_days: float = 1,
          subject: str = "Physics", active: bool = True) -> MemoryItem:
    return MemoryItem(
        id=item_id,
        owner=owner,
        subject=subject,
        chapter="Kinematics",
        concept="Key Formulas",
        content="v = u + at",
        item_type=ItemType.formula,
        difficulty=difficulty,
        next_review_at=NOW + timedelta(days=due_in_days),
        created_at=NOW,
        updated_at=NOW,
        active=active,
    )


def test_create_and_get_roundtrip(store: SQLiteItemStore):
    store.create(_item("mi:1"))
    loaded = store.get_by_id("mi:1")
    assert loaded is not None
    assert loaded.owner == "alice"
    assert loaded.item_type is ItemType.formula
    assert loaded.next_review_at == NOW + timedelta(days=1)
    assert loaded.last_reviewed_at is None
    assert loaded.review_count == 0
    assert loaded.retention_score == 0.0
    assert loaded.active is True
    assert loaded.version == 0


def test_get_unknown_returns_none(store: SQLiteItemStore):
    assert store.get_by_id("mi:missing") is None


def test_query_due_filters_and_orders(store: SQLiteItemStore):
    store.create(_item("mi:a", difficulty=2, due_in_days=-3))
    store.create(_item("mi:b", difficulty=5, due_in_days=-1))
    store.create(_item("mi:c", difficulty=5, due_in_days=-2))
    store.create(_item("mi:future", difficulty=5, due_in_days=2))
    store.create(_item("mi:inactive", difficulty=5, due_in_days=-5, active=False))
    store.create(_item("mi:other", owner="bob", difficulty=5, due_in_days=-5))

    due = store.query_due("alice", NOW, limit=10)
    assert [it.id for it in due] == ["mi:c", "mi:b", "mi:a"]

    assert [it.id for it in store.query_due("alice", NOW, limit=2)] == ["mi:c", "mi:b"]


def test_query_due_includes_items_due_exactly_now(store: SQLiteItemStore):
    store.create(_item("mi:edge", due_in_days=0))
    assert [it.id for it in store.query_due("alice", NOW, limit=5)] == ["mi:edge"]


def test_update_after_review_checks_version(store: SQLiteItemStore):
    store.create(_item("mi:1"))
    patch = ReviewPatch(
        retention_score=0.2,
        review_count=1,
        last_reviewed_at=NOW,
        next_review_at=NOW + timedelta(days=1),
    )
    assert store.update_after_review("mi:1", "alice", 0, patch) is True
    # 古い version での書き込みは拒否される
    assert store.update_after_review("mi:1", "alice", 0, patch) is False
    # 所有者が異なる場合も書き込まれない
    assert store.update_after_review("mi:1", "bob", 1, patch) is False

    loaded = store.get_by_id("mi:1")
    assert loaded.version == 1
    assert loaded.review_count == 1
    assert loaded.retention_score == pytest.approx(0.2)
    assert loaded.last_reviewed_at == NOW


def test_set_active_and_owner_listing(store: SQLiteItemStore):
    store.create(_item("mi:1"))
    store.create(_item("mi:2", subject="Chemistry"))
    assert store.set_active("mi:1", "alice", False) is True
    assert store.set_active("mi:1", "bob", True) is False

    assert [it.id for it in store.query_by_owner("alice")] == ["mi:2"]
    assert {it.id for it in store.query_by_owner("alice", active_only=False)} == {"mi:1", "mi:2"}
    assert store.get_by_id("mi:1").active is False


def test_duplicate_id_surfaces_storage_error(store: SQLiteItemStore):
    store.create(_item("mi:dup"))
    with pytest.raises(StorageError):
        store.create(_item("mi:dup"))


def test_unusable_directory_surfaces_storage_error(tmp_path):
    blocker = tmp_path / "blocker"
    blocker.write_text("not a directory")
    with pytest.raises(StorageError):
        SQLiteItemStore(db_path=str(blocker / "nested" / "items.sqlite3"))


def test_timestamps_are_normalised_to_utc():
    jst = timezone(timedelta(hours=9))
    local = datetime(2026, 10, 19, 18, 0, tzinfo=jst)
    text = to_db_timestamp(local)
    assert text == "2026-10-19T09:00:00.000000+00:00"
    assert from_db_timestamp(text) == local
    assert to_db_timestamp(datetime(2026, 1, 1)) == "2026-01-01T00:00:00.000000+00:00"
    assert from_db_timestamp(None) is None
