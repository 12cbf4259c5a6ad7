import threading
from datetime import timedelta

import pytest

from retention_scheduler.errors import ConflictError, NotFoundError, StorageError, ValidationError
from retention_scheduler.ladder import IntervalLadder
from retention_scheduler.models import ItemType, ReviewPatch
from retention_scheduler.retention import Outcome
from retention_scheduler.service import SchedulerService
from retention_scheduler.store import SQLiteItemStore


def _create(service: SchedulerService, owner: str = "alice", **overrides):
    params = {
        "subject": "Physics",
        "chapter": "Kinematics",
        "concept": "Key Formulas",
        "content": "v = u + at",
        "item_type": "formula",
        "difficulty": 3,
    }
    params.update(overrides)
    return service.create_item(owner, **params)


class _ExplodingStore:
    """Store stub that fails the test if any storage call happens."""

    def __getattr__(self, name):
        raise AssertionError(f"storage must not be touched: {name}")


# --- create ---


def test_create_item_initial_state(service, clock):
    item = _create(service)
    assert item.id.startswith("mi:")
    assert item.owner == "alice"
    assert item.item_type is ItemType.formula
    assert item.review_count == 0
    assert item.retention_score == 0.0
    assert item.last_reviewed_at is None
    assert item.active is True
    assert item.next_review_at == clock.now + timedelta(days=1)
    assert service.get_item("alice", item.id) == item


@pytest.mark.parametrize(
    "overrides",
    [
        {"difficulty": 0},
        {"difficulty": 6},
        {"difficulty": 2.5},
        {"difficulty": True},
        {"item_type": "video"},
        {"subject": "   "},
        {"content": None},
    ],
)
def test_create_item_validation_happens_before_storage(clock, overrides):
    service = SchedulerService(_ExplodingStore(), clock=clock)
    with pytest.raises(ValidationError):
        _create(service, **overrides)


def test_create_item_requires_owner(clock):
    service = SchedulerService(_ExplodingStore(), clock=clock)
    with pytest.raises(ValidationError):
        _create(service, owner="")


# --- due selection ---


def test_get_due_items_orders_by_difficulty_then_overdue(service, clock):
    easy_old = _create(service, difficulty=1)
    clock.advance(hours=1)
    hard_new = _create(service, difficulty=5)
    clock.advance(hours=1)
    mid = _create(service, difficulty=3)
    clock.advance(hours=1)
    hard_newer = _create(service, difficulty=5)

    # 作成直後はどれも due ではない
    assert service.get_due_items("alice") == []

    clock.advance(days=2)
    due = service.get_due_items("alice")
    assert [it.id for it in due] == [hard_new.id, hard_newer.id, mid.id, easy_old.id]
    keys = [(-it.difficulty, it.next_review_at) for it in due]
    assert keys == sorted(keys)


def test_get_due_items_respects_limit_and_owner(service, clock):
    for _ in range(5):
        _create(service)
    _create(service, owner="bob")
    clock.advance(days=1)

    assert len(service.get_due_items("alice", limit=3)) == 3
    assert len(service.get_due_items("alice")) == 5
    assert all(it.owner == "alice" for it in service.get_due_items("alice"))


def test_get_due_items_excludes_inactive_and_future(service, clock):
    suspended = _create(service)
    active = _create(service)
    service.set_active("alice", suspended.id, False)
    clock.advance(days=1)

    due = service.get_due_items("alice")
    assert [it.id for it in due] == [active.id]
    for it in due:
        assert it.active and it.next_review_at <= clock.now

    # 一時停止中でも ID 指定の読み出しは可能
    assert service.get_item("alice", suspended.id).active is False


def test_get_due_items_accepts_explicit_now(service, clock):
    item = _create(service)
    assert service.get_due_items("alice", now=clock.now + timedelta(days=1)) == [
        service.get_item("alice", item.id)
    ]


@pytest.mark.parametrize("limit", [0, -1, True, "5"])
def test_get_due_items_rejects_bad_limit(service, limit):
    with pytest.raises(ValidationError):
        service.get_due_items("alice", limit=limit)


def test_get_due_items_enforces_configured_maximum(store, clock):
    service = SchedulerService(store, clock=clock, max_due_limit=10)
    with pytest.raises(ValidationError):
        service.get_due_items("alice", limit=11)


# --- review ---


def test_first_review_forgot_schedules_one_day(service, clock):
    item = _create(service, difficulty=3)
    reviewed = service.review_item("alice", item.id, "forgot")
    assert reviewed.retention_score == 0.0
    assert reviewed.review_count == 1
    assert reviewed.last_reviewed_at == clock.now
    assert reviewed.next_review_at == clock.now + timedelta(days=1)


def test_first_review_good_stays_on_first_rung(service, clock):
    item = _create(service)
    reviewed = service.review_item("alice", item.id, Outcome.good)
    assert reviewed.retention_score == pytest.approx(0.2)
    assert reviewed.next_review_at == reviewed.last_reviewed_at + timedelta(days=1)


def test_easy_review_promotes_mature_item(service, clock):
    item = _create(service)
    service.review_item("alice", item.id, "easy")  # 0.3, count 1
    service.review_item("alice", item.id, "good")  # 0.5, count 2
    stored = service.get_item("alice", item.id)
    assert stored.review_count == 2
    assert stored.retention_score == pytest.approx(0.5)

    clock.advance(days=3)
    reviewed = service.review_item("alice", item.id, "easy")  # 0.8 は閾値を超えない
    assert reviewed.retention_score == pytest.approx(0.8)
    assert reviewed.next_review_at == clock.now + timedelta(days=7)

    clock.advance(days=14)
    reviewed = service.review_item("alice", item.id, "easy")  # 1.0 > 0.8 -> index 3 + 1
    assert reviewed.retention_score == 1.0
    assert reviewed.review_count == 4
    assert reviewed.next_review_at == clock.now + timedelta(days=30)


def test_review_scenario_count_two_score_085_easy(store, clock):
    service = SchedulerService(store, clock=clock)
    item = _create(service)
    service.review_item("alice", item.id, "good")
    service.review_item("alice", item.id, "good")
    # スコアを 0.85 に揃えるため直接パッチを書き込む
    current = store.get_by_id(item.id)
    assert store.update_after_review(
        item.id,
        "alice",
        current.version,
        ReviewPatch(
            retention_score=0.85,
            review_count=2,
            last_reviewed_at=clock.now,
            next_review_at=clock.now + timedelta(days=1),
        ),
    )
    reviewed = service.review_item("alice", item.id, "easy")
    assert reviewed.retention_score == 1.0
    assert reviewed.review_count == 3
    assert reviewed.next_review_at == clock.now + timedelta(days=14)


def test_forgot_drops_two_rungs(service, clock):
    item = _create(service)
    for _ in range(5):
        service.review_item("alice", item.id, "good")
    reviewed = service.review_item("alice", item.id, "forgot")  # clamp(5)=5 -> 3
    assert reviewed.next_review_at == clock.now + timedelta(days=14)
    reviewed = service.review_item("alice", item.id, "hard")  # clamp(6)=6 -> 5
    assert reviewed.next_review_at == clock.now + timedelta(days=90)


def test_review_uses_custom_ladder(store, clock):
    service = SchedulerService(store, clock=clock, ladder=IntervalLadder([2, 4]))
    item = _create(service)
    assert item.next_review_at == clock.now + timedelta(days=2)
    service.review_item("alice", item.id, "good")
    reviewed = service.review_item("alice", item.id, "good")
    assert reviewed.next_review_at == clock.now + timedelta(days=4)


def test_review_other_owner_is_not_found_and_unchanged(service):
    item = _create(service)
    with pytest.raises(NotFoundError):
        service.review_item("mallory", item.id, "easy")
    assert service.get_item("alice", item.id) == item


def test_review_unknown_item_is_not_found(service):
    with pytest.raises(NotFoundError):
        service.review_item("alice", "mi:nope", "good")


def test_review_unknown_outcome_is_rejected_before_storage(clock):
    service = SchedulerService(_ExplodingStore(), clock=clock)
    with pytest.raises(ValidationError):
        service.review_item("alice", "mi:1", "perfect")


def test_review_count_matches_successful_reviews(service):
    item = _create(service)
    outcomes = ["easy", "forgot", "hard", "good", "easy", "easy", "forgot", "good"]
    for outcome in outcomes:
        reviewed = service.review_item("alice", item.id, outcome)
        assert 0.0 <= reviewed.retention_score <= 1.0
        assert reviewed.next_review_at > reviewed.last_reviewed_at
    with pytest.raises(NotFoundError):
        service.review_item("bob", item.id, "good")
    assert service.get_item("alice", item.id).review_count == len(outcomes)


def test_inactive_items_can_still_be_reviewed(service):
    item = _create(service)
    service.set_active("alice", item.id, False)
    reviewed = service.review_item("alice", item.id, "good")
    assert reviewed.review_count == 1
    assert reviewed.active is False


class _InterleavingStore:
    """Delegating store that lands a competing review before the first write."""

    def __init__(self, inner: SQLiteItemStore, racer: SchedulerService, outcome: str) -> None:
        self._inner = inner
        self._racer = racer
        self._outcome = outcome
        self._raced = False
        self.update_calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def update_after_review(self, item_id, owner, expected_version, patch):
        self.update_calls += 1
        if not self._raced:
            self._raced = True
            self._racer.review_item(owner, item_id, self._outcome)
        return self._inner.update_after_review(item_id, owner, expected_version, patch)


def test_interleaved_reviews_never_lose_an_increment(store, clock):
    racer = SchedulerService(store, clock=clock)
    item = _create(racer)
    racing_store = _InterleavingStore(store, racer, "hard")
    service = SchedulerService(racing_store, clock=clock)

    reviewed = service.review_item("alice", item.id, "good")

    assert racing_store.update_calls == 2
    assert reviewed.review_count == 2
    final = store.get_by_id(item.id)
    assert final.review_count == 2
    # hard (0.0 -> 0.0) の後に good (+0.2) が再計算される
    assert final.retention_score == pytest.approx(0.2)


def test_concurrent_reviews_from_threads(store, clock):
    service = SchedulerService(store, clock=clock, max_review_attempts=100)
    item = _create(service)
    errors: list[BaseException] = []

    def worker(outcome: str) -> None:
        try:
            for _ in range(5):
                service.review_item("alice", item.id, outcome)
        except BaseException as exc:  # pragma: no cover - surfaced below
            errors.append(exc)

    threads = [threading.Thread(target=worker, args=(o,)) for o in ("good", "hard", "easy", "forgot")]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    assert errors == []
    assert store.get_by_id(item.id).review_count == 20


class _AlwaysConflictingStore:
    def __init__(self, inner: SQLiteItemStore) -> None:
        self._inner = inner
        self.update_calls = 0

    def __getattr__(self, name):
        return getattr(self._inner, name)

    def update_after_review(self, item_id, owner, expected_version, patch):
        self.update_calls += 1
        return False


def test_conflict_budget_exhausted_raises_conflict(store, clock):
    item = _create(SchedulerService(store, clock=clock))
    conflicting = _AlwaysConflictingStore(store)
    service = SchedulerService(conflicting, clock=clock, max_review_attempts=3)

    with pytest.raises(ConflictError) as excinfo:
        service.review_item("alice", item.id, "good")

    assert excinfo.value.retryable is True
    assert conflicting.update_calls == 3
    assert store.get_by_id(item.id).review_count == 0


def test_storage_errors_propagate(clock):
    class _BrokenStore:
        def get_by_id(self, item_id):
            raise StorageError("disk on fire")

    service = SchedulerService(_BrokenStore(), clock=clock)
    with pytest.raises(StorageError):
        service.review_item("alice", "mi:1", "good")


def test_invalid_attempt_budget_rejected(store):
    with pytest.raises(ValidationError):
        SchedulerService(store, max_review_attempts=0)


# --- suspend / resume ---


def test_set_active_round_trip(service, clock):
    item = _create(service)
    assert service.set_active("alice", item.id, False).active is False
    assert service.set_active("alice", item.id, True).active is True
    with pytest.raises(NotFoundError):
        service.set_active("bob", item.id, False)
    with pytest.raises(ValidationError):
        service.set_active("alice", item.id, "no")


# --- stats ---


def test_stats_with_no_items(service):
    stats = service.get_retention_stats("nobody")
    assert stats.total_items == 0
    assert stats.due_now == 0
    assert stats.average_retention == 0.0
    assert stats.subjects == ()


def test_stats_aggregates_active_items_per_subject(service, clock):
    p1 = _create(service, subject="Physics")
    p2 = _create(service, subject="Physics")
    c1 = _create(service, subject="Chemistry", item_type="fact")
    hidden = _create(service, subject="Biology", item_type="diagram")
    _create(service, owner="bob", subject="Physics")

    service.review_item("alice", p1.id, "easy")  # 0.3, next +1d
    service.review_item("alice", p2.id, "good")  # 0.2
    service.review_item("alice", c1.id, "easy")  # 0.3
    service.review_item("alice", c1.id, "easy")  # 0.6
    service.set_active("alice", hidden.id, False)

    stats = service.get_retention_stats("alice")
    assert stats.total_items == 3
    assert stats.due_now == 0
    assert stats.average_retention == pytest.approx(round((0.3 + 0.2 + 0.6) / 3, 4))
    assert [(s.subject, s.items) for s in stats.subjects] == [("Chemistry", 1), ("Physics", 2)]
    assert stats.subjects[0].average_retention == pytest.approx(0.6)
    assert stats.subjects[1].average_retention == pytest.approx(0.25)

    clock.advance(days=1)
    assert service.get_retention_stats("alice").due_now == 2
    clock.advance(days=2)
    assert service.get_retention_stats("alice").due_now == 3


def test_stats_are_idempotent_without_writes(service, clock):
    for subject in ("Physics", "Chemistry", "Biology"):
        _create(service, subject=subject)
    clock.advance(days=2)
    assert service.get_retention_stats("alice") == service.get_retention_stats("alice")


# --- seeding ---


def test_generate_seed_items_creates_templates(service, clock):
    items = service.generate_seed_items("alice", "Physics", "Optics")
    assert [(it.concept, it.item_type, it.difficulty) for it in items] == [
        ("Key Formulas", ItemType.formula, 3),
        ("Core Concepts", ItemType.concept, 4),
    ]
    for it in items:
        assert it.subject == "Physics"
        assert it.chapter == "Optics"
        assert "Optics" in it.content
        assert it.review_count == 0
        assert it.retention_score == 0.0
        assert it.last_reviewed_at is None
        assert it.next_review_at == clock.now + timedelta(days=1)


def test_generate_seed_items_appends_rather_than_upserts(service):
    first = service.generate_seed_items("alice", "Chemistry", "Equilibrium")
    second = service.generate_seed_items("alice", "Chemistry", "Equilibrium")
    assert {it.id for it in first}.isdisjoint({it.id for it in second})
    assert service.get_retention_stats("alice").total_items == 4


def test_generate_seed_items_unknown_subject_creates_nothing(service):
    assert service.generate_seed_items("alice", "History", "Rome") == []
    assert service.get_retention_stats("alice").total_items == 0
