from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Callable, Optional

from .config import Settings
from .errors import ConflictError, NotFoundError, ValidationError
from .id_factory import generate_memory_item_id
from .ladder import DEFAULT_LADDER, IntervalLadder
from .logging import logger
from .models import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    ItemType,
    MemoryItem,
    RetentionStats,
    ReviewPatch,
    SubjectRetention,
)
from .retention import Outcome, schedule_review
from .seeding import SeedingHelper
from .store import ItemStore, build_store
from .store.common import ensure_utc, utcnow


DEFAULT_DUE_LIMIT = 20
DEFAULT_REVIEW_ATTEMPTS = 3
_AVERAGE_PRECISION = 4


def _require_text(name: str, value: object) -> str:
    if not isinstance(value, str) or not value.strip():
        raise ValidationError(f"{name} must be a non-empty string")
    return value


def _validate_difficulty(value: object) -> int:
    # bool は int のサブクラスなので明示的に弾く
    if isinstance(value, bool) or not isinstance(value, int):
        raise ValidationError(f"difficulty must be an integer, got {value!r}")
    if not MIN_DIFFICULTY <= value <= MAX_DIFFICULTY:
        raise ValidationError(
            f"difficulty must be between {MIN_DIFFICULTY} and {MAX_DIFFICULTY}, got {value}"
        )
    return value


def _mean(total: float, count: int) -> float:
    return round(total / count, _AVERAGE_PRECISION) if count else 0.0


class SchedulerService:
    """Orchestrates item creation, due selection, reviews and statistics.

    状態を持たないオーケストレーション層。永続化は `ItemStore` に委譲し、
    同一アイテムへの同時レビューは version スタンプ付きの条件付き書き込みと
    有限回の再試行で直列化する。再試行を使い切った場合は ConflictError を返す。
    """

    def __init__(
        self,
        store: ItemStore,
        *,
        ladder: IntervalLadder = DEFAULT_LADDER,
        seeder: Optional[SeedingHelper] = None,
        clock: Optional[Callable[[], datetime]] = None,
        max_review_attempts: int = DEFAULT_REVIEW_ATTEMPTS,
        max_due_limit: Optional[int] = None,
    ) -> None:
        if max_review_attempts < 1:
            raise ValidationError("max_review_attempts must be at least 1")
        self._store = store
        self.ladder = ladder
        self._seeder = seeder or SeedingHelper()
        self._clock = clock or utcnow
        self.max_review_attempts = max_review_attempts
        self.max_due_limit = max_due_limit

    @classmethod
    def from_settings(cls, config: Settings, *, store: Optional[ItemStore] = None) -> "SchedulerService":
        return cls(
            store if store is not None else build_store(config),
            ladder=IntervalLadder(config.interval_ladder),
            max_review_attempts=config.review_max_attempts,
            max_due_limit=config.due_limit_max,
        )

    def _now(self, now: Optional[datetime] = None) -> datetime:
        return ensure_utc(now) if now is not None else ensure_utc(self._clock())

    def _load_owned(self, owner: str, item_id: str) -> MemoryItem:
        # 不在と所有者不一致は区別せず同じ NotFoundError にする
        item = self._store.get_by_id(item_id)
        if item is None or item.owner != owner:
            raise NotFoundError(f"memory item not found: {item_id}")
        return item

    # --- create ---
    def create_item(
        self,
        owner: str,
        subject: str,
        chapter: str,
        concept: str,
        content: str,
        item_type: ItemType | str,
        difficulty: int,
    ) -> MemoryItem:
        _require_text("owner", owner)
        _require_text("subject", subject)
        _require_text("chapter", chapter)
        _require_text("concept", concept)
        if not isinstance(content, str):
            raise ValidationError("content must be a string")
        kind = ItemType.parse(item_type)
        level = _validate_difficulty(difficulty)

        now = self._now()
        item = MemoryItem(
            id=generate_memory_item_id(),
            owner=owner,
            subject=subject,
            chapter=chapter,
            concept=concept,
            content=content,
            item_type=kind,
            difficulty=level,
            next_review_at=now + self.ladder.delta_at(0),
            created_at=now,
            updated_at=now,
        )
        created = self._store.create(item)
        logger.info(
            "memory_item_created",
            item_id=created.id,
            owner=owner,
            subject=subject,
            item_type=kind.value,
            difficulty=level,
        )
        return created

    # --- read ---
    def get_item(self, owner: str, item_id: str) -> MemoryItem:
        _require_text("owner", owner)
        return self._load_owned(owner, item_id)

    def get_due_items(
        self,
        owner: str,
        now: Optional[datetime] = None,
        limit: int = DEFAULT_DUE_LIMIT,
    ) -> list[MemoryItem]:
        """Active items with `next_review_at <= now`, hardest and most overdue first.

        limit は 1 セッションの出題数の上限で、超過分は返さない。
        """

        _require_text("owner", owner)
        if isinstance(limit, bool) or not isinstance(limit, int) or limit < 1:
            raise ValidationError(f"limit must be a positive integer, got {limit!r}")
        if self.max_due_limit is not None and limit > self.max_due_limit:
            raise ValidationError(f"limit must not exceed {self.max_due_limit}")
        at = self._now(now)
        items = self._store.query_due(owner, at, limit)
        due = [item for item in items if item.is_due(at)]
        due.sort(key=lambda it: (-it.difficulty, it.next_review_at, it.id))
        return due[:limit]

    # --- review ---
    def review_item(
        self,
        owner: str,
        item_id: str,
        outcome: Outcome | str,
        now: Optional[datetime] = None,
    ) -> MemoryItem:
        """Apply one review outcome atomically and return the updated item."""

        parsed = Outcome.parse(outcome)
        _require_text("owner", owner)
        reviewed_at = self._now(now)

        for attempt in range(1, self.max_review_attempts + 1):
            item = self._load_owned(owner, item_id)
            result = schedule_review(
                item.review_count, item.retention_score, parsed, reviewed_at, self.ladder
            )
            patch = ReviewPatch(
                retention_score=result.retention_score,
                review_count=result.review_count,
                last_reviewed_at=result.last_reviewed_at,
                next_review_at=result.next_review_at,
            )
            if self._store.update_after_review(item.id, owner, item.version, patch):
                logger.info(
                    "memory_item_reviewed",
                    item_id=item.id,
                    owner=owner,
                    outcome=parsed.value,
                    review_count=result.review_count,
                    retention_score=result.retention_score,
                    interval_days=result.interval_days,
                    attempt=attempt,
                )
                return item.with_patch(patch)
            logger.info("memory_review_conflict", item_id=item.id, attempt=attempt)

        logger.warning(
            "memory_review_conflict_exhausted",
            item_id=item_id,
            attempts=self.max_review_attempts,
        )
        raise ConflictError(
            f"review of {item_id} conflicted {self.max_review_attempts} times; retry later"
        )

    def set_active(self, owner: str, item_id: str, active: bool) -> MemoryItem:
        """Suspend or resume an item. Inactive items never appear in due lists."""

        _require_text("owner", owner)
        if not isinstance(active, bool):
            raise ValidationError("active must be a boolean")
        self._load_owned(owner, item_id)
        if not self._store.set_active(item_id, owner, active):
            raise NotFoundError(f"memory item not found: {item_id}")
        logger.info("memory_item_active_changed", item_id=item_id, owner=owner, active=active)
        return self._load_owned(owner, item_id)

    # --- stats ---
    def get_retention_stats(self, owner: str, now: Optional[datetime] = None) -> RetentionStats:
        """Aggregate counts and mean retention over the owner's active items.

        - total_items: アクティブなアイテム数
        - due_now: `next_review_at <= now` の件数
        - average_retention: 全体の平均スコア（0 件なら 0.0）
        - subjects: 教科別の件数と平均スコア（教科名順）
        """

        _require_text("owner", owner)
        at = self._now(now)
        items = self._store.query_by_owner(owner, active_only=True)

        score_total = 0.0
        due_now = 0
        per_subject: dict[str, list[float]] = defaultdict(lambda: [0, 0.0])
        for item in items:
            score_total += item.retention_score
            if item.is_due(at):
                due_now += 1
            bucket = per_subject[item.subject]
            bucket[0] += 1
            bucket[1] += item.retention_score

        subjects = tuple(
            SubjectRetention(subject=name, items=int(count), average_retention=_mean(total, int(count)))
            for name, (count, total) in sorted(per_subject.items())
        )
        return RetentionStats(
            total_items=len(items),
            due_now=due_now,
            average_retention=_mean(score_total, len(items)),
            subjects=subjects,
        )

    # --- seeding ---
    def generate_seed_items(self, owner: str, subject: str, chapter: str) -> list[MemoryItem]:
        """Create the template items for a chapter.

        追記のみ（upsert ではない）: 同じ章で再実行すると同じ内容のアイテムが
        追加で作成される。
        """

        _require_text("owner", owner)
        _require_text("subject", subject)
        _require_text("chapter", chapter)
        drafts = self._seeder.templates_for(subject, chapter)
        created = [
            self.create_item(
                owner,
                draft.subject,
                draft.chapter,
                draft.concept,
                draft.content,
                draft.item_type,
                draft.difficulty,
            )
            for draft in drafts
        ]
        logger.info("memory_seeded", owner=owner, subject=subject, chapter=chapter, created=len(created))
        return created


__all__ = ["DEFAULT_DUE_LIMIT", "SchedulerService"]
