from __future__ import annotations

from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Optional

from ..errors import ValidationError


class ItemType(str, Enum):
    formula = "formula"
    concept = "concept"
    fact = "fact"
    diagram = "diagram"

    @classmethod
    def parse(cls, value: "ItemType | str") -> "ItemType":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"unknown item type: {value!r}")


MIN_DIFFICULTY = 1
MAX_DIFFICULTY = 5


@dataclass
class MemoryItem:
    """The unit of scheduled review.

    復習スケジュールの単位。`next_review_at` は復習結果からのみ導出され、
    呼び出し元が直接書き換えることはない。`version` は楽観的ロック用の
    スタンプで、復習の書き込みごとに 1 ずつ増える。
    """

    id: str
    owner: str
    subject: str
    chapter: str
    concept: str
    content: str
    item_type: ItemType
    difficulty: int
    next_review_at: datetime
    created_at: datetime
    updated_at: datetime
    last_reviewed_at: Optional[datetime] = None
    review_count: int = 0
    retention_score: float = 0.0
    active: bool = True
    version: int = 0

    def is_due(self, now: datetime) -> bool:
        return self.active and self.next_review_at <= now

    def with_patch(self, patch: "ReviewPatch") -> "MemoryItem":
        return replace(
            self,
            retention_score=patch.retention_score,
            review_count=patch.review_count,
            last_reviewed_at=patch.last_reviewed_at,
            next_review_at=patch.next_review_at,
            updated_at=patch.last_reviewed_at,
            version=self.version + 1,
        )


@dataclass(frozen=True)
class ReviewPatch:
    """Fields written by a single review."""

    retention_score: float
    review_count: int
    last_reviewed_at: datetime
    next_review_at: datetime


@dataclass(frozen=True)
class ItemDraft:
    """Caller-authored part of a new item (labels, payload, weight)."""

    subject: str
    chapter: str
    concept: str
    content: str
    item_type: ItemType
    difficulty: int


@dataclass(frozen=True)
class SubjectRetention:
    subject: str
    items: int
    average_retention: float


@dataclass(frozen=True)
class RetentionStats:
    total_items: int
    due_now: int
    average_retention: float
    subjects: tuple[SubjectRetention, ...] = field(default_factory=tuple)
