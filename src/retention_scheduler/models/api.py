from datetime import datetime
from typing import Literal, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator

from ..retention import Outcome
from .memory import MAX_DIFFICULTY, MIN_DIFFICULTY, ItemType, MemoryItem, RetentionStats


class MemoryItemCreateRequest(BaseModel):
    """新規アイテム作成リクエスト（所有者は X-User-Id ヘッダから取得）。"""

    model_config = ConfigDict(extra="forbid")

    subject: str = Field(min_length=1, max_length=128)
    chapter: str = Field(min_length=1, max_length=256)
    concept: str = Field(min_length=1, max_length=256)
    content: str = Field(default="", max_length=10000)
    item_type: ItemType
    difficulty: int = Field(ge=MIN_DIFFICULTY, le=MAX_DIFFICULTY, strict=True)


class ReviewRequest(BaseModel):
    """復習結果の自己申告。

    - outcome: easy | good | hard | forgot（大文字小文字・前後空白は無視）
    """

    outcome: Outcome

    @field_validator("outcome", mode="before")
    @classmethod
    def _normalize_outcome(cls, value: object) -> object:
        # サービス層の Outcome.parse と同じ受理範囲に揃える
        if isinstance(value, str):
            return value.strip().lower()
        return value


class ActiveRequest(BaseModel):
    active: bool


class SeedRequest(BaseModel):
    subject: str = Field(min_length=1, max_length=128)
    chapter: str = Field(min_length=1, max_length=256)


class MemoryItemResponse(BaseModel):
    """A memory item as exposed over HTTP.

    単位: 間隔は日、retention_score は [0,1]、回数は整数。
    """

    id: str
    owner: str
    subject: str
    chapter: str
    concept: str
    content: str
    item_type: ItemType
    difficulty: int
    last_reviewed_at: Optional[datetime] = None
    next_review_at: datetime
    review_count: int
    retention_score: float
    active: bool
    created_at: datetime
    updated_at: datetime

    @classmethod
    def from_item(cls, item: MemoryItem) -> "MemoryItemResponse":
        return cls(
            id=item.id,
            owner=item.owner,
            subject=item.subject,
            chapter=item.chapter,
            concept=item.concept,
            content=item.content,
            item_type=item.item_type,
            difficulty=item.difficulty,
            last_reviewed_at=item.last_reviewed_at,
            next_review_at=item.next_review_at,
            review_count=item.review_count,
            retention_score=item.retention_score,
            active=item.active,
            created_at=item.created_at,
            updated_at=item.updated_at,
        )


class DueItemsResponse(BaseModel):
    items: list[MemoryItemResponse]
    limit: int


class ReviewResponse(BaseModel):
    ok: bool = True
    item: MemoryItemResponse
    interval_days: int


class SubjectRetentionResponse(BaseModel):
    subject: str
    items: int
    average_retention: float


class RetentionStatsResponse(BaseModel):
    """保持率の集計。アイテムが 0 件でもゼロ値で返す。"""

    total_items: int
    due_now: int
    average_retention: float
    subjects: list[SubjectRetentionResponse] = []

    @classmethod
    def from_stats(cls, stats: RetentionStats) -> "RetentionStatsResponse":
        return cls(
            total_items=stats.total_items,
            due_now=stats.due_now,
            average_retention=stats.average_retention,
            subjects=[
                SubjectRetentionResponse(
                    subject=s.subject, items=s.items, average_retention=s.average_retention
                )
                for s in stats.subjects
            ],
        )


class SeedResponse(BaseModel):
    # 同じ章に対して再実行すると追加作成される
    mode: Literal["append"] = "append"
    items: list[MemoryItemResponse]


class ErrorResponse(BaseModel):
    detail: str
    error: str
    retryable: bool = False
