"""Item store adapters.

スケジューラは `ItemStore` プロトコルだけに依存し、永続化エンジンの詳細を
知らない。既定では SQLite 実装を設定から組み立てる。
"""

from __future__ import annotations

from datetime import datetime
from typing import Protocol

from ..config import Settings
from ..models import MemoryItem, ReviewPatch
from .sqlite import SQLiteItemStore


class ItemStore(Protocol):
    """Narrow storage boundary used by the scheduler service."""

    def create(self, item: MemoryItem) -> MemoryItem: ...

    def get_by_id(self, item_id: str) -> MemoryItem | None: ...

    def update_after_review(
        self, item_id: str, owner: str, expected_version: int, patch: ReviewPatch
    ) -> bool: ...

    def set_active(self, item_id: str, owner: str, active: bool) -> bool: ...

    def query_due(self, owner: str, now: datetime, limit: int) -> list[MemoryItem]: ...

    def query_by_owner(self, owner: str, *, active_only: bool = True) -> list[MemoryItem]: ...


def build_store(config: Settings) -> ItemStore:
    return SQLiteItemStore(db_path=config.database_path)


__all__ = ["ItemStore", "SQLiteItemStore", "build_store"]
