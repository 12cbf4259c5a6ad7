from __future__ import annotations

import sqlite3
from contextlib import contextmanager
from datetime import datetime
from pathlib import Path
from typing import Iterator

from ..errors import StorageError
from ..logging import logger
from ..models import ItemType, MemoryItem, ReviewPatch
from .common import from_db_timestamp, to_db_timestamp, utcnow


_ITEM_COLUMNS = (
    "id, owner, subject, chapter, concept, content, item_type, difficulty, "
    "last_reviewed_at, next_review_at, review_count, retention_score, active, "
    "version, created_at, updated_at"
)


class SQLiteItemStore:
    """SQLite-backed item store adapter.

    - 1 行 = 1 MemoryItem。`version` 列で楽観的ロックを行う
    - 復習の書き込みは `BEGIN IMMEDIATE` 内の条件付き UPDATE 1 回で完結し、
      同一アイテムへの同時レビューでも review_count の更新が失われない
    - sqlite3 の例外はすべて StorageError に包んで送出する
    """

    def __init__(self, db_path: str) -> None:
        self.db_path = db_path
        self._ensure_dirs()
        self._init_db()

    # --- low-level helpers ---
    def _connect(self) -> sqlite3.Connection:
        conn = sqlite3.connect(
            self.db_path, timeout=10.0, isolation_level=None, check_same_thread=False
        )
        conn.row_factory = sqlite3.Row
        with conn:  # autocommit on pragma
            conn.execute("pragma journal_mode=WAL;")
            conn.execute("pragma busy_timeout=10000;")
        return conn

    @contextmanager
    def _conn(self) -> Iterator[sqlite3.Connection]:
        try:
            conn = self._connect()
        except sqlite3.Error as exc:
            logger.error("item_store_connect_failed", db_path=self.db_path, error=repr(exc))
            raise StorageError("item store unavailable") from exc
        try:
            yield conn
        except sqlite3.Error as exc:
            logger.error("item_store_query_failed", db_path=self.db_path, error=repr(exc))
            raise StorageError("item store operation failed") from exc
        finally:
            conn.close()

    @contextmanager
    def _write(self, *, immediate: bool = False) -> Iterator[sqlite3.Connection]:
        with self._conn() as conn:
            conn.execute("BEGIN IMMEDIATE;" if immediate else "BEGIN;")
            try:
                yield conn
            except BaseException:
                if conn.in_transaction:
                    conn.execute("ROLLBACK;")
                raise
            conn.execute("COMMIT;")

    def _ensure_dirs(self) -> None:
        p = Path(self.db_path)
        try:
            if p.parent and not p.parent.exists():
                p.parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            logger.error("item_store_connect_failed", db_path=self.db_path, error=repr(exc))
            raise StorageError("item store unavailable") from exc

    def _init_db(self) -> None:
        with self._write() as conn:
            conn.execute(
                """
                CREATE TABLE IF NOT EXISTS memory_items (
                    id TEXT PRIMARY KEY,
                    owner TEXT NOT NULL,
                    subject TEXT NOT NULL,
                    chapter TEXT NOT NULL,
                    concept TEXT NOT NULL,
                    content TEXT NOT NULL,
                    item_type TEXT NOT NULL,
                    difficulty INTEGER NOT NULL CHECK (difficulty BETWEEN 1 AND 5),
                    last_reviewed_at TEXT,
                    next_review_at TEXT NOT NULL,
                    review_count INTEGER NOT NULL DEFAULT 0 CHECK (review_count >= 0),
                    retention_score REAL NOT NULL DEFAULT 0.0
                        CHECK (retention_score >= 0.0 AND retention_score <= 1.0),
                    active INTEGER NOT NULL DEFAULT 1,
                    version INTEGER NOT NULL DEFAULT 0,
                    created_at TEXT NOT NULL,
                    updated_at TEXT NOT NULL
                );
                """
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_memory_items_due ON memory_items(owner, active, next_review_at);"
            )
            conn.execute(
                "CREATE INDEX IF NOT EXISTS idx_memory_items_owner_subject ON memory_items(owner, subject);"
            )

    @staticmethod
    def _row_to_item(row: sqlite3.Row) -> MemoryItem:
        return MemoryItem(
            id=str(row["id"]),
            owner=str(row["owner"]),
            subject=str(row["subject"]),
            chapter=str(row["chapter"]),
            concept=str(row["concept"]),
            content=str(row["content"]),
            item_type=ItemType(row["item_type"]),
            difficulty=int(row["difficulty"]),
            last_reviewed_at=from_db_timestamp(row["last_reviewed_at"]),
            next_review_at=from_db_timestamp(row["next_review_at"]),
            review_count=int(row["review_count"]),
            retention_score=float(row["retention_score"]),
            active=bool(row["active"]),
            version=int(row["version"]),
            created_at=from_db_timestamp(row["created_at"]),
            updated_at=from_db_timestamp(row["updated_at"]),
        )

    # --- public API ---
    def create(self, item: MemoryItem) -> MemoryItem:
        with self._write() as conn:
            conn.execute(
                f"INSERT INTO memory_items ({_ITEM_COLUMNS}) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?);",
                (
                    item.id,
                    item.owner,
                    item.subject,
                    item.chapter,
                    item.concept,
                    item.content,
                    item.item_type.value,
                    item.difficulty,
                    to_db_timestamp(item.last_reviewed_at) if item.last_reviewed_at else None,
                    to_db_timestamp(item.next_review_at),
                    item.review_count,
                    item.retention_score,
                    1 if item.active else 0,
                    item.version,
                    to_db_timestamp(item.created_at),
                    to_db_timestamp(item.updated_at),
                ),
            )
        return item

    def get_by_id(self, item_id: str) -> MemoryItem | None:
        with self._conn() as conn:
            row = conn.execute(
                f"SELECT {_ITEM_COLUMNS} FROM memory_items WHERE id = ?;",
                (item_id,),
            ).fetchone()
        if row is None:
            return None
        return self._row_to_item(row)

    def update_after_review(
        self, item_id: str, owner: str, expected_version: int, patch: ReviewPatch
    ) -> bool:
        """Apply a review patch if the row still carries `expected_version`.

        戻り値が False の場合は他の書き込みが先行したことを示す（再読込して再試行）。
        """

        with self._write(immediate=True) as conn:
            cur = conn.execute(
                """
                UPDATE memory_items
                SET retention_score = ?, review_count = ?, last_reviewed_at = ?,
                    next_review_at = ?, updated_at = ?, version = version + 1
                WHERE id = ? AND owner = ? AND version = ?;
                """,
                (
                    patch.retention_score,
                    patch.review_count,
                    to_db_timestamp(patch.last_reviewed_at),
                    to_db_timestamp(patch.next_review_at),
                    to_db_timestamp(patch.last_reviewed_at),
                    item_id,
                    owner,
                    expected_version,
                ),
            )
            return cur.rowcount == 1

    def set_active(self, item_id: str, owner: str, active: bool) -> bool:
        with self._write() as conn:
            cur = conn.execute(
                """
                UPDATE memory_items
                SET active = ?, updated_at = ?, version = version + 1
                WHERE id = ? AND owner = ?;
                """,
                (1 if active else 0, to_db_timestamp(utcnow()), item_id, owner),
            )
            return cur.rowcount == 1

    def query_due(self, owner: str, now: datetime, limit: int) -> list[MemoryItem]:
        with self._conn() as conn:
            rows = conn.execute(
                f"""
                SELECT {_ITEM_COLUMNS} FROM memory_items
                WHERE owner = ? AND active = 1 AND next_review_at <= ?
                ORDER BY difficulty DESC, next_review_at ASC, id ASC
                LIMIT ?;
                """,
                (owner, to_db_timestamp(now), limit),
            ).fetchall()
        return [self._row_to_item(row) for row in rows]

    def query_by_owner(self, owner: str, *, active_only: bool = True) -> list[MemoryItem]:
        query = f"SELECT {_ITEM_COLUMNS} FROM memory_items WHERE owner = ?"
        if active_only:
            query += " AND active = 1"
        query += " ORDER BY created_at ASC, id ASC;"
        with self._conn() as conn:
            rows = conn.execute(query, (owner,)).fetchall()
        return [self._row_to_item(row) for row in rows]
