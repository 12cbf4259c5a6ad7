"""Domain errors raised by the scheduler core.

スケジューラ内部の失敗はすべてここで定義した例外として呼び出し元へ伝える。
既定値への置き換えや黙殺は行わない。HTTP 層は `status_code` を参照して
レスポンスへ変換する。
"""

from __future__ import annotations


class SchedulerError(Exception):
    """Base class for every failure surfaced by the scheduler."""

    status_code: int = 500
    retryable: bool = False

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(SchedulerError):
    """Bad difficulty, unknown item type or unknown outcome.

    ストレージ呼び出しの前に検出されるため、部分的な更新は発生しない。
    """

    status_code = 422


class NotFoundError(SchedulerError):
    """Unknown item id, or the item belongs to another owner."""

    status_code = 404


class ConflictError(SchedulerError):
    """Optimistic-concurrency retry budget exhausted; safe to retry."""

    status_code = 409
    retryable = True


class StorageError(SchedulerError):
    """Opaque failure from the item store."""

    status_code = 503
