from __future__ import annotations

from datetime import UTC, datetime
from typing import Any


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """naive な datetime は UTC とみなし、aware なものは UTC へ変換する。"""

    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


def to_db_timestamp(value: datetime) -> str:
    """Serialise a timestamp as fixed-width UTC ISO-8601.

    桁数を固定することで、文字列の辞書順比較がそのまま時系列順になる。
    SQL 側の `next_review_at <= ?` と ORDER BY はこの性質に依存している。
    """

    return ensure_utc(value).isoformat(timespec="microseconds")


def from_db_timestamp(raw: Any) -> datetime | None:
    if raw is None or raw == "":
        return None
    return ensure_utc(datetime.fromisoformat(str(raw)))
