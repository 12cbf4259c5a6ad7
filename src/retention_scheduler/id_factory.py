"""ID 生成ユーティリティ。"""

from __future__ import annotations

import uuid


def generate_memory_item_id() -> str:
    """MemoryItem の新規 ID を生成する。

    prefix "mi:" に UUID を連結する。ID は作成時に一度だけ採番され、以後変わらない。
    """

    return f"mi:{uuid.uuid4().hex}"
