from .memory import (
    MAX_DIFFICULTY,
    MIN_DIFFICULTY,
    ItemDraft,
    ItemType,
    MemoryItem,
    RetentionStats,
    ReviewPatch,
    SubjectRetention,
)

__all__ = [
    "ItemDraft",
    "ItemType",
    "MAX_DIFFICULTY",
    "MIN_DIFFICULTY",
    "MemoryItem",
    "RetentionStats",
    "ReviewPatch",
    "SubjectRetention",
]
