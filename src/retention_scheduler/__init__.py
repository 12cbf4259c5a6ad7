"""Adaptive spaced-repetition review scheduler."""

from .errors import ConflictError, NotFoundError, SchedulerError, StorageError, ValidationError
from .ladder import DEFAULT_LADDER, IntervalLadder
from .models import ItemType, MemoryItem, RetentionStats, SubjectRetention
from .retention import Outcome
from .service import SchedulerService

__all__ = [
    "ConflictError",
    "DEFAULT_LADDER",
    "IntervalLadder",
    "ItemType",
    "MemoryItem",
    "NotFoundError",
    "Outcome",
    "RetentionStats",
    "SchedulerError",
    "SchedulerService",
    "StorageError",
    "SubjectRetention",
    "ValidationError",
]
