"""Interval ladder: days until the next review, indexed by maturity."""

from __future__ import annotations

from datetime import timedelta
from typing import Iterable

from .errors import ValidationError


DEFAULT_INTERVALS: tuple[int, ...] = (1, 3, 7, 14, 30, 90, 180, 365)


class IntervalLadder:
    """Fixed ascending table of review intervals (days).

    index 0 は新規アイテム用。末尾を超えるインデックスは最後の要素へ丸める
    ため、間隔が際限なく伸びることはない。
    """

    __slots__ = ("_intervals",)

    def __init__(self, intervals: Iterable[int] = DEFAULT_INTERVALS) -> None:
        values = tuple(intervals)
        if not values:
            raise ValidationError("interval ladder must not be empty")
        for days in values:
            if isinstance(days, bool) or not isinstance(days, int) or days <= 0:
                raise ValidationError(f"interval ladder entries must be positive integers: {days!r}")
        if any(a >= b for a, b in zip(values, values[1:])):
            raise ValidationError("interval ladder must be strictly ascending")
        self._intervals = values

    @property
    def intervals(self) -> tuple[int, ...]:
        return self._intervals

    @property
    def last_index(self) -> int:
        return len(self._intervals) - 1

    def clamp(self, index: int) -> int:
        return max(0, min(index, self.last_index))

    def days_at(self, index: int) -> int:
        return self._intervals[self.clamp(index)]

    def delta_at(self, index: int) -> timedelta:
        return timedelta(days=self.days_at(index))

    def __len__(self) -> int:
        return len(self._intervals)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, IntervalLadder):
            return NotImplemented
        return self._intervals == other._intervals

    def __hash__(self) -> int:
        return hash(self._intervals)

    def __repr__(self) -> str:
        return f"IntervalLadder({list(self._intervals)!r})"


DEFAULT_LADDER = IntervalLadder(DEFAULT_INTERVALS)
