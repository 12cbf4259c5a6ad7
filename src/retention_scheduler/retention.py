"""Retention model: score and maturity updates for one review.

I/O を持たない純粋関数群。間隔表（IntervalLadder）は常に引数で受け取り、
グローバル状態に依存しない。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from enum import Enum

from .errors import ValidationError
from .ladder import DEFAULT_LADDER, IntervalLadder


class Outcome(str, Enum):
    easy = "easy"
    good = "good"
    hard = "hard"
    forgot = "forgot"

    @classmethod
    def parse(cls, value: "Outcome | str") -> "Outcome":
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            try:
                return cls(value.strip().lower())
            except ValueError:
                pass
        raise ValidationError(f"unknown outcome: {value!r}")


SCORE_DELTAS: dict[Outcome, float] = {
    Outcome.easy: 0.30,
    Outcome.good: 0.20,
    Outcome.hard: -0.10,
    Outcome.forgot: -0.30,
}

# easy の昇格は更新後スコアがこの値を「超える」場合のみ
EASY_PROMOTION_THRESHOLD = 0.80

_SCORE_PRECISION = 4


@dataclass(frozen=True)
class ReviewOutcome:
    """Result of applying one outcome to an item's schedule."""

    retention_score: float
    review_count: int
    maturity_index: int
    interval_days: int
    last_reviewed_at: datetime
    next_review_at: datetime


def clamp_score(score: float) -> float:
    return max(0.0, min(1.0, score))


def update_retention_score(score: float, outcome: Outcome) -> float:
    """Apply the outcome's delta and clamp into [0, 1].

    0.1 刻みの加減算を繰り返しても 2 進浮動小数の誤差で 0.80 の閾値を
    またがないよう、小数第4位で丸める。
    """

    return round(clamp_score(clamp_score(score) + SCORE_DELTAS[outcome]), _SCORE_PRECISION)


def next_maturity_index(
    review_count: int,
    score_after: float,
    outcome: Outcome,
    ladder: IntervalLadder = DEFAULT_LADDER,
) -> int:
    """Derive the ladder index for the next interval.

    - review_count（更新前）を間隔表の範囲に丸めた値を起点とする
    - forgot: -2 / hard: -1（下限 0）
    - good: 据え置き
    - easy: 更新後スコアが 0.80 を超える場合のみ +1（上限は末尾）
    """

    index = ladder.clamp(review_count)
    if outcome is Outcome.forgot:
        index -= 2
    elif outcome is Outcome.hard:
        index -= 1
    elif outcome is Outcome.easy and score_after > EASY_PROMOTION_THRESHOLD:
        index += 1
    return ladder.clamp(index)


def schedule_review(
    review_count: int,
    retention_score: float,
    outcome: Outcome,
    reviewed_at: datetime,
    ladder: IntervalLadder = DEFAULT_LADDER,
) -> ReviewOutcome:
    new_score = update_retention_score(retention_score, outcome)
    index = next_maturity_index(review_count, new_score, outcome, ladder)
    return ReviewOutcome(
        retention_score=new_score,
        review_count=review_count + 1,
        maturity_index=index,
        interval_days=ladder.days_at(index),
        last_reviewed_at=reviewed_at,
        next_review_at=reviewed_at + ladder.delta_at(index),
    )


__all__ = [
    "EASY_PROMOTION_THRESHOLD",
    "Outcome",
    "ReviewOutcome",
    "SCORE_DELTAS",
    "clamp_score",
    "next_maturity_index",
    "schedule_review",
    "update_retention_score",
]
