"""
Progress summary over a vocabulary collection.

This is a pure computation module with no I/O.
"""

from collections.abc import Iterable
from dataclasses import dataclass

from mindflow.domain.constants import DEFAULT_EASE_FACTOR, MAX_MASTERY_LEVEL
from mindflow.domain.models import MasteryLevel, VocabularyEntry
from mindflow.domain.repetition import estimate_review_minutes


@dataclass
class VocabularyProgress:
    total_words: int
    mastered_words: int
    learning_words: int  # mastery 1-3
    new_words: int
    mastery_percentage: float  # 0-100
    total_reviews: int
    accuracy: float  # 0-100
    average_ease_factor: float


class ProgressCalculator:
    """
    Summarizes learning progress over vocabulary entries.

    Stateless and side-effect free. Archived entries are left out.
    """

    def summarize(self, entries: Iterable[VocabularyEntry]) -> VocabularyProgress:
        active = [entry for entry in entries if not entry.is_archived]
        total = len(active)

        mastered = sum(1 for e in active if e.mastery_level == MasteryLevel.MASTERED)
        learning = sum(1 for e in active if 1 <= e.mastery_level < MAX_MASTERY_LEVEL)
        new = sum(1 for e in active if e.mastery_level == MasteryLevel.NEW)

        total_reviews = sum(e.review_count for e in active)
        total_correct = sum(e.correct_count for e in active)

        return VocabularyProgress(
            total_words=total,
            mastered_words=mastered,
            learning_words=learning,
            new_words=new,
            mastery_percentage=self._percent(mastered, total),
            total_reviews=total_reviews,
            accuracy=self._percent(total_correct, total_reviews),
            average_ease_factor=(
                sum(e.ease_factor for e in active) / total if total else DEFAULT_EASE_FACTOR
            ),
        )

    def estimate_session_minutes(self, due_count: int) -> int:
        return estimate_review_minutes(due_count)

    @staticmethod
    def _percent(part: int, whole: int) -> float:
        if whole == 0:
            return 0.0
        return part / whole * 100
