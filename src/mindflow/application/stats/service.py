"""
Learning Stats Aggregator: Application layer orchestrator.

Turns learning activity into per-day counters and keeps today's streak current.
"""

import logging
from collections.abc import Callable
from datetime import date, timedelta

from mindflow.domain.constants import STREAK_LOOKBACK_DAYS
from mindflow.domain.errors import ValidationError
from mindflow.domain.models import LearningStats
from mindflow.domain.ports import LearningStatsRepository

logger = logging.getLogger(__name__)


class LearningStatsAggregator:
    """
    Application service for daily learning statistics.

    Depends on the LearningStatsRepository abstraction. Days are calendar days
    in the caller's local time, supplied by ``today``.
    """

    def __init__(
        self,
        repo: LearningStatsRepository,
        today: Callable[[], date] = date.today,
    ):
        """
        Args:
            repo: The repository (port) holding one row per day.
            today: Clock returning the current local day; replaced in tests.
        """
        self._repo = repo
        self._today = today

    def get_or_create_today(self) -> LearningStats:
        return self._repo.get_or_create(self._today())

    def record_word_added(self, count: int = 1) -> LearningStats:
        if count < 1:
            raise ValidationError("count must be positive")
        day = self._today()
        self._repo.increment(day, words_added=count)
        return self._refresh_streak(day)

    def record_review(self, correct: bool) -> LearningStats:
        day = self._today()
        if correct:
            self._repo.increment(day, words_reviewed=1, correct_reviews=1)
        else:
            self._repo.increment(day, words_reviewed=1, incorrect_reviews=1)
        return self._refresh_streak(day)

    def add_study_time(self, seconds: int) -> LearningStats:
        """Add study time to today. Study time alone does not count as activity."""
        if seconds < 0:
            raise ValidationError("study time cannot be negative")
        return self._repo.increment(self._today(), study_time_seconds=int(seconds))

    def calculate_streak(self, today: date | None = None) -> int:
        """
        Count consecutive active days ending today.

        Today counts only if it already has activity; an idle today does not
        break the streak. The first inactive (or missing) earlier day does.
        """
        today = today or self._today()
        start = today - timedelta(days=STREAK_LOOKBACK_DAYS)
        active = {row.day for row in self._repo.between(start, today) if row.has_activity}

        streak = 1 if today in active else 0
        day = today - timedelta(days=1)
        while day >= start and day in active:
            streak += 1
            day -= timedelta(days=1)
        return streak

    def stats_between(self, start: date, end: date) -> list[LearningStats]:
        if end < start:
            raise ValidationError("end must not precede start")
        return self._repo.between(start, end)

    def recent_days(self, days: int = 7) -> list[LearningStats]:
        """Stored rows for the last ``days`` days including today, oldest first."""
        if days < 1:
            raise ValidationError("days must be positive")
        today = self._today()
        return self._repo.between(today - timedelta(days=days - 1), today)

    def _refresh_streak(self, day: date) -> LearningStats:
        streak = self.calculate_streak(day)
        logger.debug(f"Streak for {day}: {streak}")
        return self._repo.set_streak(day, streak)
