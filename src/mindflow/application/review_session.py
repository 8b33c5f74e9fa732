"""
Review Session Manager: runs one bounded review over due vocabulary.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime

from mindflow.domain.clock import utc_now
from mindflow.domain.errors import ValidationError
from mindflow.domain.models import (
    AnswerOutcome,
    ReviewMode,
    ReviewOutcome,
    ReviewSession,
    VocabularyEntry,
)
from mindflow.domain.ports import RecordStore, ReviewSessionRepository

from .id_service import generate_session_id
from .stats import LearningStatsAggregator

logger = logging.getLogger(__name__)

_COUNTER_FOR = {
    AnswerOutcome.CORRECT: "correct_count",
    AnswerOutcome.INCORRECT: "incorrect_count",
    AnswerOutcome.SKIPPED: "skipped_count",
}


class ReviewSessionManager:
    """
    Tracks review sessions and feeds answers to the scheduler.

    The stored session is the source of truth: every change re-reads it, so a
    stale copy held by the caller cannot reopen or overfill a session.
    """

    def __init__(
        self,
        sessions: ReviewSessionRepository,
        store: RecordStore,
        stats: LearningStatsAggregator | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sessions = sessions
        self._store = store
        self._stats = stats
        self._clock = clock
        self._lock = threading.Lock()

    def due_words(self, limit: int | None = None) -> list[VocabularyEntry]:
        return self._store.find_due(self._clock(), limit)

    def start(
        self, total_words: int, mode: ReviewMode = ReviewMode.FLASHCARD
    ) -> ReviewSession:
        if total_words < 0:
            raise ValidationError("total_words cannot be negative")
        session = ReviewSession(
            id=generate_session_id(),
            started_at=self._clock(),
            total_words=total_words,
            mode=mode,
        )
        self._sessions.save(session)
        logger.info(f"Started {mode.value} review {session.id} with {total_words} word(s)")
        return session

    def record_answer(self, session: ReviewSession, outcome: AnswerOutcome) -> ReviewSession:
        """
        Count one answer.

        Raises:
            ValidationError: The session is completed or already full. Nothing changes.
        """
        with self._lock:
            return self._count_answer(session.id, outcome)

    def answer(
        self, session: ReviewSession, entry_id: str, outcome: AnswerOutcome
    ) -> tuple[ReviewSession, VocabularyEntry | None]:
        """
        Grade one word in the session.

        Correct and incorrect answers run the scheduler on the entry and count
        towards today's stats; skipped words are left untouched.

        Returns:
            The updated session and the rescheduled entry (None when skipped).
        """
        # Check, reschedule and count under one lock.
        with self._lock:
            self._check_accepts_answer(self._sessions.get(session.id))
            entry = None
            if outcome is not AnswerOutcome.SKIPPED:
                entry = self._store.apply_review(
                    entry_id, ReviewOutcome(outcome.value), self._clock()
                )
            updated = self._count_answer(session.id, outcome)

        if entry is not None and self._stats is not None:
            self._stats.record_review(outcome is AnswerOutcome.CORRECT)
        return updated, entry

    def complete(self, session: ReviewSession) -> ReviewSession:
        """
        Finish the session, fixing its duration and adding it to today's study time.

        Raises:
            ValidationError: The session was already completed.
        """
        with self._lock:
            current = self._sessions.get(session.id)
            if current.is_completed:
                raise ValidationError(f"Review session {current.id} is already completed")
            completed_at = self._clock()
            duration = max(0, int((completed_at - current.started_at).total_seconds()))
            updated = replace(current, completed_at=completed_at, duration_seconds=duration)
            self._sessions.save(updated)

        if self._stats is not None and duration:
            self._stats.add_study_time(duration)
        logger.info(
            f"Completed review {updated.id}: {updated.correct_count} correct, "
            f"{updated.incorrect_count} incorrect, {updated.skipped_count} skipped"
        )
        return updated

    def recent_sessions(self, limit: int = 10) -> list[ReviewSession]:
        return self._sessions.recent(limit)

    def _count_answer(self, session_id: str, outcome: AnswerOutcome) -> ReviewSession:
        current = self._sessions.get(session_id)
        self._check_accepts_answer(current)
        counter = _COUNTER_FOR[outcome]
        updated = replace(current, **{counter: getattr(current, counter) + 1})
        self._sessions.save(updated)
        return updated

    @staticmethod
    def _check_accepts_answer(session: ReviewSession) -> None:
        if session.is_completed:
            raise ValidationError(f"Review session {session.id} is already completed")
        if session.answered >= session.total_words:
            raise ValidationError(
                f"Review session {session.id} already has {session.total_words} answer(s)"
            )
