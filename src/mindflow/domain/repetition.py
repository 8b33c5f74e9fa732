"""
Spaced repetition scheduling (SM-2 family).

This is a pure computation module with no I/O and no clock: the caller
always passes ``now``.
"""

import math
from dataclasses import replace
from datetime import datetime, timedelta

from .constants import (
    EASE_BONUS,
    EASE_PENALTY,
    MAX_EASE_FACTOR,
    MAX_INTERVAL_DAYS,
    MAX_MASTERY_LEVEL,
    MIN_EASE_FACTOR,
    SECOND_INTERVAL_DAYS,
    SECONDS_PER_REVIEWED_WORD,
)
from .errors import ValidationError
from .models import MasteryLevel, ReviewOutcome, ReviewResult, VocabularyEntry


def _clamp_ease(value: float) -> float:
    return round(min(MAX_EASE_FACTOR, max(MIN_EASE_FACTOR, value)), 2)


def _round_half_up(value: float) -> int:
    return int(math.floor(value + 0.5))


def schedule(entry: VocabularyEntry, outcome: ReviewOutcome, now: datetime) -> ReviewResult:
    """
    Compute the next review state for one outcome.

    Incorrect: interval resets to 0, ease drops by 0.2 (floor 1.3), mastery
    drops one level, and the word comes back tomorrow.
    Correct: ease rises by 0.1 (cap 2.5), interval goes 0 -> 1 -> 6 and then
    grows by the new ease factor (capped at 100 years), mastery rises one level.

    Args:
        entry: Current state of the vocabulary entry.
        outcome: Whether the user recalled the word.
        now: Review time; the next review is scheduled relative to it.

    Returns:
        ReviewResult with the new ease, interval, mastery and due time.
    """
    if entry.interval < 0:
        raise ValidationError("interval cannot be negative")

    ease = _clamp_ease(entry.ease_factor)

    if outcome is ReviewOutcome.INCORRECT:
        return ReviewResult(
            ease_factor=_clamp_ease(ease - EASE_PENALTY),
            interval=0,
            next_review_at=now + timedelta(days=1),
            mastery_level=max(MasteryLevel.NEW.value, entry.mastery_level - 1),
            was_correct=False,
        )

    new_ease = _clamp_ease(ease + EASE_BONUS)
    if entry.interval == 0:
        new_interval = 1
    elif entry.interval == 1:
        new_interval = SECOND_INTERVAL_DAYS
    else:
        new_interval = min(MAX_INTERVAL_DAYS, _round_half_up(entry.interval * new_ease))

    return ReviewResult(
        ease_factor=new_ease,
        interval=new_interval,
        next_review_at=now + timedelta(days=new_interval),
        mastery_level=min(MAX_MASTERY_LEVEL, entry.mastery_level + 1),
        was_correct=True,
    )


def apply_review(entry: VocabularyEntry, result: ReviewResult, now: datetime) -> VocabularyEntry:
    """Fold a scheduler result into the entry, bumping the review counters."""
    return replace(
        entry,
        ease_factor=result.ease_factor,
        interval=result.interval,
        next_review_at=result.next_review_at,
        mastery_level=result.mastery_level,
        review_count=entry.review_count + 1,
        correct_count=entry.correct_count + (1 if result.was_correct else 0),
        last_reviewed_at=now,
        updated_at=now,
    )


def mastery_for_interval(interval: int) -> MasteryLevel:
    """Bucket an interval (days) into a display mastery level."""
    if interval <= 0:
        return MasteryLevel.NEW
    if interval < 7:
        return MasteryLevel.LEARNING
    if interval < 21:
        return MasteryLevel.REVIEWING
    if interval < 60:
        return MasteryLevel.FAMILIAR
    return MasteryLevel.MASTERED


def estimate_review_minutes(word_count: int) -> int:
    """Rough session length, at least one minute."""
    return max(1, _round_half_up(word_count * SECONDS_PER_REVIEWED_WORD / 60))
