"""
Domain models for captured interactions, vocabulary and review activity.

These are pure data structures with no I/O or external dependencies.
Every model is frozen; changes are expressed with ``dataclasses.replace``.
"""

from dataclasses import dataclass, field
from datetime import date, datetime
from enum import Enum
from typing import ClassVar

from .constants import DEFAULT_EASE_FACTOR


class SyncStatus(str, Enum):
    """Persisted sync status of a record."""

    PENDING = "pending"
    SYNCED = "synced"
    FAILED = "failed"


class SyncState(str, Enum):
    """Sync state as observed at runtime. ``SYNCING`` only ever lives in memory."""

    PENDING = "pending"
    SYNCING = "syncing"
    SYNCED = "synced"
    FAILED = "failed"

    @classmethod
    def from_status(cls, status: SyncStatus) -> "SyncState":
        return cls(status.value)


class RecordKind(str, Enum):
    INTERACTION = "interaction"
    VOCABULARY = "vocabulary"


class MasteryLevel(int, Enum):
    NEW = 0
    LEARNING = 1
    REVIEWING = 2
    FAMILIAR = 3
    MASTERED = 4

    @property
    def display_name(self) -> str:
        return self.name.capitalize()


class ReviewMode(str, Enum):
    FLASHCARD = "flashcard"  # show word, recall meaning
    REVERSE = "reverse"  # show meaning, recall word
    CONTEXT = "context"  # show context, recall word


class ReviewOutcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"


class AnswerOutcome(str, Enum):
    CORRECT = "correct"
    INCORRECT = "incorrect"
    SKIPPED = "skipped"


@dataclass(frozen=True)
class SyncInfo:
    """
    Sync bookkeeping stored with every record.

    Attributes:
        status: Persisted status (never ``syncing``).
        backend_id: Id assigned by the backend; set if and only if synced.
        last_sync_attempt: When the last attempt finished.
        retry_count: Failed attempts since the last success.
        sync_error: Message of the last failure.
    """

    status: SyncStatus = SyncStatus.PENDING
    backend_id: str | None = None
    last_sync_attempt: datetime | None = None
    retry_count: int = 0
    sync_error: str | None = None


@dataclass(frozen=True)
class InteractionRecord:
    """
    A captured piece of voice-derived text.

    ``refined_text`` and ``explanation`` come from the (external) optimization
    step; the capture metadata fields describe how the text was produced.
    """

    kind: ClassVar[RecordKind] = RecordKind.INTERACTION

    id: str
    original_text: str
    created_at: datetime
    updated_at: datetime
    refined_text: str | None = None
    explanation: str | None = None
    audio_duration_seconds: float | None = None

    # Capture metadata
    transcription_api: str = "OpenAI"
    transcription_model: str | None = None
    optimization_model: str | None = None
    optimization_level: str | None = None
    output_style: str | None = None
    audio_file_url: str | None = None

    sync: SyncInfo = field(default_factory=SyncInfo)


@dataclass(frozen=True)
class VocabularyEntry:
    """
    A word or phrase under spaced-repetition learning.

    Repetition fields are owned by the scheduler; sync fields by the sync
    coordinator. Neither is edited through a generic update.
    """

    kind: ClassVar[RecordKind] = RecordKind.VOCABULARY

    id: str
    word: str
    created_at: datetime
    updated_at: datetime
    definitions: dict[str, str] = field(default_factory=dict)
    tags: list[str] = field(default_factory=list)
    phonetic: str | None = None
    part_of_speech: str | None = None
    category: str | None = None
    user_context: str | None = None
    source_interaction_id: str | None = None
    is_favorite: bool = False
    is_archived: bool = False

    # Spaced repetition
    mastery_level: int = MasteryLevel.NEW.value
    review_count: int = 0
    correct_count: int = 0
    last_reviewed_at: datetime | None = None
    next_review_at: datetime | None = None
    ease_factor: float = DEFAULT_EASE_FACTOR
    interval: int = 0  # days

    sync: SyncInfo = field(default_factory=SyncInfo)

    @property
    def mastery(self) -> MasteryLevel:
        return MasteryLevel(self.mastery_level)

    @property
    def accuracy(self) -> float:
        """Share of reviews answered correctly (0.0-1.0)."""
        if self.review_count == 0:
            return 0.0
        return self.correct_count / self.review_count


Record = InteractionRecord | VocabularyEntry


@dataclass(frozen=True)
class ReviewResult:
    """Output of the scheduler for one review outcome."""

    ease_factor: float
    interval: int
    next_review_at: datetime
    mastery_level: int
    was_correct: bool


@dataclass(frozen=True)
class ReviewSession:
    """
    One bounded review run.

    Invariant: correct + incorrect + skipped <= total_words; completed_at is set once.
    """

    id: str
    started_at: datetime
    total_words: int
    mode: ReviewMode = ReviewMode.FLASHCARD
    correct_count: int = 0
    incorrect_count: int = 0
    skipped_count: int = 0
    completed_at: datetime | None = None
    duration_seconds: int = 0

    @property
    def answered(self) -> int:
        return self.correct_count + self.incorrect_count + self.skipped_count

    @property
    def is_completed(self) -> bool:
        return self.completed_at is not None

    @property
    def accuracy(self) -> float:
        graded = self.correct_count + self.incorrect_count
        if graded == 0:
            return 0.0
        return self.correct_count / graded

    @property
    def progress(self) -> float:
        if self.total_words == 0:
            return 0.0
        return self.answered / self.total_words


@dataclass(frozen=True)
class LearningStats:
    """
    Learning activity for one calendar day. At most one row exists per day.
    """

    id: str
    day: date
    words_added: int = 0
    words_reviewed: int = 0
    correct_reviews: int = 0
    incorrect_reviews: int = 0
    study_time_seconds: int = 0
    streak_days: int = 0

    @property
    def has_activity(self) -> bool:
        return self.words_added > 0 or self.words_reviewed > 0

    @property
    def total_activities(self) -> int:
        return self.words_added + self.words_reviewed

    @property
    def accuracy(self) -> float:
        graded = self.correct_reviews + self.incorrect_reviews
        if graded == 0:
            return 0.0
        return self.correct_reviews / graded


# ---------------------------------------------------------------------------
# Derived predicates (pure functions of stored fields, never persisted)
# ---------------------------------------------------------------------------


def needs_sync(record: Record) -> bool:
    return record.sync.status is SyncStatus.PENDING and record.sync.backend_id is None


def is_synced(record: Record) -> bool:
    return record.sync.status is SyncStatus.SYNCED and record.sync.backend_id is not None


def can_retry_sync(record: Record, max_retries: int) -> bool:
    return record.sync.status is SyncStatus.FAILED and record.sync.retry_count < max_retries


def is_due(entry: VocabularyEntry, now: datetime) -> bool:
    """Due when never scheduled or the scheduled time has passed."""
    return entry.next_review_at is None or entry.next_review_at <= now
