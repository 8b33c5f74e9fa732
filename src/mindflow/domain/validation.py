"""Invariant checks applied by the store before every write."""

from .constants import MAX_EASE_FACTOR, MAX_MASTERY_LEVEL, MIN_EASE_FACTOR
from .errors import ValidationError
from .models import InteractionRecord, Record, ReviewSession, SyncInfo, SyncStatus, VocabularyEntry


def validate_sync(sync: SyncInfo) -> None:
    if (sync.status is SyncStatus.SYNCED) != (sync.backend_id is not None):
        raise ValidationError("backend_id must be set if and only if status is 'synced'")
    if sync.retry_count < 0:
        raise ValidationError("retry_count cannot be negative")


def validate_interaction(record: InteractionRecord) -> None:
    if not record.id:
        raise ValidationError("Interaction id is required")
    if not record.original_text or not record.original_text.strip():
        raise ValidationError("original_text is required")
    if record.audio_duration_seconds is not None and record.audio_duration_seconds < 0:
        raise ValidationError("audio_duration_seconds cannot be negative")
    validate_sync(record.sync)


def validate_vocabulary(entry: VocabularyEntry) -> None:
    if not entry.id:
        raise ValidationError("Vocabulary id is required")
    if not entry.word or not entry.word.strip():
        raise ValidationError("word is required")
    if not 0 <= entry.mastery_level <= MAX_MASTERY_LEVEL:
        raise ValidationError(f"mastery_level must be within 0..{MAX_MASTERY_LEVEL}")
    # Small float slack so values produced by arithmetic at the bounds still pass.
    if not MIN_EASE_FACTOR - 1e-9 <= entry.ease_factor <= MAX_EASE_FACTOR + 1e-9:
        raise ValidationError(
            f"ease_factor must be within {MIN_EASE_FACTOR}..{MAX_EASE_FACTOR}"
        )
    if any("," in tag or not tag.strip() for tag in entry.tags):
        raise ValidationError("tags must be non-empty and cannot contain commas")
    if entry.interval < 0:
        raise ValidationError("interval cannot be negative")
    if entry.review_count < 0 or entry.correct_count < 0:
        raise ValidationError("review counters cannot be negative")
    if entry.correct_count > entry.review_count:
        raise ValidationError("correct_count cannot exceed review_count")
    if (
        entry.last_reviewed_at is not None
        and entry.next_review_at is not None
        and entry.next_review_at < entry.last_reviewed_at
    ):
        raise ValidationError("next_review_at cannot precede last_reviewed_at")
    validate_sync(entry.sync)


def validate_record(record: Record) -> None:
    if isinstance(record, InteractionRecord):
        validate_interaction(record)
    elif isinstance(record, VocabularyEntry):
        validate_vocabulary(record)
    else:
        raise ValidationError(f"Unsupported record type: {type(record).__name__}")


def validate_session(session: ReviewSession) -> None:
    if session.total_words < 0:
        raise ValidationError("total_words cannot be negative")
    if min(session.correct_count, session.incorrect_count, session.skipped_count) < 0:
        raise ValidationError("answer counters cannot be negative")
    if session.answered > session.total_words:
        raise ValidationError(
            f"Answered {session.answered} exceeds session size {session.total_words}"
        )
