"""Factories for new local records."""

from collections.abc import Iterable, Mapping
from datetime import datetime

from mindflow.domain.clock import utc_now
from mindflow.domain.models import InteractionRecord, RecordKind, VocabularyEntry

from .id_service import generate_record_id


def new_interaction(
    original_text: str,
    *,
    refined_text: str | None = None,
    explanation: str | None = None,
    audio_duration_seconds: float | None = None,
    transcription_api: str = "OpenAI",
    transcription_model: str | None = None,
    optimization_model: str | None = None,
    optimization_level: str | None = None,
    output_style: str | None = None,
    audio_file_url: str | None = None,
    now: datetime | None = None,
) -> InteractionRecord:
    """Build a pending interaction with a fresh id. Nothing is persisted here."""
    now = now or utc_now()
    return InteractionRecord(
        id=generate_record_id(RecordKind.INTERACTION),
        original_text=original_text,
        created_at=now,
        updated_at=now,
        refined_text=refined_text,
        explanation=explanation,
        audio_duration_seconds=audio_duration_seconds,
        transcription_api=transcription_api,
        transcription_model=transcription_model,
        optimization_model=optimization_model,
        optimization_level=optimization_level,
        output_style=output_style,
        audio_file_url=audio_file_url,
    )


def new_vocabulary_entry(
    word: str,
    *,
    definitions: Mapping[str, str] | None = None,
    tags: Iterable[str] = (),
    phonetic: str | None = None,
    part_of_speech: str | None = None,
    category: str | None = None,
    user_context: str | None = None,
    source_interaction_id: str | None = None,
    now: datetime | None = None,
) -> VocabularyEntry:
    """
    Build a new, never-reviewed vocabulary entry.

    ``next_review_at`` stays unset so the word is due immediately.
    """
    now = now or utc_now()
    return VocabularyEntry(
        id=generate_record_id(RecordKind.VOCABULARY),
        word=word.strip(),
        created_at=now,
        updated_at=now,
        definitions=dict(definitions or {}),
        tags=[tag.strip() for tag in tags if tag.strip()],
        phonetic=phonetic,
        part_of_speech=part_of_speech,
        category=category,
        user_context=user_context,
        source_interaction_id=source_interaction_id,
    )
