"""
Request bodies for the backend.

The backend accepts omitted optional fields but rejects explicit nulls, so
every payload passes through ``omit_absent`` before it leaves this module.
"""

from datetime import datetime, timezone
from typing import Any

from mindflow.domain.constants import OUTPUT_STYLES, TRANSCRIPTION_APIS
from mindflow.domain.errors import ValidationError
from mindflow.domain.models import InteractionRecord, Record, VocabularyEntry


def omit_absent(payload: dict[str, Any]) -> dict[str, Any]:
    """Drop keys whose value is None or an empty string."""
    return {key: value for key, value in payload.items() if value is not None and value != ""}


def _iso(value: datetime | None) -> str | None:
    if value is None:
        return None
    return value.astimezone(timezone.utc).isoformat().replace("+00:00", "Z")


def interaction_payload(record: InteractionRecord) -> dict[str, Any]:
    """
    Build the body for ``POST /api/mindflow-stt-interactions``.

    Optimization fields are only meaningful alongside a refined text and are
    dropped when there is none.

    Raises:
        ValidationError: The backend would reject this record outright.
    """
    if not record.original_text or not record.original_text.strip():
        raise ValidationError("original_transcription cannot be empty")
    if record.transcription_api not in TRANSCRIPTION_APIS:
        raise ValidationError(f"Unsupported transcription_api '{record.transcription_api}'")
    if record.output_style is not None and record.output_style not in OUTPUT_STYLES:
        raise ValidationError(f"Unsupported output_style '{record.output_style}'")

    payload: dict[str, Any] = {
        "original_transcription": record.original_text,
        "transcription_api": record.transcription_api,
        "transcription_model": record.transcription_model,
        "teacher_explanation": record.explanation,
        "audio_duration": record.audio_duration_seconds,
        "audio_file_url": record.audio_file_url,
    }
    if record.refined_text:
        payload.update(
            refined_text=record.refined_text,
            optimization_model=record.optimization_model,
            optimization_level=record.optimization_level,
            output_style=record.output_style,
        )
    return omit_absent(payload)


def vocabulary_payload(entry: VocabularyEntry) -> dict[str, Any]:
    """Build the row for the backend's vocabulary table."""
    if not entry.word or not entry.word.strip():
        raise ValidationError("word cannot be empty")

    payload: dict[str, Any] = {
        "word": entry.word,
        "mastery_level": entry.mastery_level,
        "ease_factor": entry.ease_factor,
        "interval": entry.interval,
        "review_count": entry.review_count,
        "correct_count": entry.correct_count,
        "is_favorite": entry.is_favorite,
        "is_archived": entry.is_archived,
        "created_at": _iso(entry.created_at),
        "updated_at": _iso(entry.updated_at),
        "local_id": entry.id,
        "phonetic": entry.phonetic,
        "part_of_speech": entry.part_of_speech,
        "user_context": entry.user_context,
        "category": entry.category,
        "tags": ",".join(entry.tags),
        "last_reviewed_at": _iso(entry.last_reviewed_at),
        "next_review_at": _iso(entry.next_review_at),
    }
    # One column per definition language, e.g. definition_en / definition_cn
    for language, text in sorted(entry.definitions.items()):
        payload[f"definition_{language.lower()}"] = text
    return omit_absent(payload)


def build_payload(record: Record) -> dict[str, Any]:
    if isinstance(record, InteractionRecord):
        return interaction_payload(record)
    return vocabulary_payload(record)
