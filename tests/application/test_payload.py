import pytest

from mindflow.application.payload import (
    build_payload,
    interaction_payload,
    omit_absent,
    vocabulary_payload,
)
from mindflow.domain.errors import ValidationError


def test_omit_absent_drops_none_and_empty_strings():
    assert omit_absent({"a": 1, "b": None, "c": "", "d": 0, "e": False}) == {
        "a": 1,
        "d": 0,
        "e": False,
    }


def test_minimal_interaction_payload(make_interaction):
    record = make_interaction(original_text="hello", audio_duration_seconds=None)

    assert interaction_payload(record) == {
        "original_transcription": "hello",
        "transcription_api": "OpenAI",
    }


def test_full_interaction_payload(make_interaction):
    record = make_interaction(
        original_text="um so like hello",
        refined_text="Hello.",
        explanation="Removed filler words.",
        audio_duration_seconds=42.5,
        transcription_api="ElevenLabs",
        transcription_model="scribe_v1",
        optimization_model="gpt-4o-mini",
        optimization_level="medium",
        output_style="formal",
        audio_file_url="https://cdn.example.test/a.m4a",
    )

    assert interaction_payload(record) == {
        "original_transcription": "um so like hello",
        "transcription_api": "ElevenLabs",
        "transcription_model": "scribe_v1",
        "refined_text": "Hello.",
        "optimization_model": "gpt-4o-mini",
        "optimization_level": "medium",
        "output_style": "formal",
        "teacher_explanation": "Removed filler words.",
        "audio_duration": 42.5,
        "audio_file_url": "https://cdn.example.test/a.m4a",
    }


def test_optimization_fields_need_refined_text(make_interaction):
    record = make_interaction(
        refined_text=None,
        optimization_model="gpt-4o-mini",
        optimization_level="light",
        output_style="conversational",
    )

    payload = interaction_payload(record)

    assert "optimization_model" not in payload
    assert "optimization_level" not in payload
    assert "output_style" not in payload
    assert None not in payload.values()


@pytest.mark.parametrize(
    "overrides",
    [
        {"transcription_api": "Whisper"},
        {"output_style": "poetic"},
        {"original_text": "  "},
    ],
)
def test_interaction_payload_rejects_what_backend_refuses(make_interaction, overrides):
    with pytest.raises(ValidationError):
        interaction_payload(make_interaction(**overrides))


def test_vocabulary_payload(make_entry, now):
    entry = make_entry(
        word="run",
        definitions={"en": "to move fast", "CN": "跑"},
        tags=["verbs", "daily"],
        phonetic="/rʌn/",
        next_review_at=now,
    )

    payload = vocabulary_payload(entry)

    assert payload["word"] == "run"
    assert payload["local_id"] == entry.id
    assert payload["mastery_level"] == 0
    assert payload["ease_factor"] == 2.5
    assert payload["interval"] == 0
    assert payload["is_archived"] is False
    assert payload["definition_en"] == "to move fast"
    assert payload["definition_cn"] == "跑"
    assert payload["tags"] == "verbs,daily"
    assert payload["created_at"] == "2025-03-01T12:00:00Z"
    assert payload["next_review_at"] == "2025-03-01T12:00:00Z"
    assert "last_reviewed_at" not in payload
    assert "category" not in payload
    assert None not in payload.values()


def test_vocabulary_payload_without_tags(make_entry):
    assert "tags" not in vocabulary_payload(make_entry())


def test_build_payload_dispatches(make_interaction, make_entry):
    assert "original_transcription" in build_payload(make_interaction())
    assert "word" in build_payload(make_entry())
