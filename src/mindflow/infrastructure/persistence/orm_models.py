"""
SQLAlchemy ORM models for the local MindFlow database.

These models are internal to the persistence layer. The public interface
uses the frozen dataclasses from ``mindflow.domain.models``.
"""

from dataclasses import fields
from datetime import date, datetime
from typing import Any

from sqlalchemy import JSON, Boolean, Date, Float, Integer, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from mindflow.domain.models import (
    InteractionRecord,
    LearningStats,
    Record,
    RecordKind,
    ReviewMode,
    ReviewSession,
    SyncInfo,
    SyncStatus,
    VocabularyEntry,
)

from .database import Base, UTCDateTime


class SyncColumns:
    """Sync bookkeeping shared by both record tables."""

    sync_status: Mapped[str] = mapped_column(
        String(16), default=SyncStatus.PENDING.value, index=True
    )
    backend_id: Mapped[str | None] = mapped_column(String, nullable=True)
    last_sync_attempt: Mapped[datetime | None] = mapped_column(UTCDateTime, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, default=0)
    sync_error: Mapped[str | None] = mapped_column(Text, nullable=True)


class InteractionORM(SyncColumns, Base):
    __tablename__ = "interactions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    original_text: Mapped[str] = mapped_column(Text, nullable=False)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    refined_text: Mapped[str | None] = mapped_column(Text)
    explanation: Mapped[str | None] = mapped_column(Text)
    audio_duration_seconds: Mapped[float | None] = mapped_column(Float)
    transcription_api: Mapped[str] = mapped_column(String, default="OpenAI")
    transcription_model: Mapped[str | None] = mapped_column(String)
    optimization_model: Mapped[str | None] = mapped_column(String)
    optimization_level: Mapped[str | None] = mapped_column(String)
    output_style: Mapped[str | None] = mapped_column(String)
    audio_file_url: Mapped[str | None] = mapped_column(String)


class VocabularyORM(SyncColumns, Base):
    __tablename__ = "vocabulary"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    word: Mapped[str] = mapped_column(String, nullable=False, index=True)
    created_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    updated_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False)
    definitions: Mapped[dict[str, Any]] = mapped_column(JSON, default=dict)
    tags: Mapped[str] = mapped_column(Text, default="")  # comma separated
    phonetic: Mapped[str | None] = mapped_column(String)
    part_of_speech: Mapped[str | None] = mapped_column(String)
    category: Mapped[str | None] = mapped_column(String, index=True)
    user_context: Mapped[str | None] = mapped_column(Text)
    source_interaction_id: Mapped[str | None] = mapped_column(String)
    is_favorite: Mapped[bool] = mapped_column(Boolean, default=False)
    is_archived: Mapped[bool] = mapped_column(Boolean, default=False)
    mastery_level: Mapped[int] = mapped_column(Integer, default=0)
    review_count: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    last_reviewed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    next_review_at: Mapped[datetime | None] = mapped_column(UTCDateTime, index=True)
    ease_factor: Mapped[float] = mapped_column(Float, default=2.5)
    interval: Mapped[int] = mapped_column(Integer, default=0)


class ReviewSessionORM(Base):
    __tablename__ = "review_sessions"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    started_at: Mapped[datetime] = mapped_column(UTCDateTime, nullable=False, index=True)
    completed_at: Mapped[datetime | None] = mapped_column(UTCDateTime)
    duration_seconds: Mapped[int] = mapped_column(Integer, default=0)
    total_words: Mapped[int] = mapped_column(Integer, default=0)
    correct_count: Mapped[int] = mapped_column(Integer, default=0)
    incorrect_count: Mapped[int] = mapped_column(Integer, default=0)
    skipped_count: Mapped[int] = mapped_column(Integer, default=0)
    mode: Mapped[str] = mapped_column(String(16), default=ReviewMode.FLASHCARD.value)


class LearningStatsORM(Base):
    __tablename__ = "learning_stats"

    id: Mapped[str] = mapped_column(String, primary_key=True)
    day: Mapped[date] = mapped_column(Date, nullable=False, unique=True)
    words_added: Mapped[int] = mapped_column(Integer, default=0)
    words_reviewed: Mapped[int] = mapped_column(Integer, default=0)
    correct_reviews: Mapped[int] = mapped_column(Integer, default=0)
    incorrect_reviews: Mapped[int] = mapped_column(Integer, default=0)
    study_time_seconds: Mapped[int] = mapped_column(Integer, default=0)
    streak_days: Mapped[int] = mapped_column(Integer, default=0)


ORM_BY_KIND: dict[RecordKind, type[InteractionORM] | type[VocabularyORM]] = {
    RecordKind.INTERACTION: InteractionORM,
    RecordKind.VOCABULARY: VocabularyORM,
}

STATS_COUNTERS = (
    "words_added",
    "words_reviewed",
    "correct_reviews",
    "incorrect_reviews",
    "study_time_seconds",
)


# ---------------------------------------------------------------------------
# Converters
# ---------------------------------------------------------------------------


def _split_tags(raw: str | None) -> list[str]:
    if not raw:
        return []
    return [tag for tag in raw.split(",") if tag]


def sync_columns(sync: SyncInfo) -> dict[str, Any]:
    return {
        "sync_status": sync.status.value,
        "backend_id": sync.backend_id,
        "last_sync_attempt": sync.last_sync_attempt,
        "retry_count": sync.retry_count,
        "sync_error": sync.sync_error,
    }


def record_columns(record: Record) -> dict[str, Any]:
    """Flatten a domain record into column values for its table."""
    values = {f.name: getattr(record, f.name) for f in fields(record) if f.name != "sync"}
    if isinstance(record, VocabularyEntry):
        values["tags"] = ",".join(record.tags)
        values["definitions"] = dict(record.definitions)
    values.update(sync_columns(record.sync))
    return values


def _sync_from_orm(orm: InteractionORM | VocabularyORM) -> SyncInfo:
    return SyncInfo(
        status=SyncStatus(orm.sync_status),
        backend_id=orm.backend_id,
        last_sync_attempt=orm.last_sync_attempt,
        retry_count=orm.retry_count or 0,
        sync_error=orm.sync_error,
    )


def interaction_from_orm(orm: InteractionORM) -> InteractionRecord:
    values = {
        f.name: getattr(orm, f.name) for f in fields(InteractionRecord) if f.name != "sync"
    }
    return InteractionRecord(**values, sync=_sync_from_orm(orm))


def vocabulary_from_orm(orm: VocabularyORM) -> VocabularyEntry:
    values = {
        f.name: getattr(orm, f.name) for f in fields(VocabularyEntry) if f.name != "sync"
    }
    values["tags"] = _split_tags(orm.tags)
    values["definitions"] = dict(orm.definitions or {})
    return VocabularyEntry(**values, sync=_sync_from_orm(orm))


def record_from_orm(orm: InteractionORM | VocabularyORM) -> Record:
    if isinstance(orm, VocabularyORM):
        return vocabulary_from_orm(orm)
    return interaction_from_orm(orm)


def session_from_orm(orm: ReviewSessionORM) -> ReviewSession:
    return ReviewSession(
        id=orm.id,
        started_at=orm.started_at,
        total_words=orm.total_words,
        mode=ReviewMode(orm.mode),
        correct_count=orm.correct_count,
        incorrect_count=orm.incorrect_count,
        skipped_count=orm.skipped_count,
        completed_at=orm.completed_at,
        duration_seconds=orm.duration_seconds or 0,
    )


def session_columns(session: ReviewSession) -> dict[str, Any]:
    values = {f.name: getattr(session, f.name) for f in fields(ReviewSession)}
    values["mode"] = session.mode.value
    return values


def stats_from_orm(orm: LearningStatsORM) -> LearningStats:
    return LearningStats(
        id=orm.id,
        day=orm.day,
        words_added=orm.words_added or 0,
        words_reviewed=orm.words_reviewed or 0,
        correct_reviews=orm.correct_reviews or 0,
        incorrect_reviews=orm.incorrect_reviews or 0,
        study_time_seconds=orm.study_time_seconds or 0,
        streak_days=orm.streak_days or 0,
    )
