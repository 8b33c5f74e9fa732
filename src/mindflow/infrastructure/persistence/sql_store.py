"""
SQLite-backed RecordStore.

Each write runs in its own transaction under a per-record lock, so concurrent
writers to one record serialize and a crash mid-write leaves the previous state.
"""

from __future__ import annotations

import logging
from collections.abc import Callable, Mapping
from dataclasses import replace
from datetime import datetime
from typing import Any

from sqlalchemy import ColumnElement, and_, cast, delete, func, or_, select
from sqlalchemy import String as SAString
from sqlalchemy.orm import Session, sessionmaker

from mindflow.domain import repetition
from mindflow.domain.clock import utc_now
from mindflow.domain.errors import NotFound, ValidationError
from mindflow.domain.models import (
    MasteryLevel,
    Record,
    RecordKind,
    ReviewOutcome,
    SyncInfo,
    SyncStatus,
    VocabularyEntry,
)
from mindflow.domain.ports import RecordStore
from mindflow.domain.queries import NEWEST_FIRST, RecordFilter, SortSpec
from mindflow.domain.validation import validate_record

from .locks import KeyedLocks
from .orm_models import (
    ORM_BY_KIND,
    InteractionORM,
    VocabularyORM,
    record_columns,
    record_from_orm,
    vocabulary_from_orm,
)

logger = logging.getLogger(__name__)

PATCHABLE_FIELDS: dict[RecordKind, frozenset[str]] = {
    RecordKind.INTERACTION: frozenset(
        {
            "original_text",
            "refined_text",
            "explanation",
            "audio_duration_seconds",
            "transcription_api",
            "transcription_model",
            "optimization_model",
            "optimization_level",
            "output_style",
            "audio_file_url",
        }
    ),
    RecordKind.VOCABULARY: frozenset(
        {
            "word",
            "definitions",
            "tags",
            "phonetic",
            "part_of_speech",
            "category",
            "user_context",
            "source_interaction_id",
            "is_favorite",
            "is_archived",
        }
    ),
}

SORTABLE_FIELDS: dict[RecordKind, frozenset[str]] = {
    RecordKind.INTERACTION: frozenset(
        {"created_at", "updated_at", "audio_duration_seconds", "last_sync_attempt"}
    ),
    RecordKind.VOCABULARY: frozenset(
        {
            "created_at",
            "updated_at",
            "word",
            "mastery_level",
            "next_review_at",
            "last_reviewed_at",
            "review_count",
            "last_sync_attempt",
        }
    ),
}

VOCABULARY_ONLY_FILTERS = ("is_archived", "is_favorite", "mastery_level", "category", "tag")
LIKE_ESCAPE = "\\"


def _literal(text: str) -> str:
    """Escape LIKE wildcards so user text only matches itself."""
    return (
        text.replace(LIKE_ESCAPE, LIKE_ESCAPE * 2)
        .replace("%", LIKE_ESCAPE + "%")
        .replace("_", LIKE_ESCAPE + "_")
    )


class SqlRecordStore(RecordStore):
    def __init__(
        self,
        session_factory: sessionmaker[Session],
        clock: Callable[[], datetime] = utc_now,
    ):
        self._sessions = session_factory
        self._clock = clock
        self._locks = KeyedLocks()

    # ------------------------------------------------------------------
    # CRUD
    # ------------------------------------------------------------------

    def create(self, record: Record) -> str:
        validate_record(record)
        orm_cls = ORM_BY_KIND[record.kind]
        with self._locks.hold(record.id), self._sessions.begin() as session:
            if self._find_row(session, record.id) is not None:
                raise ValidationError(f"Duplicate record id '{record.id}'")
            session.add(orm_cls(**record_columns(record)))
        logger.debug(f"Created {record.kind.value} {record.id}")
        return record.id

    def get(self, record_id: str, kind: RecordKind | None = None) -> Record:
        with self._sessions() as session:
            return record_from_orm(self._require_row(session, record_id, kind))

    def update(
        self, record_id: str, patch: Mapping[str, Any], kind: RecordKind | None = None
    ) -> Record:
        with self._locks.hold(record_id), self._sessions.begin() as session:
            row = self._require_row(session, record_id, kind)
            current = record_from_orm(row)
            rejected = sorted(set(patch) - PATCHABLE_FIELDS[current.kind])
            if rejected:
                raise ValidationError(
                    f"Fields cannot be updated directly: {', '.join(rejected)}"
                )

            changes = dict(patch)
            if "tags" in changes:
                changes["tags"] = list(changes["tags"] or [])
            if "definitions" in changes:
                changes["definitions"] = dict(changes["definitions"] or {})

            updated = replace(current, **changes, updated_at=self._clock())
            validate_record(updated)
            self._write(row, updated)
        return updated

    def delete(self, record_id: str, kind: RecordKind | None = None) -> None:
        with self._locks.hold(record_id), self._sessions.begin() as session:
            session.delete(self._require_row(session, record_id, kind))
        logger.debug(f"Deleted {record_id}")

    def list(
        self,
        kind: RecordKind,
        filters: RecordFilter | None = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        orm_cls = ORM_BY_KIND[kind]
        sort = sort or NEWEST_FIRST
        if sort.field not in SORTABLE_FIELDS[kind]:
            raise ValidationError(f"Cannot sort {kind.value} records by '{sort.field}'")
        if limit is not None and limit < 0:
            raise ValidationError("limit cannot be negative")
        if offset < 0:
            raise ValidationError("offset cannot be negative")

        column = getattr(orm_cls, sort.field)
        order = column.desc() if sort.descending else column.asc()
        stmt = (
            select(orm_cls)
            .where(*self._conditions(kind, filters or RecordFilter()))
            .order_by(order, orm_cls.id)
            .offset(offset)
        )
        if limit is not None:
            stmt = stmt.limit(limit)

        with self._sessions() as session:
            return [record_from_orm(row) for row in session.scalars(stmt)]

    # ------------------------------------------------------------------
    # Review and sync queries
    # ------------------------------------------------------------------

    def find_due(self, now: datetime, limit: int | None = None) -> list[VocabularyEntry]:
        stmt = (
            select(VocabularyORM)
            .where(*self._due_conditions(now))
            .order_by(
                # Never-scheduled words first, then earliest due, then weakest.
                VocabularyORM.next_review_at.is_not(None),
                VocabularyORM.next_review_at,
                VocabularyORM.mastery_level,
                VocabularyORM.created_at,
            )
        )
        if limit is not None:
            stmt = stmt.limit(limit)
        with self._sessions() as session:
            return [vocabulary_from_orm(row) for row in session.scalars(stmt)]

    def due_count(self, now: datetime) -> int:
        stmt = select(func.count()).select_from(VocabularyORM).where(*self._due_conditions(now))
        with self._sessions() as session:
            return session.scalar(stmt) or 0

    def find_pending_sync(self, kind: RecordKind, max_retries: int) -> list[Record]:
        orm_cls = ORM_BY_KIND[kind]
        stmt = (
            select(orm_cls)
            .where(
                or_(
                    orm_cls.sync_status == SyncStatus.PENDING.value,
                    and_(
                        orm_cls.sync_status == SyncStatus.FAILED.value,
                        orm_cls.retry_count < max_retries,
                    ),
                )
            )
            .order_by(orm_cls.created_at.asc(), orm_cls.id)
        )
        with self._sessions() as session:
            return [record_from_orm(row) for row in session.scalars(stmt)]

    def record_sync_success(
        self, kind: RecordKind, record_id: str, backend_id: str, at: datetime
    ) -> Record:
        if not backend_id:
            raise ValidationError("backend_id is required to mark a record synced")
        with self._locks.hold(record_id), self._sessions.begin() as session:
            row = self._require_row(session, record_id, kind)
            current = record_from_orm(row)
            if current.sync.status is SyncStatus.SYNCED:
                if current.sync.backend_id == backend_id:
                    return current
                logger.warning(
                    f"{record_id} already synced as {current.sync.backend_id}; "
                    f"replacing with {backend_id}"
                )
            updated = replace(
                current,
                sync=SyncInfo(
                    status=SyncStatus.SYNCED,
                    backend_id=backend_id,
                    last_sync_attempt=at,
                    retry_count=0,
                    sync_error=None,
                ),
            )
            validate_record(updated)
            self._write(row, updated)
        return updated

    def record_sync_failure(
        self,
        kind: RecordKind,
        record_id: str,
        error: str,
        at: datetime,
        retry_floor: int | None = None,
    ) -> Record:
        with self._locks.hold(record_id), self._sessions.begin() as session:
            row = self._require_row(session, record_id, kind)
            current = record_from_orm(row)
            if current.sync.status is SyncStatus.SYNCED:
                raise ValidationError(f"{record_id} is already synced")
            retry_count = max(current.sync.retry_count + 1, retry_floor or 0)
            updated = replace(
                current,
                sync=SyncInfo(
                    status=SyncStatus.FAILED,
                    backend_id=None,
                    last_sync_attempt=at,
                    retry_count=retry_count,
                    sync_error=error,
                ),
            )
            self._write(row, updated)
        return updated

    def apply_review(
        self, entry_id: str, outcome: ReviewOutcome, at: datetime
    ) -> VocabularyEntry:
        with self._locks.hold(entry_id), self._sessions.begin() as session:
            row = self._require_row(session, entry_id, RecordKind.VOCABULARY)
            entry = vocabulary_from_orm(row)
            result = repetition.schedule(entry, outcome, at)
            updated = repetition.apply_review(entry, result, at)
            validate_record(updated)
            self._write(row, updated)
        logger.debug(
            f"Reviewed {entry_id} ({outcome.value}): interval={updated.interval}d "
            f"ease={updated.ease_factor}"
        )
        return updated

    # ------------------------------------------------------------------
    # Aggregates and maintenance
    # ------------------------------------------------------------------

    def counts_by_sync_status(self, kind: RecordKind) -> dict[SyncStatus, int]:
        orm_cls = ORM_BY_KIND[kind]
        stmt = select(orm_cls.sync_status, func.count()).group_by(orm_cls.sync_status)
        counts = {status: 0 for status in SyncStatus}
        with self._sessions() as session:
            for status, count in session.execute(stmt):
                counts[SyncStatus(status)] = count
        return counts

    def counts_by_mastery(self) -> dict[MasteryLevel, int]:
        stmt = (
            select(VocabularyORM.mastery_level, func.count())
            .where(VocabularyORM.is_archived.is_(False))
            .group_by(VocabularyORM.mastery_level)
        )
        counts = {level: 0 for level in MasteryLevel}
        with self._sessions() as session:
            for level, count in session.execute(stmt):
                counts[MasteryLevel(level)] = count
        return counts

    def categories(self) -> list[str]:
        stmt = (
            select(VocabularyORM.category)
            .where(VocabularyORM.category.is_not(None), VocabularyORM.category != "")
            .distinct()
            .order_by(VocabularyORM.category)
        )
        with self._sessions() as session:
            return list(session.scalars(stmt))

    def delete_synced_before(self, kind: RecordKind, cutoff: datetime) -> int:
        orm_cls = ORM_BY_KIND[kind]
        stmt = delete(orm_cls).where(
            orm_cls.sync_status == SyncStatus.SYNCED.value,
            orm_cls.last_sync_attempt < cutoff,
        )
        with self._sessions.begin() as session:
            removed = session.execute(stmt).rowcount or 0
        if removed:
            logger.info(f"Removed {removed} synced {kind.value} record(s) older than {cutoff}")
        return removed

    # ------------------------------------------------------------------
    # Helpers
    # ------------------------------------------------------------------

    def _find_row(
        self, session: Session, record_id: str, kind: RecordKind | None = None
    ) -> InteractionORM | VocabularyORM | None:
        kinds = [kind] if kind is not None else list(RecordKind)
        for candidate in kinds:
            row = session.get(ORM_BY_KIND[candidate], record_id)
            if row is not None:
                return row
        return None

    def _require_row(
        self, session: Session, record_id: str, kind: RecordKind | None = None
    ) -> InteractionORM | VocabularyORM:
        row = self._find_row(session, record_id, kind)
        if row is None:
            raise NotFound(record_id, kind)
        return row

    @staticmethod
    def _write(row: InteractionORM | VocabularyORM, record: Record) -> None:
        for column, value in record_columns(record).items():
            setattr(row, column, value)

    @staticmethod
    def _due_conditions(now: datetime) -> list[ColumnElement[bool]]:
        return [
            VocabularyORM.is_archived.is_(False),
            or_(VocabularyORM.next_review_at.is_(None), VocabularyORM.next_review_at <= now),
        ]

    @staticmethod
    def _conditions(kind: RecordKind, filters: RecordFilter) -> list[ColumnElement[bool]]:
        orm_cls = ORM_BY_KIND[kind]
        if kind is RecordKind.INTERACTION:
            misplaced = [name for name in VOCABULARY_ONLY_FILTERS if getattr(filters, name) is not None]
            if misplaced:
                raise ValidationError(
                    f"Filters only apply to vocabulary: {', '.join(misplaced)}"
                )

        conditions: list[ColumnElement[bool]] = []
        if filters.sync_status is not None:
            conditions.append(orm_cls.sync_status == filters.sync_status.value)
        if filters.created_after is not None:
            conditions.append(orm_cls.created_at >= filters.created_after)
        if filters.created_before is not None:
            conditions.append(orm_cls.created_at < filters.created_before)

        if kind is RecordKind.INTERACTION:
            if filters.search:
                pattern = f"%{_literal(filters.search)}%"
                conditions.append(
                    or_(
                        InteractionORM.original_text.ilike(pattern, escape=LIKE_ESCAPE),
                        InteractionORM.refined_text.ilike(pattern, escape=LIKE_ESCAPE),
                    )
                )
            return conditions

        if filters.is_archived is not None:
            conditions.append(VocabularyORM.is_archived.is_(filters.is_archived))
        if filters.is_favorite is not None:
            conditions.append(VocabularyORM.is_favorite.is_(filters.is_favorite))
        if filters.mastery_level is not None:
            conditions.append(VocabularyORM.mastery_level == filters.mastery_level)
        if filters.category is not None:
            conditions.append(VocabularyORM.category == filters.category)
        if filters.tag is not None:
            wrapped = "," + VocabularyORM.tags + ","
            conditions.append(wrapped.like(f"%,{_literal(filters.tag)},%", escape=LIKE_ESCAPE))
        if filters.search:
            pattern = f"%{_literal(filters.search)}%"
            conditions.append(
                or_(
                    VocabularyORM.word.ilike(pattern, escape=LIKE_ESCAPE),
                    cast(VocabularyORM.definitions, SAString).ilike(pattern, escape=LIKE_ESCAPE),
                    VocabularyORM.tags.ilike(pattern, escape=LIKE_ESCAPE),
                    VocabularyORM.user_context.ilike(pattern, escape=LIKE_ESCAPE),
                )
            )
        return conditions
