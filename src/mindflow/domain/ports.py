"""
Ports (interfaces) for persistence and the external collaborators.

These define the contract that infrastructure adapters must implement.
Application services depend on these abstractions, not concrete implementations.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Mapping
from datetime import date, datetime
from typing import Any

from .models import (
    LearningStats,
    MasteryLevel,
    Record,
    RecordKind,
    ReviewOutcome,
    ReviewSession,
    SyncStatus,
    VocabularyEntry,
)
from .queries import RecordFilter, SortSpec


class RecordStore(ABC):
    """
    Port for local-first persistence of interactions and vocabulary.

    Implementations:
        - SqlRecordStore: SQLAlchemy tables over SQLite.

    Writes to one record are serialized; each write is atomic.
    """

    @abstractmethod
    def create(self, record: Record) -> str:
        """
        Persist a new record.

        Returns:
            The record id.

        Raises:
            ValidationError: Missing fields, broken invariants or duplicate id.
        """

    @abstractmethod
    def get(self, record_id: str, kind: RecordKind | None = None) -> Record:
        """Fetch one record. Raises NotFound when absent."""

    @abstractmethod
    def update(
        self, record_id: str, patch: Mapping[str, Any], kind: RecordKind | None = None
    ) -> Record:
        """
        Apply a content/metadata patch and return the stored result.

        Sync and repetition fields are not patchable and raise ValidationError.
        """

    @abstractmethod
    def delete(self, record_id: str, kind: RecordKind | None = None) -> None:
        """Hard delete. Raises NotFound when absent."""

    @abstractmethod
    def list(
        self,
        kind: RecordKind,
        filters: RecordFilter | None = None,
        sort: SortSpec | None = None,
        limit: int | None = None,
        offset: int = 0,
    ) -> list[Record]:
        """Query records of one kind."""

    @abstractmethod
    def find_due(self, now: datetime, limit: int | None = None) -> list[VocabularyEntry]:
        """Unarchived entries with next_review_at <= now or unset, earliest first."""

    @abstractmethod
    def find_pending_sync(self, kind: RecordKind, max_retries: int) -> list[Record]:
        """Records that are pending, or failed with retry_count < max_retries."""

    @abstractmethod
    def record_sync_success(
        self, kind: RecordKind, record_id: str, backend_id: str, at: datetime
    ) -> Record:
        """Mark synced, store backend id, clear the error and reset retry_count."""

    @abstractmethod
    def record_sync_failure(
        self,
        kind: RecordKind,
        record_id: str,
        error: str,
        at: datetime,
        retry_floor: int | None = None,
    ) -> Record:
        """
        Mark failed, store the error and bump retry_count.

        Args:
            retry_floor: When given, retry_count is raised to at least this value
                (used for permanent rejections).
        """

    @abstractmethod
    def apply_review(
        self, entry_id: str, outcome: ReviewOutcome, at: datetime
    ) -> VocabularyEntry:
        """Run the scheduler on the stored entry and persist the result atomically."""

    @abstractmethod
    def counts_by_sync_status(self, kind: RecordKind) -> dict[SyncStatus, int]:
        pass

    @abstractmethod
    def counts_by_mastery(self) -> dict[MasteryLevel, int]:
        pass

    @abstractmethod
    def due_count(self, now: datetime) -> int:
        pass

    @abstractmethod
    def categories(self) -> list[str]:
        pass

    @abstractmethod
    def delete_synced_before(self, kind: RecordKind, cutoff: datetime) -> int:
        """Drop synced records whose last sync happened before cutoff. Returns count."""


class ReviewSessionRepository(ABC):
    @abstractmethod
    def save(self, session: ReviewSession) -> None:
        pass

    @abstractmethod
    def get(self, session_id: str) -> ReviewSession:
        """Raises NotFound when absent."""

    @abstractmethod
    def recent(self, limit: int = 10) -> list[ReviewSession]:
        """Newest first by started_at."""


class LearningStatsRepository(ABC):
    """Per-day activity counters with upsert semantics on the day key."""

    @abstractmethod
    def get_or_create(self, day: date) -> LearningStats:
        pass

    @abstractmethod
    def increment(self, day: date, **deltas: int) -> LearningStats:
        """Atomically add deltas to the day's counters (creating the row if needed)."""

    @abstractmethod
    def set_streak(self, day: date, streak_days: int) -> LearningStats:
        pass

    @abstractmethod
    def between(self, start: date, end: date) -> list[LearningStats]:
        """Rows with start <= day <= end, oldest first."""


class AuthProvider(ABC):
    """Reports authentication status and supplies a bearer token."""

    @abstractmethod
    def is_authenticated(self) -> bool:
        pass

    @abstractmethod
    def access_token(self) -> str | None:
        pass


class RemoteSyncClient(ABC):
    """
    Port for pushing records to the backend.

    Implementations must enforce their own timeout and raise NetworkError on
    expiry. Errors are raised as SyncError subclasses.
    """

    @abstractmethod
    async def create_interaction(self, payload: dict[str, Any], token: str) -> str:
        """
        Create an interaction on the backend.

        Returns:
            The backend id.
        """

    @abstractmethod
    async def create_vocabulary(self, payload: dict[str, Any], token: str) -> str:
        """Create a vocabulary entry on the backend. Returns the backend id."""
