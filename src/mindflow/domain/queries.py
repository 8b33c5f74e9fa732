"""Query value objects accepted by ``RecordStore.list``."""

from dataclasses import dataclass
from datetime import datetime

from .models import SyncStatus


@dataclass(frozen=True)
class RecordFilter:
    """
    Optional constraints combined with AND. ``None`` means "don't filter".

    Vocabulary-only criteria (archived, favorite, mastery, category, tag) are
    rejected when listing interactions.
    """

    sync_status: SyncStatus | None = None
    is_archived: bool | None = None
    is_favorite: bool | None = None
    mastery_level: int | None = None
    category: str | None = None
    tag: str | None = None
    search: str | None = None
    created_after: datetime | None = None
    created_before: datetime | None = None


@dataclass(frozen=True)
class SortSpec:
    field: str = "created_at"
    descending: bool = True


NEWEST_FIRST = SortSpec()
