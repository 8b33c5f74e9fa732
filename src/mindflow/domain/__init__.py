# Domain Package
from .errors import (
    AuthError,
    MindFlowError,
    NetworkError,
    NotFound,
    ServerError,
    SyncError,
    ValidationError,
)
from .models import (
    AnswerOutcome,
    InteractionRecord,
    LearningStats,
    MasteryLevel,
    Record,
    RecordKind,
    ReviewMode,
    ReviewOutcome,
    ReviewResult,
    ReviewSession,
    SyncInfo,
    SyncState,
    SyncStatus,
    VocabularyEntry,
)
from .queries import RecordFilter, SortSpec

__all__ = [
    "AnswerOutcome",
    "AuthError",
    "InteractionRecord",
    "LearningStats",
    "MasteryLevel",
    "MindFlowError",
    "NetworkError",
    "NotFound",
    "Record",
    "RecordFilter",
    "RecordKind",
    "ReviewMode",
    "ReviewOutcome",
    "ReviewResult",
    "ReviewSession",
    "ServerError",
    "SortSpec",
    "SyncError",
    "SyncInfo",
    "SyncState",
    "SyncStatus",
    "ValidationError",
    "VocabularyEntry",
]
