# Persistence Package
from .database import create_store_engine, init_db
from .session_repository import SqlReviewSessionRepository
from .sql_store import SqlRecordStore
from .stats_repository import SqlLearningStatsRepository

__all__ = [
    "SqlLearningStatsRepository",
    "SqlRecordStore",
    "SqlReviewSessionRepository",
    "create_store_engine",
    "init_db",
]
