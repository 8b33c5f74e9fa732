"""Daily learning counters stored one row per calendar day."""

import logging
import threading
from datetime import date

from sqlalchemy import select, update
from sqlalchemy.orm import Session, sessionmaker

from mindflow.domain.errors import ValidationError
from mindflow.domain.models import LearningStats
from mindflow.domain.ports import LearningStatsRepository

from .orm_models import STATS_COUNTERS, LearningStatsORM, stats_from_orm

logger = logging.getLogger(__name__)


def stats_id(day: date) -> str:
    return f"stats_{day.isoformat()}"


class SqlLearningStatsRepository(LearningStatsRepository):
    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = session_factory
        # Guards row creation so concurrent first writes of a day don't collide
        # on the unique day column.
        self._create_lock = threading.Lock()

    def get_or_create(self, day: date) -> LearningStats:
        with self._create_lock, self._sessions.begin() as db:
            return stats_from_orm(self._ensure_row(db, day))

    def increment(self, day: date, **deltas: int) -> LearningStats:
        unknown = sorted(set(deltas) - set(STATS_COUNTERS))
        if unknown:
            raise ValidationError(f"Unknown stats counters: {', '.join(unknown)}")
        if any(value < 0 for value in deltas.values()):
            raise ValidationError("Stats counters only grow")

        with self._create_lock, self._sessions.begin() as db:
            self._ensure_row(db, day)
            if deltas:
                # Single UPDATE with column arithmetic, so no increment is lost.
                db.execute(
                    update(LearningStatsORM)
                    .where(LearningStatsORM.day == day)
                    .values(
                        {
                            getattr(LearningStatsORM, name): getattr(LearningStatsORM, name)
                            + value
                            for name, value in deltas.items()
                        }
                    )
                    .execution_options(synchronize_session=False)
                )
        return self._load(day)

    def set_streak(self, day: date, streak_days: int) -> LearningStats:
        if streak_days < 0:
            raise ValidationError("streak_days cannot be negative")
        with self._create_lock, self._sessions.begin() as db:
            row = self._ensure_row(db, day)
            row.streak_days = streak_days
        return self._load(day)

    def between(self, start: date, end: date) -> list[LearningStats]:
        stmt = (
            select(LearningStatsORM)
            .where(LearningStatsORM.day >= start, LearningStatsORM.day <= end)
            .order_by(LearningStatsORM.day)
        )
        with self._sessions() as db:
            return [stats_from_orm(row) for row in db.scalars(stmt)]

    def _load(self, day: date) -> LearningStats:
        with self._sessions() as db:
            row = db.scalars(select(LearningStatsORM).where(LearningStatsORM.day == day)).one()
            return stats_from_orm(row)

    @staticmethod
    def _ensure_row(db: Session, day: date) -> LearningStatsORM:
        row = db.scalars(select(LearningStatsORM).where(LearningStatsORM.day == day)).first()
        if row is None:
            row = LearningStatsORM(
                id=stats_id(day),
                day=day,
                words_added=0,
                words_reviewed=0,
                correct_reviews=0,
                incorrect_reviews=0,
                study_time_seconds=0,
                streak_days=0,
            )
            db.add(row)
            db.flush()
            logger.debug(f"Started learning stats for {day}")
        return row
