import logging

from sqlalchemy import select
from sqlalchemy.orm import Session, sessionmaker

from mindflow.domain.errors import NotFound
from mindflow.domain.models import ReviewSession
from mindflow.domain.ports import ReviewSessionRepository
from mindflow.domain.validation import validate_session

from .orm_models import ReviewSessionORM, session_columns, session_from_orm

logger = logging.getLogger(__name__)


class SqlReviewSessionRepository(ReviewSessionRepository):
    """Review sessions persisted as one row each; ``save`` upserts by id."""

    def __init__(self, session_factory: sessionmaker[Session]):
        self._sessions = session_factory

    def save(self, session: ReviewSession) -> None:
        validate_session(session)
        with self._sessions.begin() as db:
            row = db.get(ReviewSessionORM, session.id)
            if row is None:
                db.add(ReviewSessionORM(**session_columns(session)))
                return
            for column, value in session_columns(session).items():
                setattr(row, column, value)

    def get(self, session_id: str) -> ReviewSession:
        with self._sessions() as db:
            row = db.get(ReviewSessionORM, session_id)
            if row is None:
                raise NotFound(session_id)
            return session_from_orm(row)

    def recent(self, limit: int = 10) -> list[ReviewSession]:
        stmt = (
            select(ReviewSessionORM)
            .order_by(ReviewSessionORM.started_at.desc(), ReviewSessionORM.id.desc())
            .limit(limit)
        )
        with self._sessions() as db:
            return [session_from_orm(row) for row in db.scalars(stmt)]
