from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from datetime import date, timedelta

import pytest

from mindflow.domain.errors import NotFound, ValidationError
from mindflow.domain.models import ReviewMode, ReviewSession
from mindflow.infrastructure.persistence import (
    SqlLearningStatsRepository,
    create_store_engine,
    init_db,
)

DAY = date(2025, 3, 1)


# --- Learning stats ---


def test_get_or_create_is_an_upsert(stats_repo):
    first = stats_repo.get_or_create(DAY)
    second = stats_repo.get_or_create(DAY)

    assert first == second
    assert first.day == DAY
    assert first.words_added == 0
    assert len(stats_repo.between(DAY, DAY)) == 1


def test_increment_accumulates(stats_repo):
    stats_repo.increment(DAY, words_added=2)
    stats_repo.increment(DAY, words_reviewed=1, correct_reviews=1)
    row = stats_repo.increment(DAY, study_time_seconds=90)

    assert row.words_added == 2
    assert row.words_reviewed == 1
    assert row.correct_reviews == 1
    assert row.study_time_seconds == 90


def test_increment_rejects_unknown_or_negative(stats_repo):
    with pytest.raises(ValidationError):
        stats_repo.increment(DAY, streak_days=1)
    with pytest.raises(ValidationError):
        stats_repo.increment(DAY, words_added=-1)


def test_set_streak(stats_repo):
    assert stats_repo.set_streak(DAY, 4).streak_days == 4
    with pytest.raises(ValidationError):
        stats_repo.set_streak(DAY, -1)


def test_between_is_oldest_first(stats_repo):
    for offset in (2, 0, 1):
        stats_repo.get_or_create(DAY + timedelta(days=offset))

    rows = stats_repo.between(DAY, DAY + timedelta(days=1))
    assert [r.day for r in rows] == [DAY, DAY + timedelta(days=1)]


def test_concurrent_increments_are_not_lost(tmp_path):
    engine = create_store_engine(tmp_path / "stats.db")
    repo = SqlLearningStatsRepository(init_db(engine))

    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(lambda _: repo.increment(DAY, words_reviewed=1), range(40)))

    assert repo.get_or_create(DAY).words_reviewed == 40
    engine.dispose()


# --- Review sessions ---


def test_session_save_and_get(session_repo, now):
    session = ReviewSession(id="rev_1", started_at=now, total_words=5, mode=ReviewMode.REVERSE)
    session_repo.save(session)
    assert session_repo.get("rev_1") == session

    answered = replace(session, correct_count=2, skipped_count=1)
    session_repo.save(answered)
    assert session_repo.get("rev_1") == answered


def test_session_save_validates(session_repo, now):
    with pytest.raises(ValidationError):
        session_repo.save(
            ReviewSession(id="rev_1", started_at=now, total_words=1, correct_count=2)
        )
    with pytest.raises(NotFound):
        session_repo.get("rev_1")


def test_recent_sessions_newest_first(session_repo, now):
    for hours in (3, 1, 2):
        session_repo.save(
            ReviewSession(
                id=f"rev_{hours}", started_at=now - timedelta(hours=hours), total_words=1
            )
        )

    assert [s.id for s in session_repo.recent(limit=2)] == ["rev_1", "rev_2"]
