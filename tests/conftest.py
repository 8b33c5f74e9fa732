import asyncio
from datetime import datetime, timezone

import pytest

from mindflow.domain.models import InteractionRecord, SyncInfo, SyncStatus, VocabularyEntry
from mindflow.domain.ports import RemoteSyncClient
from mindflow.infrastructure.adapters.auth import StaticTokenAuthProvider
from mindflow.infrastructure.persistence import (
    SqlLearningStatsRepository,
    SqlRecordStore,
    SqlReviewSessionRepository,
    create_store_engine,
    init_db,
)

NOW = datetime(2025, 3, 1, 12, 0, tzinfo=timezone.utc)


class FakeSyncClient(RemoteSyncClient):
    """
    In-memory backend. Queue exceptions in ``errors`` to fail the next calls;
    set ``gate`` to hold every call until the event is set.
    """

    def __init__(self):
        self.calls: list[tuple[str, dict]] = []
        self.tokens: list[str] = []
        self.errors: list[Exception] = []
        self.gate: asyncio.Event | None = None
        self._issued = 0

    async def _respond(self, kind: str, payload: dict, token: str) -> str:
        self.calls.append((kind, payload))
        self.tokens.append(token)
        if self.gate is not None:
            await self.gate.wait()
        if self.errors:
            raise self.errors.pop(0)
        self._issued += 1
        return f"{kind}-remote-{self._issued}"

    async def create_interaction(self, payload, token):
        return await self._respond("interaction", payload, token)

    async def create_vocabulary(self, payload, token):
        return await self._respond("vocabulary", payload, token)


@pytest.fixture
def now():
    return NOW


@pytest.fixture
def session_factory():
    engine = create_store_engine(None)
    factory = init_db(engine)
    yield factory
    engine.dispose()


@pytest.fixture
def store(session_factory):
    return SqlRecordStore(session_factory, clock=lambda: NOW)


@pytest.fixture
def stats_repo(session_factory):
    return SqlLearningStatsRepository(session_factory)


@pytest.fixture
def session_repo(session_factory):
    return SqlReviewSessionRepository(session_factory)


@pytest.fixture
def fake_client():
    return FakeSyncClient()


@pytest.fixture
def signed_in():
    return StaticTokenAuthProvider("test-token")


@pytest.fixture
def signed_out():
    return StaticTokenAuthProvider(None)


@pytest.fixture
def make_interaction():
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> InteractionRecord:
        n = next(counter)
        values = dict(
            id=f"int_{n:04d}",
            original_text=f"captured text {n}",
            created_at=NOW,
            updated_at=NOW,
            audio_duration_seconds=45.0,
        )
        values.update(overrides)
        return InteractionRecord(**values)

    return _make


@pytest.fixture
def make_entry():
    counter = iter(range(1, 10_000))

    def _make(**overrides) -> VocabularyEntry:
        n = next(counter)
        values = dict(
            id=f"voc_{n:04d}",
            word=f"word{n}",
            created_at=NOW,
            updated_at=NOW,
        )
        values.update(overrides)
        return VocabularyEntry(**values)

    return _make


@pytest.fixture
def synced_info():
    return SyncInfo(status=SyncStatus.SYNCED, backend_id="remote-1", last_sync_attempt=NOW)
