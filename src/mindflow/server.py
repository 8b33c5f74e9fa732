import asyncio
import logging
import time
from contextlib import asynccontextmanager
from datetime import date, datetime

from fastapi import Depends, FastAPI, HTTPException, Query, Request
from pydantic import BaseModel, Field

from mindflow.application.factory import Services
from mindflow.application.sync_coordinator import SyncOutcome
from mindflow.consts import VERSION
from mindflow.domain.errors import AuthError, NotFound, SyncError, ValidationError
from mindflow.domain.models import RecordKind

logger = logging.getLogger("mindflow.server")


class HealthResponse(BaseModel):
    status: str
    version: str
    uptime_seconds: float


class SweepResponse(BaseModel):
    synced: int
    failed: int
    skipped: int
    errors: int
    success: bool


class SyncOutcomeResponse(BaseModel):
    record_id: str
    kind: RecordKind
    state: str
    backend_id: str | None = None
    error: str | None = None
    attempted: bool
    skipped_reason: str | None = None

    @classmethod
    def from_outcome(cls, outcome: SyncOutcome) -> "SyncOutcomeResponse":
        return cls(
            record_id=outcome.record_id,
            kind=outcome.kind,
            state=outcome.state.value,
            backend_id=outcome.backend_id,
            error=outcome.error,
            attempted=outcome.attempted,
            skipped_reason=outcome.skipped_reason,
        )


class RecordStatusResponse(BaseModel):
    id: str
    kind: RecordKind
    state: str
    label: str
    retry_count: int
    sync_error: str | None = None
    created_at: datetime


class DueWordResponse(BaseModel):
    id: str
    word: str
    mastery_level: int
    mastery: str
    next_review_at: datetime | None
    definitions: dict[str, str]


class TodayStatsResponse(BaseModel):
    day: date
    words_added: int
    words_reviewed: int
    correct_reviews: int
    incorrect_reviews: int
    study_time_seconds: int
    streak_days: int
    accuracy: float


class InteractionRequest(BaseModel):
    original_text: str = Field(min_length=1)
    refined_text: str | None = None
    explanation: str | None = None
    audio_duration_seconds: float | None = Field(default=None, ge=0)
    transcription_api: str | None = None
    transcription_model: str | None = None
    optimization_model: str | None = None
    optimization_level: str | None = None
    output_style: str | None = None


class VocabularyRequest(BaseModel):
    word: str = Field(min_length=1)
    definitions: dict[str, str] = Field(default_factory=dict)
    tags: list[str] = Field(default_factory=list)
    phonetic: str | None = None
    part_of_speech: str | None = None
    category: str | None = None
    user_context: str | None = None
    source_interaction_id: str | None = None


class CreatedResponse(BaseModel):
    id: str
    sync: SyncOutcomeResponse


def get_services(request: Request) -> Services:
    return request.app.state.services


def create_app(services: Services | None = None, background_sync: bool | None = None) -> FastAPI:
    """
    Build the API app.

    Args:
        services: Pre-built services (tests). Built from the resolved config otherwise.
        background_sync: Run the periodic sweep; defaults to ``auto_sync_enabled``.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        from mindflow.application.config import resolve_config
        from mindflow.application.factory import build_services

        owned = services is None
        app.state.services = services or build_services(resolve_config())
        config = app.state.services.config
        logger.info(f"MindFlow Server v{VERSION} starting up...")

        stop = asyncio.Event()
        sweeper = None
        if config.auto_sync_enabled if background_sync is None else background_sync:
            sweeper = asyncio.create_task(app.state.services.coordinator.run_periodic(stop))

        yield

        stop.set()
        if sweeper is not None:
            await sweeper
        if owned:
            await app.state.services.aclose()
        logger.info("MindFlow Server shutting down...")

    app = FastAPI(
        title="MindFlow Server",
        description="Local-first sync and vocabulary review for MindFlow.",
        version=VERSION,
        lifespan=lifespan,
    )
    start_time = time.time()

    @app.get("/health", response_model=HealthResponse)
    async def health_check():
        """
        Simple health check to verify server is reachable.
        """
        return HealthResponse(status="ok", version=VERSION, uptime_seconds=time.time() - start_time)

    @app.get("/version")
    async def get_version():
        return {"version": VERSION}

    @app.post("/sync", response_model=SweepResponse)
    async def trigger_sweep(services: Services = Depends(get_services)):
        """
        Run one sync sweep over pending and retryable records.
        """
        logger.info("Sync sweep requested via API")
        report = await services.coordinator.sweep()
        return SweepResponse(
            synced=report.synced,
            failed=report.failed,
            skipped=report.skipped,
            errors=report.errors,
            success=report.errors == 0 and report.failed == 0,
        )

    @app.post("/records/{kind}/{record_id}/sync", response_model=SyncOutcomeResponse)
    async def sync_record(
        kind: RecordKind, record_id: str, services: Services = Depends(get_services)
    ):
        """
        Manually sync one record, bypassing the threshold and retry cap.
        """
        try:
            outcome = await services.coordinator.sync_record(kind, record_id, manual=True)
        except NotFound as e:
            raise HTTPException(status_code=404, detail=str(e)) from e
        except AuthError as e:
            raise HTTPException(status_code=401, detail=str(e)) from e
        except ValidationError as e:
            raise HTTPException(status_code=422, detail=str(e)) from e
        except SyncError as e:
            raise HTTPException(status_code=502, detail=str(e)) from e
        return SyncOutcomeResponse.from_outcome(outcome)

    @app.post("/interactions", response_model=CreatedResponse, status_code=201)
    async def create_interaction(
        req: InteractionRequest, services: Services = Depends(get_services)
    ):
        try:
            record, outcome = await services.capture.add_interaction(**req.model_dump())
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid request: {e}") from None
        return CreatedResponse(id=record.id, sync=SyncOutcomeResponse.from_outcome(outcome))

    @app.post("/vocabulary", response_model=CreatedResponse, status_code=201)
    async def create_vocabulary(
        req: VocabularyRequest, services: Services = Depends(get_services)
    ):
        try:
            entry, outcome = await services.capture.add_vocabulary(**req.model_dump())
        except ValidationError as e:
            raise HTTPException(status_code=400, detail=f"Invalid request: {e}") from None
        return CreatedResponse(id=entry.id, sync=SyncOutcomeResponse.from_outcome(outcome))

    @app.get("/records/{kind}", response_model=list[RecordStatusResponse])
    async def list_records(
        kind: RecordKind,
        limit: int = Query(default=50, ge=1),
        services: Services = Depends(get_services),
    ):
        """
        Recent records of one kind with their sync state and user-visible label.
        """
        coordinator = services.coordinator
        return [
            RecordStatusResponse(
                id=r.id,
                kind=r.kind,
                state=coordinator.state_of(r.kind, r.id).value,
                label=coordinator.label_for(r),
                retry_count=r.sync.retry_count,
                sync_error=r.sync.sync_error,
                created_at=r.created_at,
            )
            for r in services.store.list(kind, limit=limit)
        ]

    @app.get("/vocabulary/due", response_model=list[DueWordResponse])
    async def due_vocabulary(limit: int | None = None, services: Services = Depends(get_services)):
        entries = services.reviews.due_words(limit)
        return [
            DueWordResponse(
                id=e.id,
                word=e.word,
                mastery_level=e.mastery_level,
                mastery=e.mastery.display_name,
                next_review_at=e.next_review_at,
                definitions=e.definitions,
            )
            for e in entries
        ]

    @app.get("/stats/today", response_model=TodayStatsResponse)
    async def stats_today(services: Services = Depends(get_services)):
        today = services.stats.get_or_create_today()
        return TodayStatsResponse(
            day=today.day,
            words_added=today.words_added,
            words_reviewed=today.words_reviewed,
            correct_reviews=today.correct_reviews,
            incorrect_reviews=today.incorrect_reviews,
            study_time_seconds=today.study_time_seconds,
            streak_days=today.streak_days,
            accuracy=today.accuracy,
        )

    return app


app = create_app()
