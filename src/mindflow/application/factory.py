"""
Service Factory
Builds the explicit service instances shared by the CLI and the server.
"""

from dataclasses import dataclass

from sqlalchemy import Engine

from mindflow.application.capture_service import CaptureService
from mindflow.application.config import AppConfig
from mindflow.application.review_session import ReviewSessionManager
from mindflow.application.stats import LearningStatsAggregator, ProgressCalculator
from mindflow.application.sync_coordinator import SyncCoordinator, SyncPolicy
from mindflow.domain.ports import AuthProvider, RecordStore, RemoteSyncClient
from mindflow.infrastructure.adapters.auth import SessionFileAuthProvider, StaticTokenAuthProvider
from mindflow.infrastructure.adapters.mindflow_api import MindFlowApiClient
from mindflow.infrastructure.persistence import (
    SqlLearningStatsRepository,
    SqlRecordStore,
    SqlReviewSessionRepository,
    create_store_engine,
    init_db,
)


@dataclass
class Services:
    config: AppConfig
    engine: Engine
    store: RecordStore
    auth: AuthProvider
    client: RemoteSyncClient
    coordinator: SyncCoordinator
    capture: CaptureService
    reviews: ReviewSessionManager
    stats: LearningStatsAggregator
    progress: ProgressCalculator

    async def aclose(self) -> None:
        close = getattr(self.client, "close", None)
        if close is not None:
            await close()
        self.engine.dispose()


def get_auth_provider(config: AppConfig) -> AuthProvider:
    """
    Returns the AuthProvider for the config.
    An explicit access token wins over the session file.
    """
    if config.access_token is not None:
        return StaticTokenAuthProvider(config.access_token.get_secret_value())
    return SessionFileAuthProvider(config.session_file)


def get_sync_client(config: AppConfig) -> RemoteSyncClient:
    return MindFlowApiClient(
        api_url=config.api_url,
        supabase_url=config.supabase_url,
        supabase_anon_key=(
            config.supabase_anon_key.get_secret_value() if config.supabase_anon_key else None
        ),
        timeout=config.request_timeout,
    )


def build_services(
    config: AppConfig,
    client: RemoteSyncClient | None = None,
    auth: AuthProvider | None = None,
) -> Services:
    """Wire the store, sync and learning services for one process."""
    engine = create_store_engine(None if config.in_memory else config.database_path)
    session_factory = init_db(engine)

    store = SqlRecordStore(session_factory)
    auth = auth or get_auth_provider(config)
    client = client or get_sync_client(config)
    stats = LearningStatsAggregator(SqlLearningStatsRepository(session_factory))
    coordinator = SyncCoordinator(store, client, auth, SyncPolicy.from_config(config))

    return Services(
        config=config,
        engine=engine,
        store=store,
        auth=auth,
        client=client,
        coordinator=coordinator,
        capture=CaptureService(store, coordinator, stats, config.transcription_api),
        reviews=ReviewSessionManager(SqlReviewSessionRepository(session_factory), store, stats),
        stats=stats,
        progress=ProgressCalculator(),
    )
