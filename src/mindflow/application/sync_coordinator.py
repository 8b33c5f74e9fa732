"""
Sync Coordinator: decides when a local record is pushed to the backend.

Records are always written locally first. This service tracks in-flight
attempts (the transient ``syncing`` state lives only here), applies the
auto-sync threshold and retry cap, and records every outcome on the record.
"""

import asyncio
import logging
from collections.abc import Callable
from dataclasses import dataclass, field
from datetime import datetime

from mindflow.domain.clock import utc_now
from mindflow.domain.constants import (
    DEFAULT_AUTO_SYNC_THRESHOLD,
    DEFAULT_MAX_RETRIES,
    DEFAULT_SWEEP_CONCURRENCY,
    DEFAULT_SWEEP_INTERVAL,
)
from mindflow.domain.errors import AuthError, NotFound, SyncError, ValidationError
from mindflow.domain.models import (
    InteractionRecord,
    Record,
    RecordKind,
    SyncState,
    SyncStatus,
    is_synced,
)
from mindflow.domain.ports import AuthProvider, RecordStore, RemoteSyncClient

from .config import AppConfig
from .payload import build_payload

logger = logging.getLogger(__name__)

LABEL_SYNCED = "synced"
LABEL_SYNCING = "syncing"
LABEL_LOCAL_ONLY = "local only"
LABEL_PENDING = "pending"
LABEL_FAILED = "sync failed"

# Skips that only apply to automatic requests
AUTO_ONLY_SKIPS = frozenset(
    {"auto-sync disabled", "below auto-sync threshold", "retry limit reached"}
)


def should_auto_sync(
    duration_seconds: float | None,
    is_authenticated: bool,
    auto_sync_enabled: bool,
    threshold_seconds: float,
) -> bool:
    """
    Decide whether a record is pushed without the user asking.

    Records without a duration (e.g. vocabulary) are always eligible once the
    user is signed in and auto-sync is on.
    """
    if not is_authenticated:
        return False
    if not auto_sync_enabled:
        return False
    if duration_seconds is not None and duration_seconds < threshold_seconds:
        return False
    return True


@dataclass(frozen=True)
class SyncPolicy:
    auto_sync_enabled: bool = True
    threshold_seconds: float = DEFAULT_AUTO_SYNC_THRESHOLD
    max_retries: int = DEFAULT_MAX_RETRIES
    vocabulary_sync_enabled: bool = False
    sweep_interval_seconds: float = DEFAULT_SWEEP_INTERVAL
    sweep_concurrency: int = DEFAULT_SWEEP_CONCURRENCY

    @classmethod
    def from_config(cls, config: AppConfig) -> "SyncPolicy":
        return cls(
            auto_sync_enabled=config.auto_sync_enabled,
            threshold_seconds=config.auto_sync_threshold_seconds,
            max_retries=config.max_retries,
            vocabulary_sync_enabled=config.vocabulary_sync_enabled,
            sweep_interval_seconds=config.sweep_interval_seconds,
            sweep_concurrency=config.sweep_concurrency,
        )

    def enabled_kinds(self) -> list[RecordKind]:
        kinds = [RecordKind.INTERACTION]
        if self.vocabulary_sync_enabled:
            kinds.append(RecordKind.VOCABULARY)
        return kinds


@dataclass(frozen=True)
class SyncOutcome:
    """
    Result of one sync request.

    ``attempted`` is False when the request was skipped (below threshold,
    signed out, retry cap, already synced). ``skipped_reason`` says why.
    """

    record_id: str
    kind: RecordKind
    state: SyncState
    backend_id: str | None = None
    error: str | None = None
    attempted: bool = False
    skipped_reason: str | None = None
    exception: Exception | None = field(default=None, repr=False, compare=False)


@dataclass
class SweepReport:
    outcomes: list[SyncOutcome] = field(default_factory=list)
    errors: int = 0  # unexpected failures that escaped a single attempt

    @property
    def synced(self) -> int:
        return sum(1 for o in self.outcomes if o.attempted and o.state is SyncState.SYNCED)

    @property
    def failed(self) -> int:
        return sum(1 for o in self.outcomes if o.attempted and o.state is SyncState.FAILED)

    @property
    def skipped(self) -> int:
        return sum(1 for o in self.outcomes if not o.attempted)


def _duration_of(record: Record) -> float | None:
    if isinstance(record, InteractionRecord):
        return record.audio_duration_seconds
    return None


def sync_label(
    record: Record,
    policy: SyncPolicy,
    is_authenticated: bool,
    syncing: bool = False,
) -> str:
    """User-visible sync label for a record."""
    if syncing:
        return LABEL_SYNCING
    if is_synced(record):
        return LABEL_SYNCED
    if record.kind not in policy.enabled_kinds():
        return LABEL_LOCAL_ONLY
    if record.sync.status is SyncStatus.FAILED:
        return LABEL_FAILED
    if not should_auto_sync(
        _duration_of(record),
        is_authenticated,
        policy.auto_sync_enabled,
        policy.threshold_seconds,
    ):
        return LABEL_LOCAL_ONLY
    return LABEL_PENDING


class SyncCoordinator:
    """
    Pushes records through the RemoteSyncClient, one attempt per record at a time.

    Concurrent requests for a record that is already syncing share the
    in-flight attempt and receive its result.
    """

    def __init__(
        self,
        store: RecordStore,
        client: RemoteSyncClient,
        auth: AuthProvider,
        policy: SyncPolicy | None = None,
        clock: Callable[[], datetime] = utc_now,
    ):
        self._store = store
        self._client = client
        self._auth = auth
        self.policy = policy or SyncPolicy()
        self._clock = clock
        self._in_flight: dict[tuple[RecordKind, str], asyncio.Task[SyncOutcome]] = {}

    # ------------------------------------------------------------------
    # Public API
    # ------------------------------------------------------------------

    async def on_record_created(self, kind: RecordKind, record_id: str) -> SyncOutcome:
        """Apply the auto-sync decision right after a local create."""
        return await self.sync_record(kind, record_id)

    async def sync_record(
        self, kind: RecordKind, record_id: str, manual: bool = False
    ) -> SyncOutcome:
        """
        Attempt to sync one record.

        Automatic requests honour the threshold and retry cap. Manual requests
        always attempt (when signed in) and raise the underlying error after it
        has been recorded on the record.

        Raises:
            NotFound: The record does not exist.
            SyncError, ValidationError: Manual requests only, when the attempt failed.
        """
        key = (kind, record_id)
        task = self._in_flight.get(key)
        joined = task is not None and not task.done()
        if joined:
            logger.debug(f"Joining in-flight sync of {record_id}")
        else:
            task = asyncio.create_task(self._attempt(kind, record_id, manual))
            self._in_flight[key] = task
            task.add_done_callback(lambda done: self._forget(key, done))

        # A cancelled caller must not cancel the shared attempt.
        outcome = await asyncio.shield(task)
        if joined and manual and outcome.skipped_reason in AUTO_ONLY_SKIPS:
            # The shared attempt was automatic and declined; a manual request still tries.
            return await self.sync_record(kind, record_id, manual=True)
        if manual and outcome.exception is not None:
            raise outcome.exception
        return outcome

    async def sweep(self) -> SweepReport:
        """
        Retry every pending or retryable record once, with bounded concurrency.

        Failures are logged and recorded; the sweep always runs to the end.
        """
        report = SweepReport()
        candidates: list[Record] = []
        for kind in self.policy.enabled_kinds():
            candidates.extend(self._store.find_pending_sync(kind, self.policy.max_retries))

        if not candidates:
            return report

        semaphore = asyncio.Semaphore(self.policy.sweep_concurrency)

        async def run_one(record: Record) -> None:
            if self._is_syncing((record.kind, record.id)):
                logger.debug(f"Sweep skipping {record.id}: already syncing")
                return
            async with semaphore:
                try:
                    report.outcomes.append(await self.sync_record(record.kind, record.id))
                except NotFound:
                    logger.debug(f"{record.id} was deleted before the sweep reached it")
                except Exception as e:
                    report.errors += 1
                    logger.warning(f"Sync of {record.kind.value} {record.id} failed: {e}")

        await asyncio.gather(*(run_one(record) for record in candidates))

        if report.synced or report.failed or report.errors:
            logger.info(
                f"Sync sweep: {report.synced} synced, {report.failed} failed, "
                f"{report.skipped} skipped, {report.errors} errors"
            )
        return report

    async def run_periodic(self, stop_event: asyncio.Event) -> None:
        """Sweep every ``sweep_interval_seconds`` until ``stop_event`` is set."""
        interval = self.policy.sweep_interval_seconds
        logger.info(f"Background sync every {interval:g}s")
        while not stop_event.is_set():
            try:
                await self.sweep()
            except Exception as e:
                logger.warning(f"Sync sweep aborted: {e}")
            try:
                await asyncio.wait_for(stop_event.wait(), timeout=interval)
            except asyncio.TimeoutError:
                pass
        logger.info("Background sync stopped")

    def state_of(self, kind: RecordKind, record_id: str) -> SyncState:
        if self._is_syncing((kind, record_id)):
            return SyncState.SYNCING
        return SyncState.from_status(self._store.get(record_id, kind).sync.status)

    def label_for(self, record: Record) -> str:
        return sync_label(
            record,
            self.policy,
            self._auth.is_authenticated(),
            syncing=self._is_syncing((record.kind, record.id)),
        )

    @property
    def in_flight(self) -> int:
        return sum(1 for task in self._in_flight.values() if not task.done())

    def _is_syncing(self, key: tuple[RecordKind, str]) -> bool:
        task = self._in_flight.get(key)
        return task is not None and not task.done()

    def _forget(self, key: tuple[RecordKind, str], task: asyncio.Task) -> None:
        if self._in_flight.get(key) is task:
            del self._in_flight[key]

    # ------------------------------------------------------------------
    # Attempt
    # ------------------------------------------------------------------

    async def _attempt(self, kind: RecordKind, record_id: str, manual: bool) -> SyncOutcome:
        record = self._store.get(record_id, kind)

        if is_synced(record):
            return self._skipped(record, "already synced")

        if kind is RecordKind.VOCABULARY and not self.policy.vocabulary_sync_enabled:
            return self._skipped(record, "vocabulary sync disabled")

        authenticated = self._auth.is_authenticated()
        token = self._auth.access_token() if authenticated else None

        if not manual:
            reason = self._auto_skip_reason(record, authenticated)
            if reason:
                return self._skipped(record, reason)

        if not token:
            error = AuthError("Not authenticated. Please sign in first.")
            logger.info(f"Sync of {record_id} skipped: not authenticated")
            return self._skipped(record, "not authenticated", error)

        try:
            payload = build_payload(record)
        except ValidationError as e:
            # The backend would reject this forever; stop automatic retries.
            return self._fail(record, e, retry_floor=self.policy.max_retries)

        try:
            if kind is RecordKind.INTERACTION:
                backend_id = await self._client.create_interaction(payload, token)
            else:
                backend_id = await self._client.create_vocabulary(payload, token)
        except AuthError as e:
            logger.warning(f"Sync of {record_id} rejected credentials: {e}")
            return self._skipped(record, "not authenticated", e)
        except SyncError as e:
            floor = None if e.retryable else self.policy.max_retries
            return self._fail(record, e, retry_floor=floor)

        synced = self._store.record_sync_success(kind, record_id, backend_id, self._clock())
        logger.info(f"Synced {kind.value} {record_id} -> {backend_id}")
        return SyncOutcome(
            record_id=record_id,
            kind=kind,
            state=SyncState.SYNCED,
            backend_id=synced.sync.backend_id,
            attempted=True,
        )

    def _auto_skip_reason(self, record: Record, authenticated: bool) -> str | None:
        if not authenticated:
            return "not authenticated"
        if not self.policy.auto_sync_enabled:
            return "auto-sync disabled"
        if not should_auto_sync(
            _duration_of(record),
            authenticated,
            self.policy.auto_sync_enabled,
            self.policy.threshold_seconds,
        ):
            return "below auto-sync threshold"
        if (
            record.sync.status is SyncStatus.FAILED
            and record.sync.retry_count >= self.policy.max_retries
        ):
            return "retry limit reached"
        return None

    def _skipped(
        self, record: Record, reason: str, error: Exception | None = None
    ) -> SyncOutcome:
        return SyncOutcome(
            record_id=record.id,
            kind=record.kind,
            state=SyncState.from_status(record.sync.status),
            backend_id=record.sync.backend_id,
            error=str(error) if error else None,
            skipped_reason=reason,
            exception=error,
        )

    def _fail(
        self, record: Record, error: Exception, retry_floor: int | None = None
    ) -> SyncOutcome:
        failed = self._store.record_sync_failure(
            record.kind, record.id, str(error), self._clock(), retry_floor=retry_floor
        )
        logger.warning(
            f"Sync of {record.kind.value} {record.id} failed "
            f"(attempt {failed.sync.retry_count}): {error}"
        )
        return SyncOutcome(
            record_id=record.id,
            kind=record.kind,
            state=SyncState.FAILED,
            error=str(error),
            attempted=True,
            exception=error,
        )
