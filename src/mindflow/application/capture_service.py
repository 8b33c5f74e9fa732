"""
Capture Service: local-first creation of interactions and vocabulary.

The local write always happens first; the auto-sync decision runs afterwards
and its outcome never undoes the write.
"""

import logging
from typing import Any

from mindflow.domain.models import InteractionRecord, VocabularyEntry
from mindflow.domain.ports import RecordStore

from .records import new_interaction, new_vocabulary_entry
from .stats import LearningStatsAggregator
from .sync_coordinator import SyncCoordinator, SyncOutcome

logger = logging.getLogger(__name__)


class CaptureService:
    def __init__(
        self,
        store: RecordStore,
        coordinator: SyncCoordinator,
        stats: LearningStatsAggregator | None = None,
        transcription_api: str = "OpenAI",
    ):
        self._coordinator = coordinator
        self._store = store
        self._stats = stats
        self._transcription_api = transcription_api

    async def add_interaction(
        self, original_text: str, **fields: Any
    ) -> tuple[InteractionRecord, SyncOutcome]:
        if fields.get("transcription_api") is None:
            fields["transcription_api"] = self._transcription_api
        record = new_interaction(original_text, **fields)
        self._store.create(record)
        logger.debug(f"Captured interaction {record.id} locally")
        outcome = await self._coordinator.on_record_created(record.kind, record.id)
        return record, outcome

    async def add_vocabulary(
        self, word: str, **fields: Any
    ) -> tuple[VocabularyEntry, SyncOutcome]:
        entry = new_vocabulary_entry(word, **fields)
        self._store.create(entry)
        logger.debug(f"Added word '{entry.word}' as {entry.id}")
        if self._stats is not None:
            self._stats.record_word_added()
        outcome = await self._coordinator.on_record_created(entry.kind, entry.id)
        return entry, outcome
