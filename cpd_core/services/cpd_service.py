# =============================================================================
# cpd_core/services/cpd_service.py
# CPD Entry Service
# =============================================================================
"""
CPDService - the single entry point UI code uses for CPD entries.

Writes always land in the local store first; the remote copy is updated
best-effort straight afterwards and otherwise by the next sync pass.
Screens should depend on ``CPDServiceProtocol`` rather than the concrete
class so they can be exercised against a fake.
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, fields, replace
from datetime import date, datetime
from pathlib import Path
from typing import Any, Callable, List, Optional, Protocol, Union

from cpd_core.analytics.cpd_stats import CPDStats, StatsCache, compute_cpd_stats, entries_to_frame
from cpd_core.config import Settings
from cpd_core.errors import ConfigurationError, EntryValidationError, NotFound, error_boundary
from cpd_core.models.categories import NMCCategory, list_categories
from cpd_core.models.entry import (
    ActivityType,
    CPDEntry,
    CPDEntryDraft,
    SyncState,
    utcnow,
)
from cpd_core.offline.local_entry_store import LocalEntryStore
from cpd_core.offline.sync_engine import SyncEngine, SyncReport
from cpd_core.services.base_service import BaseService, ServiceResult
from cpd_core.transcription.client import TranscriptionClient
from cpd_core.transcription.text_analysis import extract_learning_outcomes, generate_summary

# Fields an update may touch; id and timestamps are managed by the entry
UPDATABLE_FIELDS = frozenset(
    f.name for f in fields(CPDEntry)
) - {"id", "created_at", "updated_at", "sync_state", "remote_id"}

GENERATED_TITLE_LENGTH = 50


class CPDServiceProtocol(Protocol):
    """The capability interface UI code depends on."""

    async def get_all(self) -> List[CPDEntry]:
        ...

    async def create(self, draft: CPDEntryDraft) -> CPDEntry:
        ...

    async def update(self, entry_id: str, **changes: Any) -> CPDEntry:
        ...

    async def delete(self, entry_id: str) -> None:
        ...

    async def sync_pending(self) -> SyncReport:
        ...


@dataclass
class CPDFilters:
    """Optional criteria; unset fields match everything."""
    type: Optional[ActivityType] = None
    date_from: Optional[date] = None
    date_to: Optional[date] = None
    has_transcript: Optional[bool] = None
    has_evidence: Optional[bool] = None
    starred: Optional[bool] = None
    sync_state: Optional[SyncState] = None
    nmc_category: Optional[str] = None

    def matches(self, entry: CPDEntry) -> bool:
        if self.type is not None and entry.type != ActivityType(self.type):
            return False
        if self.date_from is not None and entry.date < self.date_from:
            return False
        if self.date_to is not None and entry.date > self.date_to:
            return False
        if self.has_transcript is not None and (entry.transcript is not None) != self.has_transcript:
            return False
        if self.has_evidence is not None and bool(entry.evidence) != self.has_evidence:
            return False
        if self.starred is not None and entry.is_starred != self.starred:
            return False
        if self.sync_state is not None and entry.sync_state != SyncState(self.sync_state):
            return False
        if self.nmc_category is not None and self.nmc_category not in entry.nmc_categories:
            return False
        return True


class CPDService(BaseService):
    """
    Create, edit, delete, list and summarise CPD entries.

    Usage:
        service = build_cpd_service(load_settings())
        entry = await service.create(CPDEntryDraft(...))
        stats = await service.get_stats()
    """

    def __init__(
        self,
        local_store: LocalEntryStore,
        sync_engine: SyncEngine,
        settings: Optional[Settings] = None,
        transcription: Optional[TranscriptionClient] = None,
        stats_cache: Optional[StatsCache] = None,
    ):
        super().__init__()
        self.local = local_store
        self.sync = sync_engine
        self.settings = settings or Settings()
        self.transcription = transcription
        self.stats_cache = stats_cache or StatsCache()
        self.sync.register_change_listener(self._on_remote_entries_cached)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """Start connection monitoring and the background sync timer."""
        if self.sync.connection is not None:
            self.sync.connection.start_monitoring()
        self.sync.start()

    async def close(self) -> None:
        """Stop background work and release the local store."""
        await self.sync.stop()
        if self.sync.connection is not None:
            await self.sync.connection.stop_monitoring()
        self.local.close()

    # =========================================================================
    # CORE OPERATIONS
    # =========================================================================

    async def get_all(self) -> List[CPDEntry]:
        """Reconciled entries, newest activity date first."""
        return await self.sync.get_all()

    async def create(self, draft: CPDEntryDraft) -> CPDEntry:
        """
        Create an entry from user input.

        Learning outcomes are extracted from the description when none are
        given, and a blank title is generated from the description.

        Raises:
            EntryValidationError: If the draft is invalid
            StorageWriteError: If the entry cannot be saved on the device
        """
        description = draft.description or ""
        title = draft.title.strip() if isinstance(draft.title, str) else draft.title
        if not title and description.strip():
            title = generate_summary(description, GENERATED_TITLE_LENGTH)
        outcomes = list(draft.learning_outcomes) or extract_learning_outcomes(description)

        entry = CPDEntry.from_draft(replace(draft, title=title, learning_outcomes=outcomes))
        entry.validate(self.settings.max_entry_duration)

        await self.local.put(entry)
        self.stats_cache.invalidate()
        self.logger.info(f"Created CPD entry {entry.id}")

        return await self.sync.push_entry(entry)

    async def update(self, entry_id: str, **changes: Any) -> CPDEntry:
        """
        Apply field changes to an entry.

        The entry becomes pending-upload until the remote copy is updated.

        Raises:
            NotFound: If the entry does not exist
            EntryValidationError: If a field is unknown or a value is invalid
            StorageWriteError: If the change cannot be saved on the device
        """
        unknown = set(changes) - UPDATABLE_FIELDS
        if unknown:
            raise EntryValidationError(
                f"Cannot update fields: {', '.join(sorted(unknown))}",
                field=sorted(unknown)[0],
            )
        return await self._modify_and_push(entry_id, lambda e: e.with_updates(**changes))

    async def delete(self, entry_id: str) -> None:
        """
        Delete an entry locally, then remotely with its evidence.

        Deleting an id that does not exist is a no-op; while offline an id
        unknown on the device is not recorded for a later remote delete.
        When the remote copy cannot be removed now, the deletion is retried
        by the next sync.

        Raises:
            StorageWriteError: If the deletion cannot be recorded on the device
        """
        try:
            entry: Optional[CPDEntry] = await self.local.get(entry_id)
        except NotFound:
            entry = None

        connection = self.sync.connection
        if entry is None and connection is not None and connection.is_offline:
            # Unknown id and nothing to ask: leave the local store untouched
            self.logger.debug(f"Delete of unknown entry {entry_id} ignored while offline")
            return

        needs_remote = (
            entry is None
            or entry.sync_state != SyncState.LOCAL_ONLY
            or self.sync.is_in_flight(entry_id)
        )
        evidence_paths = entry.evidence_paths if entry else []

        if needs_remote and self.sync.remote is not None:
            # Recorded before the local delete so a crash cannot lose it
            await self.local.add_tombstone(entry_id, evidence_paths)

        await self.local.delete(entry_id)
        self.stats_cache.invalidate()
        if entry is not None:
            await self._remove_local_evidence(entry)
            self.logger.info(f"Deleted CPD entry {entry_id}")

        if not needs_remote or self.sync.remote is None:
            return
        if self.sync.is_in_flight(entry_id):
            # The running upload could recreate the row; the next sync replays the delete
            return

        tombstones = [t for t in await self.local.list_tombstones() if t.entry_id == entry_id]
        for tombstone in tombstones:
            await self.sync.push_deletion(tombstone)

    async def sync_pending(self) -> SyncReport:
        """
        Upload unsynced entries and replay deletions.

        Raises:
            ConfigurationError: If no remote store is configured
            NotAuthenticated: If there is no session
        """
        return await self.sync.sync_pending()

    async def sync_now(self) -> ServiceResult:
        """sync_pending for UI callers: failures come back as a ServiceResult."""
        return await self.safe_execute("Syncing CPD entries", self.sync.sync_pending)

    # =========================================================================
    # QUERIES
    # =========================================================================

    async def get_entry(self, entry_id: str) -> CPDEntry:
        """
        Return one entry by id.

        Raises:
            NotFound: If neither store has it
        """
        try:
            return await self.local.get(entry_id)
        except NotFound:
            for entry in await self.get_all():
                if entry.id == entry_id:
                    return entry
            raise

    @error_boundary(default_return=[], error_message="Could not search CPD entries")
    async def search(self, query: str) -> List[CPDEntry]:
        """Case-insensitive match on title, description, outcomes and transcript."""
        needle = query.strip().lower()
        entries = await self.get_all()
        if not needle:
            return entries

        def _hit(entry: CPDEntry) -> bool:
            haystack = [entry.title, entry.description, *entry.learning_outcomes]
            if entry.transcript is not None:
                haystack.append(entry.transcript.text)
            return any(needle in text.lower() for text in haystack)

        return [e for e in entries if _hit(e)]

    @error_boundary(default_return=[], error_message="Could not filter CPD entries")
    async def filter_entries(self, filters: CPDFilters) -> List[CPDEntry]:
        return [e for e in await self.get_all() if filters.matches(e)]

    async def get_entries_by_type(self, activity_type: Union[ActivityType, str]) -> List[CPDEntry]:
        return await self.filter_entries(CPDFilters(type=ActivityType(activity_type)))

    async def get_entries_by_date_range(self, start: date, end: date) -> List[CPDEntry]:
        """Entries whose activity date falls within [start, end]."""
        return await self.filter_entries(CPDFilters(date_from=start, date_to=end))

    async def toggle_star(self, entry_id: str) -> CPDEntry:
        return await self._modify_and_push(
            entry_id,
            lambda e: e.with_updates(is_starred=not e.is_starred),
        )

    def get_nmc_categories(self) -> List[NMCCategory]:
        return list_categories()

    # =========================================================================
    # STATISTICS & EXPORT
    # =========================================================================

    async def get_stats(self, force_refresh: bool = False) -> CPDStats:
        """
        Statistics over the reconciled entry list.

        Results are cached until an entry changes or the day rolls over.
        """
        now = utcnow()
        today = now.date()
        if not force_refresh:
            cached = self.stats_cache.get(today)
            if cached is not None:
                return cached

        generation = self.stats_cache.generation
        entries = await self.get_all()
        stats = compute_cpd_stats(
            entries,
            now=now,
            required_annual_hours=self.settings.required_annual_hours,
        )
        self.stats_cache.store(stats, generation, today)
        return stats

    async def export_csv(self, directory: Union[str, Path] = Path("exports")) -> Path:
        """
        Write every entry to a timestamped CSV file.

        Returns:
            Path of the written file
        """
        entries = await self.get_all()
        frame = entries_to_frame(entries)
        for column in ("learning_outcomes", "nmc_categories"):
            frame[column] = frame[column].map(lambda values: "; ".join(values))

        stamp = datetime.now().strftime("%Y-%m-%dT%H-%M-%S")
        path = Path(directory) / f"cpd_export_{stamp}.csv"

        def _write() -> None:
            path.parent.mkdir(parents=True, exist_ok=True)
            frame.to_csv(path, index=False)

        with self.log_operation(f"Exporting {len(frame)} CPD entries"):
            await asyncio.to_thread(_write)
        return path

    # =========================================================================
    # TRANSCRIPTION
    # =========================================================================

    async def attach_transcript(
        self,
        entry_id: str,
        audio_file: Union[str, Path],
    ) -> CPDEntry:
        """
        Transcribe a recording and attach it to an entry.

        Learning outcomes are extracted from the transcript when the entry
        has none.

        Raises:
            ConfigurationError: If no transcription client is configured
            NotAuthenticated: If there is no session
        """
        if self.transcription is None:
            raise ConfigurationError("Transcription is not configured", config_key="transcription")

        result = await self.transcription.transcribe(audio_file, entry_id)

        def _attach(entry: CPDEntry) -> CPDEntry:
            outcomes = entry.learning_outcomes or extract_learning_outcomes(result.text)
            return entry.with_updates(transcript=result.to_reference(), learning_outcomes=outcomes)

        return await self._modify_and_push(entry_id, _attach)

    # =========================================================================
    # HELPERS
    # =========================================================================

    async def _modify_and_push(
        self,
        entry_id: str,
        change: Callable[[CPDEntry], CPDEntry],
    ) -> CPDEntry:
        max_duration = self.settings.max_entry_duration

        def _apply(entry: CPDEntry) -> CPDEntry:
            updated = change(entry)
            updated.validate(max_duration)
            return updated

        try:
            updated = await self.local.modify(entry_id, _apply)
        except NotFound:
            # Known only remotely so far; reconciling caches it on the device
            await self.get_all()
            updated = await self.local.modify(entry_id, _apply)

        self.stats_cache.invalidate()
        self.logger.info(f"Updated CPD entry {entry_id}")
        return await self.sync.push_entry(updated)

    def _on_remote_entries_cached(self, entry_ids: List[str]) -> None:
        self.stats_cache.invalidate()

    async def _remove_local_evidence(self, entry: CPDEntry) -> None:
        def _remove() -> None:
            for evidence in entry.evidence:
                uri = evidence.uri or ""
                if uri.startswith("file://"):
                    uri = uri[len("file://"):]
                if not uri or "://" in uri:
                    continue
                path = Path(uri)
                try:
                    if path.is_file():
                        path.unlink()
                except OSError as e:
                    self.logger.warning(f"Could not remove evidence file {path}: {e}")

        await asyncio.to_thread(_remove)
