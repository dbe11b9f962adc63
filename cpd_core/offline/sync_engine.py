# =============================================================================
# cpd_core/offline/sync_engine.py
# Reconciliation and Synchronization Engine
# =============================================================================
"""
SyncEngine - merges local and remote CPD entries and pushes pending changes.

Features:
- Concurrent local/remote reads merged by correlation id
- Silent local-only fallback when the remote store is unreachable
- Per-entry in-flight markers so overlapping sync passes never double-upload
- Replay of offline deletions (tombstones)
- Background timer that skips ticks while offline or already syncing
- Event callbacks for sync state changes
"""

from __future__ import annotations
import asyncio
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Set, Tuple
import logging

from cpd_core.data.remote_entry_store import RemoteEntryStore
from cpd_core.errors import ConfigurationError, CPDError, NotAuthenticated, StorageWriteError
from cpd_core.models.entry import CPDEntry
from cpd_core.offline.connection_manager import ConnectionManager, ConnectionStatus
from cpd_core.offline.local_entry_store import LocalEntryStore, Tombstone

logger = logging.getLogger(__name__)


@dataclass
class SyncReport:
    """Outcome of one sync pass."""
    attempted: int = 0
    succeeded: int = 0
    failed: int = 0
    skipped: int = 0                # Already being uploaded by another pass
    deletes_attempted: int = 0
    deletes_succeeded: int = 0
    errors: Dict[str, str] = field(default_factory=dict)
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None

    @property
    def fully_succeeded(self) -> bool:
        return self.failed == 0 and self.deletes_attempted == self.deletes_succeeded

    def to_dict(self) -> Dict[str, Any]:
        return {
            "attempted": self.attempted,
            "succeeded": self.succeeded,
            "failed": self.failed,
            "skipped": self.skipped,
            "deletes_attempted": self.deletes_attempted,
            "deletes_succeeded": self.deletes_succeeded,
            "errors": dict(self.errors),
        }


@dataclass
class SyncEngineState:
    """Current sync state."""
    is_syncing: bool = False
    last_sync: Optional[datetime] = None
    last_sync_success: Optional[datetime] = None
    pending_count: int = 0
    failed_count: int = 0
    total_synced: int = 0
    last_report: Optional[SyncReport] = None


class SyncEngine:
    """
    Produces the reconciled entry list and pushes local changes upstream.

    Usage:
        engine = SyncEngine(local_store, remote_store, connection_manager)
        entries = await engine.get_all()
        report = await engine.sync_pending()
        engine.start()  # Background sync every sync_interval seconds
    """

    # Configuration
    SYNC_INTERVAL = 300             # Seconds between background sync attempts
    REMOTE_READ_TIMEOUT = 10        # Seconds before a remote read is abandoned

    def __init__(
        self,
        local_store: LocalEntryStore,
        remote_store: Optional[RemoteEntryStore] = None,
        connection_manager: Optional[ConnectionManager] = None,
        sync_interval: Optional[float] = None,
        remote_read_timeout: Optional[float] = None,
    ):
        self.local = local_store
        self.remote = remote_store
        self.connection = connection_manager
        self.sync_interval = sync_interval or self.SYNC_INTERVAL
        self.remote_read_timeout = remote_read_timeout or self.REMOTE_READ_TIMEOUT

        self._state = SyncEngineState()
        self._in_flight: Set[str] = set()
        self._active_syncs = 0
        self._tick_running = False
        self._timer_task: Optional[asyncio.Task] = None
        self._background: Set[asyncio.Task] = set()
        self._callbacks: List[Callable[[SyncEngineState], None]] = []
        self._change_listeners: List[Callable[[List[str]], None]] = []

        if self.connection is not None:
            self.connection.register_callback(self._on_connection_change)

    @property
    def state(self) -> SyncEngineState:
        return self._state

    @property
    def is_syncing(self) -> bool:
        return self._active_syncs > 0

    def is_in_flight(self, entry_id: str) -> bool:
        """True while an upload of this entry is running."""
        return entry_id in self._in_flight

    # =========================================================================
    # RECONCILED READ
    # =========================================================================

    async def _read_local(self) -> Tuple[List[CPDEntry], Set[str]]:
        entries, tombstones = await asyncio.gather(
            self.local.list(),
            self.local.list_tombstones(),
        )
        return entries, {t.entry_id for t in tombstones}

    async def _read_remote(self) -> Optional[List[CPDEntry]]:
        """Remote entries, or None when they cannot be read right now."""
        if self.remote is None:
            return None
        if self.connection is not None and self.connection.status == ConnectionStatus.OFFLINE:
            logger.debug("Skipping remote read: offline")
            return None

        try:
            result = await asyncio.wait_for(
                self.remote.list_for_user(),
                timeout=self.remote_read_timeout,
            )
        except asyncio.TimeoutError:
            logger.debug("Remote read timed out, using local entries")
            return None
        except NotAuthenticated:
            logger.debug("No session, using local entries")
            return None
        except CPDError as e:
            logger.debug(f"Remote read failed, using local entries: {e}")
            return None

        if not result.ok:
            logger.debug(f"Remote read unavailable ({result.status.value}), using local entries")
            return None
        return result.data

    async def get_all(self) -> List[CPDEntry]:
        """
        Return one de-duplicated entry list, newest activity date first.

        Local and remote are read concurrently. When both hold an entry the
        copy with the later ``updated_at`` wins (ties keep the local copy).
        Remote-only entries are cached locally. Remote failures are silent.
        """
        (local_entries, tombstoned), remote_entries = await asyncio.gather(
            self._read_local(),
            self._read_remote(),
        )

        merged: Dict[str, CPDEntry] = {e.id: e for e in local_entries}
        to_cache: List[CPDEntry] = []

        for remote_entry in remote_entries or []:
            if remote_entry.id in tombstoned:
                continue
            local_entry = merged.get(remote_entry.id)
            if local_entry is None or remote_entry.updated_at > local_entry.updated_at:
                merged[remote_entry.id] = remote_entry
                to_cache.append(remote_entry)

        if to_cache:
            await self._cache_locally(to_cache)

        return sorted(
            merged.values(),
            key=lambda e: (e.date, e.updated_at),
            reverse=True,
        )

    async def _cache_locally(self, entries: List[CPDEntry]) -> None:
        results = await asyncio.gather(
            *(self.local.put_if_newer(e) for e in entries),
            return_exceptions=True,
        )
        written = []
        for entry, result in zip(entries, results):
            if isinstance(result, StorageWriteError):
                logger.warning(f"Could not cache remote entry {entry.id}: {result.message}")
            elif isinstance(result, BaseException):
                raise result
            elif result:
                written.append(entry.id)

        if written:
            logger.debug(f"Cached {len(written)} remote entries locally")
            self._notify_change_listeners(written)

    # =========================================================================
    # PUSH
    # =========================================================================

    async def sync_pending(self) -> SyncReport:
        """
        Upload every local entry that is not yet synced and replay deletions.

        Per-entry failures are counted, never raised.

        Raises:
            ConfigurationError: If no remote store is configured
            NotAuthenticated: If there is no session
        """
        if self.remote is None:
            raise ConfigurationError("Remote store is not configured", config_key="supabase")
        await self.remote.current_user_id()

        self._active_syncs += 1
        self._state.is_syncing = True
        self._state.last_sync = datetime.now()
        self._notify_callbacks()

        report = SyncReport()
        try:
            entries = await self.local.list()
            batch = []
            for entry in entries:
                if not entry.sync_state.needs_upload:
                    continue
                if entry.id in self._in_flight:
                    report.skipped += 1
                    continue
                # Claimed before the first await so overlapping passes skip it
                self._in_flight.add(entry.id)
                batch.append(entry)

            report.attempted = len(batch)
            if batch:
                logger.info(f"Syncing {len(batch)} CPD entries")

            outcomes = await asyncio.gather(*(self._upload_one(e) for e in batch))
            for entry, (ok, error, _) in zip(batch, outcomes):
                if ok:
                    report.succeeded += 1
                else:
                    report.failed += 1
                    report.errors[entry.id] = error or "unknown error"

            await self._replay_deletions(report)

            report.finished_at = datetime.now()
            self._state.total_synced += report.succeeded
            self._state.failed_count = report.failed
            self._state.pending_count = report.failed + report.skipped
            self._state.last_report = report
            if report.fully_succeeded:
                self._state.last_sync_success = report.finished_at

            logger.info(
                f"Sync complete: {report.succeeded} success, {report.failed} failed, "
                f"{report.skipped} skipped, {report.deletes_succeeded}/{report.deletes_attempted} deletions"
            )
            return report

        finally:
            self._active_syncs -= 1
            self._state.is_syncing = self._active_syncs > 0
            self._notify_callbacks()

    async def _upload_one(self, entry: CPDEntry) -> Tuple[bool, Optional[str], CPDEntry]:
        """Upload a claimed entry. Returns (ok, error, entry as now stored)."""
        try:
            result = await self.remote.upsert_by_correlation_id(entry)
            if not result.ok:
                return False, result.error, entry
            # An edit made while uploading keeps the entry pending
            if not await self.local.replace_if_unchanged(entry, result.data):
                logger.debug(f"Entry {entry.id} changed during upload, left pending")
                return True, None, entry
            return True, None, result.data
        except CPDError as e:
            logger.warning(f"Upload of {entry.id} failed: {e.message}")
            return False, e.message, entry
        finally:
            self._in_flight.discard(entry.id)

    async def push_entry(self, entry: CPDEntry) -> CPDEntry:
        """
        Best-effort upload of a single entry right after a local write.

        Failures are logged and leave the entry pending for the next sync.

        Returns:
            The entry as it is now stored locally
        """
        if self.remote is None:
            return entry
        if self.connection is not None and self.connection.is_offline:
            return entry
        if entry.id in self._in_flight:
            return entry

        self._in_flight.add(entry.id)
        ok, error, stored = await self._upload_one(entry)
        if not ok:
            logger.debug(f"Immediate upload of {entry.id} deferred: {error}")
        return stored

    async def _replay_deletions(self, report: SyncReport) -> None:
        tombstones = await self.local.list_tombstones()
        for tombstone in tombstones:
            if tombstone.entry_id in self._in_flight:
                continue
            report.deletes_attempted += 1
            if await self.push_deletion(tombstone):
                report.deletes_succeeded += 1

    async def push_deletion(self, tombstone: Tombstone) -> bool:
        """
        Delete the remote copy of a locally deleted entry.

        Returns:
            True if the remote row is gone and the tombstone was cleared
        """
        if self.remote is None:
            return False
        if self.connection is not None and self.connection.is_offline:
            return False
        try:
            result = await self.remote.delete(tombstone.entry_id, tombstone.evidence_paths)
        except NotAuthenticated:
            return False
        if not result.ok:
            logger.debug(f"Remote delete of {tombstone.entry_id} deferred: {result.error}")
            return False
        await self.local.remove_tombstone(tombstone.entry_id)
        return True

    # =========================================================================
    # BACKGROUND SYNC
    # =========================================================================

    def start(self) -> None:
        """Start the background sync timer on the running loop."""
        if self._timer_task is not None and not self._timer_task.done():
            return
        self._timer_task = asyncio.get_running_loop().create_task(
            self._sync_loop(), name="SyncEngine"
        )
        logger.info("Sync engine started")

    async def stop(self) -> None:
        """Stop the timer. A pass already running is allowed to finish."""
        task, self._timer_task = self._timer_task, None
        if task is not None:
            task.cancel()
            try:
                await task
            except asyncio.CancelledError:
                pass
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)
        logger.info("Sync engine stopped")

    async def _sync_loop(self) -> None:
        while True:
            await asyncio.sleep(self.sync_interval)
            await self.tick()

    async def tick(self) -> Optional[SyncReport]:
        """
        One timer tick: sync unless offline or a pass is already running.

        Returns:
            The report, or None if the tick was skipped or could not start
        """
        if self.remote is None:
            return None
        if self.connection is not None and not self.connection.is_online:
            logger.debug("Sync tick skipped: offline")
            return None
        if self.is_syncing or self._tick_running:
            logger.debug("Sync tick skipped: sync already running")
            return None
        # Claimed before scheduling so a second tick in the same loop iteration skips
        self._tick_running = True
        # Stopping the timer must not cancel a pass mid-flight; stop() awaits it
        task = asyncio.ensure_future(self.sync_pending())
        self._background.add(task)
        task.add_done_callback(self._end_tick)
        try:
            return await asyncio.shield(task)
        except NotAuthenticated:
            logger.debug("Sync tick skipped: not signed in")
        except CPDError as e:
            logger.error(f"Sync error: {e}")
        return None

    def _end_tick(self, task: asyncio.Task) -> None:
        self._background.discard(task)
        self._tick_running = False

    def _on_connection_change(self, state) -> None:
        """Sync as soon as the connection comes back."""
        if state.status != ConnectionStatus.ONLINE:
            return
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            return
        logger.info("Connection restored, triggering sync")
        task = loop.create_task(self.tick())
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    # =========================================================================
    # CALLBACKS & STATUS
    # =========================================================================

    def register_callback(self, callback: Callable[[SyncEngineState], None]) -> None:
        """Register a callback for sync state changes."""
        if callback not in self._callbacks:
            self._callbacks.append(callback)

    def unregister_callback(self, callback: Callable[[SyncEngineState], None]) -> None:
        if callback in self._callbacks:
            self._callbacks.remove(callback)

    def _notify_callbacks(self) -> None:
        for callback in self._callbacks:
            try:
                callback(self._state)
            except Exception as e:
                logger.error(f"Error in sync callback: {e}")

    def register_change_listener(self, listener: Callable[[List[str]], None]) -> None:
        """Register a listener called with the ids of remote entries written locally."""
        if listener not in self._change_listeners:
            self._change_listeners.append(listener)

    def _notify_change_listeners(self, entry_ids: List[str]) -> None:
        for listener in self._change_listeners:
            try:
                listener(entry_ids)
            except Exception as e:
                logger.error(f"Error in entry change listener: {e}")

    def get_status_display(self) -> Dict[str, Any]:
        """Get sync status for UI display."""
        return {
            "is_syncing": self.is_syncing,
            "last_sync": self._state.last_sync.isoformat() if self._state.last_sync else None,
            "last_success": self._state.last_sync_success.isoformat() if self._state.last_sync_success else None,
            "pending_count": self._state.pending_count,
            "failed_count": self._state.failed_count,
            "total_synced": self._state.total_synced,
            "in_flight": len(self._in_flight),
        }
