# =============================================================================
# cpd_core/offline/local_entry_store.py
# Local CPD Entry Store
# =============================================================================
"""
LocalEntryStore - device-side persistence of CPD entries.

Each entry is stored under its own key (``@cpd_entry:<id>``), so writes to
different entries never overwrite each other. Operations on the same id are
serialized through a per-id asyncio lock.

Deletions that could not yet reach the server leave a tombstone
(``@cpd_tombstone:<id>``) so the remote delete is retried on the next sync
and the deleted entry is not pulled back down in the meantime.
"""

from __future__ import annotations
import asyncio
import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Callable, Dict, List, Optional, Sequence
import logging
import weakref

from cpd_core.errors import CPDError, NotFound, StorageReadError, StorageWriteError
from cpd_core.models.entry import CPDEntry, parse_timestamp, utcnow
from cpd_core.offline.key_value_store import KeyValueStore

logger = logging.getLogger(__name__)

ENTRY_PREFIX = "@cpd_entry:"
TOMBSTONE_PREFIX = "@cpd_tombstone:"


@dataclass
class Tombstone:
    """A locally deleted entry whose remote copy still has to be removed."""
    entry_id: str
    evidence_paths: List[str] = field(default_factory=list)
    deleted_at: datetime = field(default_factory=utcnow)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "entry_id": self.entry_id,
            "evidence_paths": list(self.evidence_paths),
            "deleted_at": self.deleted_at.isoformat(),
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> Tombstone:
        return cls(
            entry_id=data["entry_id"],
            evidence_paths=list(data.get("evidence_paths") or []),
            deleted_at=parse_timestamp(data["deleted_at"]),
        )


class LocalEntryStore:
    """
    Keyed store of CPD entries on top of a KeyValueStore.

    Usage:
        store = LocalEntryStore(SQLiteKeyValueStore(path))
        await store.put(entry)
        entries = await store.list()
    """

    def __init__(self, kv: KeyValueStore):
        self._kv = kv
        # A lock lives only while some operation holds or waits on it
        self._locks: Dict[str, asyncio.Lock] = weakref.WeakValueDictionary()

    def _lock_for(self, entry_id: str) -> asyncio.Lock:
        lock = self._locks.get(entry_id)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[entry_id] = lock
        return lock

    @staticmethod
    def _key(entry_id: str) -> str:
        return f"{ENTRY_PREFIX}{entry_id}"

    # =========================================================================
    # ENCODING
    # =========================================================================

    @staticmethod
    def _encode(entry: CPDEntry) -> str:
        try:
            return json.dumps(entry.to_storage_dict())
        except (TypeError, ValueError) as e:
            raise StorageWriteError(
                f"Could not serialize entry: {e}",
                key=entry.id,
            ) from e

    @staticmethod
    def _decode(key: str, raw: str) -> CPDEntry:
        try:
            data = json.loads(raw)
        except (TypeError, ValueError) as e:
            raise StorageReadError(f"Stored entry is not valid JSON: {e}", key=key) from e
        if not isinstance(data, dict):
            raise StorageReadError("Stored entry is not an object", key=key)
        return CPDEntry.from_storage_dict(data)

    async def _write(self, entry: CPDEntry) -> None:
        payload = self._encode(entry)
        try:
            await self._kv.set(self._key(entry.id), payload)
        except CPDError:
            raise
        except Exception as e:
            raise StorageWriteError(f"Could not persist entry: {e}", key=entry.id) from e

    async def _read(self, entry_id: str) -> Optional[CPDEntry]:
        key = self._key(entry_id)
        try:
            raw = await self._kv.get(key)
        except CPDError:
            raise
        except Exception as e:
            raise StorageReadError(f"Could not read entry: {e}", key=entry_id) from e
        if raw is None:
            return None
        return self._decode(key, raw)

    # =========================================================================
    # ENTRY OPERATIONS
    # =========================================================================

    async def put(self, entry: CPDEntry) -> None:
        """
        Insert or replace an entry.

        Raises:
            StorageWriteError: If the entry cannot be serialized or persisted
        """
        async with self._lock_for(entry.id):
            await self._write(entry)

    async def get(self, entry_id: str) -> CPDEntry:
        """
        Return an entry by id.

        Raises:
            NotFound: If no entry has this id
        """
        entry = await self._read(entry_id)
        if entry is None:
            raise NotFound(f"CPD entry not found: {entry_id}", entry_id=entry_id)
        return entry

    async def list(self) -> List[CPDEntry]:
        """
        Return every readable entry, newest activity date first.

        Corrupt records are skipped with a warning.
        """
        keys = [k for k in await self._kv.get_all_keys() if k.startswith(ENTRY_PREFIX)]
        raws = await asyncio.gather(*(self._kv.get(k) for k in keys))

        entries = []
        for key, raw in zip(keys, raws):
            if raw is None:
                continue  # Removed between listing and reading
            try:
                entries.append(self._decode(key, raw))
            except StorageReadError as e:
                logger.warning(f"Skipping corrupt local entry {key}: {e.message}")

        entries.sort(key=lambda e: e.date, reverse=True)
        return entries

    async def delete(self, entry_id: str) -> None:
        """Remove an entry. Absent ids are ignored."""
        async with self._lock_for(entry_id):
            await self._kv.remove(self._key(entry_id))

    async def modify(
        self,
        entry_id: str,
        change: Callable[[CPDEntry], CPDEntry],
    ) -> CPDEntry:
        """
        Read, change and write one entry while holding its lock.

        Raises:
            NotFound: If no entry has this id
            StorageWriteError: If the result cannot be persisted
        """
        async with self._lock_for(entry_id):
            current = await self._read(entry_id)
            if current is None:
                raise NotFound(f"CPD entry not found: {entry_id}", entry_id=entry_id)
            updated = change(current)
            await self._write(updated)
            return updated

    async def put_if_newer(self, entry: CPDEntry) -> bool:
        """
        Write ``entry`` only if there is no local copy or the local copy is older.

        Returns:
            True if the entry was written
        """
        async with self._lock_for(entry.id):
            try:
                current = await self._read(entry.id)
            except StorageReadError:
                current = None
            if current is not None and current.updated_at >= entry.updated_at:
                return False
            await self._write(entry)
            return True

    async def replace_if_unchanged(self, expected: CPDEntry, replacement: CPDEntry) -> bool:
        """
        Write ``replacement`` only if the stored entry still equals ``expected``.

        Returns:
            True if the entry was written
        """
        async with self._lock_for(expected.id):
            try:
                current = await self._read(expected.id)
            except StorageReadError:
                return False
            if current != expected:
                return False
            await self._write(replacement)
            return True

    # =========================================================================
    # TOMBSTONES
    # =========================================================================

    async def add_tombstone(self, entry_id: str, evidence_paths: Sequence[str] = ()) -> None:
        tombstone = Tombstone(entry_id=entry_id, evidence_paths=list(evidence_paths))
        try:
            await self._kv.set(f"{TOMBSTONE_PREFIX}{entry_id}", json.dumps(tombstone.to_dict()))
        except CPDError:
            raise
        except Exception as e:
            raise StorageWriteError(f"Could not record deletion: {e}", key=entry_id) from e

    async def list_tombstones(self) -> List[Tombstone]:
        keys = [k for k in await self._kv.get_all_keys() if k.startswith(TOMBSTONE_PREFIX)]
        tombstones = []
        for key in keys:
            raw = await self._kv.get(key)
            if raw is None:
                continue
            try:
                tombstones.append(Tombstone.from_dict(json.loads(raw)))
            except (TypeError, ValueError, KeyError) as e:
                logger.warning(f"Dropping unreadable tombstone {key}: {e}")
                await self._kv.remove(key)
        return tombstones

    async def remove_tombstone(self, entry_id: str) -> None:
        await self._kv.remove(f"{TOMBSTONE_PREFIX}{entry_id}")

    def close(self) -> None:
        self._kv.close()
