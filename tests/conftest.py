# =============================================================================
# tests/conftest.py
# Pytest Configuration and Fixtures
# =============================================================================

import asyncio
import pytest
from datetime import date, datetime, timedelta, timezone
from typing import Dict, List, Optional, Set
from unittest.mock import MagicMock

from cpd_core.data.remote_entry_store import RemoteResult
from cpd_core.errors import NotAuthenticated
from cpd_core.models.entry import ActivityType, CPDEntry, SyncState


# =============================================================================
# SAMPLE DATA FIXTURES
# =============================================================================

BASE_TIME = datetime(2025, 3, 1, 9, 0, tzinfo=timezone.utc)


def build_entry(
    entry_id: str = "cpd_1700000000000_abcdefghi",
    title: str = "Wound Care Workshop",
    activity_type: ActivityType = ActivityType.COURSE,
    duration: float = 3.0,
    activity_date: date = date(2025, 2, 14),
    sync_state: SyncState = SyncState.LOCAL_ONLY,
    updated_at: Optional[datetime] = None,
    created_at: Optional[datetime] = None,
    **kwargs,
) -> CPDEntry:
    """Build a valid entry with overridable fields"""
    created = created_at or BASE_TIME
    return CPDEntry(
        id=entry_id,
        title=title,
        type=activity_type,
        duration=duration,
        date=activity_date,
        sync_state=sync_state,
        created_at=created,
        updated_at=updated_at or created,
        **kwargs,
    )


@pytest.fixture
def make_entry():
    """Factory for CPD entries"""
    return build_entry


@pytest.fixture
def sample_entries():
    """A small year of CPD activity"""
    return [
        build_entry("cpd_1_a", "Wound Care Workshop", ActivityType.COURSE, 3.0, date(2025, 2, 14),
                    nmc_categories=["practise_effectively", "preserve_safety"]),
        build_entry("cpd_2_b", "RCN Congress", ActivityType.CONFERENCE, 6.5, date(2025, 1, 20),
                    nmc_categories=["promote_professionalism"]),
        build_entry("cpd_3_c", "Reflection on handover", ActivityType.REFLECTION, 1.0, date(2024, 11, 5),
                    created_at=BASE_TIME - timedelta(days=200)),
    ]


# =============================================================================
# STORE FIXTURES
# =============================================================================

@pytest.fixture
def kv_store(tmp_path):
    """SQLite key-value store in a temp directory"""
    from cpd_core.offline.key_value_store import SQLiteKeyValueStore

    store = SQLiteKeyValueStore(tmp_path / "cpd.db")
    yield store
    store.close()


@pytest.fixture
def local_store(kv_store):
    """LocalEntryStore backed by the temp SQLite store"""
    from cpd_core.offline.local_entry_store import LocalEntryStore

    return LocalEntryStore(kv_store)


class FakeRemoteStore:
    """
    In-memory stand-in for RemoteEntryStore.

    Rows are keyed by correlation id. Failure modes:
    - offline: every call returns a network error
    - fail_ids: uploads of these ids are rejected
    - authenticated=False: calls raise NotAuthenticated
    - upload_gate: uploads wait on this event before completing
    """

    def __init__(self, user_id: str = "user-1"):
        self.user_id = user_id
        self.rows: Dict[str, CPDEntry] = {}
        self.deleted_objects: List[str] = []
        self.uploaded_objects: Dict[str, bytes] = {}
        self.offline = False
        self.authenticated = True
        self.fail_ids: Set[str] = set()
        self.upload_gate: Optional[asyncio.Event] = None
        self.upload_calls: List[str] = []
        self.delete_calls: List[str] = []
        self.list_calls = 0
        self._next_row = 1

    async def current_user_id(self) -> str:
        if not self.authenticated:
            raise NotAuthenticated()
        return self.user_id

    async def list_for_user(self):
        await self.current_user_id()
        self.list_calls += 1
        if self.offline:
            return RemoteResult.network_error("offline", operation="list entries")
        entries = sorted(self.rows.values(), key=lambda e: e.date, reverse=True)
        return RemoteResult.success(entries, operation="list entries")

    async def upsert_by_correlation_id(self, entry: CPDEntry):
        await self.current_user_id()
        self.upload_calls.append(entry.id)
        if self.upload_gate is not None:
            await self.upload_gate.wait()
        if self.offline:
            return RemoteResult.network_error("offline", operation=f"upsert {entry.id}")
        if entry.id in self.fail_ids:
            return RemoteResult.rejected("row violates policy", error_code="42501", operation=f"upsert {entry.id}")

        existing = self.rows.get(entry.id)
        remote_id = existing.remote_id if existing else str(self._next_row)
        if existing is None:
            self._next_row += 1
        synced = entry.mark_synced(remote_id)
        self.rows[entry.id] = synced
        return RemoteResult.success(synced, operation=f"upsert {entry.id}")

    async def delete(self, correlation_id: str, evidence_paths=()):
        await self.current_user_id()
        self.delete_calls.append(correlation_id)
        if self.offline:
            return RemoteResult.network_error("offline", operation=f"delete {correlation_id}")
        removed = 1 if self.rows.pop(correlation_id, None) is not None else 0
        self.deleted_objects.extend(evidence_paths)
        return RemoteResult.success(removed, operation=f"delete {correlation_id}")

    async def upload_object(self, bucket: str, path: str, content: bytes, content_type: str):
        await self.current_user_id()
        if self.offline:
            return RemoteResult.network_error("offline", operation=f"upload {bucket}/{path}")
        self.uploaded_objects[f"{bucket}/{path}"] = content
        return RemoteResult.success(path, operation=f"upload {bucket}/{path}")


@pytest.fixture
def fake_remote():
    """In-memory remote store"""
    return FakeRemoteStore()


@pytest.fixture
def sync_engine(local_store, fake_remote):
    """SyncEngine over the temp local store and fake remote"""
    from cpd_core.offline.sync_engine import SyncEngine

    return SyncEngine(local_store, fake_remote, sync_interval=0.05, remote_read_timeout=1.0)


@pytest.fixture
def cpd_service(local_store, sync_engine):
    """CPDService wired to the temp local store and fake remote"""
    from cpd_core.config import Settings
    from cpd_core.services.cpd_service import CPDService

    return CPDService(local_store, sync_engine, settings=Settings())


# =============================================================================
# MOCK FIXTURES
# =============================================================================

@pytest.fixture
def mock_supabase():
    """Mock Supabase client with a signed-in session"""
    mock_client = MagicMock()
    mock_client.auth.get_session.return_value.user.id = "user-1"
    mock_client.table.return_value.select.return_value.execute.return_value.data = []
    mock_client.table.return_value.insert.return_value.execute.return_value = MagicMock()
    return mock_client


# =============================================================================
# HELPER FUNCTIONS
# =============================================================================

def run(coro):
    """Run a coroutine to completion on a fresh event loop"""
    return asyncio.run(coro)
