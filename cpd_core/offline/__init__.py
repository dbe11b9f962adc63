# =============================================================================
# cpd_core/offline/__init__.py
# Offline-First Storage and Synchronization
# =============================================================================
"""
Offline support for CPD entries.

Components:
- ConnectionManager: Detect online/offline status
- SQLiteKeyValueStore: Device-side key-value persistence
- LocalEntryStore: CPD entries on top of the key-value store
- SyncEngine: Merge local/remote entries and push pending changes

Usage:
    from cpd_core.offline import LocalEntryStore, SQLiteKeyValueStore, SyncEngine

    store = LocalEntryStore(SQLiteKeyValueStore("local_data/cpd.db"))
    engine = SyncEngine(store, remote_store, connection_manager)
    entries = await engine.get_all()
"""

from .connection_manager import (
    ConnectionManager,
    ConnectionState,
    ConnectionStatus,
)

from .key_value_store import (
    KeyValueStore,
    SQLiteKeyValueStore,
)

from .local_entry_store import (
    ENTRY_PREFIX,
    TOMBSTONE_PREFIX,
    LocalEntryStore,
    Tombstone,
)

from .sync_engine import (
    SyncEngine,
    SyncEngineState,
    SyncReport,
)

__all__ = [
    # Connection
    "ConnectionManager",
    "ConnectionState",
    "ConnectionStatus",
    # Storage
    "KeyValueStore",
    "SQLiteKeyValueStore",
    "LocalEntryStore",
    "Tombstone",
    "ENTRY_PREFIX",
    "TOMBSTONE_PREFIX",
    # Sync
    "SyncEngine",
    "SyncEngineState",
    "SyncReport",
]
