# =============================================================================
# cpd_core/data/__init__.py
# Remote (Supabase) Data Access
# =============================================================================

from .supabase_client import (
    create_supabase_client,
    try_create_supabase_client,
    close_supabase_client,
)

from .remote_entry_store import (
    RemoteEntryStore,
    RemoteResult,
    RemoteStatus,
)

__all__ = [
    "create_supabase_client",
    "try_create_supabase_client",
    "close_supabase_client",
    "RemoteEntryStore",
    "RemoteResult",
    "RemoteStatus",
]
