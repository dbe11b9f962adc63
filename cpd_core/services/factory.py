# =============================================================================
# cpd_core/services/factory.py
# Service Wiring
# =============================================================================
"""
Builds a CPDService from Settings.

Every collaborator is constructed here and passed in explicitly; nothing in
the package keeps module-level instances.
"""

from __future__ import annotations
from typing import Optional
import logging

from cpd_core.config import Settings, load_settings
from cpd_core.data.remote_entry_store import RemoteEntryStore
from cpd_core.data.supabase_client import try_create_supabase_client
from cpd_core.offline.connection_manager import ConnectionManager
from cpd_core.offline.key_value_store import SQLiteKeyValueStore
from cpd_core.offline.local_entry_store import LocalEntryStore
from cpd_core.offline.sync_engine import SyncEngine
from cpd_core.services.cpd_service import CPDService
from cpd_core.transcription.client import SupabaseTranscriptionClient

logger = logging.getLogger(__name__)


def build_cpd_service(settings: Optional[Settings] = None) -> CPDService:
    """
    Wire the local store, remote store, sync engine and transcription client.

    Without Supabase credentials the service runs local-only: reads and
    writes work, and sync_pending raises ConfigurationError.

    Usage:
        service = build_cpd_service()
        service.start()         # inside a running event loop
        ...
        await service.close()
    """
    settings = settings or load_settings()

    local_store = LocalEntryStore(SQLiteKeyValueStore(settings.local_db_path))

    client = try_create_supabase_client(settings)
    remote_store = None
    connection = None
    transcription = None
    if client is not None:
        remote_store = RemoteEntryStore(
            client,
            table=settings.entries_table,
            evidence_bucket=settings.evidence_bucket,
        )
        connection = ConnectionManager(settings.supabase_url)
        transcription = SupabaseTranscriptionClient(
            client,
            remote_store,
            audio_bucket=settings.audio_bucket,
            function_name=settings.transcription_function,
            language=settings.transcription_language,
        )

    engine = SyncEngine(
        local_store,
        remote_store,
        connection,
        sync_interval=settings.sync_interval_seconds,
        remote_read_timeout=settings.remote_read_timeout,
    )

    mode = "online-capable" if remote_store is not None else "local-only"
    logger.info(f"CPD service built ({mode}, store: {settings.local_db_path})")

    return CPDService(
        local_store,
        engine,
        settings=settings,
        transcription=transcription,
    )
