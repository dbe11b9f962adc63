# =============================================================================
# cpd_core/data/supabase_client.py
# Supabase Client Configuration for the CPD core
# =============================================================================

from __future__ import annotations
from typing import Optional
import logging

from supabase import Client, create_client

from cpd_core.config import Settings
from cpd_core.errors import ConfigurationError

logger = logging.getLogger(__name__)


def create_supabase_client(settings: Settings) -> Client:
    """
    Initialize a Supabase client from settings.

    Expects credentials in secrets.toml:
        [supabase]
        url = "https://your-project.supabase.co"
        key = "your-anon-key"

    or the SUPABASE_URL / SUPABASE_KEY environment variables.

    Raises:
        ConfigurationError: If credentials are missing or the client cannot be built
    """
    settings.require_remote()

    try:
        client = create_client(settings.supabase_url, settings.supabase_key)
    except Exception as e:
        raise ConfigurationError(
            f"Failed to initialize Supabase client: {e}",
            config_key="supabase",
        ) from e

    logger.info(f"Supabase client created for {settings.supabase_url[:40]}")
    return client


def try_create_supabase_client(settings: Settings) -> Optional[Client]:
    """Like create_supabase_client, but returns None in local-only mode."""
    if not settings.has_remote:
        return None
    return create_supabase_client(settings)


def close_supabase_client(client: Optional[Client]) -> None:
    """Close the HTTP session underneath the table client."""
    if client is None:
        return
    try:
        session = getattr(client.postgrest, "session", None)
        if session is not None:
            session.close()
    except Exception as e:
        logger.debug(f"Ignoring error while closing Supabase client: {e}")
