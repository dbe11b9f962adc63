# =============================================================================
# cpd_core/config/settings.py
# Runtime Settings for the CPD core
# =============================================================================
"""
Settings are resolved in this order:

1. ``secrets.toml`` (``[supabase]`` and ``[cpd]`` tables)
2. Environment variables (a ``.env`` file is loaded first if present)
3. Built-in defaults

Expected secrets.toml format:

    [supabase]
    url = "https://your-project.supabase.co"
    key = "your-anon-key"

    [cpd]
    local_db_path = "local_data/cpd.db"
    sync_interval_seconds = 300
"""

from __future__ import annotations
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional
import logging

import toml
from dotenv import load_dotenv

from cpd_core.errors import ConfigurationError

logger = logging.getLogger(__name__)

DEFAULT_SECRETS_PATH = Path("secrets.toml")
DEFAULT_DB_PATH = Path("local_data") / "cpd.db"

# NMC revalidation requirement
REQUIRED_ANNUAL_HOURS = 35.0
MAX_ENTRY_DURATION_HOURS = 100.0


@dataclass
class Settings:
    """Resolved configuration for the CPD core."""
    supabase_url: Optional[str] = None
    supabase_key: Optional[str] = None
    entries_table: str = "cpd_entries"
    evidence_bucket: str = "evidence"
    audio_bucket: str = "audio"
    transcription_function: str = "transcribe"
    local_db_path: Path = field(default_factory=lambda: DEFAULT_DB_PATH)
    sync_interval_seconds: float = 300.0
    remote_read_timeout: float = 10.0
    required_annual_hours: float = REQUIRED_ANNUAL_HOURS
    max_entry_duration: float = MAX_ENTRY_DURATION_HOURS
    transcription_language: str = "en-GB"

    @property
    def has_remote(self) -> bool:
        """True when Supabase credentials are configured."""
        return bool(self.supabase_url and self.supabase_key)

    def require_remote(self) -> None:
        """Raise ConfigurationError when Supabase is not configured."""
        if not self.supabase_url:
            raise ConfigurationError(
                "Supabase URL is not configured",
                config_key="SUPABASE_URL",
            )
        if not self.supabase_key:
            raise ConfigurationError(
                "Supabase key is not configured",
                config_key="SUPABASE_KEY",
            )


def _load_secrets_toml(secrets_path: Path) -> Dict[str, Any]:
    """Load secrets.toml, returning an empty dict if it does not exist."""
    if not secrets_path.exists():
        return {}

    try:
        return toml.load(secrets_path)
    except toml.TomlDecodeError as e:
        raise ConfigurationError(
            f"Invalid secrets file: {e}",
            config_key=str(secrets_path),
        ) from e


def _as_float(value: Any, key: str) -> float:
    try:
        return float(value)
    except (TypeError, ValueError) as e:
        raise ConfigurationError(
            f"Setting {key} must be a number, got {value!r}",
            config_key=key,
            expected_type="float",
        ) from e


def load_settings(
    secrets_path: Optional[Path] = None,
    env_file: Optional[Path] = None,
) -> Settings:
    """
    Build Settings from secrets.toml, environment variables and defaults.

    Args:
        secrets_path: Path to secrets.toml (default: ./secrets.toml)
        env_file: Optional .env file to load before reading the environment

    Returns:
        Settings instance
    """
    load_dotenv(dotenv_path=env_file)

    secrets = _load_secrets_toml(Path(secrets_path) if secrets_path else DEFAULT_SECRETS_PATH)
    supabase = secrets.get("supabase", {})
    cpd = secrets.get("cpd", {})

    settings = Settings(
        supabase_url=supabase.get("url") or os.getenv("SUPABASE_URL"),
        supabase_key=supabase.get("key") or os.getenv("SUPABASE_KEY"),
    )

    settings.entries_table = cpd.get("entries_table", os.getenv("CPD_ENTRIES_TABLE", settings.entries_table))
    settings.evidence_bucket = cpd.get("evidence_bucket", os.getenv("CPD_EVIDENCE_BUCKET", settings.evidence_bucket))
    settings.audio_bucket = cpd.get("audio_bucket", os.getenv("CPD_AUDIO_BUCKET", settings.audio_bucket))

    db_path = cpd.get("local_db_path") or os.getenv("CPD_LOCAL_DB_PATH")
    if db_path:
        settings.local_db_path = Path(db_path)

    interval = cpd.get("sync_interval_seconds", os.getenv("CPD_SYNC_INTERVAL"))
    if interval is not None:
        settings.sync_interval_seconds = _as_float(interval, "sync_interval_seconds")

    timeout = cpd.get("remote_read_timeout", os.getenv("CPD_REMOTE_TIMEOUT"))
    if timeout is not None:
        settings.remote_read_timeout = _as_float(timeout, "remote_read_timeout")

    if settings.sync_interval_seconds <= 0:
        raise ConfigurationError(
            "sync_interval_seconds must be positive",
            config_key="sync_interval_seconds",
        )

    if not settings.has_remote:
        logger.info("Supabase credentials not found, running in local-only mode")

    return settings
