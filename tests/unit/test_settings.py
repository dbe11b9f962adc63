# =============================================================================
# tests/unit/test_settings.py
# Unit Tests for Configuration Loading
# =============================================================================

import pytest
from pathlib import Path


@pytest.fixture
def clean_env(monkeypatch):
    """Remove CPD/Supabase variables from the environment"""
    for name in (
        "SUPABASE_URL", "SUPABASE_KEY", "CPD_ENTRIES_TABLE", "CPD_EVIDENCE_BUCKET",
        "CPD_AUDIO_BUCKET", "CPD_LOCAL_DB_PATH", "CPD_SYNC_INTERVAL", "CPD_REMOTE_TIMEOUT",
    ):
        monkeypatch.delenv(name, raising=False)
    return monkeypatch


class TestLoadSettings:
    """Test settings resolution"""

    def test_defaults_are_local_only(self, clean_env, tmp_path):
        from cpd_core.config import load_settings

        settings = load_settings(secrets_path=tmp_path / "missing.toml", env_file=tmp_path / ".env")

        assert not settings.has_remote
        assert settings.sync_interval_seconds == 300
        assert settings.remote_read_timeout == 10
        assert settings.required_annual_hours == 35
        assert settings.entries_table == "cpd_entries"

    def test_secrets_toml(self, clean_env, tmp_path):
        from cpd_core.config import load_settings

        secrets = tmp_path / "secrets.toml"
        secrets.write_text(
            '[supabase]\n'
            'url = "https://demo.supabase.co"\n'
            'key = "anon-key"\n'
            '\n'
            '[cpd]\n'
            'local_db_path = "data/cpd.db"\n'
            'sync_interval_seconds = 60\n'
        )

        settings = load_settings(secrets_path=secrets, env_file=tmp_path / ".env")

        assert settings.has_remote
        assert settings.supabase_url == "https://demo.supabase.co"
        assert settings.local_db_path == Path("data/cpd.db")
        assert settings.sync_interval_seconds == 60

    def test_environment_fallback(self, clean_env, tmp_path):
        from cpd_core.config import load_settings

        clean_env.setenv("SUPABASE_URL", "https://env.supabase.co")
        clean_env.setenv("SUPABASE_KEY", "env-key")
        clean_env.setenv("CPD_REMOTE_TIMEOUT", "2.5")

        settings = load_settings(secrets_path=tmp_path / "missing.toml", env_file=tmp_path / ".env")

        assert settings.supabase_url == "https://env.supabase.co"
        assert settings.remote_read_timeout == 2.5

    def test_invalid_interval_rejected(self, clean_env, tmp_path):
        from cpd_core.config import load_settings
        from cpd_core.errors import ConfigurationError

        clean_env.setenv("CPD_SYNC_INTERVAL", "0")

        with pytest.raises(ConfigurationError):
            load_settings(secrets_path=tmp_path / "missing.toml", env_file=tmp_path / ".env")

    def test_non_numeric_interval_rejected(self, clean_env, tmp_path):
        from cpd_core.config import load_settings
        from cpd_core.errors import ConfigurationError

        clean_env.setenv("CPD_SYNC_INTERVAL", "often")

        with pytest.raises(ConfigurationError) as exc:
            load_settings(secrets_path=tmp_path / "missing.toml", env_file=tmp_path / ".env")

        assert exc.value.recoverable is False

    def test_malformed_toml_rejected(self, clean_env, tmp_path):
        from cpd_core.config import load_settings
        from cpd_core.errors import ConfigurationError

        secrets = tmp_path / "secrets.toml"
        secrets.write_text("[supabase\nurl = ")

        with pytest.raises(ConfigurationError):
            load_settings(secrets_path=secrets, env_file=tmp_path / ".env")

    def test_require_remote(self):
        from cpd_core.config import Settings
        from cpd_core.errors import ConfigurationError

        with pytest.raises(ConfigurationError) as exc:
            Settings(supabase_url="https://demo.supabase.co").require_remote()

        assert exc.value.details["config_key"] == "SUPABASE_KEY"
