# =============================================================================
# tests/unit/test_connection_manager.py
# Unit Tests for Connectivity Detection
# =============================================================================

import pytest

from conftest import run


@pytest.fixture
def manager():
    from cpd_core.offline.connection_manager import ConnectionManager

    return ConnectionManager("https://demo.supabase.co")


class TestConnectionManager:
    """Test status transitions"""

    def test_online(self, manager, monkeypatch):
        from cpd_core.offline.connection_manager import ConnectionStatus

        monkeypatch.setattr(manager, "_check_internet", lambda: True)
        monkeypatch.setattr(manager, "_check_supabase", lambda: True)

        state = run(manager.check_connection())

        assert state.status is ConnectionStatus.ONLINE
        assert manager.is_online
        assert state.last_online is not None

    def test_degraded(self, manager, monkeypatch):
        from cpd_core.offline.connection_manager import ConnectionStatus

        monkeypatch.setattr(manager, "_check_internet", lambda: True)
        monkeypatch.setattr(manager, "_check_supabase", lambda: False)

        assert run(manager.check_connection()).status is ConnectionStatus.DEGRADED
        assert not manager.is_offline

    def test_offline_counts_failures(self, manager, monkeypatch):
        from cpd_core.offline.connection_manager import ConnectionStatus

        monkeypatch.setattr(manager, "_check_internet", lambda: False)

        run(manager.check_connection())
        state = run(manager.check_connection())

        assert state.status is ConnectionStatus.OFFLINE
        assert state.consecutive_failures == 2

    def test_callbacks_on_change_only(self, manager, monkeypatch):
        seen = []
        manager.register_callback(lambda state: seen.append(state.status.value))
        monkeypatch.setattr(manager, "_check_internet", lambda: False)

        run(manager.check_connection())
        run(manager.check_connection())

        assert seen == ["offline"]

    def test_failing_callback_does_not_break_check(self, manager, monkeypatch):
        def broken(state):
            raise RuntimeError("ui gone")

        manager.register_callback(broken)
        monkeypatch.setattr(manager, "_check_internet", lambda: False)

        run(manager.check_connection())

        assert manager.is_offline

    def test_no_url_never_reaches_supabase(self):
        from cpd_core.offline.connection_manager import ConnectionManager

        assert ConnectionManager()._check_supabase() is False

    def test_force_offline_and_display(self, manager):
        manager.force_offline()
        display = manager.get_status_display()

        assert display["status"] == "offline"
        assert display["is_online"] is False

    def test_reconnect_triggers_sync(self, local_store, fake_remote, monkeypatch):
        """Coming back online starts a sync pass"""
        import asyncio
        from conftest import build_entry
        from cpd_core.offline.connection_manager import ConnectionManager
        from cpd_core.offline.sync_engine import SyncEngine

        manager = ConnectionManager("https://demo.supabase.co")
        engine = SyncEngine(local_store, fake_remote, manager)
        monkeypatch.setattr(manager, "_check_internet", lambda: True)
        monkeypatch.setattr(manager, "_check_supabase", lambda: True)

        async def scenario():
            await local_store.put(build_entry())
            await manager.check_connection()
            await engine.stop()

        run(scenario())

        assert fake_remote.upload_calls == [build_entry().id]
