# =============================================================================
# tests/unit/test_errors.py
# Unit Tests for Error Types and Handlers
# =============================================================================

import pytest

from conftest import run


@pytest.fixture
def alerts():
    """Capture alerts sent to the registered handler"""
    from cpd_core.errors import set_alert_handler

    received = []
    set_alert_handler(lambda message, recoverable: received.append((message, recoverable)))
    yield received
    set_alert_handler(None)


class TestExceptions:
    """Test the exception hierarchy"""

    def test_codes(self):
        from cpd_core import errors

        assert errors.NotAuthenticated().code == "AUTH_001"
        assert errors.StorageWriteError("x").code == "STORE_001"
        assert errors.StorageReadError("x").code == "STORE_002"
        assert errors.NotFound("x").code == "NOT_FOUND"
        assert errors.NetworkUnavailable().code == "REMOTE_001"
        assert errors.RemoteRejected("x").code == "REMOTE_002"
        assert errors.EntryValidationError("x").code == "ENTRY_001"
        assert errors.ConfigurationError("x").code == "CONFIG_001"

    def test_all_derive_from_base(self):
        from cpd_core.errors import CPDError, NotFound, RemoteRejected

        assert issubclass(NotFound, CPDError)
        assert issubclass(RemoteRejected, CPDError)

    def test_to_dict_and_str(self):
        from cpd_core.errors import RemoteRejected

        error = RemoteRejected("denied", operation="upsert cpd_1", server_code="42501")

        assert error.to_dict() == {
            "error_type": "RemoteRejected",
            "code": "REMOTE_002",
            "message": "denied",
            "details": {"operation": "upsert cpd_1", "server_code": "42501"},
            "recoverable": True,
        }
        assert str(error).startswith("[REMOTE_002] denied")


class TestHandlers:
    """Test error handling helpers"""

    def test_handle_error_alerts(self, alerts):
        from cpd_core.errors import ConfigurationError, handle_error

        handle_error(ConfigurationError("Supabase URL is not configured"))

        assert alerts == [("Critical Error: Supabase URL is not configured. Please contact support.", False)]

    def test_handle_error_quiet(self, alerts):
        from cpd_core.errors import NotFound, handle_error

        handle_error(NotFound("gone"), show_user_message=False)

        assert alerts == []

    def test_safe_execute_default(self, alerts):
        from cpd_core.errors import safe_execute

        def boom():
            raise ValueError("bad")

        assert safe_execute(boom, default=0) == 0
        assert alerts == [("Error: bad", True)]

    def test_safe_execute_reraise(self):
        from cpd_core.errors import safe_execute

        def boom():
            raise ValueError("bad")

        with pytest.raises(ValueError):
            safe_execute(boom, reraise=True)

    def test_error_boundary(self, alerts):
        from cpd_core.errors import error_boundary

        @error_boundary(default_return=[], error_message="Could not load")
        async def load():
            raise RuntimeError("disk full")

        assert run(load()) == []
        assert alerts == [("Could not load", True)]


class TestServiceResult:
    """Test ServiceResult construction"""

    def test_from_cpd_error(self):
        from cpd_core.errors import NotFound
        from cpd_core.services.base_service import ServiceResult

        result = ServiceResult.from_exception(NotFound("missing", entry_id="cpd_1"))

        assert not result
        assert result.error_code == "NOT_FOUND"
        assert result.metadata == {"entry_id": "cpd_1"}

    def test_from_other_exception(self):
        from cpd_core.services.base_service import ServiceResult

        result = ServiceResult.from_exception(KeyError("x"))

        assert result.error_code == "EXCEPTION"
