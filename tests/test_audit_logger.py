"""
Tests for AuditLogger.
"""

import pytest

from core.token_store import MemoryTokenStore, TokenValue
from core.user_profile import ProfileStore, ServerUser
from utils.audit_logger import AuditLogger


@pytest.fixture
def audit(tmp_path):
    """Create an audit logger writing under a temporary directory."""
    logger = AuditLogger({"logs_dir": tmp_path / "logs"})
    yield logger
    logger.close()


class TestAuditLogger:
    """Test audit event recording."""

    def test_login_redacts_email(self, audit):
        """Test login events hide the email."""
        audit.log_login("u-1", "bob", "prod", email="bob@example.com")

        events = audit.get_history("session")

        assert len(events) == 1
        assert events[0]["event"] == "login"
        assert events[0]["user_name"] == "bob"
        assert events[0]["email"] == "***REDACTED***"

    def test_include_sensitive(self, tmp_path):
        """Test sensitive values kept when configured."""
        audit = AuditLogger(
            {"logs_dir": tmp_path / "logs", "include_sensitive": True}
        )
        try:
            audit.log_login("u-1", "bob", "prod", email="bob@example.com")
            assert audit.get_history("session")[0]["email"] == "bob@example.com"
        finally:
            audit.close()

    def test_token_id_recorded(self, audit):
        """Test the token id is recorded."""
        audit.log_token_updated("bob", "tok-1")

        assert audit.get_history("session")[0]["token_id"] == "tok-1"

    def test_token_value_redacted(self, audit):
        """Test a raw token in metadata is hidden."""
        audit.log_error(
            "OSError", "disk full", "save_user", user_name="bob",
            metadata={"token": "secret", "access_token": "secret", "path": "/tmp/x"},
        )

        metadata = audit.get_history("errors")[0]["metadata"]
        assert metadata["token"] == "***REDACTED***"
        assert metadata["access_token"] == "***REDACTED***"
        assert metadata["path"] == "/tmp/x"

    def test_disabled_event(self, tmp_path):
        """Test disabled events are skipped."""
        audit = AuditLogger(
            {"logs_dir": tmp_path / "logs", "log_events": {"logout": False}}
        )
        try:
            audit.log_logout("u-1", "bob")
            assert audit.get_history("session") == []
        finally:
            audit.close()

    def test_disabled_logger(self, tmp_path):
        """Test a disabled logger writes nothing."""
        audit = AuditLogger({"enabled": False, "logs_dir": tmp_path / "logs"})

        audit.log_login("u-1", "bob", "prod")

        assert audit.loggers == {}
        assert not (tmp_path / "logs").exists()

    def test_history_filter(self, audit):
        """Test filtering history by user name."""
        audit.log_default_app_changed("bob", None, "acme/app")
        audit.log_default_app_changed("alice", None, "acme/other")

        events = audit.get_history("profile", user_name="alice")

        assert [event["current"] for event in events] == ["acme/other"]

    @pytest.mark.asyncio
    async def test_profile_store_events(self, tmp_path, audit):
        """Test ProfileStore records its state changes."""
        store = ProfileStore(tmp_path / "profile", MemoryTokenStore(), audit=audit)

        profile = await store.save_user(
            ServerUser(id="u-1", name="bob"), TokenValue(id="t", token="s"), "prod"
        )
        store.set_default_app("acme/myapp")
        await profile.logout()

        session = [event["event"] for event in audit.get_history("session")]
        assert session == ["login", "logout"]
        assert audit.get_history("profile")[0]["current"] == "acme/myapp"

    @pytest.mark.asyncio
    async def test_save_failure_logged(self, tmp_path, audit):
        """Test failed saves are recorded as errors."""
        blocker = tmp_path / "blocker"
        blocker.write_text("file")
        store = ProfileStore(blocker, MemoryTokenStore(), audit=audit)

        with pytest.raises(OSError):
            await store.save_user(
                ServerUser(id="u-1", name="bob"), TokenValue(id="t", token="s"), "prod"
            )

        errors = audit.get_history("errors")
        assert errors[0]["operation"] == "save_user"
        assert errors[0]["user_name"] == "bob"
