"""
Tests for token stores.
"""

import json
import os
import stat
import pytest
from unittest.mock import Mock

from core.token_store import (
    FileTokenStore,
    MemoryTokenStore,
    TokenValue,
    create_token_store,
)


@pytest.fixture
def token():
    """Create a sample access token."""
    return TokenValue(id="tok-1", token="secret")


class TestMemoryTokenStore:
    """Test in-memory token store."""

    @pytest.mark.asyncio
    async def test_set_get_remove(self, token):
        """Test storing, reading and removing a token."""
        store = MemoryTokenStore()

        await store.set("bob", token)
        entry = await store.get("bob")

        assert entry.key == "bob"
        assert entry.access_token == token

        await store.remove("bob")
        assert await store.get("bob") is None

    @pytest.mark.asyncio
    async def test_remove_missing(self):
        """Test removing an unknown key is a no-op."""
        store = MemoryTokenStore()

        await store.remove("nobody")

        assert await store.get("nobody") is None


class TestFileTokenStore:
    """Test JSON file token store."""

    @pytest.mark.asyncio
    async def test_persists_across_instances(self, tmp_path, token):
        """Test tokens survive a new store instance."""
        path = tmp_path / "nested" / "tokens.json"

        await FileTokenStore(path).set("bob", token)
        entry = await FileTokenStore(path).get("bob")

        assert entry.access_token == token
        assert json.loads(path.read_text()) == {"bob": {"id": "tok-1", "token": "secret"}}

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    async def test_file_is_private(self, tmp_path, token):
        """Test a new token file is readable only by its owner."""
        path = tmp_path / "tokens.json"

        await FileTokenStore(path).set("bob", token)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    @pytest.mark.skipif(os.name == "nt", reason="POSIX permissions")
    async def test_existing_file_made_private(self, tmp_path, token):
        """Test a world-readable token file is tightened on write."""
        path = tmp_path / "tokens.json"
        path.write_text("{}")
        path.chmod(0o644)

        await FileTokenStore(path).set("bob", token)

        assert stat.S_IMODE(path.stat().st_mode) == 0o600

    @pytest.mark.asyncio
    async def test_no_temp_files_left(self, tmp_path, token):
        """Test writes leave only the token file behind."""
        store = FileTokenStore(tmp_path / "tokens.json")

        await store.set("bob", token)
        await store.remove("bob")

        assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]

    @pytest.mark.asyncio
    async def test_failed_write_keeps_tokens(self, tmp_path, token, monkeypatch):
        """Test a failed write leaves the existing token file intact."""
        path = tmp_path / "tokens.json"
        store = FileTokenStore(path)
        await store.set("bob", token)

        def broken_dump(data, f):
            f.write("{")
            raise OSError("disk full")

        monkeypatch.setattr("core.token_store.json.dump", broken_dump)

        with pytest.raises(OSError, match="disk full"):
            await store.set("alice", TokenValue(id="tok-2", token="other"))

        monkeypatch.undo()
        assert (await store.get("bob")).access_token == token
        assert [p.name for p in tmp_path.iterdir()] == ["tokens.json"]

    @pytest.mark.asyncio
    async def test_missing_file(self, tmp_path):
        """Test reading and removing without a token file."""
        store = FileTokenStore(tmp_path / "tokens.json")

        assert await store.get("bob") is None
        await store.remove("bob")
        assert not store.path.exists()

    @pytest.mark.asyncio
    async def test_remove_keeps_other_users(self, tmp_path, token):
        """Test removing one user keeps the others."""
        store = FileTokenStore(tmp_path / "tokens.json")
        await store.set("bob", token)
        await store.set("alice", TokenValue(id="tok-2", token="other"))

        await store.remove("bob")

        assert await store.get("bob") is None
        assert (await store.get("alice")).access_token.id == "tok-2"

    @pytest.mark.asyncio
    async def test_corrupt_file_propagates(self, tmp_path):
        """Test invalid JSON in the token file raises."""
        path = tmp_path / "tokens.json"
        path.write_text("{oops")

        with pytest.raises(json.JSONDecodeError):
            await FileTokenStore(path).get("bob")


class TestCreateTokenStore:
    """Test backend selection."""

    def test_file_backend(self, tmp_path):
        """Test the file backend uses the configured path."""
        config = Mock()
        config.get_token_store_config.return_value = {
            "backend": "file",
            "file": tmp_path / "tokens.json",
        }

        store = create_token_store(config)

        assert isinstance(store, FileTokenStore)
        assert store.path == tmp_path / "tokens.json"

    def test_memory_backend(self):
        """Test the memory backend."""
        config = Mock()
        config.get_token_store_config.return_value = {"backend": "memory", "file": None}

        assert isinstance(create_token_store(config), MemoryTokenStore)

    def test_unknown_backend(self):
        """Test an unknown backend is rejected."""
        config = Mock()
        config.get_token_store_config.return_value = {"backend": "vault", "file": None}

        with pytest.raises(ValueError, match="vault"):
            create_token_store(config)
