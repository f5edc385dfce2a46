"""
Token storage - secure storage for access tokens, keyed by user name.
"""

import json
import logging
import os
import tempfile
from abc import ABC, abstractmethod
from dataclasses import dataclass, asdict
from pathlib import Path
from typing import Dict, Optional, Union

logger = logging.getLogger(__name__)


class TokenNotFoundError(KeyError):
    """Raised when no token is stored for a user."""


@dataclass(frozen=True)
class TokenValue:
    """An access token and its server-side identifier."""

    id: str
    token: str

    def to_dict(self) -> Dict[str, str]:
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, str]) -> "TokenValue":
        return cls(id=data["id"], token=data["token"])


@dataclass(frozen=True)
class TokenEntry:
    """A stored token together with its key."""

    key: str
    access_token: TokenValue


class TokenStore(ABC):
    """Key-value store for access tokens."""

    @abstractmethod
    async def get(self, key: str) -> Optional[TokenEntry]:
        """Get the entry for a key, or None if absent."""

    @abstractmethod
    async def set(self, key: str, value: TokenValue) -> None:
        """Store a token under a key, replacing any existing one."""

    @abstractmethod
    async def remove(self, key: str) -> None:
        """Remove the entry for a key. Missing keys are ignored."""


class MemoryTokenStore(TokenStore):
    """Process-local token store."""

    def __init__(self):
        self._tokens: Dict[str, TokenValue] = {}

    async def get(self, key: str) -> Optional[TokenEntry]:
        value = self._tokens.get(key)
        return TokenEntry(key, value) if value else None

    async def set(self, key: str, value: TokenValue) -> None:
        self._tokens[key] = value

    async def remove(self, key: str) -> None:
        self._tokens.pop(key, None)


class FileTokenStore(TokenStore):
    """Token store backed by a JSON file readable only by its owner.

    File layout::

        {"<user name>": {"id": "<token id>", "token": "<token>"}}
    """

    def __init__(self, path: Union[str, Path]):
        """Initialize file token store.

        Args:
            path: Location of the token file
        """
        self.path = Path(path)

    def _load(self) -> Dict[str, Dict[str, str]]:
        try:
            with open(self.path, "r", encoding="utf-8") as f:
                return json.load(f)
        except FileNotFoundError:
            return {}

    def _save(self, data: Dict[str, Dict[str, str]]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        # mkstemp creates the file 0600; os.replace swaps it in whole
        fd, tmp_path = tempfile.mkstemp(dir=self.path.parent, prefix=".tokens-")
        try:
            with os.fdopen(fd, "w", encoding="utf-8") as f:
                json.dump(data, f)
            os.replace(tmp_path, self.path)
        except Exception:
            os.unlink(tmp_path)
            raise

    async def get(self, key: str) -> Optional[TokenEntry]:
        data = self._load()
        if key not in data:
            logger.debug(f"[FileTokenStore] No token for {key}")
            return None
        return TokenEntry(key, TokenValue.from_dict(data[key]))

    async def set(self, key: str, value: TokenValue) -> None:
        data = self._load()
        data[key] = value.to_dict()
        self._save(data)
        logger.debug(f"[FileTokenStore] Stored token for {key}")

    async def remove(self, key: str) -> None:
        data = self._load()
        if data.pop(key, None) is None:
            return
        self._save(data)
        logger.debug(f"[FileTokenStore] Removed token for {key}")


def create_token_store(config) -> TokenStore:
    """Create the token store selected in configuration.

    Args:
        config: Config instance

    Returns:
        TokenStore instance
    """
    store_config = config.get_token_store_config()
    backend = store_config["backend"]

    if backend == "memory":
        return MemoryTokenStore()
    elif backend == "file":
        return FileTokenStore(store_config["file"])
    else:
        raise ValueError(f"Unsupported token store backend: {backend}")
