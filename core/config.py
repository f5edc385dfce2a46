"""
Configuration management for the appcli profile store.
"""

import os
import yaml
from typing import Dict, Any
from pathlib import Path
from dotenv import load_dotenv

# Load environment variables
load_dotenv()

APP_NAME = "appcli"
DEFAULT_PROFILE_FILE = "profile.json"
DEFAULT_TOKEN_FILE = "tokens.json"


def default_profile_dir() -> Path:
    """Per-user directory holding the profile and token files."""
    if os.name == "nt" and os.getenv("APPDATA"):
        return Path(os.environ["APPDATA"]) / APP_NAME
    return Path.home() / f".{APP_NAME}"


class Config:
    """Manages application configuration from YAML and environment variables."""

    def __init__(self, config_path: str = "config.yaml"):
        """Initialize configuration.

        Args:
            config_path: Path to YAML configuration file
        """
        self.config_path = Path(config_path)
        self.config = self._load_config()
        self._override_with_env()

    def _load_config(self) -> Dict[str, Any]:
        """Load configuration from YAML file."""
        if self.config_path.exists():
            with open(self.config_path, "r", encoding="utf-8") as f:
                return yaml.safe_load(f) or {}
        return {}

    def _override_with_env(self):
        """Override config values with environment variables."""
        # Profile
        if os.getenv("APPCLI_PROFILE_DIR"):
            self.config.setdefault("profile", {})["dir"] = os.getenv("APPCLI_PROFILE_DIR")
        if os.getenv("APPCLI_PROFILE_FILE"):
            self.config.setdefault("profile", {})["file"] = os.getenv("APPCLI_PROFILE_FILE")

        # Token store
        if os.getenv("APPCLI_TOKEN_BACKEND"):
            self.config.setdefault("token_store", {})["backend"] = os.getenv("APPCLI_TOKEN_BACKEND")
        if os.getenv("APPCLI_TOKEN_FILE"):
            self.config.setdefault("token_store", {})["file"] = os.getenv("APPCLI_TOKEN_FILE")

        # Environments
        if os.getenv("APPCLI_ENV"):
            self.config.setdefault("environments", {})["default"] = os.getenv("APPCLI_ENV")

    def get(self, key_path: str, default: Any = None) -> Any:
        """Get configuration value by dot-separated key path.

        Args:
            key_path: Dot-separated path (e.g., "profile.dir")
            default: Default value if key not found

        Returns:
            Configuration value
        """
        keys = key_path.split(".")
        value = self.config
        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default
        return value

    def get_profile_config(self) -> Dict[str, Any]:
        """Get profile file location."""
        profile_dir = self.get("profile.dir")
        return {
            "dir": Path(profile_dir).expanduser() if profile_dir else default_profile_dir(),
            "file": self.get("profile.file", DEFAULT_PROFILE_FILE),
        }

    def get_token_store_config(self) -> Dict[str, Any]:
        """Get token store backend and location."""
        token_file = self.get("token_store.file")
        if token_file:
            token_path = Path(token_file).expanduser()
        else:
            token_path = self.get_profile_config()["dir"] / DEFAULT_TOKEN_FILE
        return {
            "backend": self.get("token_store.backend", "file"),
            "file": token_path,
        }

    def get_environment_config(self) -> Dict[str, Any]:
        """Get environment endpoints and the default environment name."""
        return {
            "default": self.get("environments.default", "prod"),
            "endpoints": self.get("environments.endpoints", {}) or {},
        }

    def get_audit_config(self) -> Dict[str, Any]:
        """Get audit logging configuration."""
        audit = dict(self.get("audit", {}) or {})
        if audit.get("logs_dir"):
            audit["logs_dir"] = Path(audit["logs_dir"]).expanduser()
        else:
            audit["logs_dir"] = self.get_profile_config()["dir"] / "logs"
        return audit
