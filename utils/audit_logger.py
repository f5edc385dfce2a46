"""
Audit Logging for profile and session changes

This module records every change to the locally logged-in user:
- Logins and logouts
- Access token updates
- Default app selection changes
- Errors while persisting profile state

Each log category is stored in a separate file for easy filtering and analysis.
"""

import logging
import json
from datetime import datetime
from pathlib import Path
from typing import Dict, List, Any, Optional
from logging.handlers import RotatingFileHandler

CATEGORIES = ["session", "profile", "errors"]

SENSITIVE_KEYS = [
    "password",
    "token",
    "access_token",
    "secret",
    "api_key",
    "email",
]


class AuditLogger:
    """
    Audit trail for the local user profile.

    Features:
    - Separate log files for session, profile and error events
    - Structured JSON logging for easy parsing
    - Automatic log rotation
    - Sensitive data filtering
    """

    def __init__(self, audit_config: Optional[Dict[str, Any]] = None):
        """
        Initialize the audit logger.

        Args:
            audit_config: The ``audit`` section of the configuration
        """
        self.audit_config = audit_config or {}
        self.enabled = self.audit_config.get("enabled", True)
        self.logs_dir = Path(self.audit_config.get("logs_dir", "logs"))

        self.loggers: Dict[str, logging.Logger] = {}
        if self.enabled:
            self.logs_dir.mkdir(parents=True, exist_ok=True)
            self._setup_loggers()

    @classmethod
    def from_config(cls, config) -> "AuditLogger":
        """Create audit logger from a Config instance."""
        return cls(config.get_audit_config())

    def _log_file(self, category: str) -> Path:
        log_files = self.audit_config.get("logs", {})
        return Path(log_files.get(category, self.logs_dir / f"{category}.log"))

    def _setup_loggers(self):
        """Set up separate loggers for each log category."""
        log_level = getattr(logging, self.audit_config.get("log_level", "INFO"))
        log_format = self.audit_config.get(
            "format", "%(asctime)s | %(name)s | %(levelname)s | %(message)s"
        )
        date_format = self.audit_config.get("date_format", "%Y-%m-%d %H:%M:%S")

        retention = self.audit_config.get("retention", {})
        max_bytes = retention.get("max_size_mb", 10) * 1024 * 1024
        backup_count = retention.get("backup_count", 5)

        for category in CATEGORIES:
            logger = logging.getLogger(f"audit.{category}")
            logger.setLevel(log_level)
            logger.propagate = False

            # Remove existing handlers
            for handler in list(logger.handlers):
                handler.close()
            logger.handlers.clear()

            handler = RotatingFileHandler(
                self._log_file(category),
                maxBytes=max_bytes,
                backupCount=backup_count,
                encoding="utf-8",
            )
            handler.setFormatter(logging.Formatter(log_format, datefmt=date_format))
            logger.addHandler(handler)

            self.loggers[category] = logger

    def _should_log(self, event_type: str) -> bool:
        """Check if this event type should be logged."""
        if not self.enabled:
            return False

        log_events = self.audit_config.get("log_events", {})
        return log_events.get(event_type, True)

    def _sanitize_data(self, data: Dict) -> Dict:
        """Remove sensitive data from logs if configured."""
        if self.audit_config.get("include_sensitive", False):
            return data

        sanitized = {}
        for key, value in data.items():
            if key.lower() in SENSITIVE_KEYS:
                sanitized[key] = "***REDACTED***"
            elif isinstance(value, dict):
                sanitized[key] = self._sanitize_data(value)
            else:
                sanitized[key] = value

        return sanitized

    def _write(self, category: str, data: Dict, level: int = logging.INFO):
        data = {"timestamp": datetime.now().isoformat(), **data}
        self.loggers[category].log(level, json.dumps(self._sanitize_data(data)))

    def log_login(
        self, user_id: str, user_name: str, environment: str, email: Optional[str] = None
    ):
        """Log a successful login."""
        if not self._should_log("login"):
            return

        self._write(
            "session",
            {
                "event": "login",
                "user_id": user_id,
                "user_name": user_name,
                "environment": environment,
                "email": email,
            },
        )

    def log_logout(self, user_id: str, user_name: str):
        """Log a logout."""
        if not self._should_log("logout"):
            return

        self._write(
            "session",
            {"event": "logout", "user_id": user_id, "user_name": user_name},
        )

    def log_token_updated(self, user_name: str, token_id: str):
        """Log an access token replacement."""
        if not self._should_log("token_updated"):
            return

        self._write(
            "session",
            {"event": "token_updated", "user_name": user_name, "token_id": token_id},
        )

    def log_default_app_changed(
        self, user_name: str, previous: Optional[str], current: Optional[str]
    ):
        """Log a change of the default app."""
        if not self._should_log("default_app_changed"):
            return

        self._write(
            "profile",
            {
                "event": "default_app_changed",
                "user_name": user_name,
                "previous": previous,
                "current": current,
            },
        )

    def log_error(
        self,
        error_type: str,
        error_message: str,
        operation: str,
        user_name: Optional[str] = None,
        metadata: Optional[Dict] = None,
    ):
        """Log an error event."""
        if not self._should_log("errors"):
            return

        self._write(
            "errors",
            {
                "event": "error",
                "error_type": error_type,
                "error_message": error_message,
                "operation": operation,
                "user_name": user_name,
                "metadata": metadata or {},
            },
            level=logging.ERROR,
        )

    def get_history(
        self,
        category: str = "session",
        user_name: Optional[str] = None,
        start_date: Optional[datetime] = None,
    ) -> List[Dict]:
        """
        Retrieve recorded events from a category log.

        Args:
            category: Log category to read
            user_name: Filter by user name
            start_date: Filter by start date

        Returns:
            List of events, oldest first
        """
        events = []

        try:
            with open(self._log_file(category), "r", encoding="utf-8") as f:
                for line in f:
                    try:
                        if " | " not in line:
                            continue
                        data = json.loads(line.split(" | ")[-1].strip())

                        if user_name and data.get("user_name") != user_name:
                            continue

                        timestamp = datetime.fromisoformat(data.get("timestamp", ""))
                        if start_date and timestamp < start_date:
                            continue

                        events.append(data)
                    except (json.JSONDecodeError, ValueError):
                        continue
        except FileNotFoundError:
            pass

        return events

    def close(self):
        """Close all file handlers."""
        for logger in self.loggers.values():
            for handler in list(logger.handlers):
                handler.close()
                logger.removeHandler(handler)
