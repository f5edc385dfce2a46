"""
Environment resolution - maps an environment name to its API endpoint.
"""

import logging
from dataclasses import dataclass
from typing import Dict, Any, List, Optional, Union

logger = logging.getLogger(__name__)


DEFAULT_ENVIRONMENTS: Dict[str, Dict[str, str]] = {
    "prod": {
        "endpoint": "https://api.appcli.io",
        "description": "Production",
    },
    "staging": {
        "endpoint": "https://api.staging.appcli.io",
        "description": "Staging",
    },
    "local": {
        "endpoint": "http://localhost:1700",
        "description": "Local development server",
    },
}


class UnknownEnvironmentError(KeyError):
    """Raised when an environment name has no configured endpoint."""


@dataclass(frozen=True)
class Environment:
    """A named remote backend configuration."""

    name: str
    endpoint: str
    description: str = ""


class EnvironmentResolver:
    """Resolve environment names to endpoint configurations."""

    def __init__(
        self,
        endpoints: Optional[Dict[str, Union[str, Dict[str, Any]]]] = None,
        default: str = "prod",
    ):
        """Initialize resolver.

        Args:
            endpoints: Extra or overriding environments, either
                ``{name: url}`` or ``{name: {"endpoint": url, "description": ...}}``
            default: Environment used when no name is given
        """
        self._environments: Dict[str, Environment] = {}
        for name, settings in DEFAULT_ENVIRONMENTS.items():
            self._environments[name] = Environment(name=name, **settings)

        for name, settings in (endpoints or {}).items():
            if isinstance(settings, str):
                settings = {"endpoint": settings}
            self._environments[name] = Environment(
                name=name,
                endpoint=settings["endpoint"],
                description=settings.get("description", ""),
            )

        self.default = default

    @classmethod
    def from_config(cls, config) -> "EnvironmentResolver":
        """Create resolver from a Config instance."""
        env_config = config.get_environment_config()
        return cls(endpoints=env_config["endpoints"], default=env_config["default"])

    def environments(self, name: Optional[str] = None) -> Environment:
        """Look up an environment by name.

        Args:
            name: Environment name, or None for the default

        Returns:
            Environment with its endpoint

        Raises:
            UnknownEnvironmentError: If the name is not configured
        """
        name = name or self.default
        try:
            return self._environments[name]
        except KeyError:
            logger.warning(f"[EnvironmentResolver] Unknown environment: {name}")
            raise UnknownEnvironmentError(name) from None

    def names(self) -> List[str]:
        """List known environment names."""
        return sorted(self._environments)
