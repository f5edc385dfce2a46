"""
User Profile management - the single locally logged-in user.

The profile file holds descriptive user data. The access token never goes
into it; it lives in a TokenStore keyed by the user name.
"""

import json
import logging
import os
import re
import stat
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, Optional, Union

from core.config import DEFAULT_PROFILE_FILE
from core.environments import EnvironmentResolver
from core.token_store import (
    TokenNotFoundError,
    TokenStore,
    TokenValue,
    create_token_store,
)

logger = logging.getLogger(__name__)

APP_SEGMENT = r"[A-Za-z0-9_.-]{1,100}"
VALID_APP = re.compile(rf"({APP_SEGMENT})/({APP_SEGMENT})")


class ProfileError(Exception):
    """Base class for profile errors."""


class ProfileFormatError(ProfileError, ValueError):
    """Profile file contents are not a profile object."""


class InvalidAppError(ProfileError, ValueError):
    """App selector is not of the form owner/app."""

    def __init__(self, app: Any):
        super().__init__(
            f"Invalid app '{app}': expected owner/app using letters, digits, '-', '_' or '.'"
        )
        self.app = app


class NotLoggedInError(ProfileError):
    """No user is logged in."""

    def __init__(self):
        super().__init__("Not logged in")


@dataclass(frozen=True)
class DefaultApp:
    """The owner/app pair commands target when none is given."""

    owner_name: str
    app_name: str

    @property
    def identifier(self) -> str:
        return f"{self.owner_name}/{self.app_name}"

    def to_dict(self) -> Dict[str, str]:
        return {
            "ownerName": self.owner_name,
            "appName": self.app_name,
            "identifier": self.identifier,
        }

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "DefaultApp":
        return cls(owner_name=data["ownerName"], app_name=data["appName"])


def to_default_app(app: Optional[str]) -> Optional[DefaultApp]:
    """Parse an ``owner/app`` selector.

    Args:
        app: Selector string

    Returns:
        DefaultApp, or None if the string is not a valid selector
    """
    if not isinstance(app, str):
        return None

    match = VALID_APP.fullmatch(app)
    if match is None:
        return None
    return DefaultApp(owner_name=match.group(1), app_name=match.group(2))


@dataclass
class ServerUser:
    """User as returned by the identity provider."""

    id: str
    name: str
    display_name: Optional[str] = None
    email: Optional[str] = None

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ServerUser":
        return cls(
            id=data["id"],
            name=data["name"],
            display_name=data.get("display_name", data.get("displayName")),
            email=data.get("email"),
        )


@dataclass
class ProfileRecord:
    """User as stored in the profile file."""

    user_id: str
    user_name: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    environment: Optional[str] = None
    default_app: Optional[DefaultApp] = None

    @classmethod
    def from_dict(cls, data: Any) -> "ProfileRecord":
        """Build a record from parsed profile file contents.

        Raises:
            ProfileFormatError: If the data is not a profile object
        """
        if not isinstance(data, dict):
            raise ProfileFormatError(
                f"Profile must be a JSON object, got {type(data).__name__}"
            )

        missing = [key for key in ("userId", "userName") if not data.get(key)]
        if missing:
            raise ProfileFormatError(f"Profile is missing {', '.join(missing)}")

        default_app = data.get("defaultApp")
        try:
            default_app = DefaultApp.from_dict(default_app) if default_app else None
        except (KeyError, TypeError) as e:
            raise ProfileFormatError(f"Invalid defaultApp in profile: {e}") from e

        return cls(
            user_id=data["userId"],
            user_name=data["userName"],
            display_name=data.get("displayName"),
            email=data.get("email"),
            environment=data.get("environment"),
            default_app=default_app,
        )

    def to_dict(self) -> Dict[str, Any]:
        return {
            "userId": self.user_id,
            "userName": self.user_name,
            "displayName": self.display_name,
            "email": self.email,
            "environment": self.environment,
            "defaultApp": self.default_app.to_dict() if self.default_app else None,
        }


ProfileSource = Union[ServerUser, ProfileRecord]


def normalize_profile(
    source: ProfileSource, environment: Optional[str] = None
) -> Dict[str, Any]:
    """Map a server user or a profile file record to Profile fields.

    Args:
        source: ServerUser or ProfileRecord
        environment: Overrides the source environment when given

    Returns:
        Keyword arguments for Profile
    """
    if isinstance(source, ServerUser):
        return {
            "user_id": source.id,
            "user_name": source.name,
            "display_name": source.display_name,
            "email": source.email,
            "environment": environment,
            "default_app": None,
        }
    elif isinstance(source, ProfileRecord):
        return {
            "user_id": source.user_id,
            "user_name": source.user_name,
            "display_name": source.display_name,
            "email": source.email,
            "environment": environment or source.environment,
            "default_app": source.default_app,
        }
    raise TypeError(f"Unsupported profile source: {type(source).__name__}")


@dataclass
class Profile:
    """The locally logged-in user."""

    user_id: str
    user_name: str
    display_name: Optional[str] = None
    email: Optional[str] = None
    environment: Optional[str] = None
    default_app: Optional[DefaultApp] = None
    store: Optional["ProfileStore"] = field(default=None, repr=False, compare=False)

    def _require_store(self) -> "ProfileStore":
        if self.store is None:
            raise ProfileError(f"Profile {self.user_name} is not attached to a store")
        return self.store

    def to_record(self) -> ProfileRecord:
        return ProfileRecord(
            user_id=self.user_id,
            user_name=self.user_name,
            display_name=self.display_name,
            email=self.email,
            environment=self.environment,
            default_app=self.default_app,
        )

    async def access_token(self, token_store: TokenStore) -> str:
        """Read this user's access token.

        Raises:
            TokenNotFoundError: If no token is stored for the user
        """
        entry = await token_store.get(self.user_name)
        if entry is None:
            raise TokenNotFoundError(self.user_name)
        return entry.access_token.token

    async def access_token_id(self, token_store: TokenStore) -> str:
        """Read the server-side id of this user's access token."""
        entry = await token_store.get(self.user_name)
        if entry is None:
            raise TokenNotFoundError(self.user_name)
        return entry.access_token.id

    def endpoint(self, resolver: EnvironmentResolver) -> str:
        """API endpoint of this user's environment."""
        return resolver.environments(self.environment).endpoint

    def save(self) -> "Profile":
        """Write the profile file, overwriting any existing one."""
        self._require_store().write_profile(self)
        return self

    async def set_access_token(self, token: TokenValue) -> "Profile":
        """Replace the stored access token. The profile file is untouched."""
        store = self._require_store()
        await store.token_store.set(self.user_name, token)
        if store.audit:
            store.audit.log_token_updated(self.user_name, token.id)
        return self

    async def logout(self) -> None:
        """Remove the stored token and the profile file."""
        store = self._require_store()
        await store.token_store.remove(self.user_name)
        store.remove_profile_file()

        if store.current_profile is self:
            store.current_profile = None

        logger.info(f"[ProfileStore] Logged out {self.user_name}")
        if store.audit:
            store.audit.log_logout(self.user_id, self.user_name)


class ProfileStore:
    """Loads, caches and persists the single local user profile."""

    def __init__(
        self,
        profile_dir: Union[str, Path],
        token_store: TokenStore,
        profile_file: str = DEFAULT_PROFILE_FILE,
        resolver: Optional[EnvironmentResolver] = None,
        audit=None,
    ):
        """Initialize profile store.

        Args:
            profile_dir: Directory holding the profile file
            token_store: Storage for access tokens
            profile_file: Profile file name
            resolver: Environment resolver, defaults to built-in environments
            audit: Optional AuditLogger
        """
        self.profile_dir = Path(profile_dir)
        self.profile_file = profile_file
        self.token_store = token_store
        self.resolver = resolver or EnvironmentResolver()
        self.audit = audit

        self.current_profile: Optional[Profile] = None

    @classmethod
    def from_config(cls, config, audit=None) -> "ProfileStore":
        """Create a profile store from a Config instance."""
        profile_config = config.get_profile_config()
        return cls(
            profile_dir=profile_config["dir"],
            profile_file=profile_config["file"],
            token_store=create_token_store(config),
            resolver=EnvironmentResolver.from_config(config),
            audit=audit,
        )

    @property
    def profile_path(self) -> Path:
        return self.profile_dir / self.profile_file

    @staticmethod
    def file_exists(path: Union[str, Path]) -> bool:
        """Check whether a regular file exists at path.

        Missing paths report False; other stat errors propagate.
        """
        try:
            return stat.S_ISREG(os.stat(path).st_mode)
        except FileNotFoundError:
            return False

    def load_profile(self) -> Optional[Profile]:
        """Read the profile file without touching the cache.

        Returns:
            Profile, or None if no profile file exists
        """
        profile_path = self.profile_path
        logger.debug(f"[ProfileStore] Loading profile from {profile_path}")
        if not self.file_exists(profile_path):
            logger.debug("[ProfileStore] No profile file exists")
            return None

        with open(profile_path, "r", encoding="utf-8") as f:
            record = ProfileRecord.from_dict(json.load(f))

        logger.debug("[ProfileStore] Profile file loaded")
        return Profile(**normalize_profile(record), store=self)

    def get_user(self) -> Optional[Profile]:
        """Current user, loaded from disk on first access."""
        logger.debug("[ProfileStore] Getting current user from profile")
        if self.current_profile is None:
            logger.debug("[ProfileStore] No current user, loading from file")
            self.current_profile = self.load_profile()
        return self.current_profile

    async def save_user(
        self,
        user: Union[ServerUser, Dict[str, Any]],
        token: TokenValue,
        environment: str,
    ) -> Profile:
        """Store a freshly authenticated user and make it current.

        The token is stored first. If writing the profile file fails the
        previous token for the user is restored (or the new one removed when
        there was none) and the error re-raised.

        Args:
            user: Identity provider user, as ServerUser or raw dict
            token: Access token for the user
            environment: Environment the user logged into

        Returns:
            The saved profile
        """
        if isinstance(user, dict):
            user = ServerUser.from_dict(user)

        previous_entry = await self.token_store.get(user.name)
        await self.token_store.set(user.name, token)

        profile = Profile(**normalize_profile(user, environment), store=self)
        try:
            profile.save()
        except Exception as e:
            logger.error(f"[ProfileStore] Error saving profile for {user.name}: {e}")
            if self.audit:
                self.audit.log_error(
                    type(e).__name__, str(e), "save_user", user_name=user.name
                )
            if previous_entry:
                await self.token_store.set(user.name, previous_entry.access_token)
            else:
                await self.token_store.remove(user.name)
            raise

        self.current_profile = profile
        logger.info(f"[ProfileStore] Logged in {user.name} ({environment})")
        if self.audit:
            self.audit.log_login(profile.user_id, profile.user_name, environment, profile.email)
        return profile

    def write_profile(self, profile: Profile):
        """Serialize a profile to the profile file."""
        self.profile_dir.mkdir(parents=True, exist_ok=True)
        with open(self.profile_path, "w", encoding="utf-8") as f:
            json.dump(profile.to_record().to_dict(), f, indent=2)
        logger.debug(f"[ProfileStore] Wrote profile to {self.profile_path}")

    def remove_profile_file(self):
        """Delete the profile file. A missing file is not an error."""
        try:
            os.unlink(self.profile_path)
        except FileNotFoundError:
            logger.debug("[ProfileStore] Profile file already removed")

    async def delete_user(self) -> None:
        """Log out the current user, if any."""
        profile = self.get_user()
        if profile:
            await profile.logout()

    def set_default_app(self, app: str) -> Profile:
        """Select the default app of the current user.

        Raises:
            NotLoggedInError: If no user is logged in
            InvalidAppError: If app is not of the form owner/app
        """
        profile = self.get_user()
        if profile is None:
            raise NotLoggedInError()

        default_app = to_default_app(app)
        if default_app is None:
            raise InvalidAppError(app)

        return self._replace_default_app(profile, default_app)

    def clear_default_app(self) -> Profile:
        """Remove the default app of the current user."""
        profile = self.get_user()
        if profile is None:
            raise NotLoggedInError()
        return self._replace_default_app(profile, None)

    def _replace_default_app(
        self, profile: Profile, default_app: Optional[DefaultApp]
    ) -> Profile:
        previous = profile.default_app
        profile.default_app = default_app
        try:
            profile.save()
        except Exception:
            profile.default_app = previous
            raise

        logger.info(
            f"[ProfileStore] Default app for {profile.user_name}: "
            f"{default_app.identifier if default_app else 'none'}"
        )
        if self.audit:
            self.audit.log_default_app_changed(
                profile.user_name,
                previous.identifier if previous else None,
                default_app.identifier if default_app else None,
            )
        return profile

    async def access_token(self, profile: Profile) -> str:
        return await profile.access_token(self.token_store)

    async def access_token_id(self, profile: Profile) -> str:
        return await profile.access_token_id(self.token_store)

    def endpoint(self, profile: Profile) -> str:
        return profile.endpoint(self.resolver)
