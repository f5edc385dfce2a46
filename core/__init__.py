"""
Core profile storage and configuration.
"""

from .config import Config
from .environments import Environment, EnvironmentResolver
from .token_store import TokenStore, TokenValue, FileTokenStore, MemoryTokenStore
from .user_profile import DefaultApp, Profile, ProfileStore, to_default_app

__all__ = [
    "Config",
    "Environment",
    "EnvironmentResolver",
    "TokenStore",
    "TokenValue",
    "FileTokenStore",
    "MemoryTokenStore",
    "DefaultApp",
    "Profile",
    "ProfileStore",
    "to_default_app",
]
