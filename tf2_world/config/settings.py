#!/usr/bin/env python3
"""
Settings for the TF2 world tracker.

Persisted as JSON under the user's home directory. Values that are secrets or
differ per machine can also come from the environment (a `.env` file is
loaded by main.py before settings are read):

- STEAM_API_KEY      Steam Web API key
- TF2_LOCAL_STEAMID  SteamID of the local player (Steam3 or 64-bit)
- TF2_CONSOLE_LOG    Path to tf/console.log
"""

import json
import logging
import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Optional

from ..core.domain.identity import SteamID

logger = logging.getLogger(__name__)

CONFIG_DIR = Path.home() / ".tf2_world_tracker"
SETTINGS_FILE = CONFIG_DIR / "settings.json"


@dataclass
class Settings:
    """User settings for the tracker."""

    local_steam_id: str = ""
    steam_api_key: str = ""
    console_log_path: str = ""

    allow_internet_usage: bool = True
    lazy_load_api_data: bool = True

    # Seconds between batched Steam API requests from one queue
    steam_api_request_interval: float = 1.0
    friends_refresh_interval: float = 300.0

    _http_client: Optional[object] = field(default=None, init=False, repr=False, compare=False)

    @classmethod
    def load(cls, path: Path = SETTINGS_FILE) -> "Settings":
        """Load settings from file (or defaults), then apply environment overrides."""
        settings = cls()
        if path.exists():
            try:
                with open(path, 'r') as f:
                    data = json.load(f)
                known = {k: v for k, v in data.items() if k in cls.__dataclass_fields__ and not k.startswith("_")}
                settings = cls(**known)
                logger.debug(f"Loaded settings from {path}")
            except Exception as e:
                logger.warning(f"Failed to load settings: {e}. Using defaults.")
        else:
            logger.info("No settings file found. Using defaults.")

        settings.apply_environment()
        return settings

    def apply_environment(self, environ=None):
        environ = os.environ if environ is None else environ
        self.steam_api_key = environ.get("STEAM_API_KEY", self.steam_api_key)
        self.local_steam_id = environ.get("TF2_LOCAL_STEAMID", self.local_steam_id)
        self.console_log_path = environ.get("TF2_CONSOLE_LOG", self.console_log_path)

    def save(self, path: Path = SETTINGS_FILE):
        """Save settings to file."""
        try:
            path.parent.mkdir(parents=True, exist_ok=True)
            data = {f.name: getattr(self, f.name) for f in fields(self) if not f.name.startswith("_")}
            with open(path, 'w') as f:
                json.dump(data, f, indent=2)
            logger.debug(f"Saved settings to {path}")
        except Exception as e:
            logger.error(f"Failed to save settings: {e}")

    def get_local_steam_id(self) -> Optional[SteamID]:
        if not self.local_steam_id:
            return None
        try:
            return SteamID.parse(self.local_steam_id)
        except ValueError:
            logger.warning(f"Invalid local SteamID in settings: {self.local_steam_id!r}")
            return None

    def get_steam_api_key(self) -> str:
        return self.steam_api_key

    def get_http_client(self):
        """Shared Steam API client, or None when internet use is disabled."""
        if not self.allow_internet_usage:
            return None

        if self._http_client is None:
            from ..data.steam_api import SteamAPIClient
            self._http_client = SteamAPIClient()
        return self._http_client

    def has_steam_api_access(self) -> bool:
        return bool(self.steam_api_key) and self.get_http_client() is not None

    def close(self):
        """Shut down the HTTP client if one was ever created."""
        if self._http_client is not None:
            self._http_client.shutdown()
            self._http_client = None

    def __repr__(self) -> str:
        return (
            f"Settings("
            f"local_steam_id={self.local_steam_id}, "
            f"api_key={'set' if self.steam_api_key else 'unset'}, "
            f"internet={self.allow_internet_usage}, "
            f"lazy_load={self.lazy_load_api_data}"
            f")"
        )
