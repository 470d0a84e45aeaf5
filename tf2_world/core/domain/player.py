"""
Player domain models.

PlayerRecord is the long-lived, per-SteamID record the world state keeps for
everyone it has ever heard of during a session: the latest `status` line,
team, scores, and data fetched lazily from the Steam Web API.
"""

import logging
import re
from dataclasses import dataclass
from datetime import datetime, timedelta
from enum import Enum, auto
from typing import Any, Callable, Dict, Optional, Type, TypeVar

from .identity import SteamID
from .lobby import LobbyMember, TFTeam

logger = logging.getLogger(__name__)

T = TypeVar("T")

_NEWLINES_PATTERN = re.compile(r'[\r\n]+')


class TFClassType(Enum):
    """Player class, as inferred from the class config the game execs on spawn."""

    UNDEFINED = auto()
    SCOUT = auto()
    SNIPER = auto()
    SOLDIER = auto()
    DEMOMAN = auto()
    MEDIC = auto()
    HEAVY = auto()
    PYRO = auto()
    SPY = auto()
    ENGIE = auto()


# Exact config file names the game execs on spawn, mapped to the class
CLASS_CONFIG_FILES = {
    "scout.cfg": TFClassType.SCOUT,
    "sniper.cfg": TFClassType.SNIPER,
    "soldier.cfg": TFClassType.SOLDIER,
    "demoman.cfg": TFClassType.DEMOMAN,
    "medic.cfg": TFClassType.MEDIC,
    "heavyweapons.cfg": TFClassType.HEAVY,
    "pyro.cfg": TFClassType.PYRO,
    "spy.cfg": TFClassType.SPY,
    "engineer.cfg": TFClassType.ENGIE,
}


class PlayerStatusState(Enum):
    """Connection state column of the `status` command."""

    INVALID = auto()
    CHALLENGING = auto()
    CONNECTING = auto()
    SPAWNING = auto()
    ACTIVE = auto()

    @classmethod
    def from_console_string(cls, state_str: str) -> "PlayerStatusState":
        return {
            "challenging": cls.CHALLENGING,
            "connecting": cls.CONNECTING,
            "spawning": cls.SPAWNING,
            "active": cls.ACTIVE,
        }.get(state_str.lower(), cls.INVALID)


@dataclass
class PlayerStatus:
    """One player row of the `status` command output."""

    steam_id: SteamID
    name: str = ""
    user_id: int = 0
    connection_time: Optional[datetime] = None  # when the player connected, not how long ago
    ping: int = 0
    loss: int = 0
    state: PlayerStatusState = PlayerStatusState.INVALID
    address: str = ""


@dataclass
class PlayerScores:
    kills: int = 0
    deaths: int = 0
    local_kills: int = 0  # kills where the victim was the local player
    local_deaths: int = 0  # deaths where the attacker was the local player


class PlayerRecord:
    """
    Everything known about one SteamID during the current session.

    Records are created on first reference and only disappear when the world
    state clears its lobby. Steam Web API data (summary, bans, TF2 playtime)
    is fetched on first read: the accessors return None until the data has
    arrived and never block.

    Args:
        steam_id: Identity this record belongs to
        world: Owning world state, used for lazy enrichment and lobby lookups.
            May be None for detached records.
    """

    def __init__(self, steam_id: SteamID, world: Optional["WorldState"] = None):
        self._world = world
        self.status = PlayerStatus(steam_id=steam_id)
        self.name_safe = ""

        self.team = TFTeam.UNASSIGNED
        self.client_index = 0
        self.scores = PlayerScores()

        self.last_status_update_time: Optional[datetime] = None
        self.last_ping_update_time: Optional[datetime] = None
        self.last_status_active_begin: Optional[datetime] = None

        self.player_summary: Optional["PlayerSummary"] = None
        self.player_bans: Optional["PlayerBans"] = None
        self._tf2_playtime_fetched = False
        self._tf2_playtime_future = None
        self._tf2_playtime: Optional["TF2PlaytimeResult"] = None

        # Extension data attached by other components, keyed by type
        self._user_data: Dict[type, Any] = {}

    def __repr__(self) -> str:
        return f"PlayerRecord({self.status.name!r}, {self.steam_id})"

    def __str__(self) -> str:
        return f"{self.name_safe or self.status.name} ({self.steam_id})"

    @property
    def steam_id(self) -> SteamID:
        return self.status.steam_id

    @property
    def name(self) -> str:
        return self.status.name

    @property
    def ping(self) -> int:
        return self.status.ping

    @property
    def connection_time(self) -> Optional[datetime]:
        return self.status.connection_time

    def get_user_id(self) -> Optional[int]:
        return self.status.user_id if self.status.user_id > 0 else None

    def set_status(self, status: PlayerStatus, timestamp: datetime):
        if self.status.state != PlayerStatusState.ACTIVE and status.state == PlayerStatusState.ACTIVE:
            self.last_status_active_begin = timestamp

        self.status = status
        self.name_safe = _NEWLINES_PATTERN.sub(" ", status.name)
        self.last_status_update_time = self.last_ping_update_time = timestamp

    def set_ping(self, ping: int, timestamp: datetime):
        self.status.ping = ping
        self.last_ping_update_time = timestamp

    def get_connected_time(self) -> timedelta:
        """How long the player has been on the server, never negative."""
        if self._world is None or self.status.connection_time is None:
            return timedelta(0)

        return max(self._world.get_current_time() - self.status.connection_time, timedelta(0))

    def get_active_time(self) -> timedelta:
        """Time spent in the Active state since it last began."""
        if self.status.state != PlayerStatusState.ACTIVE or self.last_status_active_begin is None:
            return timedelta(0)

        return self.last_status_update_time - self.last_status_active_begin

    def get_lobby_member(self) -> Optional[LobbyMember]:
        if self._world is None:
            return None
        return self._world.registry.find_lobby_member(self.steam_id)

    def is_friend(self) -> bool:
        if self._world is None:
            return False
        return self._world.friends.contains(self.steam_id)

    # ------------------------------------------------------------------
    # Lazy Steam Web API data
    # ------------------------------------------------------------------

    def get_player_summary(self) -> Optional["PlayerSummary"]:
        if self.player_summary is not None:
            return self.player_summary

        # Not loaded yet, make sure we're queued
        if self._world is not None:
            self._world.player_summary_updates.queue(self.steam_id)
        return None

    def get_player_bans(self) -> Optional["PlayerBans"]:
        if self.player_bans is not None:
            return self.player_bans

        if self._world is not None:
            self._world.player_bans_updates.queue(self.steam_id)
        return None

    def get_tf2_playtime(self) -> Optional["TF2PlaytimeResult"]:
        """
        TF2 playtime, fetched on demand rather than through a batch queue.

        A fetch is only marked as issued once a request handle exists, so a
        record read before an API key was configured will fetch later.
        """
        if self._tf2_playtime is not None:
            return self._tf2_playtime

        if not self._tf2_playtime_fetched and self._world is not None:
            future = self._world.request_tf2_playtime(self.steam_id)
            if future is not None:
                self._tf2_playtime_fetched = True
                self._tf2_playtime_future = future

        future = self._tf2_playtime_future
        if future is not None and future.done():
            try:
                self._tf2_playtime = future.result()
            except Exception as e:
                logger.error(f"Failed to get TF2 playtime for {self}: {e}", exc_info=True)
            self._tf2_playtime_future = None

        return self._tf2_playtime

    # ------------------------------------------------------------------
    # Extension data
    # ------------------------------------------------------------------

    def find_data(self, data_type: Type[T]) -> Optional[T]:
        """
        Return the extension value stored under `data_type`, if any.

        Raises:
            TypeError: If the stored value is not an instance of `data_type`
        """
        value = self._user_data.get(data_type)
        if value is not None and not isinstance(value, data_type):
            raise TypeError(f"Stored {type(value).__name__} under {data_type.__name__} for {self}")
        return value

    def get_or_create_data(self, data_type: Type[T], factory: Optional[Callable[[], T]] = None) -> T:
        value = self.find_data(data_type)
        if value is None:
            value = factory() if factory is not None else data_type()
            self._user_data[data_type] = value
        return value

    def set_data(self, value: Any, data_type: Optional[type] = None):
        data_type = data_type or type(value)
        if not isinstance(value, data_type):
            raise TypeError(f"{type(value).__name__} is not a {data_type.__name__}")
        self._user_data[data_type] = value

    def remove_data(self, data_type: type):
        self._user_data.pop(data_type, None)
