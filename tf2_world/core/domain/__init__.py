"""
Domain models for the TF2 world tracker.

Pure data and query logic for players and lobbies, independent of console
parsing and of the Steam Web API:

- identity: SteamID value type
- lobby: lobby slots, teams and team comparison
- player: per-player status, scores and the PlayerRecord
- registry: the aggregate the world state mutates
"""

from .identity import SteamID, SteamAccountType
from .lobby import (
    LobbyMember,
    LobbyMemberTeam,
    LobbyMemberType,
    TeamShareResult,
    TFTeam,
    opposite_team,
)
from .player import (
    CLASS_CONFIG_FILES,
    PlayerRecord,
    PlayerScores,
    PlayerStatus,
    PlayerStatusState,
    TFClassType,
)
from .registry import Registry

__all__ = [
    "SteamID",
    "SteamAccountType",
    "LobbyMember",
    "LobbyMemberTeam",
    "LobbyMemberType",
    "TeamShareResult",
    "TFTeam",
    "opposite_team",
    "CLASS_CONFIG_FILES",
    "PlayerRecord",
    "PlayerScores",
    "PlayerStatus",
    "PlayerStatusState",
    "TFClassType",
    "Registry",
]
