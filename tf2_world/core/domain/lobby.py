"""
Lobby domain models.

The TF2 game coordinator reports matchmaking lobbies as two fixed-size slot
lists: confirmed members and pending members. Each slot is a LobbyMember;
slots the header announced but no member line has filled yet stay invalid.
"""

from dataclasses import dataclass
from enum import Enum, auto
from typing import Optional

from .identity import SteamID


class LobbyMemberTeam(Enum):
    """Matchmaking team as named by the game coordinator."""

    INVADERS = auto()
    DEFENDERS = auto()

    @classmethod
    def from_console_string(cls, team_str: str) -> "LobbyMemberTeam":
        """
        Convert the suffix of a TF_GC_TEAM_* token to a team.

        Args:
            team_str: "DEFENDERS" or "INVADERS" (case insensitive)

        Raises:
            ValueError: For any other team name
        """
        try:
            return cls[team_str.upper()]
        except KeyError:
            raise ValueError(f"Unknown lobby team: {team_str!r}") from None

    @property
    def opposite(self) -> "LobbyMemberTeam":
        return LobbyMemberTeam.INVADERS if self is LobbyMemberTeam.DEFENDERS else LobbyMemberTeam.DEFENDERS


def opposite_team(team: LobbyMemberTeam) -> LobbyMemberTeam:
    return team.opposite


class TFTeam(Enum):
    """In-game team colour."""

    UNASSIGNED = auto()
    SPECTATOR = auto()
    RED = auto()
    BLUE = auto()

    @classmethod
    def from_lobby_team(cls, team: LobbyMemberTeam) -> "TFTeam":
        # Defenders always spawn on RED in casual matchmaking
        return cls.RED if team is LobbyMemberTeam.DEFENDERS else cls.BLUE


class LobbyMemberType(Enum):
    PLAYER = auto()
    INVALID_PLAYER = auto()

    @classmethod
    def from_console_string(cls, type_str: str) -> "LobbyMemberType":
        return cls.INVALID_PLAYER if type_str.upper().startswith("INVALID") else cls.PLAYER


class TeamShareResult(Enum):
    """Relationship between the lobby teams of two players."""

    NEITHER = auto()
    SAME_TEAMS = auto()
    OPPOSITE_TEAMS = auto()

    @classmethod
    def from_teams(cls, team0: Optional[LobbyMemberTeam],
                   team1: Optional[LobbyMemberTeam]) -> "TeamShareResult":
        """
        Compare two optional lobby teams.

        Raises:
            RuntimeError: If the teams are neither equal nor opposite. This
                means the lobby model is corrupt, not that the input is bad.
        """
        if team0 is None or team1 is None:
            return cls.NEITHER

        if team0 == team1:
            return cls.SAME_TEAMS
        if isinstance(team1, LobbyMemberTeam) and team0 == opposite_team(team1):
            return cls.OPPOSITE_TEAMS

        raise RuntimeError(f"Unexpected team value(s): {team0!r}, {team1!r}")


@dataclass
class LobbyMember:
    """One slot in the current or pending lobby member list."""

    steam_id: Optional[SteamID] = None
    index: int = 0
    team: LobbyMemberTeam = LobbyMemberTeam.INVADERS
    member_type: LobbyMemberType = LobbyMemberType.PLAYER
    pending: bool = False

    def is_valid(self) -> bool:
        """A slot is valid once a member line has assigned it a real SteamID."""
        return self.steam_id is not None and self.steam_id.is_valid()
