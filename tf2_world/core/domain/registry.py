"""
Player and lobby registry.

The Registry is the aggregate the world state mutates: both lobby slot lists,
the PlayerRecord map, the friends snapshot and a few session flags. It holds
no behaviour tied to console lines; it only answers queries and applies
the mutations the state machine decides on.
"""

import logging
from datetime import datetime
from typing import Callable, Dict, Iterator, List, Optional, Set

from .identity import SteamID
from .lobby import LobbyMember, LobbyMemberTeam, TeamShareResult
from .player import PlayerRecord

logger = logging.getLogger(__name__)


class Registry:
    """
    World state aggregate.

    Args:
        player_factory: Builds a new PlayerRecord for a SteamID. The world
            state passes one that binds records to itself.
    """

    def __init__(self, player_factory: Optional[Callable[[SteamID], PlayerRecord]] = None):
        self._player_factory = player_factory or PlayerRecord

        self.current_lobby_members: List[LobbyMember] = []
        self.pending_lobby_members: List[LobbyMember] = []
        self.players: Dict[SteamID, PlayerRecord] = {}
        self.friends: Set[SteamID] = set()

        self.last_status_update_time: Optional[datetime] = None
        self.is_local_player_initialized = False
        self.is_vote_in_progress = False

    # ------------------------------------------------------------------
    # Mutation
    # ------------------------------------------------------------------

    def resize_lobby(self, member_count: int, pending_count: int):
        """Size both slot lists from a lobby header; every slot starts invalid."""
        self.current_lobby_members = [LobbyMember() for _ in range(member_count)]
        self.pending_lobby_members = [LobbyMember(pending=True) for _ in range(pending_count)]

    def set_lobby_member(self, member: LobbyMember) -> bool:
        """
        Store a member in its slot.

        Returns:
            False if the slot index is outside the size set by the last header
        """
        members = self.pending_lobby_members if member.pending else self.current_lobby_members
        if not 0 <= member.index < len(members):
            return False

        members[member.index] = member
        return True

    def clear_lobby_state(self):
        self.current_lobby_members.clear()
        self.pending_lobby_members.clear()
        self.players.clear()

    def has_lobby_members(self) -> bool:
        return bool(self.current_lobby_members or self.pending_lobby_members)

    def invalidate_client_indices(self):
        for player in self.players.values():
            player.client_index = 0

    def find_or_create_player(self, steam_id: SteamID) -> PlayerRecord:
        player = self.players.get(steam_id)
        if player is None:
            player = self._player_factory(steam_id)
            if player.steam_id != steam_id:
                raise RuntimeError(f"Player factory returned {player.steam_id} for {steam_id}")
            self.players[steam_id] = player

        return player

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    def find_player(self, steam_id: SteamID) -> Optional[PlayerRecord]:
        return self.players.get(steam_id)

    def get_players(self) -> Iterator[PlayerRecord]:
        return iter(list(self.players.values()))

    def find_steam_id_for_name(self, player_name: str) -> Optional[SteamID]:
        """
        Resolve an in-game name to the SteamID that most recently reported it.

        Several records can carry the same name (renames, impersonators). The
        record with the latest status update wins; among records with equal
        timestamps the first one in insertion order wins. Records that never
        had a status update are not candidates.
        """
        result = None
        last_updated = None

        for player in self.players.values():
            updated = player.last_status_update_time
            if player.status.name != player_name or updated is None:
                continue
            if last_updated is None or updated > last_updated:
                result = player.steam_id
                last_updated = updated

        return result

    def find_user_id(self, steam_id: SteamID) -> Optional[int]:
        player = self.players.get(steam_id)
        return player.get_user_id() if player is not None else None

    def find_lobby_member(self, steam_id: SteamID) -> Optional[LobbyMember]:
        for member in self.current_lobby_members:
            if member.steam_id == steam_id:
                return member
        for member in self.pending_lobby_members:
            if member.steam_id == steam_id:
                return member
        return None

    def find_lobby_member_team(self, steam_id: SteamID) -> Optional[LobbyMemberTeam]:
        member = self.find_lobby_member(steam_id)
        return member.team if member is not None else None

    def get_team_share_result(self, id0: SteamID, id1: SteamID) -> TeamShareResult:
        return TeamShareResult.from_teams(self.find_lobby_member_team(id0), self.find_lobby_member_team(id1))

    def get_approx_lobby_member_count(self) -> int:
        return len(self.current_lobby_members) + len(self.pending_lobby_members)

    def get_lobby_members(self) -> Iterator[PlayerRecord]:
        """
        Yield the PlayerRecord of every valid lobby slot.

        Current members come first, then pending members not already present
        in the current list.

        Raises:
            RuntimeError: If a valid slot has no PlayerRecord, which means the
                lobby and the player map have gone out of sync
        """
        current_ids = {m.steam_id for m in self.current_lobby_members if m.is_valid()}

        for member in self.current_lobby_members:
            if member.is_valid():
                yield self._get_member_player(member)

        for member in self.pending_lobby_members:
            if not member.is_valid() or member.steam_id in current_ids:
                continue
            yield self._get_member_player(member)

    def _get_member_player(self, member: LobbyMember) -> PlayerRecord:
        player = self.players.get(member.steam_id)
        if player is None:
            raise RuntimeError(f"Missing player for lobby member {member.steam_id}")
        return player

    def get_recent_players(self, recent_player_count: int) -> List[PlayerRecord]:
        """Up to `recent_player_count` records, most recent status update first."""
        players = sorted(
            self.players.values(),
            key=lambda p: p.last_status_update_time or datetime.min,
            reverse=True,
        )
        return players[:max(recent_player_count, 0)]
