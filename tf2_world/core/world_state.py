"""
World state: the live model of the local TF2 session.

WorldState consumes typed console lines one at a time and folds them into
its Registry (players, lobby, flags), notifying world-event listeners as it
goes. Its `update()` tick drives the Steam API enrichment. Both run on the
caller's thread; nothing here blocks on the network.
"""
import dataclasses
import datetime
import logging
from concurrent.futures import Future
from typing import Callable, Dict, Iterator, List, Optional

from .console_lines import (
    ChatLine,
    ConfigExecLine,
    ConsoleLine,
    ConsoleLineType,
    KillNotificationLine,
    LobbyChangedLine,
    LobbyChangeType,
    LobbyHeaderLine,
    LobbyMemberLine,
    PingLine,
    PlayerStatusLine,
    PlayerStatusShortLine,
    ServerDroppedPlayerLine,
    UserMessageLine,
    UserMessageType,
    parse_console_line,
)
from .console_log import ConsoleLineDispatcher
from .domain.identity import SteamID
from .domain.lobby import LobbyMemberTeam, TeamShareResult, TFTeam
from .domain.player import CLASS_CONFIG_FILES, PlayerRecord
from .domain.registry import Registry
from .enrichment import FriendsListCache, PlayerBansUpdateQueue, PlayerSummaryUpdateQueue
from .events import ConsoleLineListener, EventListenerBus, WorldEventListener

logger = logging.getLogger(__name__)

# Status polls report connection time with second granularity and some
# jitter; smaller changes than this are ignored
CONNECTION_TIME_DEBOUNCE = datetime.timedelta(seconds=2)


class WorldState:
    """
    Owns the registry and applies console lines to it.

    Args:
        settings: Settings providing the local SteamID, API key and HTTP client
        parser: Console line parser, (line, timestamp) -> typed line or None
    """

    def __init__(self, settings, parser: Callable = parse_console_line):
        self.settings = settings
        self.listeners = EventListenerBus()
        self.registry = Registry(player_factory=self._create_player)
        self.dispatcher = ConsoleLineDispatcher(self, parser)

        self.player_summary_updates = PlayerSummaryUpdateQueue(
            settings, self.registry, min_request_interval=settings.steam_api_request_interval)
        self.player_bans_updates = PlayerBansUpdateQueue(
            settings, self.registry, min_request_interval=settings.steam_api_request_interval)
        self.friends = FriendsListCache(settings, self.registry, refresh_interval=settings.friends_refresh_interval)

        self._current_time = datetime.datetime.now()

        self._line_handlers: Dict[ConsoleLineType, Callable] = {
            ConsoleLineType.LOBBY_HEADER: self._on_lobby_header,
            ConsoleLineType.LOBBY_STATUS_FAILED: self._on_lobby_status_failed,
            ConsoleLineType.LOBBY_CHANGED: self._on_lobby_changed,
            ConsoleLineType.LOBBY_MEMBER: self._on_lobby_member,
            ConsoleLineType.HOST_NEW_GAME: self._on_new_connection,
            ConsoleLineType.CONNECTING: self._on_new_connection,
            ConsoleLineType.CLIENT_REACHED_SERVER_SPAWN: self._on_new_connection,
            ConsoleLineType.CONFIG_EXEC: self._on_config_exec,
            ConsoleLineType.CHAT: self._on_chat,
            ConsoleLineType.SERVER_DROPPED_PLAYER: self._on_server_dropped_player,
            ConsoleLineType.PING: self._on_ping,
            ConsoleLineType.PLAYER_STATUS: self._on_player_status,
            ConsoleLineType.PLAYER_STATUS_SHORT: self._on_player_status_short,
            ConsoleLineType.KILL_NOTIFICATION: self._on_kill_notification,
            ConsoleLineType.USER_MESSAGE: self._on_user_message,
        }

    def _create_player(self, steam_id: SteamID) -> PlayerRecord:
        player = PlayerRecord(steam_id, self)
        if not self.settings.lazy_load_api_data:
            player.get_player_summary()
            player.get_player_bans()
            player.get_tf2_playtime()
        return player

    # ------------------------------------------------------------------
    # Tick and input
    # ------------------------------------------------------------------

    def update(self):
        """Poll and advance all Steam API work. Call once per tick."""
        self.player_summary_updates.update()
        self.player_bans_updates.update()
        self.friends.update()

    def add_console_output_chunk(self, chunk: str):
        self.dispatcher.add_console_output_chunk(chunk)

    def add_console_output_line(self, line: str):
        self.dispatcher.add_console_output_line(line)

    def update_timestamp(self, timestamp: datetime.datetime):
        self._current_time = timestamp

    def get_current_time(self) -> datetime.datetime:
        return self._current_time

    # ------------------------------------------------------------------
    # Listeners
    # ------------------------------------------------------------------

    def add_console_line_listener(self, listener: ConsoleLineListener):
        self.listeners.add_console_line_listener(listener)

    def remove_console_line_listener(self, listener: ConsoleLineListener):
        self.listeners.remove_console_line_listener(listener)

    def add_world_event_listener(self, listener: WorldEventListener):
        self.listeners.add_world_event_listener(listener)

    def remove_world_event_listener(self, listener: WorldEventListener):
        self.listeners.remove_world_event_listener(listener)

    # ------------------------------------------------------------------
    # Queries
    # ------------------------------------------------------------------

    @property
    def is_local_player_initialized(self) -> bool:
        return self.registry.is_local_player_initialized

    @property
    def is_vote_in_progress(self) -> bool:
        return self.registry.is_vote_in_progress

    @property
    def last_status_update_time(self) -> Optional[datetime.datetime]:
        return self.registry.last_status_update_time

    def get_local_steam_id(self) -> Optional[SteamID]:
        return self.settings.get_local_steam_id()

    def find_steam_id_for_name(self, player_name: str) -> Optional[SteamID]:
        return self.registry.find_steam_id_for_name(player_name)

    def find_player(self, steam_id: SteamID) -> Optional[PlayerRecord]:
        return self.registry.find_player(steam_id)

    def find_user_id(self, steam_id: SteamID) -> Optional[int]:
        return self.registry.find_user_id(steam_id)

    def find_lobby_member_team(self, steam_id: SteamID) -> Optional[LobbyMemberTeam]:
        return self.registry.find_lobby_member_team(steam_id)

    def get_team_share_result(self, id0: SteamID, id1: Optional[SteamID] = None) -> TeamShareResult:
        """Team relationship of two players; `id1` defaults to the local player."""
        if id1 is None:
            id1 = self.get_local_steam_id()
            if id1 is None:
                return TeamShareResult.NEITHER
        return self.registry.get_team_share_result(id0, id1)

    def get_lobby_members(self) -> Iterator[PlayerRecord]:
        return self.registry.get_lobby_members()

    def get_players(self) -> Iterator[PlayerRecord]:
        return self.registry.get_players()

    def get_recent_players(self, recent_player_count: int = 32) -> List[PlayerRecord]:
        return self.registry.get_recent_players(recent_player_count)

    def get_approx_lobby_member_count(self) -> int:
        return self.registry.get_approx_lobby_member_count()

    def request_tf2_playtime(self, steam_id: SteamID) -> Optional[Future]:
        """Start a playtime fetch, or return None if the API isn't usable yet."""
        api_key = self.settings.get_steam_api_key()
        if not api_key:
            return None
        client = self.settings.get_http_client()
        if client is None:
            return None
        return client.get_tf2_playtime_async(api_key, steam_id)

    # ------------------------------------------------------------------
    # Console line handling
    # ------------------------------------------------------------------

    def on_console_line_parsed(self, parsed: ConsoleLine):
        """Apply one parsed console line to the world state."""
        self._line_handlers[parsed.line_type](parsed)

    def _timestamp_of(self, parsed: ConsoleLine) -> datetime.datetime:
        return parsed.timestamp or self._current_time

    def _on_lobby_header(self, parsed: LobbyHeaderLine):
        self.registry.resize_lobby(parsed.member_count, parsed.pending_count)

    def _on_lobby_status_failed(self, parsed):
        if self.registry.has_lobby_members():
            self.registry.clear_lobby_state()

    def _on_lobby_changed(self, parsed: LobbyChangedLine):
        if parsed.change_type == LobbyChangeType.CREATED:
            self.registry.clear_lobby_state()

        if parsed.change_type in (LobbyChangeType.CREATED, LobbyChangeType.UPDATED):
            # Client indices can't be trusted after the lobby changes
            self.registry.invalidate_client_indices()

    def _on_new_connection(self, parsed):
        if self.registry.is_local_player_initialized:
            self.registry.is_local_player_initialized = False
            self.listeners.invoke_world_event("on_local_player_initialized", self, False)

        self.registry.is_vote_in_progress = False

    def _on_config_exec(self, parsed: ConfigExecLine):
        player_class = CLASS_CONFIG_FILES.get(parsed.config_file_name)
        if player_class is None:
            return

        logger.debug(f"Spawned as {parsed.config_file_name[:-4]}")
        self.listeners.invoke_world_event("on_local_player_spawned", self, player_class)

        if not self.registry.is_local_player_initialized:
            self.registry.is_local_player_initialized = True
            self.listeners.invoke_world_event("on_local_player_initialized", self, True)

    def _on_chat(self, parsed: ChatLine):
        steam_id = self.find_steam_id_for_name(parsed.player_name)
        if steam_id is None:
            logger.warning(f'Dropped chat message with unknown SteamID from "{parsed.player_name}": '
                           f'"{parsed.message}"')
            return

        player = self.find_player(steam_id)
        if player is None:
            logger.warning(f'Dropped chat message with unknown player record from "{parsed.player_name}" '
                           f'({steam_id}): "{parsed.message}"')
            return

        self.listeners.invoke_world_event("on_chat_msg", self, player, parsed.message)

    def _on_server_dropped_player(self, parsed: ServerDroppedPlayerLine):
        steam_id = self.find_steam_id_for_name(parsed.player_name)
        if steam_id is None:
            logger.warning(f'Dropped "player dropped" message with unknown SteamID from "{parsed.player_name}"')
            return

        player = self.find_player(steam_id)
        if player is None:
            logger.warning(f'Dropped "player dropped" message with unknown player record from '
                           f'"{parsed.player_name}" ({steam_id})')
            return

        self.listeners.invoke_world_event("on_player_dropped_from_server", self, player, parsed.reason)

    def _on_lobby_member(self, parsed: LobbyMemberLine):
        member = dataclasses.replace(parsed.lobby_member)
        self.registry.set_lobby_member(member)
        self.registry.find_or_create_player(member.steam_id).team = TFTeam.from_lobby_team(member.team)

    def _on_ping(self, parsed: PingLine):
        steam_id = self.find_steam_id_for_name(parsed.player_name)
        if steam_id is not None:
            self.registry.find_or_create_player(steam_id).set_ping(parsed.ping, self._timestamp_of(parsed))

    def _on_player_status(self, parsed: PlayerStatusLine):
        new_status = dataclasses.replace(parsed.player_status)
        player = self.registry.find_or_create_player(new_status.steam_id)

        # Don't introduce stutter to our connection time view
        old_time = player.status.connection_time
        if old_time is not None and new_status.connection_time is not None:
            if abs(old_time - new_status.connection_time) < CONNECTION_TIME_DEBOUNCE:
                new_status.connection_time = old_time

        timestamp = self._timestamp_of(parsed)
        player.set_status(new_status, timestamp)

        last = self.registry.last_status_update_time
        if last is None or timestamp > last:
            self.registry.last_status_update_time = timestamp

        self.listeners.invoke_world_event("on_player_status_update", self, player)

    def _on_player_status_short(self, parsed: PlayerStatusShortLine):
        steam_id = self.find_steam_id_for_name(parsed.player_name)
        if steam_id is not None:
            self.registry.find_or_create_player(steam_id).client_index = parsed.client_index

    def _on_kill_notification(self, parsed: KillNotificationLine):
        local_id = self.get_local_steam_id()
        attacker_id = self.find_steam_id_for_name(parsed.attacker_name)
        victim_id = self.find_steam_id_for_name(parsed.victim_name)

        if attacker_id is not None:
            attacker = self.registry.find_or_create_player(attacker_id)
            attacker.scores.kills += 1
            if victim_id is not None and victim_id == local_id:
                attacker.scores.local_kills += 1

        if victim_id is not None:
            victim = self.registry.find_or_create_player(victim_id)
            victim.scores.deaths += 1
            if attacker_id is not None and attacker_id == local_id:
                victim.scores.local_deaths += 1

    def _on_user_message(self, parsed: UserMessageLine):
        message_type = parsed.user_message_type
        if message_type == UserMessageType.VOTE_START:
            self.registry.is_vote_in_progress = True
        elif message_type in (UserMessageType.VOTE_FAILED, UserMessageType.VOTE_PASS):
            self.registry.is_vote_in_progress = False
