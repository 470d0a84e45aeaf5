"""
Typed console lines and the regex parser that produces them.

Each recognised TF2 console line becomes one frozen dataclass. The set of
line types is closed: ConsoleLineType enumerates them and every class carries
its `line_type`, so consumers can dispatch with a plain dict lookup.
"""

import datetime
import logging
import re
from dataclasses import dataclass, field
from enum import Enum, IntEnum, auto
from typing import Callable, ClassVar, List, Optional, Tuple, Union

from .domain.identity import SteamID
from .domain.lobby import LobbyMember, LobbyMemberTeam, LobbyMemberType
from .domain.player import PlayerStatus, PlayerStatusState

logger = logging.getLogger(__name__)


class ConsoleLineType(Enum):
    LOBBY_HEADER = auto()
    LOBBY_STATUS_FAILED = auto()
    LOBBY_CHANGED = auto()
    LOBBY_MEMBER = auto()
    HOST_NEW_GAME = auto()
    CONNECTING = auto()
    CLIENT_REACHED_SERVER_SPAWN = auto()
    CONFIG_EXEC = auto()
    CHAT = auto()
    SERVER_DROPPED_PLAYER = auto()
    PING = auto()
    PLAYER_STATUS = auto()
    PLAYER_STATUS_SHORT = auto()
    KILL_NOTIFICATION = auto()
    USER_MESSAGE = auto()


class LobbyChangeType(Enum):
    CREATED = auto()
    UPDATED = auto()
    DESTROYED = auto()


class UserMessageType(IntEnum):
    """Source engine user message ids we care about (TF2 numbering)."""
    CALL_VOTE_FAILED = 45
    VOTE_START = 46
    VOTE_PASS = 47
    VOTE_FAILED = 48
    VOTE_SETUP = 49


@dataclass(frozen=True)
class BaseConsoleLine:
    """Common base: every parsed line remembers when it was logged."""

    line_type: ClassVar[ConsoleLineType]
    timestamp: Optional[datetime.datetime] = field(default=None, kw_only=True)


@dataclass(frozen=True)
class LobbyHeaderLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.LOBBY_HEADER
    member_count: int
    pending_count: int


@dataclass(frozen=True)
class LobbyStatusFailedLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.LOBBY_STATUS_FAILED


@dataclass(frozen=True)
class LobbyChangedLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.LOBBY_CHANGED
    change_type: LobbyChangeType


@dataclass(frozen=True)
class LobbyMemberLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.LOBBY_MEMBER
    lobby_member: LobbyMember


@dataclass(frozen=True)
class HostNewGameLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.HOST_NEW_GAME


@dataclass(frozen=True)
class ConnectingLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.CONNECTING
    address: str = ""


@dataclass(frozen=True)
class ClientReachedServerSpawnLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.CLIENT_REACHED_SERVER_SPAWN


@dataclass(frozen=True)
class ConfigExecLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.CONFIG_EXEC
    config_file_name: str


@dataclass(frozen=True)
class ChatLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.CHAT
    player_name: str
    message: str
    is_dead: bool = False
    is_team: bool = False


@dataclass(frozen=True)
class ServerDroppedPlayerLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.SERVER_DROPPED_PLAYER
    player_name: str
    reason: str


@dataclass(frozen=True)
class PingLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.PING
    player_name: str
    ping: int


@dataclass(frozen=True)
class PlayerStatusLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.PLAYER_STATUS
    player_status: PlayerStatus


@dataclass(frozen=True)
class PlayerStatusShortLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.PLAYER_STATUS_SHORT
    player_name: str
    client_index: int


@dataclass(frozen=True)
class KillNotificationLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.KILL_NOTIFICATION
    attacker_name: str
    victim_name: str
    weapon_name: str = ""
    was_crit: bool = False


@dataclass(frozen=True)
class UserMessageLine(BaseConsoleLine):
    line_type: ClassVar[ConsoleLineType] = ConsoleLineType.USER_MESSAGE
    message_type: int
    byte_count: int = 0

    @property
    def user_message_type(self) -> Optional[UserMessageType]:
        try:
            return UserMessageType(self.message_type)
        except ValueError:
            return None


ConsoleLine = Union[
    LobbyHeaderLine, LobbyStatusFailedLine, LobbyChangedLine, LobbyMemberLine,
    HostNewGameLine, ConnectingLine, ClientReachedServerSpawnLine, ConfigExecLine,
    ChatLine, ServerDroppedPlayerLine, PingLine, PlayerStatusLine,
    PlayerStatusShortLine, KillNotificationLine, UserMessageLine,
]


# ----------------------------------------------------------------------------------
# Parsing
# ----------------------------------------------------------------------------------

# con_timestamp prefix: "10/19/2026 - 21:04:11: "
TIMESTAMP_PATTERN = re.compile(r'^(\d{2}/\d{2}/\d{4} - \d{2}:\d{2}:\d{2}): ')
TIMESTAMP_FORMAT = "%m/%d/%Y - %H:%M:%S"

LOBBY_HEADER_PATTERN = re.compile(r'^CTFLobbyShared: ID:\S*\s+(\d+) member\(s\), (\d+) pending')
LOBBY_MEMBER_PATTERN = re.compile(
    r'^\s*(Member|Pending)\[(\d+)\]\s+(\[[^\]]+\])\s+team = TF_GC_TEAM_(\w+)\s+type = (\w+)')
LOBBY_STATUS_FAILED_PATTERN = re.compile(r'^Failed to find lobby shared object')
LOBBY_CHANGED_PATTERN = re.compile(r'^Lobby (created|updated|destroyed)', re.IGNORECASE)
HOST_NEW_GAME_PATTERN = re.compile(r'^-+ Host_NewGame -+')
CONNECTING_PATTERN = re.compile(r'^Connecting to (\S+?)\.\.\.')
CLIENT_SPAWN_PATTERN = re.compile(r'^Client reached server_spawn\.')
CONFIG_EXEC_PATTERN = re.compile(r'^execing (.+\.cfg)\s*$')
USER_MESSAGE_PATTERN = re.compile(r'^(?:Msg from \S+:\s+)?svc_UserMessage: type (\d+), bytes (\d+)')
SERVER_DROPPED_PATTERN = re.compile(r'^Dropped (.+) from server \((.*)\)$')
PLAYER_STATUS_PATTERN = re.compile(
    r'^#\s*(\d+)\s+"(.*)"\s+(\[[^\]]+\])\s+(?:(\d+):)?(\d+):(\d+)\s+(\d+)\s+(\d+)\s+(\w+)(?:\s+(\S+))?\s*$')
PLAYER_STATUS_SHORT_PATTERN = re.compile(r'^#(\d+) - (.+)$')
PING_PATTERN = re.compile(r'^\s*(\d+) ms : (.{1,32})$')
CHAT_PATTERN = re.compile(r'^(\*DEAD\*)?\s*(\(TEAM\))?\s*(.{1,33}?) :  (.*)$')
KILL_PATTERN = re.compile(r'^(.+) killed (.+) with (.+)\.( \(crit\))?$')


def split_timestamp(line: str) -> Tuple[Optional[datetime.datetime], str]:
    """
    Strip a con_timestamp prefix from a raw console line.

    Returns:
        (timestamp or None, remaining text)
    """
    match = TIMESTAMP_PATTERN.match(line)
    if not match:
        return None, line

    try:
        timestamp = datetime.datetime.strptime(match.group(1), TIMESTAMP_FORMAT)
    except ValueError:
        return None, line
    return timestamp, line[match.end():]


def _parse_lobby_member(match, ts) -> LobbyMemberLine:
    kind, index, steam_id, team, member_type = match.groups()
    member = LobbyMember(
        steam_id=SteamID.parse(steam_id),
        index=int(index),
        team=LobbyMemberTeam.from_console_string(team),
        member_type=LobbyMemberType.from_console_string(member_type),
        pending=(kind == "Pending"),
    )
    return LobbyMemberLine(member, timestamp=ts)


def _parse_player_status(match, ts) -> PlayerStatusLine:
    user_id, name, steam_id, hours, minutes, seconds, ping, loss, state, address = match.groups()
    connected_for = datetime.timedelta(hours=int(hours or 0), minutes=int(minutes), seconds=int(seconds))
    status = PlayerStatus(
        steam_id=SteamID.parse(steam_id),
        name=name,
        user_id=int(user_id),
        connection_time=ts - connected_for,
        ping=int(ping),
        loss=int(loss),
        state=PlayerStatusState.from_console_string(state),
        address=address or "",
    )
    return PlayerStatusLine(status, timestamp=ts)


# Order matters: the loose chat and kill patterns must come last
_LINE_PARSERS: List[Tuple[re.Pattern, Callable]] = [
    (LOBBY_HEADER_PATTERN, lambda m, ts: LobbyHeaderLine(int(m.group(1)), int(m.group(2)), timestamp=ts)),
    (LOBBY_MEMBER_PATTERN, _parse_lobby_member),
    (LOBBY_STATUS_FAILED_PATTERN, lambda m, ts: LobbyStatusFailedLine(timestamp=ts)),
    (LOBBY_CHANGED_PATTERN, lambda m, ts: LobbyChangedLine(LobbyChangeType[m.group(1).upper()], timestamp=ts)),
    (HOST_NEW_GAME_PATTERN, lambda m, ts: HostNewGameLine(timestamp=ts)),
    (CONNECTING_PATTERN, lambda m, ts: ConnectingLine(m.group(1), timestamp=ts)),
    (CLIENT_SPAWN_PATTERN, lambda m, ts: ClientReachedServerSpawnLine(timestamp=ts)),
    (CONFIG_EXEC_PATTERN, lambda m, ts: ConfigExecLine(m.group(1), timestamp=ts)),
    (USER_MESSAGE_PATTERN, lambda m, ts: UserMessageLine(int(m.group(1)), int(m.group(2)), timestamp=ts)),
    (SERVER_DROPPED_PATTERN, lambda m, ts: ServerDroppedPlayerLine(m.group(1), m.group(2), timestamp=ts)),
    (PLAYER_STATUS_PATTERN, _parse_player_status),
    (PLAYER_STATUS_SHORT_PATTERN, lambda m, ts: PlayerStatusShortLine(m.group(2), int(m.group(1)), timestamp=ts)),
    (PING_PATTERN, lambda m, ts: PingLine(m.group(2), int(m.group(1)), timestamp=ts)),
    (CHAT_PATTERN, lambda m, ts: ChatLine(m.group(3), m.group(4), is_dead=bool(m.group(1)),
                                          is_team=bool(m.group(2)), timestamp=ts)),
    (KILL_PATTERN, lambda m, ts: KillNotificationLine(m.group(1), m.group(2), m.group(3),
                                                      was_crit=bool(m.group(4)), timestamp=ts)),
]


def parse_console_line(line: str, timestamp: datetime.datetime) -> Optional[ConsoleLine]:
    """
    Turn one console line (without its timestamp prefix) into a typed line.

    Args:
        line: Console text, no trailing newline
        timestamp: Time to attach to the parsed line

    Returns:
        The parsed line, or None if no pattern recognises it
    """
    for pattern, build in _LINE_PARSERS:
        match = pattern.search(line)
        if not match:
            continue
        try:
            return build(match, timestamp)
        except ValueError as e:
            # Matched the shape but carried garbage (bad SteamID, unknown team)
            logger.debug(f"Rejected console line {line!r}: {e}")
            return None
    return None
