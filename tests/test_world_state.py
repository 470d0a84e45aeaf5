"""
Tests for the world state machine.

Console text is fed through the real dispatcher and parser wherever the
console format allows it; sub-second cases build typed lines directly.
"""
import datetime
import logging
import sys
from pathlib import Path

import pytest

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tf2_world.config.settings import Settings
from tf2_world.core.console_lines import ConsoleLineType, PlayerStatusLine
from tf2_world.core.domain import (
    LobbyMemberTeam,
    PlayerStatus,
    SteamID,
    TeamShareResult,
    TFClassType,
    TFTeam,
)
from tf2_world.core.events import ConsoleLineListener, WorldEventListener
from tf2_world.core.world_state import WorldState

LOCAL = SteamID.parse("[U:1:1000]")
X = SteamID.parse("[U:1:1001]")
Y = SteamID.parse("[U:1:1002]")

T0 = datetime.datetime(2026, 10, 19, 20, 0, 0)


class RecordingListener(ConsoleLineListener, WorldEventListener):
    def __init__(self):
        self.calls = []

    def on_console_line_parsed(self, world, parsed):
        self.calls.append(("parsed", parsed.line_type))

    def on_console_line_unparsed(self, world, text):
        self.calls.append(("unparsed", text))

    def on_player_status_update(self, world, player):
        self.calls.append(("status", player.steam_id))

    def on_chat_msg(self, world, player, message):
        self.calls.append(("chat", player.steam_id, message))

    def on_player_dropped_from_server(self, world, player, reason):
        self.calls.append(("dropped", player.steam_id, reason))

    def on_local_player_spawned(self, world, player_class):
        self.calls.append(("spawned", player_class))

    def on_local_player_initialized(self, world, initialized):
        self.calls.append(("initialized", initialized))

    def of(self, kind):
        return [c for c in self.calls if c[0] == kind]


@pytest.fixture
def world():
    settings = Settings(local_steam_id=str(LOCAL), allow_internet_usage=False)
    return WorldState(settings)


@pytest.fixture
def listener(world):
    listener = RecordingListener()
    world.add_console_line_listener(listener)
    world.add_world_event_listener(listener)
    return listener


def feed(world, *lines, at=T0):
    stamp = at.strftime("%m/%d/%Y - %H:%M:%S")
    world.add_console_output_chunk("".join(f"{stamp}: {line}\n" for line in lines))


def status(user_id, name, steam_id, connected="05:00"):
    return f'#    {user_id} "{name}"    {steam_id}    {connected}    50    0 active'


def test_every_line_type_has_a_handler(world):
    assert set(world._line_handlers) == set(ConsoleLineType)


def test_lobby_scenario(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  2 member(s), 0 pending",
         f"  Member[0] {X}  team = TF_GC_TEAM_DEFENDERS  type = MATCH_PLAYER",
         f"  Member[1] {Y}  team = TF_GC_TEAM_INVADERS  type = MATCH_PLAYER")

    assert {p.steam_id for p in world.get_lobby_members()} == {X, Y}
    assert world.get_team_share_result(X, Y) == TeamShareResult.OPPOSITE_TEAMS
    assert world.find_player(X).team == TFTeam.RED
    assert world.find_player(Y).team == TFTeam.BLUE


def test_lobby_header_resets_slots(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  1 member(s), 0 pending",
         f"  Member[0] {X}  team = TF_GC_TEAM_DEFENDERS  type = MATCH_PLAYER",
         "CTFLobbyShared: ID:[A:1:1:1]  2 member(s), 1 pending")

    assert world.get_approx_lobby_member_count() == 3
    assert list(world.get_lobby_members()) == []


def test_lobby_member_out_of_range_still_sets_team(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  1 member(s), 0 pending",
         f"  Member[4] {X}  team = TF_GC_TEAM_INVADERS  type = MATCH_PLAYER")

    assert list(world.get_lobby_members()) == []
    assert world.find_player(X).team == TFTeam.BLUE


def test_pending_duplicate_is_yielded_once(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  1 member(s), 1 pending",
         f"  Member[0] {X}  team = TF_GC_TEAM_DEFENDERS  type = MATCH_PLAYER",
         f"  Pending[0] {X}  team = TF_GC_TEAM_DEFENDERS  type = MATCH_PLAYER")

    assert [p.steam_id for p in world.get_lobby_members()] == [X]


def test_team_share_defaults_to_local_player(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  2 member(s), 0 pending",
         f"  Member[0] {LOCAL}  team = TF_GC_TEAM_INVADERS  type = MATCH_PLAYER",
         f"  Member[1] {X}  team = TF_GC_TEAM_INVADERS  type = MATCH_PLAYER")

    assert world.get_team_share_result(X) == TeamShareResult.SAME_TEAMS
    assert world.find_lobby_member_team(LOCAL) == LobbyMemberTeam.INVADERS


def test_lobby_status_failed_clears_everything(world):
    feed(world,
         "CTFLobbyShared: ID:[A:1:1:1]  1 member(s), 0 pending",
         f"  Member[0] {X}  team = TF_GC_TEAM_DEFENDERS  type = MATCH_PLAYER",
         "Failed to find lobby shared object")

    assert world.get_approx_lobby_member_count() == 0
    assert world.find_player(X) is None


def test_lobby_status_failed_keeps_players_without_lobby(world):
    feed(world, status(1, "Solo", X), "Failed to find lobby shared object")
    assert world.find_player(X) is not None


def test_lobby_created_clears_and_updated_zeroes_client_indices(world):
    feed(world, status(1, "Xavier", X), "#3 - Xavier")
    assert world.find_player(X).client_index == 3

    feed(world, "Lobby updated")
    assert world.find_player(X).client_index == 0

    feed(world, "Lobby created")
    assert world.find_player(X) is None


def test_player_status_updates_record_and_notifies(world, listener):
    feed(world, status(672, "Xavier", X, connected="10:00"), at=T0)

    player = world.find_player(X)
    assert player.name == "Xavier"
    assert player.get_user_id() == 672
    assert player.connection_time == T0 - datetime.timedelta(minutes=10)
    assert player.last_status_update_time == T0
    assert world.last_status_update_time == T0
    assert listener.of("status") == [("status", X)]


def test_status_watermark_never_moves_backwards(world):
    later = T0 + datetime.timedelta(seconds=30)
    feed(world, status(1, "Xavier", X), at=later)
    feed(world, status(2, "Yvonne", Y), at=T0)
    assert world.last_status_update_time == later


def test_connection_time_debounce(world):
    base = T0 - datetime.timedelta(minutes=5)
    first = base + datetime.timedelta(seconds=10.4)
    second = base + datetime.timedelta(seconds=10.9)

    world.on_console_line_parsed(PlayerStatusLine(PlayerStatus(X, "Xavier", connection_time=first), timestamp=T0))
    world.on_console_line_parsed(PlayerStatusLine(PlayerStatus(X, "Xavier", connection_time=second),
                                                  timestamp=T0 + datetime.timedelta(seconds=5)))

    assert world.find_player(X).connection_time == first


def test_connection_time_changes_beyond_debounce(world):
    first = T0 - datetime.timedelta(minutes=5)
    second = first + datetime.timedelta(seconds=3)

    world.on_console_line_parsed(PlayerStatusLine(PlayerStatus(X, "Xavier", connection_time=first), timestamp=T0))
    world.on_console_line_parsed(PlayerStatusLine(PlayerStatus(X, "Xavier", connection_time=second), timestamp=T0))

    assert world.find_player(X).connection_time == second


def test_connected_time_uses_world_clock(world):
    feed(world, status(1, "Xavier", X, connected="02:00"), at=T0)
    feed(world, "Compact freed 12 bytes", at=T0 + datetime.timedelta(seconds=30))
    assert world.find_player(X).get_connected_time() == datetime.timedelta(minutes=2, seconds=30)


def test_ping_updates_resolved_player(world):
    feed(world, status(1, "Xavier", X))
    feed(world, "  99 ms : Xavier", at=T0 + datetime.timedelta(seconds=10))

    player = world.find_player(X)
    assert player.ping == 99
    assert player.last_ping_update_time == T0 + datetime.timedelta(seconds=10)
    assert player.last_status_update_time == T0


def test_ping_and_short_status_for_unknown_name_are_ignored(world):
    feed(world, "  99 ms : Nobody", "#4 - Nobody")
    assert world.registry.players == {}


def test_name_resolution_uses_most_recent_status(world):
    feed(world, status(1, "Twin", X), at=T0)
    feed(world, status(2, "Twin", Y), at=T0 + datetime.timedelta(seconds=1))
    assert world.find_steam_id_for_name("Twin") == Y


def test_chat_from_known_player(world, listener):
    feed(world, status(1, "Xavier", X), "Xavier :  hello there")
    assert listener.of("chat") == [("chat", X, "hello there")]


def test_chat_from_unknown_player_is_dropped(world, listener, caplog):
    with caplog.at_level(logging.WARNING):
        feed(world, "Ghost :  boo")

    assert listener.of("chat") == []
    assert "unknown SteamID" in caplog.text
    assert "Ghost" in caplog.text


def test_server_dropped_player(world, listener, caplog):
    feed(world, status(1, "Xavier", X), "Dropped Xavier from server (Disconnect by user.)")
    assert listener.of("dropped") == [("dropped", X, "Disconnect by user.")]

    with caplog.at_level(logging.WARNING):
        feed(world, "Dropped Ghost from server (Kicked)")
    assert len(listener.of("dropped")) == 1
    assert "unknown SteamID" in caplog.text


def test_kill_by_local_player(world):
    feed(world, status(1, "Me", LOCAL), status(2, "Enemy", X))
    feed(world, "Me killed Enemy with tf_projectile_rocket.")

    me, enemy = world.find_player(LOCAL), world.find_player(X)
    assert enemy.scores.deaths == 1
    assert enemy.scores.local_deaths == 1
    assert me.scores.kills == 1
    assert me.scores.local_kills == 0


def test_kill_of_local_player(world):
    feed(world, status(1, "Me", LOCAL), status(2, "Enemy", X))
    feed(world, "Enemy killed Me with scattergun. (crit)")

    me, enemy = world.find_player(LOCAL), world.find_player(X)
    assert enemy.scores.kills == 1
    assert enemy.scores.local_kills == 1
    assert me.scores.deaths == 1
    assert me.scores.local_deaths == 0


def test_kill_with_one_unresolved_side(world):
    feed(world, status(2, "Enemy", X))
    feed(world, "Enemy killed Somebody with minigun.")
    feed(world, "Somebody killed Enemy with minigun.")

    enemy = world.find_player(X)
    assert (enemy.scores.kills, enemy.scores.deaths) == (1, 1)
    assert (enemy.scores.local_kills, enemy.scores.local_deaths) == (0, 0)


def test_config_exec_spawn_and_initialization(world, listener):
    feed(world, "execing scout.cfg", "execing medic.cfg", "execing autoexec.cfg")

    assert listener.of("spawned") == [("spawned", TFClassType.SCOUT), ("spawned", TFClassType.MEDIC)]
    assert listener.of("initialized") == [("initialized", True)]
    assert world.is_local_player_initialized


def test_config_name_must_match_exactly(world, listener):
    feed(world, "execing scout_custom.cfg")
    assert listener.of("spawned") == []
    assert not world.is_local_player_initialized


@pytest.mark.parametrize("line", [
    "---- Host_NewGame ----",
    "Connecting to 169.254.1.1:27015...",
    "Client reached server_spawn.",
])
def test_new_connection_resets_local_player_and_vote(world, listener, line):
    feed(world, "execing soldier.cfg", "Msg from 1.2.3.4:27015:  svc_UserMessage: type 46, bytes 42")
    assert world.is_vote_in_progress

    feed(world, line)
    assert listener.of("initialized") == [("initialized", True), ("initialized", False)]
    assert not world.is_local_player_initialized
    assert not world.is_vote_in_progress

    # Not initialized: no second notification
    feed(world, line)
    assert len(listener.of("initialized")) == 2


def test_vote_flags(world):
    feed(world, "svc_UserMessage: type 46, bytes 42")
    assert world.is_vote_in_progress
    feed(world, "svc_UserMessage: type 48, bytes 12")
    assert not world.is_vote_in_progress
    feed(world, "svc_UserMessage: type 46, bytes 42", "svc_UserMessage: type 47, bytes 12")
    assert not world.is_vote_in_progress


@pytest.mark.parametrize("quoted", [
    "svc_UserMessage: type 46, bytes 1",
    "Msg from 1.2.3.4:27015:  svc_UserMessage: type 48, bytes 1",
])
def test_chat_quoting_a_user_message_is_still_chat(world, listener, quoted):
    feed(world, status(1, "Xavier", X), "svc_UserMessage: type 46, bytes 42")
    assert world.is_vote_in_progress

    feed(world, f"Xavier :  {quoted}", f"Xavier killed Yvonne with {quoted}.")

    assert listener.of("chat") == [("chat", X, quoted)]
    assert world.is_vote_in_progress
    assert world.find_player(X).scores.kills == 1


def test_recent_players(world):
    for i, (name, steam_id) in enumerate([("a", X), ("b", Y), ("c", LOCAL)]):
        feed(world, status(i + 1, name, steam_id), at=T0 + datetime.timedelta(seconds=i))

    recent = world.get_recent_players(2)
    assert [p.steam_id for p in recent] == [LOCAL, Y]


def test_console_listeners_see_parsed_and_unparsed(world, listener):
    feed(world, "execing scout.cfg", "garbage line")
    assert ("parsed", ConsoleLineType.CONFIG_EXEC) in listener.calls
    assert listener.of("unparsed")[0][1].endswith("garbage line")
