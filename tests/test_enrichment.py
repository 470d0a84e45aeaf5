"""
Tests for Steam Web API enrichment: lazy player summaries and bans,
on-demand TF2 playtime and the friends list cache.

The HTTP client is a MagicMock handing out already-resolved Futures, so no
network access or worker threads are involved.
"""
import logging
import sys
from concurrent.futures import Future
from datetime import timedelta
from pathlib import Path
from unittest.mock import MagicMock

import pytest
import requests

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from tf2_world.config.settings import Settings
from tf2_world.core.domain import Registry, SteamID
from tf2_world.core.enrichment import FriendsListCache
from tf2_world.core.world_state import WorldState
from tf2_world.data.steam_api import PlayerBans, PlayerSummary, TF2PlaytimeResult

LOCAL = SteamID.parse("[U:1:1000]")
X = SteamID.parse("[U:1:1001]")
Y = SteamID.parse("[U:1:1002]")


def resolved(value):
    future = Future()
    future.set_result(value)
    return future


def failed(error):
    future = Future()
    future.set_exception(error)
    return future


def http_error(status_code):
    response = requests.Response()
    response.status_code = status_code
    return requests.exceptions.HTTPError(f"{status_code} Client Error", response=response)


class FakeClock:
    def __init__(self):
        self.now = 0.0

    def __call__(self):
        return self.now


@pytest.fixture
def client():
    client = MagicMock()
    client.get_friend_list_async.return_value = resolved(set())
    client.get_player_summaries_async.side_effect = \
        lambda key, ids: resolved([PlayerSummary(sid, nickname=f"nick{sid.account_id}") for sid in ids])
    client.get_player_bans_async.side_effect = \
        lambda key, ids: resolved([PlayerBans(sid, vac_ban_count=1) for sid in ids])
    client.get_tf2_playtime_async.return_value = resolved(TF2PlaytimeResult(timedelta(hours=1500)))
    return client


def make_settings(client, api_key="KEY", **kwargs):
    settings = Settings(local_steam_id=str(LOCAL), steam_api_key=api_key, **kwargs)
    settings._http_client = client
    return settings


@pytest.fixture
def world(client):
    return WorldState(make_settings(client))


class TestLazyQueues:
    def test_records_are_not_queued_until_read(self, world, client):
        world.registry.find_or_create_player(X)
        world.update()

        assert len(world.player_summary_updates) == 0
        client.get_player_summaries_async.assert_not_called()

    def test_summary_is_fetched_and_merged(self, world, client):
        player = world.registry.find_or_create_player(X)
        assert player.get_player_summary() is None
        assert world.player_summary_updates.is_queued(X)

        world.update()  # sends
        world.update()  # merges

        assert player.get_player_summary().nickname == "nick1001"
        assert len(world.player_summary_updates) == 0
        client.get_player_summaries_async.assert_called_once_with("KEY", [X])

    def test_bans_are_fetched_and_merged(self, world):
        player = world.registry.find_or_create_player(X)
        assert player.get_player_bans() is None

        world.update()
        world.update()

        assert player.get_player_bans().is_banned

    def test_several_players_share_one_batch(self, world, client):
        for steam_id in (X, Y):
            world.registry.find_or_create_player(steam_id).get_player_summary()

        world.update()
        client.get_player_summaries_async.assert_called_once_with("KEY", [X, Y])

    def test_nothing_is_sent_without_an_api_key(self, client):
        world = WorldState(make_settings(client, api_key=""))
        world.registry.find_or_create_player(X).get_player_summary()
        world.update()

        client.get_player_summaries_async.assert_not_called()
        assert world.player_summary_updates.is_queued(X)

    def test_failed_batch_stays_queued(self, world, client, caplog):
        client.get_player_summaries_async.side_effect = lambda key, ids: failed(http_error(500))
        world.registry.find_or_create_player(X).get_player_summary()

        with caplog.at_level(logging.ERROR):
            world.update()
            world.update()

        assert world.player_summary_updates.is_queued(X)
        assert any(r.levelno == logging.ERROR for r in caplog.records)


class TestPlaytime:
    def test_fetched_on_first_read(self, world, client):
        player = world.registry.find_or_create_player(X)

        assert player.get_tf2_playtime().playtime == timedelta(hours=1500)
        assert player.get_tf2_playtime().playtime == timedelta(hours=1500)
        client.get_tf2_playtime_async.assert_called_once_with("KEY", X)

    def test_refetched_once_a_key_is_configured(self, client):
        settings = make_settings(client, api_key="")
        world = WorldState(settings)
        player = world.registry.find_or_create_player(X)

        assert player.get_tf2_playtime() is None
        client.get_tf2_playtime_async.assert_not_called()

        settings.steam_api_key = "KEY"
        assert player.get_tf2_playtime() is not None

    def test_pending_request_returns_none(self, world, client):
        client.get_tf2_playtime_async.return_value = Future()
        player = world.registry.find_or_create_player(X)

        assert player.get_tf2_playtime() is None
        assert player.get_tf2_playtime() is None
        client.get_tf2_playtime_async.assert_called_once()

    def test_failure_is_logged_and_not_retried(self, world, client, caplog):
        client.get_tf2_playtime_async.return_value = failed(http_error(403))
        player = world.registry.find_or_create_player(X)

        with caplog.at_level(logging.ERROR):
            assert player.get_tf2_playtime() is None
        assert player.get_tf2_playtime() is None

        assert "TF2 playtime" in caplog.text
        client.get_tf2_playtime_async.assert_called_once()


class TestEagerLoading:
    def test_new_records_queue_everything(self, client):
        world = WorldState(make_settings(client, lazy_load_api_data=False))
        world.registry.find_or_create_player(X)

        assert world.player_summary_updates.is_queued(X)
        assert world.player_bans_updates.is_queued(X)
        client.get_tf2_playtime_async.assert_called_once_with("KEY", X)


class TestFriendsListCache:
    @pytest.fixture
    def clock(self):
        return FakeClock()

    def make_cache(self, client, clock, **kwargs):
        registry = Registry()
        cache = FriendsListCache(make_settings(client, **kwargs), registry, refresh_interval=300, clock=clock)
        return cache, registry

    def test_refresh_replaces_snapshot(self, client, clock):
        client.get_friend_list_async.return_value = resolved({X, Y})
        cache, registry = self.make_cache(client, clock)

        cache.update()

        assert registry.friends == {X, Y}
        assert cache.contains(X)
        assert cache.friends == frozenset({X, Y})
        client.get_friend_list_async.assert_called_once_with("KEY", LOCAL)

    def test_refresh_interval(self, client, clock):
        cache, _ = self.make_cache(client, clock)

        cache.update()
        clock.now = 299
        cache.update()
        assert client.get_friend_list_async.call_count == 1

        clock.now = 301
        cache.update()
        assert client.get_friend_list_async.call_count == 2

    def test_unauthorized_is_quiet_and_keeps_snapshot(self, client, clock, caplog):
        client.get_friend_list_async.return_value = failed(http_error(401))
        cache, registry = self.make_cache(client, clock)
        registry.friends = {X}

        with caplog.at_level(logging.DEBUG, logger="tf2_world.core.enrichment"):
            cache.update()

        assert registry.friends == {X}
        assert "friends list" in caplog.text
        assert not any(r.levelno >= logging.ERROR for r in caplog.records)

    def test_other_errors_are_logged(self, client, clock, caplog):
        client.get_friend_list_async.return_value = failed(http_error(500))
        cache, _ = self.make_cache(client, clock)

        with caplog.at_level(logging.ERROR):
            cache.update()

        assert any(r.levelno == logging.ERROR for r in caplog.records)

    def test_no_request_without_local_steam_id(self, client, clock):
        cache, _ = self.make_cache(client, clock)
        cache._settings.local_steam_id = ""
        cache.update()
        client.get_friend_list_async.assert_not_called()

    def test_no_request_when_offline(self, client, clock):
        cache, _ = self.make_cache(client, clock, allow_internet_usage=False)
        cache.update()
        client.get_friend_list_async.assert_not_called()

    def test_corrupted_snapshot_is_reset(self, client, clock, caplog):
        class Broken:
            def __contains__(self, item):
                raise RuntimeError("corrupt")

        cache, registry = self.make_cache(client, clock)
        registry.friends = Broken()

        with caplog.at_level(logging.ERROR):
            assert cache.contains(X) is False

        assert registry.friends == set()
        assert "resetting" in caplog.text

    def test_player_record_uses_friends_cache(self, world, client):
        client.get_friend_list_async.return_value = resolved({X})
        world.update()

        assert world.registry.find_or_create_player(X).is_friend()
        assert not world.registry.find_or_create_player(Y).is_friend()
