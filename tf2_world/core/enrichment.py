"""
Steam Web API enrichment for the player registry.

Player summaries and bans go through batched AsyncUpdateQueues. The local
player's friends list is a separate cache refreshed on a fixed interval.
"""
import logging
import time
from typing import Callable, Iterator, List, Optional

from ..data.steam_api import PlayerBans, PlayerSummary, is_http_status
from .domain.identity import SteamID
from .domain.registry import Registry
from .update_queue import AsyncUpdateQueue

logger = logging.getLogger(__name__)

FRIENDS_REFRESH_INTERVAL = 5 * 60


class _SteamAPIUpdateQueue(AsyncUpdateQueue):
    """Shared plumbing: only sends when an API key and HTTP client exist."""

    def __init__(self, settings, registry: Registry, **kwargs):
        super().__init__(**kwargs)
        self._settings = settings
        self._registry = registry

    def _get_client(self):
        if not self._settings.get_steam_api_key():
            return None
        return self._settings.get_http_client()


class PlayerSummaryUpdateQueue(_SteamAPIUpdateQueue):
    def send_request(self, steam_ids: List[SteamID]):
        client = self._get_client()
        if client is None:
            return None
        return client.get_player_summaries_async(self._settings.get_steam_api_key(), steam_ids)

    def on_data_ready(self, response: List[PlayerSummary]) -> Iterator[SteamID]:
        logger.debug(f"[SteamAPI] Received {len(response)} player summaries")
        for summary in response:
            self._registry.find_or_create_player(summary.steam_id).player_summary = summary
            yield summary.steam_id


class PlayerBansUpdateQueue(_SteamAPIUpdateQueue):
    def send_request(self, steam_ids: List[SteamID]):
        client = self._get_client()
        if client is None:
            return None
        return client.get_player_bans_async(self._settings.get_steam_api_key(), steam_ids)

    def on_data_ready(self, response: List[PlayerBans]) -> Iterator[SteamID]:
        logger.debug(f"[SteamAPI] Received {len(response)} player bans")
        for bans in response:
            self._registry.find_or_create_player(bans.steam_id).player_bans = bans
            yield bans.steam_id


class FriendsListCache:
    """
    The local player's Steam friends, refreshed at most once per interval.

    The snapshot lives on the registry and is replaced wholesale when a
    refresh succeeds. Failed refreshes keep the previous snapshot.
    """

    def __init__(self, settings, registry: Registry, refresh_interval: float = FRIENDS_REFRESH_INTERVAL,
                 clock: Callable[[], float] = time.monotonic):
        self._settings = settings
        self._registry = registry
        self._refresh_interval = refresh_interval
        self._clock = clock
        self._last_update: Optional[float] = None
        self._future = None

    def update(self):
        client = self._settings.get_http_client()
        api_key = self._settings.get_steam_api_key()
        local_id = self._settings.get_local_steam_id()
        due = self._last_update is None or (self._clock() - self._last_update) > self._refresh_interval

        if client is not None and api_key and local_id is not None and due and self._future is None:
            self._last_update = self._clock()
            self._future = client.get_friend_list_async(api_key, local_id)

        if self._future is not None and self._future.done():
            future, self._future = self._future, None
            try:
                self._registry.friends = set(future.result())
                logger.debug(f"[SteamAPI] Friends list updated: {len(self._registry.friends)} friend(s)")
            except Exception as e:
                if is_http_status(e, 401):
                    logger.debug("Failed to access friends list (our friends list is private/friends only, "
                                 "and the Steam API is bugged)")
                else:
                    logger.error(f"Failed to update our friends list: {e}", exc_info=True)

    def contains(self, steam_id: SteamID) -> bool:
        try:
            return steam_id in self._registry.friends
        except Exception as e:
            logger.error(f"Failed to access friends list, resetting it: {e}", exc_info=True)
            self._registry.friends = set()
            return False

    @property
    def friends(self) -> frozenset:
        return frozenset(self._registry.friends)
