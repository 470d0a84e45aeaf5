"""
Steam Web API client.

Every request runs on a small thread pool and is returned as a
concurrent.futures.Future, so the world state can poll `done()` from its tick
without ever blocking. HTTP failures surface as requests' HTTPError when the
future's result is taken; the status code is on `e.response.status_code`.
"""
import logging
from concurrent.futures import Future, ThreadPoolExecutor
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Optional, Set

import requests

from ..core.domain.identity import SteamID

logger = logging.getLogger(__name__)

STEAM_API_BASE_URL = "https://api.steampowered.com"
TF2_APP_ID = 440
MAX_STEAM_IDS_PER_REQUEST = 100


@dataclass
class PlayerSummary:
    """Public profile data from ISteamUser/GetPlayerSummaries."""

    steam_id: SteamID
    nickname: str = ""
    real_name: str = ""
    profile_url: str = ""
    avatar_hash: str = ""
    avatar_url: str = ""
    persona_state: int = 0
    community_visibility_state: int = 0
    profile_configured: bool = False
    creation_time: Optional[datetime] = None
    last_logoff: Optional[datetime] = None
    country_code: str = ""
    primary_clan_id: str = ""

    @classmethod
    def from_json(cls, data: Dict) -> "PlayerSummary":
        def _time(key):
            value = data.get(key)
            return datetime.fromtimestamp(value) if value else None

        return cls(
            steam_id=SteamID.parse(str(data["steamid"])),
            nickname=data.get("personaname", ""),
            real_name=data.get("realname", ""),
            profile_url=data.get("profileurl", ""),
            avatar_hash=data.get("avatarhash", ""),
            avatar_url=data.get("avatarfull", ""),
            persona_state=data.get("personastate", 0),
            community_visibility_state=data.get("communityvisibilitystate", 0),
            profile_configured=bool(data.get("profilestate", 0)),
            creation_time=_time("timecreated"),
            last_logoff=_time("lastlogoff"),
            country_code=data.get("loccountrycode", ""),
            primary_clan_id=data.get("primaryclanid", ""),
        )

    def get_account_age(self, now: Optional[datetime] = None) -> Optional[timedelta]:
        if self.creation_time is None:
            return None
        return (now or datetime.now()) - self.creation_time


@dataclass
class PlayerBans:
    """Ban record from ISteamUser/GetPlayerBans."""

    steam_id: SteamID
    community_banned: bool = False
    vac_ban_count: int = 0
    game_ban_count: int = 0
    days_since_last_ban: int = 0
    economy_ban: str = "none"

    @classmethod
    def from_json(cls, data: Dict) -> "PlayerBans":
        return cls(
            steam_id=SteamID.parse(str(data["SteamId"])),
            community_banned=bool(data.get("CommunityBanned", False)),
            vac_ban_count=int(data.get("NumberOfVACBans", 0)),
            game_ban_count=int(data.get("NumberOfGameBans", 0)),
            days_since_last_ban=int(data.get("DaysSinceLastBan", 0)),
            economy_ban=data.get("EconomyBan", "none"),
        )

    @property
    def is_banned(self) -> bool:
        return self.community_banned or self.vac_ban_count > 0 or self.game_ban_count > 0


@dataclass
class TF2PlaytimeResult:
    playtime: timedelta


def _join_steam_ids(steam_ids: Iterable[SteamID]) -> str:
    ids = list(steam_ids)
    if len(ids) > MAX_STEAM_IDS_PER_REQUEST:
        raise ValueError(f"At most {MAX_STEAM_IDS_PER_REQUEST} SteamIDs per request, got {len(ids)}")
    return ",".join(str(sid.id64) for sid in ids)


class SteamAPIClient:
    """
    Thin Steam Web API wrapper.

    The plain methods block and are what the worker threads run; the
    `*_async` variants submit them to the pool and return a Future.

    Args:
        session: requests session to use (one is created if omitted)
        max_workers: Size of the request thread pool
        timeout: Per-request timeout in seconds
    """

    def __init__(self, session: Optional[requests.Session] = None, max_workers: int = 4, timeout: float = 10):
        self.session = session or requests.Session()
        self.timeout = timeout
        self._executor = ThreadPoolExecutor(max_workers=max_workers, thread_name_prefix="steam-api")

    def _get_json(self, path: str, params: Dict) -> Dict:
        url = f"{STEAM_API_BASE_URL}/{path}"
        logger.debug(f"[SteamAPI] GET {path}")
        response = self.session.get(url, params=params, timeout=self.timeout)
        response.raise_for_status()
        return response.json()

    def get_friend_list(self, api_key: str, steam_id: SteamID) -> Set[SteamID]:
        data = self._get_json("ISteamUser/GetFriendList/v0001/", {
            "key": api_key,
            "steamid": str(steam_id.id64),
            "relationship": "friend",
        })
        friends = data.get("friendslist", {}).get("friends", [])
        return {SteamID.parse(str(f["steamid"])) for f in friends}

    def get_player_summaries(self, api_key: str, steam_ids: Iterable[SteamID]) -> List[PlayerSummary]:
        data = self._get_json("ISteamUser/GetPlayerSummaries/v0002/", {
            "key": api_key,
            "steamids": _join_steam_ids(steam_ids),
        })
        return [PlayerSummary.from_json(p) for p in data.get("response", {}).get("players", [])]

    def get_player_bans(self, api_key: str, steam_ids: Iterable[SteamID]) -> List[PlayerBans]:
        data = self._get_json("ISteamUser/GetPlayerBans/v1/", {
            "key": api_key,
            "steamids": _join_steam_ids(steam_ids),
        })
        return [PlayerBans.from_json(p) for p in data.get("players", [])]

    def get_tf2_playtime(self, api_key: str, steam_id: SteamID) -> Optional[TF2PlaytimeResult]:
        """
        TF2 playtime from IPlayerService/GetOwnedGames.

        Returns:
            None if the profile hides its game details
        """
        data = self._get_json("IPlayerService/GetOwnedGames/v0001/", {
            "key": api_key,
            "steamid": str(steam_id.id64),
            "include_played_free_games": 1,
            "appids_filter[0]": TF2_APP_ID,
            "format": "json",
        })
        for game in data.get("response", {}).get("games", []):
            if game.get("appid") == TF2_APP_ID:
                return TF2PlaytimeResult(timedelta(minutes=game.get("playtime_forever", 0)))
        return None

    def get_friend_list_async(self, api_key: str, steam_id: SteamID) -> Future:
        return self._executor.submit(self.get_friend_list, api_key, steam_id)

    def get_player_summaries_async(self, api_key: str, steam_ids: Iterable[SteamID]) -> Future:
        steam_ids = list(steam_ids)
        _join_steam_ids(steam_ids)  # reject oversized batches before queuing
        return self._executor.submit(self.get_player_summaries, api_key, steam_ids)

    def get_player_bans_async(self, api_key: str, steam_ids: Iterable[SteamID]) -> Future:
        steam_ids = list(steam_ids)
        _join_steam_ids(steam_ids)
        return self._executor.submit(self.get_player_bans, api_key, steam_ids)

    def get_tf2_playtime_async(self, api_key: str, steam_id: SteamID) -> Future:
        return self._executor.submit(self.get_tf2_playtime, api_key, steam_id)

    def shutdown(self):
        self._executor.shutdown(wait=False)
        self.session.close()


def is_http_status(error: BaseException, status_code: int) -> bool:
    """True if `error` is a requests HTTPError carrying `status_code`."""
    return (isinstance(error, requests.exceptions.HTTPError)
            and error.response is not None
            and error.response.status_code == status_code)
