"""Jellyfin API client."""

import functools
import logging
import socket
from pathlib import Path
from typing import Dict, List, Optional

import requests

from jellytui.models import Credentials, HomeSections, MediaItem, UserPreferences
from jellytui.storage import CacheError, CatalogCache

logger = logging.getLogger(__name__)

ITEM_FIELDS = "Path,Overview,CommunityRating,CriticRating,RunTimeTicks"
HOME_SECTION_LIMIT = 12

# Direct-play profile sent with playback-info lookups
DEVICE_PROFILE = {
    "MaxStreamingBitrate": 140000000,
    "DirectPlayProfiles": [
        {
            "Container": "mkv,mp4,avi",
            "Type": "Video",
            "VideoCodec": "h264,hevc,mpeg4,mpeg2video",
            "AudioCodec": "aac,mp3,ac3,eac3,flac,vorbis,opus",
        }
    ],
    "TranscodingProfiles": [],
}


class JellyfinError(Exception):
    """Base error for Jellyfin API failures."""

    pass


class JellyfinAuthError(JellyfinError):
    """Authentication error."""

    pass


class JellyfinUnauthorizedError(JellyfinAuthError):
    """Invalid username or password."""

    pass


class JellyfinForbiddenError(JellyfinAuthError):
    """The server denied access to this account."""

    pass


class JellyfinConnectionError(JellyfinError):
    """Connection error."""

    pass


def reauthenticate_once(send):
    """Retry a request once with a fresh token when the server answers 401.

    A second 401 in a row is raised as JellyfinAuthError.
    """

    @functools.wraps(send)
    def wrapper(self, method, path, **kwargs):
        response = send(self, method, path, **kwargs)
        if response.status_code != 401:
            return response

        logger.info("Access token rejected for %s %s, re-authenticating", method, path)
        self.authenticate(self.username, self.password)

        response = send(self, method, path, **kwargs)
        if response.status_code == 401:
            raise JellyfinAuthError("Access token rejected after re-authentication")
        return response

    return wrapper


class JellyfinClient:
    """Client for Jellyfin REST API."""

    CLIENT_NAME = "jellytui"
    CLIENT_VERSION = "0.1.0"

    def __init__(
        self,
        server_url: str,
        cache_path: Optional[Path] = None,
        verify_ssl: bool = True,
        device_id: str = "tui",
    ):
        """Initialize Jellyfin client."""
        self.server_url = server_url.rstrip("/")
        self.cache = CatalogCache(cache_path) if cache_path else None
        self.device_id = device_id
        self.session = requests.Session()
        self.session.verify = verify_ssl

        self.username: Optional[str] = None
        self.password: Optional[str] = None
        self.credentials: Optional[Credentials] = None

        self.items: Dict[str, MediaItem] = {}
        self.home = HomeSections()

    @property
    def access_token(self) -> Optional[str]:
        return self.credentials.access_token if self.credentials else None

    @property
    def user_id(self) -> Optional[str]:
        return self.credentials.user_id if self.credentials else None

    def _get_headers(self) -> dict:
        """Build request headers."""
        # Build authorization header in MediaBrowser format
        auth_parts = [
            f'Client="{self.CLIENT_NAME}"',
            f'Device="{socket.gethostname() or "unknown-device"}"',
            f'DeviceId="{self.device_id}"',
            f'Version="{self.CLIENT_VERSION}"',
        ]
        if self.access_token:
            auth_parts.append(f'Token="{self.access_token}"')

        headers = {
            "X-Emby-Authorization": f"MediaBrowser {', '.join(auth_parts)}",
        }
        if self.access_token:
            headers["X-MediaBrowser-Token"] = self.access_token
        return headers

    def authenticate(self, username: str, password: str) -> Credentials:
        """Authenticate with Jellyfin server.

        The username and password are kept so expired tokens can be renewed.
        """
        url = f"{self.server_url}/Users/AuthenticateByName"
        self.credentials = None
        headers = self._get_headers()
        headers["Content-Type"] = "application/json"

        try:
            response = self.session.post(
                url,
                json={"Username": username, "Pw": password},
                headers=headers,
                timeout=30,
            )
        except requests.RequestException as e:
            raise JellyfinConnectionError(f"Cannot connect to Jellyfin server: {e}")

        if response.status_code == 401:
            raise JellyfinUnauthorizedError("Invalid username or password")
        if response.status_code == 403:
            raise JellyfinForbiddenError("Access to server denied")
        if response.status_code != 200:
            raise JellyfinConnectionError(
                f"Jellyfin server error: {response.status_code}"
            )

        try:
            data = response.json()
            user = data["User"]
            self.credentials = Credentials(
                access_token=data["AccessToken"],
                user_id=user["Id"],
                preferences=UserPreferences.from_api(user.get("Configuration", {})),
            )
        except (ValueError, KeyError, TypeError) as e:
            raise JellyfinConnectionError(f"Invalid authentication response: {e}")

        self.username = username
        self.password = password
        logger.info("Authenticated as user %s", self.credentials.user_id)
        return self.credentials

    @reauthenticate_once
    def _send(self, method: str, path: str, **kwargs) -> requests.Response:
        """Send one request carrying the current access token."""
        kwargs.setdefault("timeout", 60)
        try:
            return self.session.request(
                method,
                f"{self.server_url}{path}",
                headers=self._get_headers(),
                **kwargs,
            )
        except requests.RequestException as e:
            raise JellyfinConnectionError(f"Cannot connect to Jellyfin server: {e}")

    def execute(self, method: str, path: str, **kwargs) -> requests.Response:
        """Execute an authenticated API call.

        Raises:
            JellyfinAuthError: If the token is rejected even after renewal.
            JellyfinConnectionError: On network failure or error status.
        """
        if self.credentials is None:
            raise JellyfinAuthError("Not authenticated")

        response = self._send(method, path, **kwargs)
        if not 200 <= response.status_code < 300:
            raise JellyfinConnectionError(
                f"Jellyfin server error: {response.status_code} for {method} {path}"
            )
        return response

    def _get_items(self, path: str, params: dict) -> List[MediaItem]:
        response = self.execute("GET", path, params=params)
        try:
            raw_items = response.json().get("Items", [])
        except ValueError as e:
            raise JellyfinConnectionError(f"Invalid response for {path}: {e}")
        return [MediaItem.from_api(raw) for raw in raw_items]

    def test_connection(self) -> bool:
        """Test connection to Jellyfin server.

        Returns True if connection is valid, False otherwise.
        """
        try:
            self.execute("GET", "/System/Info", timeout=10)
            return True
        except JellyfinError:
            return False

    def fetch_catalog(self) -> Dict[str, MediaItem]:
        """Load the full catalog, from the disk cache when possible."""
        if self.cache is not None and self.cache.exists():
            try:
                self.items = self.cache.load()
                logger.info("Loaded %d items from cache", len(self.items))
                return self.items
            except CacheError as e:
                logger.warning("Ignoring catalog cache: %s", e)

        items = self._get_items(
            f"/Users/{self.user_id}/Items",
            {
                "Recursive": "true",
                "Fields": ITEM_FIELDS,
                "IncludeItemTypes": "Movie,Series,Episode",
                "SortBy": "SortName",
                "SortOrder": "Ascending",
            },
        )
        self.items = {item.id: item for item in items}
        logger.info("Fetched %d items from server", len(self.items))

        if self.cache is not None:
            self.cache.save(self.items)

        return self.items

    def fetch_home_sections(self) -> HomeSections:
        """Fetch resume, next up and recently added lists."""
        limit = str(HOME_SECTION_LIMIT)

        resume = self._get_items(
            f"/Users/{self.user_id}/Items/Resume",
            {"Limit": limit, "Fields": ITEM_FIELDS},
        )
        next_up = self._get_items(
            "/Shows/NextUp",
            {"UserId": self.user_id, "Limit": limit, "Fields": ITEM_FIELDS},
        )
        latest = self._get_items(
            f"/Users/{self.user_id}/Items",
            {
                "Limit": limit,
                "Fields": ITEM_FIELDS,
                "IncludeItemTypes": "Movie,Series",
                "SortBy": "DateCreated,SortName",
                "SortOrder": "Descending",
                "Recursive": "true",
            },
        )

        self.home = HomeSections(resume=resume, next_up=next_up, latest=latest)
        return self.home

    def refresh_cache(self) -> None:
        """Drop the persisted catalog and fetch everything again."""
        if self.cache is not None:
            self.cache.clear()
        self.fetch_catalog()
        self.fetch_home_sections()

    def get_item(self, item_id: str) -> Optional[MediaItem]:
        return self.items.get(item_id)

    def get_episodes_from_series(self, series_id: str) -> List[MediaItem]:
        """Return the series' episodes ordered by season then episode."""
        episodes = [
            item for item in self.items.values()
            if item.series_id == series_id and item.is_episode
        ]
        episodes.sort(key=lambda ep: (ep.season_number or 0, ep.episode_number or 0))
        return episodes

    def get_playback_info(self, item_id: str) -> int:
        """Return the runtime in ticks of the item's first media source."""
        response = self.execute(
            "POST",
            f"/Items/{item_id}/PlaybackInfo",
            json={"DeviceProfile": DEVICE_PROFILE},
        )
        try:
            sources = response.json().get("MediaSources") or []
        except ValueError as e:
            raise JellyfinConnectionError(f"Invalid playback info response: {e}")

        if not sources:
            raise JellyfinError(f"No media source available for {item_id}")
        return sources[0].get("RunTimeTicks") or 0

    def get_resume_position(self, item_id: str) -> int:
        """Return the stored playback position in ticks (0 if none)."""
        response = self.execute("GET", f"/UserItems/{item_id}/UserData")
        try:
            return response.json().get("PlaybackPositionTicks") or 0
        except ValueError as e:
            raise JellyfinConnectionError(f"Invalid user data response: {e}")

    def report_progress(
        self,
        item_id: str,
        position_ticks: int,
        is_paused: Optional[bool] = None,
    ) -> None:
        """Push playback position (and pause state) to the server."""
        payload = {"ItemId": item_id, "PositionTicks": position_ticks}
        if is_paused is not None:
            payload["IsPaused"] = is_paused
        self.execute("POST", "/Sessions/Playing/Progress", json=payload, timeout=10)

    def report_stopped(self, item_id: str, position_ticks: int) -> None:
        """Tell the server playback of the item has stopped."""
        self.execute(
            "POST",
            "/Sessions/Playing/Stopped",
            json={"ItemId": item_id, "PositionTicks": position_ticks},
            timeout=10,
        )
