"""Observing an mpv session over its JSON IPC socket.

The monitor connects to the socket mpv was started with, subscribes to
``playback-time``, ``pause`` and ``eof-reached``, and mirrors what it sees to
the Jellyfin server until the player goes away. When the item played through to
the end, the next episode of the series (if any) is returned so the caller can
continue with it.
"""

import enum
import json
import logging
import socket
import time
from typing import Callable, Iterable, Optional

from jellytui.jellyfin_client import JellyfinClient, JellyfinError
from jellytui.launcher import PlaybackSession
from jellytui.models import MediaItem, TICKS_PER_SECOND, seconds_to_ticks

logger = logging.getLogger(__name__)

CONNECT_TIMEOUT = 10.0
CONNECT_RETRY_INTERVAL = 0.05

# Position pushes need both enough media progress and enough wall time
MIN_POSITION_DELTA_TICKS = 5 * TICKS_PER_SECOND
MIN_REPORT_INTERVAL = 10.0

OBSERVED_PROPERTIES = ["playback-time", "pause", "eof-reached"]


class MonitorState(enum.Enum):
    CONNECTING = "connecting"
    OBSERVING = "observing"
    FINISHED = "finished"


def resolve_next_episode(
    episodes: Iterable[MediaItem], current: MediaItem
) -> Optional[MediaItem]:
    """Find the episode that follows ``current``.

    Prefers the next episode in the same season, then the first episode of the
    following season.
    """
    if not current.is_episode or current.series_id is None:
        return None

    season = current.season_number or 0
    episode = current.episode_number or 0
    candidates = [
        ep for ep in episodes
        if ep.series_id == current.series_id and ep.id != current.id
    ]

    for ep in candidates:
        if ep.season_number == current.season_number and ep.episode_number == episode + 1:
            return ep
    for ep in candidates:
        if ep.season_number == season + 1 and ep.episode_number == 1:
            return ep
    return None


class ProgressThrottle:
    """Decides when a playback-time change is worth pushing to the server."""

    def __init__(
        self,
        min_delta_ticks: int = MIN_POSITION_DELTA_TICKS,
        min_interval: float = MIN_REPORT_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
    ):
        self.min_delta_ticks = min_delta_ticks
        self.min_interval = min_interval
        self.clock = clock
        self.last_position = 0
        self.last_update = clock()

    def should_report(self, position_ticks: int) -> bool:
        if abs(position_ticks - self.last_position) < self.min_delta_ticks:
            return False
        return self.clock() - self.last_update >= self.min_interval

    def mark_reported(self, position_ticks: int) -> None:
        self.last_position = position_ticks
        self.last_update = self.clock()


class PlaybackMonitor:
    """Drives one playback session from socket connect to teardown."""

    def __init__(
        self,
        client: JellyfinClient,
        session: PlaybackSession,
        connect_timeout: float = CONNECT_TIMEOUT,
        retry_interval: float = CONNECT_RETRY_INTERVAL,
        clock: Callable[[], float] = time.monotonic,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.client = client
        self.session = session
        self.item = session.item
        self.connect_timeout = connect_timeout
        self.retry_interval = retry_interval
        self.clock = clock
        self.sleep = sleep

        self.state = MonitorState.CONNECTING
        self.throttle = ProgressThrottle(clock=clock)
        self.position_ticks = 0

    def run(self) -> Optional[MediaItem]:
        """Monitor until the session ends.

        Returns the next episode when the item played to the end, else None.
        The socket file is always removed before returning.
        """
        next_item = None
        try:
            sock = self._connect()
            if sock is None:
                logger.warning(
                    "No player socket at %s after %.1fs",
                    self.session.socket_path, self.connect_timeout,
                )
                return None

            with sock:
                self.state = MonitorState.OBSERVING
                try:
                    self._subscribe(sock)
                    next_item = self._observe(sock)
                except OSError as e:
                    # A crashed or killed player ends the session like a quit
                    logger.warning("Lost player connection for %s: %s", self.item.id, e)
        finally:
            self.state = MonitorState.FINISHED
            self._report_stopped()
            self.session.remove_socket()

        return next_item

    def _connect(self) -> Optional[socket.socket]:
        deadline = self.clock() + self.connect_timeout
        while True:
            sock = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
            try:
                sock.connect(self.session.socket_path)
                logger.debug("Connected to %s", self.session.socket_path)
                return sock
            except OSError:
                sock.close()
            if self.clock() >= deadline:
                return None
            self.sleep(self.retry_interval)

    def _subscribe(self, sock: socket.socket) -> None:
        commands = [
            {"command": ["observe_property", tag, name]}
            for tag, name in enumerate(OBSERVED_PROPERTIES, start=1)
        ]
        payload = "".join(json.dumps(cmd) + "\n" for cmd in commands)
        sock.sendall(payload.encode("utf-8"))

    def _observe(self, sock: socket.socket) -> Optional[MediaItem]:
        with sock.makefile("rb") as stream:
            for line in stream:
                try:
                    message = json.loads(line)
                except ValueError:
                    logger.debug("Skipping malformed IPC frame: %r", line[:200])
                    continue
                if not isinstance(message, dict):
                    continue

                event = message.get("event")
                if event == "property-change":
                    self._on_property_change(message.get("name"), message.get("data"))
                elif event == "end-file" and message.get("reason") == "eof":
                    logger.info("Reached end of %s", self.item.id)
                    return resolve_next_episode(
                        self.client.get_episodes_from_series(self.item.series_id)
                        if self.item.series_id else [],
                        self.item,
                    )

        logger.info("Player closed for %s", self.item.id)
        return None

    def _on_property_change(self, name, data) -> None:
        if name == "pause" and isinstance(data, bool):
            self._push_progress(self.position_ticks, is_paused=data)
            return

        # playback-time is null while nothing is loaded
        is_number = isinstance(data, (int, float)) and not isinstance(data, bool)
        if name == "playback-time" and is_number:
            position_ticks = seconds_to_ticks(data)
            self.position_ticks = position_ticks
            if self.throttle.should_report(position_ticks):
                self._push_progress(position_ticks)
                self.throttle.mark_reported(position_ticks)

    def _push_progress(self, position_ticks: int, is_paused: Optional[bool] = None) -> None:
        try:
            self.client.report_progress(self.item.id, position_ticks, is_paused=is_paused)
        except JellyfinError as e:
            logger.warning("Failed to update progress for %s: %s", self.item.id, e)

    def _report_stopped(self) -> None:
        try:
            self.client.report_stopped(self.item.id, self.position_ticks)
        except JellyfinError as e:
            logger.warning("Failed to report stop for %s: %s", self.item.id, e)
