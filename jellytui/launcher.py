"""Starting mpv for a catalog item."""

import logging
import os
import subprocess
import tempfile
from dataclasses import dataclass
from typing import List

from jellytui.models import Credentials, MediaItem, ticks_to_seconds
from jellytui.registry import ProcessRegistry

logger = logging.getLogger(__name__)

# mpv creates its IPC socket asynchronously after start
PLAYER_WARMUP_SECONDS = 2.0


class PlayerLaunchError(Exception):
    """The player process could not be started."""

    pass


def socket_path_for(item_id: str) -> str:
    """IPC socket path, unique per item."""
    return os.path.join(tempfile.gettempdir(), f"mpv-socket-{item_id}")


def build_player_args(
    item: MediaItem,
    position_ticks: int,
    runtime_ticks: int,
    credentials: Credentials,
    stream_url: str,
    socket_path: str,
    player: str = "mpv",
) -> List[str]:
    """Build the mpv command line for playing an item."""
    args = [
        player,
        stream_url,
        "--no-cache-pause",
        "--demuxer-lavf-probe-info=yes",
        "--demuxer-lavf-analyzeduration=10",
        f"--length={ticks_to_seconds(runtime_ticks)}",
        f"--force-media-title={item.display_title()}",
        f"--http-header-fields=X-MediaBrowser-Token: {credentials.access_token}",
        f"--input-ipc-server={socket_path}",
    ]

    prefs = credentials.preferences
    if not prefs.play_default_audio_track and prefs.audio_language:
        args.append(f"--alang={prefs.audio_language}")

    if prefs.subtitle_language == "none":
        args.append("--no-sub")
    else:
        args.append(f"--slang={prefs.subtitle_language}")
        args.append("--sub-auto=fuzzy")

    start_seconds = ticks_to_seconds(position_ticks)
    if start_seconds > 0:
        args.append(f"--start={start_seconds}")

    return args


@dataclass
class PlaybackSession:
    """One running player instance for one item."""

    item: MediaItem
    socket_path: str
    process: subprocess.Popen

    def remove_socket(self) -> None:
        try:
            os.remove(self.socket_path)
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning("Could not remove socket %s: %s", self.socket_path, e)


class PlayerLauncher:
    """Spawns detached mpv processes and records them in a registry."""

    def __init__(self, server_url: str, registry: ProcessRegistry, player: str = "mpv"):
        self.server_url = server_url.rstrip("/")
        self.registry = registry
        self.player = player

    def stream_url(self, item_id: str) -> str:
        return (
            f"{self.server_url}/Videos/{item_id}/stream"
            f"?static=true&mediaSourceId={item_id}"
        )

    def launch(
        self,
        item: MediaItem,
        position_ticks: int,
        runtime_ticks: int,
        credentials: Credentials,
    ) -> PlaybackSession:
        """Start the player for an item.

        Callers should wait PLAYER_WARMUP_SECONDS before connecting to the
        session's socket.

        Raises:
            PlayerLaunchError: If the process cannot be spawned.
        """
        socket_path = socket_path_for(item.id)
        args = build_player_args(
            item,
            position_ticks,
            runtime_ticks,
            credentials,
            self.stream_url(item.id),
            socket_path,
            player=self.player,
        )

        try:
            process = subprocess.Popen(
                args,
                stdin=subprocess.DEVNULL,
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
                start_new_session=True,
            )
        except OSError as e:
            raise PlayerLaunchError(f"Cannot start {self.player}: {e}")

        self.registry.register(process)
        logger.info("Started %s (pid %s) for %s", self.player, process.pid, item.id)
        return PlaybackSession(item=item, socket_path=socket_path, process=process)
