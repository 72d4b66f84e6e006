"""Playing one catalog item from lookup to teardown."""

import logging
import time
from typing import Callable, Optional

from jellytui.jellyfin_client import JellyfinClient
from jellytui.launcher import PLAYER_WARMUP_SECONDS, PlayerLauncher
from jellytui.models import MediaItem
from jellytui.monitor import PlaybackMonitor

logger = logging.getLogger(__name__)


def play_item(
    client: JellyfinClient,
    launcher: PlayerLauncher,
    item: MediaItem,
    sleep: Callable[[float], None] = time.sleep,
    **monitor_options,
) -> Optional[MediaItem]:
    """Play an item and block until the player session ends.

    Returns the next episode when the item was watched to the end.

    Raises:
        JellyfinError: If the item's playback info cannot be fetched.
        PlayerLaunchError: If the player cannot be started.
    """
    runtime_ticks = client.get_playback_info(item.id)
    position_ticks = client.get_resume_position(item.id)
    logger.info("Playing %s from %d ticks", item.id, position_ticks)

    session = launcher.launch(item, position_ticks, runtime_ticks, client.credentials)
    try:
        sleep(PLAYER_WARMUP_SECONDS)
        monitor = PlaybackMonitor(client, session, sleep=sleep, **monitor_options)
        return monitor.run()
    finally:
        session.remove_socket()
