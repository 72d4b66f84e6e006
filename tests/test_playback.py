"""Tests for playing a single item end to end."""

import json
import os
import shutil
import socket
import tempfile
import threading

import pytest

from jellytui.launcher import PLAYER_WARMUP_SECONDS, PlaybackSession
from jellytui.models import Credentials, MediaItem
from jellytui.playback import play_item

MOVIE = MediaItem(id="movie1", name="Inception", item_type="Movie", year=2010)


class FakeClient:
    credentials = Credentials(access_token="token123", user_id="user456")

    def __init__(self):
        self.stopped = []

    def get_playback_info(self, item_id):
        return 72000000000

    def get_resume_position(self, item_id):
        return 600000000

    def report_progress(self, item_id, position_ticks, is_paused=None):
        pass

    def report_stopped(self, item_id, position_ticks):
        self.stopped.append((item_id, position_ticks))

    def get_episodes_from_series(self, series_id):
        return []


class FakeLauncher:
    def __init__(self, socket_path):
        self.socket_path = socket_path
        self.launched = []

    def launch(self, item, position_ticks, runtime_ticks, credentials):
        self.launched.append((item.id, position_ticks, runtime_ticks, credentials))
        return PlaybackSession(item=item, socket_path=self.socket_path, process=None)


@pytest.fixture
def socket_path():
    path = tempfile.mkdtemp(prefix="jt-")
    yield os.path.join(path, "mpv-socket-movie1")
    shutil.rmtree(path, ignore_errors=True)


def serve_one(path, lines):
    server = socket.socket(socket.AF_UNIX, socket.SOCK_STREAM)
    server.bind(path)
    server.listen(1)

    def run():
        conn, _ = server.accept()
        with conn:
            conn.recv(4096)
            for line in lines:
                conn.sendall((json.dumps(line) + "\n").encode("utf-8"))
        server.close()

    thread = threading.Thread(target=run, daemon=True)
    thread.start()
    return thread


def test_play_item_runs_session(socket_path):
    """Runtime and resume position feed the launcher, then the monitor runs."""
    thread = serve_one(socket_path, [{"event": "end-file", "reason": "eof"}])
    client = FakeClient()
    launcher = FakeLauncher(socket_path)
    sleeps = []

    result = play_item(client, launcher, MOVIE, sleep=sleeps.append)
    thread.join(timeout=5)

    assert result is None
    assert launcher.launched == [
        ("movie1", 600000000, 72000000000, client.credentials)
    ]
    assert sleeps[0] == PLAYER_WARMUP_SECONDS
    assert client.stopped == [("movie1", 0)]
    assert not os.path.exists(socket_path)


def test_play_item_interrupted_during_warmup(socket_path):
    """The socket file is removed even if the warm-up is interrupted."""
    open(socket_path, "w").close()

    def interrupt(seconds):
        raise KeyboardInterrupt

    with pytest.raises(KeyboardInterrupt):
        play_item(FakeClient(), FakeLauncher(socket_path), MOVIE, sleep=interrupt)

    assert not os.path.exists(socket_path)


def test_play_item_player_never_starts(socket_path):
    """A player that never opens its socket yields no next item."""
    result = play_item(
        FakeClient(),
        FakeLauncher(socket_path),
        MOVIE,
        sleep=lambda seconds: None,
        connect_timeout=0.1,
    )
    assert result is None
