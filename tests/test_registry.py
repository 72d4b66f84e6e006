"""Tests for the player process registry."""

import subprocess
import sys

from jellytui.registry import ProcessRegistry


class FakeProcess:
    """Stand-in for subprocess.Popen recording lifecycle calls."""

    def __init__(self, pid, fail_terminate=False):
        self.pid = pid
        self.fail_terminate = fail_terminate
        self.terminated = False
        self.waited = False

    def terminate(self):
        if self.fail_terminate:
            raise PermissionError("not allowed")
        self.terminated = True

    def poll(self):
        return 0 if self.terminated else None

    def wait(self, timeout=None):
        self.waited = True
        return 0


def test_cleanup_terminates_and_waits():
    """cleanup() terminates every process and empties the registry."""
    registry = ProcessRegistry()
    procs = [FakeProcess(1), FakeProcess(2)]
    for proc in procs:
        registry.register(proc)
    assert len(registry) == 2

    registry.cleanup()

    assert all(p.terminated and p.waited for p in procs)
    assert len(registry) == 0


def test_cleanup_continues_after_failure(caplog):
    """A failing process is logged and the rest are still terminated."""
    registry = ProcessRegistry()
    bad = FakeProcess(1, fail_terminate=True)
    good = FakeProcess(2)
    registry.register(bad)
    registry.register(good)

    registry.cleanup()

    assert good.terminated is True
    assert len(registry) == 0
    assert "Failed to terminate player process 1" in caplog.text


def test_cleanup_empty_and_repeated():
    """cleanup() on an empty registry, or twice, is a no-op."""
    registry = ProcessRegistry()
    registry.cleanup()

    registry.register(FakeProcess(1))
    registry.cleanup()
    registry.cleanup()

    assert len(registry) == 0


def test_cleanup_real_process():
    """A real child process is stopped by cleanup()."""
    proc = subprocess.Popen(
        [sys.executable, "-c", "import time; time.sleep(60)"],
        stdout=subprocess.DEVNULL,
        stderr=subprocess.DEVNULL,
    )
    registry = ProcessRegistry()
    registry.register(proc)

    registry.cleanup()

    assert proc.poll() is not None


def test_cleanup_kills_process_ignoring_terminate(caplog):
    """A player that ignores SIGTERM is killed once the wait times out."""
    proc = subprocess.Popen(
        ["sh", "-c", "trap '' TERM; echo ready; exec sleep 30"],
        stdout=subprocess.PIPE,
        stderr=subprocess.DEVNULL,
    )
    # Wait for the trap to be installed before asking it to stop
    assert proc.stdout.readline() == b"ready\n"
    registry = ProcessRegistry(wait_timeout=0.5)
    registry.register(proc)

    registry.cleanup()

    assert proc.poll() is not None
    assert len(registry) == 0
    assert "ignored terminate, killing" in caplog.text
    proc.stdout.close()


def test_register_prunes_exited_processes():
    """Processes that already exited are dropped when a new one registers."""
    registry = ProcessRegistry()
    finished = FakeProcess(1)
    finished.terminated = True
    running = FakeProcess(2)
    registry.register(finished)
    registry.register(running)

    registry.register(FakeProcess(3))

    assert len(registry) == 2
