"""Tracking of spawned player processes."""

import logging
import subprocess
import threading
from typing import List

logger = logging.getLogger(__name__)


class ProcessRegistry:
    """Lock-guarded list of player processes, terminated together at shutdown."""

    def __init__(self, wait_timeout: float = 5.0):
        self.wait_timeout = wait_timeout
        self._lock = threading.Lock()
        self._processes: List[subprocess.Popen] = []

    def __len__(self) -> int:
        with self._lock:
            return len(self._processes)

    def register(self, process: subprocess.Popen) -> None:
        """Track a new process, dropping any that have already exited."""
        with self._lock:
            self._processes = [p for p in self._processes if p.poll() is None]
            self._processes.append(process)
            logger.debug("Registered player process %s", process.pid)

    def cleanup(self) -> None:
        """Terminate every tracked process and forget about them.

        A process still running after ``wait_timeout`` is killed. A process
        that fails to stop is logged and skipped.
        """
        with self._lock:
            for process in self._processes:
                try:
                    self._stop(process)
                except (OSError, subprocess.SubprocessError) as e:
                    logger.warning(
                        "Failed to terminate player process %s: %s", process.pid, e
                    )
            self._processes.clear()

    def _stop(self, process: subprocess.Popen) -> None:
        process.terminate()
        try:
            process.wait(timeout=self.wait_timeout)
        except subprocess.TimeoutExpired:
            logger.warning("Player process %s ignored terminate, killing", process.pid)
            process.kill()
            process.wait()
