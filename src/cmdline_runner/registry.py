"""Registry of running child processes.

Every supervisor registers its child's PID right after spawn and removes
it once the process has been reaped. The registry exists so that a
parent shutting down can deliver a signal to every child it started
(see kill_all() and SignalManager).

A process normally uses the single instance returned by
default_registry(); tests and embedders can pass their own PidRegistry to
keep runs isolated.
"""

from __future__ import annotations

import logging
import os
import signal
import subprocess
import sys
import threading
from typing import Optional

__all__ = ["PidRegistry", "default_registry"]

logger = logging.getLogger(__name__)

IS_WINDOWS = sys.platform == "win32"


class PidRegistry:
    """Thread-safe set of tracked child PIDs.

    The lock is only held for in-memory set operations, never while
    waiting on a process or delivering a signal.

    Example:
        ```python
        registry = PidRegistry()
        registry.register(proc.pid)
        try:
            await proc.wait()
        finally:
            registry.unregister(proc.pid)

        # on shutdown
        registry.kill_all(signal.SIGTERM)
        ```
    """

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._pids: set[int] = set()

    def register(self, pid: int) -> None:
        """Start tracking a PID.

        Raises:
            ValueError: If the PID is already tracked
        """
        with self._lock:
            if pid in self._pids:
                raise ValueError(f"pid {pid} already registered")
            self._pids.add(pid)
        logger.debug(f"Registered pid={pid}")

    def unregister(self, pid: int) -> bool:
        """Stop tracking a PID.

        Returns:
            Whether the PID was tracked
        """
        with self._lock:
            if pid not in self._pids:
                return False
            self._pids.remove(pid)
        logger.debug(f"Unregistered pid={pid}")
        return True

    def pids(self) -> list[int]:
        """Snapshot of tracked PIDs, sorted."""
        with self._lock:
            return sorted(self._pids)

    def kill_all(self, sig: Optional[int] = None) -> int:
        """Deliver a termination signal to every tracked child.

        POSIX sends ``sig`` (default SIGTERM) with os.kill. Windows ignores
        ``sig`` and runs ``taskkill /F /T`` for each PID. Failures are
        logged per PID and never raised.

        Returns:
            Number of PIDs the signal was delivered to
        """
        pids = self.pids()
        delivered = 0
        for pid in pids:
            if IS_WINDOWS:
                ok = self._taskkill(pid)
            else:
                ok = self._posix_kill(pid, signal.SIGTERM if sig is None else sig)
            if ok:
                delivered += 1
        if pids:
            logger.debug(f"kill_all delivered to {delivered}/{len(pids)} process(es)")
        return delivered

    @staticmethod
    def _posix_kill(pid: int, sig: int) -> bool:
        logger.debug(f"{signal.Signals(sig).name}: {pid}")
        try:
            os.kill(pid, sig)
            return True
        except OSError as e:
            logger.debug(f"Failed to kill cmd {pid}: {e}")
            return False

    @staticmethod
    def _taskkill(pid: int) -> bool:
        try:
            subprocess.Popen(
                ["taskkill", "/F", "/T", "/PID", str(pid)],
                stdout=subprocess.DEVNULL,
                stderr=subprocess.DEVNULL,
            )
            return True
        except OSError as e:
            logger.warning(f"Failed to kill cmd {pid}: {e}")
            return False

    def __len__(self) -> int:
        with self._lock:
            return len(self._pids)

    def __contains__(self, pid: object) -> bool:
        with self._lock:
            return pid in self._pids


_default_registry: PidRegistry | None = None
_default_lock = threading.Lock()


def default_registry() -> PidRegistry:
    """Process-wide registry used when no registry is injected."""
    global _default_registry
    with _default_lock:
        if _default_registry is None:
            _default_registry = PidRegistry()
        return _default_registry
