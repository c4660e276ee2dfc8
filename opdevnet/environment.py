"""
Lifecycle management for a devnet run.

An ``Environment`` is a LIFO stack of cleanups plus a place to launch
background tasks. Every resource created during bring-up (listeners, stores,
log files, processes) registers its release here, so ``release()`` tears the
whole devnet down no matter which stage failed.
"""

import logging
import threading
from collections.abc import Callable
from dataclasses import dataclass

logger = logging.getLogger(__name__)

JOIN_TIMEOUT = 10


@dataclass
class CleanupError:
    """A cleanup that raised during ``release()``."""

    label: str
    error: BaseException

    def __str__(self) -> str:
        return f"{self.label}: {self.error}"


class Environment:
    """
    Usage:
        env = Environment()
        try:
            sock = ...
            env.defer_err("close listener", sock.close)
            env.go(monitor, name="anvil-monitor")
        finally:
            for err in env.release():
                print(err)
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._cleanups: list[tuple[str, Callable[[], object]]] = []
        self._threads: list[threading.Thread] = []
        self._released = False

    @property
    def released(self) -> bool:
        return self._released

    def defer_err(self, label: str, fn: Callable[[], object]) -> None:
        """Register a cleanup, run in reverse registration order on release."""
        with self._lock:
            if self._released:
                raise RuntimeError(f"environment already released, cannot defer '{label}'")
            self._cleanups.append((label, fn))

    def go(self, fn: Callable[[], object], name: str | None = None) -> threading.Thread:
        """
        Run ``fn`` on a background thread.

        Exceptions escaping ``fn`` are logged. Reporting failures to an event
        listener is the caller's responsibility.
        """

        def _supervised():
            try:
                fn()
            except Exception:
                logger.exception(f"background task '{thread.name}' failed")

        thread = threading.Thread(target=_supervised, name=name, daemon=True)
        with self._lock:
            if self._released:
                raise RuntimeError("environment already released, cannot start background task")
            self._threads.append(thread)
        thread.start()
        return thread

    def release(self) -> list[CleanupError]:
        """
        Run every registered cleanup exactly once, newest first.

        Cleanup failures are logged and returned, never raised, so they cannot
        mask the error that triggered the release.
        """
        with self._lock:
            if self._released:
                return []
            self._released = True
            cleanups = list(reversed(self._cleanups))
            self._cleanups.clear()
            threads = list(self._threads)

        errors: list[CleanupError] = []
        for label, fn in cleanups:
            try:
                fn()
            except Exception as e:
                logger.warning(f"cleanup '{label}' failed: {e}")
                errors.append(CleanupError(label, e))

        current = threading.current_thread()
        for thread in threads:
            if thread is current:
                continue
            thread.join(JOIN_TIMEOUT)
            if thread.is_alive():
                logger.warning(f"background task '{thread.name}' still running after release")

        return errors
