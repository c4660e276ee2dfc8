"""
Cancellable contexts.

Every blocking operation of the orchestrator (process waits, RPC calls,
readiness polling) takes a ``Context``. Cancelling a context cancels all of its
children; a deadline cancels it with ``DeadlineExceeded``.

Usage:
    ctx = Context.background().with_timeout(30)
    if not endpoint.is_reachable(ctx):
        ...
"""

import threading
import time

from opdevnet.errors import ContextCancelled, DeadlineExceeded


class Context:
    def __init__(self, parent: "Context | None" = None, deadline: float | None = None):
        self._parent = parent
        self._event = threading.Event()
        self._lock = threading.Lock()
        self._children: list[Context] = []
        self._err: ContextCancelled | None = None
        self._deadline = deadline
        if parent is not None:
            parent._adopt(self)

    @classmethod
    def background(cls) -> "Context":
        """A root context that is only cancelled explicitly."""
        return cls()

    def with_cancel(self) -> "Context":
        return Context(self)

    def with_timeout(self, seconds: float) -> "Context":
        return Context(self, deadline=time.monotonic() + seconds)

    def _adopt(self, child: "Context") -> None:
        with self._lock:
            err = self._err
            if err is None:
                self._children.append(child)
        if err is not None:
            child.cancel(err)

    def _detach(self, child: "Context") -> None:
        with self._lock:
            if child in self._children:
                self._children.remove(child)

    def cancel(self, err: ContextCancelled | None = None) -> None:
        with self._lock:
            if self._err is not None:
                return
            self._err = err or ContextCancelled()
            children = list(self._children)
            self._children.clear()
        self._event.set()
        for child in children:
            child.cancel(self._err)
        if self._parent is not None:
            self._parent._detach(self)

    def deadline(self) -> float | None:
        """The earliest deadline of this context and its ancestors."""
        deadlines = []
        ctx: Context | None = self
        while ctx is not None:
            if ctx._deadline is not None:
                deadlines.append(ctx._deadline)
            ctx = ctx._parent
        return min(deadlines) if deadlines else None

    def done(self) -> bool:
        if self._event.is_set():
            return True
        deadline = self.deadline()
        if deadline is not None and time.monotonic() >= deadline:
            self.cancel(DeadlineExceeded())
            return True
        return False

    def err(self) -> ContextCancelled | None:
        """The cancellation error, or None while the context is live."""
        if not self.done():
            return None
        return self._err

    def raise_if_done(self) -> None:
        err = self.err()
        if err is not None:
            raise err

    def sleep(self, seconds: float) -> bool:
        """
        Sleep for ``seconds`` or until the context is done.

        Returns:
            True if the context is done, False if the full interval elapsed.
        """
        deadline = self.deadline()
        if deadline is not None:
            seconds = min(seconds, max(0.0, deadline - time.monotonic()))
        self._event.wait(seconds)
        return self.done()
