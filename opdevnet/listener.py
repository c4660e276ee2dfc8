"""
Event listener capabilities and the router that delivers asynchronous
failures to them.

Background monitors never call listener callbacks directly. They post tagged
results to an ``ErrorRouter``, whose single consumer thread invokes the
callbacks one at a time.
"""

import logging
import queue
import threading
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, Protocol

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class OPLogRecord:
    """A log line emitted by one of the downstream OP stack processes."""

    source: str
    level: str
    msg: str
    attrs: dict[str, Any] = field(default_factory=dict)
    raw: str = ""


class EventListener(Protocol):
    """
    Receives non-fatal, asynchronous events from a running devnet.

    Every callback receives a non-None value and must return promptly.
    """

    def on_anvil_err(self, err: Exception) -> None: ...

    def on_engine_http_serve_err(self, err: Exception) -> None: ...

    def on_engine_websocket_serve_err(self, err: Exception) -> None: ...

    def on_comet_serve_err(self, err: Exception) -> None: ...

    def on_prometheus_serve_err(self, err: Exception) -> None: ...

    def on_op_log(self, record: OPLogRecord) -> None: ...


ErrCallback = Callable[[Exception], None]


def _noop(_value: Any) -> None:
    pass


@dataclass
class SelectiveListener:
    """
    EventListener built from optional callbacks. Unset callbacks ignore events.

    Usage:
        listener = SelectiveListener(on_anvil_err_cb=errors.append)
    """

    on_anvil_err_cb: ErrCallback | None = None
    on_engine_http_serve_err_cb: ErrCallback | None = None
    on_engine_websocket_serve_err_cb: ErrCallback | None = None
    on_comet_serve_err_cb: ErrCallback | None = None
    on_prometheus_serve_err_cb: ErrCallback | None = None
    on_op_log_cb: Callable[[OPLogRecord], None] | None = None

    def on_anvil_err(self, err: Exception) -> None:
        (self.on_anvil_err_cb or _noop)(err)

    def on_engine_http_serve_err(self, err: Exception) -> None:
        (self.on_engine_http_serve_err_cb or _noop)(err)

    def on_engine_websocket_serve_err(self, err: Exception) -> None:
        (self.on_engine_websocket_serve_err_cb or _noop)(err)

    def on_comet_serve_err(self, err: Exception) -> None:
        (self.on_comet_serve_err_cb or _noop)(err)

    def on_prometheus_serve_err(self, err: Exception) -> None:
        (self.on_prometheus_serve_err_cb or _noop)(err)

    def on_op_log(self, record: OPLogRecord) -> None:
        (self.on_op_log_cb or _noop)(record)


@dataclass(frozen=True)
class Ok:
    """A monitored task finished cleanly."""

    source: str


@dataclass(frozen=True)
class Err:
    """A monitored task failed."""

    source: str
    reason: Exception


ExitResult = Ok | Err


@dataclass(frozen=True)
class _Delivery:
    callback: Callable[[Any], None]
    value: Any


_CLOSE = object()


class ErrorRouter:
    """
    Bounded channel plus a single consumer that hands events to callbacks.

    Usage:
        router = ErrorRouter()
        router.start(env)
        router.report(Err("anvil", exc), listener.on_anvil_err)
    """

    def __init__(self, maxsize: int = 256):
        self._queue: queue.Queue = queue.Queue(maxsize=maxsize)
        self._consumer: threading.Thread | None = None
        self.callback_errors: list[Exception] = []

    def start(self, env) -> None:
        """Launch the consumer on ``env`` and stop it when ``env`` is released."""
        self._consumer = env.go(self._consume, name="error-router")
        env.defer_err("close error router", self.close)

    def report(self, result: ExitResult, on_err: ErrCallback) -> None:
        """Post an exit result. Only ``Err`` results reach ``on_err``."""
        if isinstance(result, Err):
            logger.debug(f"{result.source} failed: {result.reason}")
            self._queue.put(_Delivery(on_err, result.reason))
        else:
            logger.debug(f"{result.source} exited cleanly")

    def post(self, callback: Callable[[Any], None], value: Any) -> None:
        """Post an arbitrary event, e.g. a log record, for ordered delivery."""
        self._queue.put(_Delivery(callback, value))

    def close(self) -> None:
        """Deliver everything queued so far, then stop the consumer."""
        self._queue.put(_CLOSE)
        if self._consumer is not None and self._consumer is not threading.current_thread():
            self._consumer.join()

    def _consume(self) -> None:
        while True:
            item = self._queue.get()
            if item is _CLOSE:
                return
            try:
                item.callback(item.value)
            except Exception as e:
                logger.exception("event listener callback failed")
                self.callback_errors.append(e)
