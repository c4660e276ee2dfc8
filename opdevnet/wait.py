"""
Waiting utilities: readiness probing and generic polling.
"""

import logging
import socket
import time
from collections.abc import Callable
from typing import TYPE_CHECKING, Any, TypeVar

from opdevnet.context import Context

if TYPE_CHECKING:
    from opdevnet.endpoint import Endpoint

logger = logging.getLogger(__name__)

PROBE_INTERVAL = 0.1

T = TypeVar("T")


def wait_reachable(endpoint: "Endpoint", ctx: Context, step: float = PROBE_INTERVAL) -> bool:
    """
    Poll ``endpoint`` until it accepts a TCP connection or ``ctx`` is done.

    There is no timeout argument: pass a context created with
    ``with_timeout`` to bound the wait.

    Returns:
        True once a connection succeeds, False if ``ctx`` was cancelled first.
    """
    while not ctx.done():
        try:
            with socket.create_connection((endpoint.host, endpoint.port), timeout=step):
                return True
        except OSError as e:
            logger.debug(f"{endpoint} not reachable yet: {e}")
        if ctx.sleep(step):
            break
    return False


def wait_until_with_value(
    fn: Callable[[], T],
    predicate: Callable[[T], bool],
    error_with: str = "Timed out",
    timeout: float = 5,
    step: float = 0.5,
) -> T:
    """
    Call ``fn`` every ``step`` seconds until ``predicate`` accepts its result.

    Exceptions from ``fn`` are logged and treated as "not yet".

    Raises:
        AssertionError: With ``error_with`` once ``timeout`` seconds have passed.
    """
    deadline = time.monotonic() + timeout
    while True:
        try:
            value = fn()
            if predicate(value):
                return value
        except Exception as e:
            logger.warning(f"caught {type(e).__name__}, still waiting: {e}")
        if time.monotonic() + step > deadline:
            raise AssertionError(error_with)
        time.sleep(step)


def wait_until(fn: Callable[[], Any], error_with: str = "Timed out", timeout: float = 30, step: float = 0.5):
    """Like ``wait_until_with_value`` for a truthy result, discarding it."""
    wait_until_with_value(fn, bool, error_with=error_with, timeout=timeout, step=step)
