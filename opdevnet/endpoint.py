"""
Network endpoints and pre-bound TCP listeners.

An ``Endpoint`` is a reserved address that nothing listens on yet. A
``BoundListener`` is a socket the orchestrator has already bound and put into
listening state, handed to a service so no other process can take the port
between bring-up stages.
"""

import logging
import socket
import threading
from dataclasses import dataclass
from urllib.parse import urlsplit

from opdevnet.context import Context
from opdevnet.errors import ListenerError
from opdevnet.wait import wait_reachable

logger = logging.getLogger(__name__)

LISTEN_BACKLOG = 128


@dataclass(frozen=True)
class Endpoint:
    scheme: str
    host: str
    port: int

    @classmethod
    def parse(cls, url: str) -> "Endpoint":
        """
        Parse ``scheme://host:port``.

        Raises:
            ValueError: If the scheme, host or port is missing.
        """
        parts = urlsplit(url)
        if not parts.scheme or not parts.hostname or parts.port is None:
            raise ValueError(f"endpoint url must look like scheme://host:port, got '{url}'")
        return cls(parts.scheme, parts.hostname, parts.port)

    @property
    def host_port(self) -> str:
        return f"{self.host}:{self.port}"

    @property
    def port_str(self) -> str:
        return str(self.port)

    def with_scheme(self, scheme: str) -> "Endpoint":
        return Endpoint(scheme, self.host, self.port)

    def is_reachable(self, ctx: Context) -> bool:
        return wait_reachable(self, ctx)

    def __str__(self) -> str:
        return f"{self.scheme}://{self.host_port}"


class BoundListener:
    """A listening TCP socket whose close is guaranteed to happen once."""

    def __init__(self, sock: socket.socket, scheme: str):
        self.socket = sock
        host, port = sock.getsockname()[:2]
        self.endpoint = Endpoint(scheme, host, port)
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def fileno(self) -> int:
        return self.socket.fileno()

    def close(self) -> None:
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self.socket.close()
        logger.debug(f"closed listener {self.endpoint}")


def bind_listener(endpoint: Endpoint, env) -> BoundListener:
    """
    Bind and listen on ``endpoint``; the close is deferred to ``env``.

    Raises:
        ListenerError: If the address cannot be bound.
    """
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
    try:
        sock.bind((endpoint.host, endpoint.port))
        sock.listen(LISTEN_BACKLOG)
    except OSError as e:
        sock.close()
        raise ListenerError(f"listen on {endpoint.host_port}: {e}") from e

    listener = BoundListener(sock, endpoint.scheme)
    env.defer_err(f"close listener {listener.endpoint}", listener.close)
    logger.debug(f"listening on {listener.endpoint}")
    return listener


def bind_ephemeral(env, host: str = "127.0.0.1", scheme: str = "http") -> BoundListener:
    """Bind a listener on a kernel-assigned port."""
    return bind_listener(Endpoint(scheme, host, 0), env)
