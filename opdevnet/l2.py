"""
L2 node bring-up.

The orchestrator binds the node's listeners, creates its in-memory stores and
genesis descriptor, and hands them to an ``L2Node``. What the node does with
them is up to the node implementation.
"""

import json
import logging
import os
import threading
from collections.abc import Callable, Iterator
from dataclasses import dataclass, field
from typing import Any, Protocol

from opdevnet.context import Context
from opdevnet.endpoint import BoundListener, Endpoint, bind_ephemeral, bind_listener
from opdevnet.environment import Environment
from opdevnet.listener import ErrorRouter, EventListener
from opdevnet.process import Supervisor

logger = logging.getLogger(__name__)


class MemDB:
    """Thread-safe in-memory key/value store handed to the L2 node."""

    def __init__(self, name: str):
        self.name = name
        self._data: dict[bytes, bytes] = {}
        self._lock = threading.Lock()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    def _check_open(self) -> None:
        if self._closed:
            raise RuntimeError(f"{self.name} is closed")

    def get(self, key: bytes) -> bytes | None:
        with self._lock:
            self._check_open()
            return self._data.get(key)

    def has(self, key: bytes) -> bool:
        with self._lock:
            self._check_open()
            return key in self._data

    def set(self, key: bytes, value: bytes) -> None:
        with self._lock:
            self._check_open()
            self._data[key] = value

    def delete(self, key: bytes) -> None:
        with self._lock:
            self._check_open()
            self._data.pop(key, None)

    def items(self) -> Iterator[tuple[bytes, bytes]]:
        with self._lock:
            self._check_open()
            return iter(sorted(self._data.items()))

    def close(self) -> None:
        with self._lock:
            self._check_open()
            self._closed = True
            self._data.clear()


@dataclass(frozen=True)
class Genesis:
    """
    Genesis descriptor for the L2 chain.

    ``time`` is taken from the L1 block the contracts were deployed in, so L2
    genesis never precedes L1.
    """

    chain_id: int
    time: int
    app_state: dict[str, Any] = field(default_factory=dict)

    def to_json_dict(self) -> dict[str, Any]:
        return {"chain_id": str(self.chain_id), "genesis_time": self.time, "app_state": self.app_state}


@dataclass(frozen=True)
class TxAdapters:
    """Converters between the app's transactions and engine payload transactions."""

    cosmos_to_eth: Callable[[list[bytes]], list[bytes]]
    payload_to_cosmos: Callable[[list[bytes]], list[bytes]]


@dataclass(frozen=True)
class L2Listeners:
    engine_http: BoundListener
    engine_ws: BoundListener
    comet: BoundListener

    def fds(self) -> tuple[int, int, int]:
        return (self.engine_http.fileno(), self.engine_ws.fileno(), self.comet.fileno())


def bind_l2_listeners(engine_url: Endpoint, comet_url: Endpoint, env: Environment) -> L2Listeners:
    """
    Bind every listener the L2 node serves on.

    The engine HTTP server gets a kernel-assigned port; the engine websocket
    and comet listeners use the configured addresses.

    Raises:
        ListenerError: If any address is unavailable.
    """
    return L2Listeners(
        engine_http=bind_ephemeral(env, host=engine_url.host),
        engine_ws=bind_listener(engine_url, env),
        comet=bind_listener(comet_url, env),
    )


@dataclass
class NodeConfig:
    """Everything an L2 node implementation receives from the orchestrator."""

    genesis: Genesis
    listeners: L2Listeners
    app_db: MemDB
    block_db: MemDB
    tx_db: MemDB
    mempool_db: MemDB
    listener: EventListener
    supervisor: Supervisor
    router: ErrorRouter
    tx_adapters: TxAdapters | None = None


class L2Node(Protocol):
    def run(self, ctx: Context, env: Environment) -> None:
        """Start serving; must return once the node is started."""
        ...


NodeFactory = Callable[[NodeConfig], L2Node]


def _new_db(name: str, env: Environment) -> MemDB:
    db = MemDB(name)
    env.defer_err(f"close {name}", db.close)
    return db


def start_l2_node(
    ctx: Context,
    env: Environment,
    node_factory: NodeFactory,
    listeners: L2Listeners,
    genesis_time: int,
    chain_id: int,
    listener: EventListener,
    supervisor: Supervisor,
    router: ErrorRouter,
    tx_adapters: TxAdapters | None = None,
) -> NodeConfig:
    config = NodeConfig(
        genesis=Genesis(chain_id=chain_id, time=genesis_time),
        listeners=listeners,
        app_db=_new_db("app db", env),
        block_db=_new_db("block db", env),
        tx_db=_new_db("tx db", env),
        mempool_db=_new_db("mempool db", env),
        listener=listener,
        supervisor=supervisor,
        router=router,
        tx_adapters=tx_adapters,
    )
    node = node_factory(config)
    node.run(ctx, env)
    logger.info(f"L2 node running, engine at {listeners.engine_ws.endpoint}")
    return config


class ExecNode:
    """
    Runs an L2 node executable that serves on the inherited listener sockets.

    The node receives the socket file descriptors instead of addresses, so
    the ports bound by the orchestrator are never released in between.
    """

    def __init__(self, config: NodeConfig, binary: tuple[str, ...] = ("monomer",)):
        self.config = config
        self.binary = binary

    @classmethod
    def factory(cls, binary: tuple[str, ...] = ("monomer",)) -> NodeFactory:
        return lambda config: cls(config, binary)

    def argv(self, genesis_path: str) -> list[str]:
        listeners = self.config.listeners
        # fmt: off
        return [
            *self.binary,
            "start",
            "--genesis", genesis_path,
            "--engine-http-fd", str(listeners.engine_http.fileno()),
            "--engine-ws-fd", str(listeners.engine_ws.fileno()),
            "--comet-fd", str(listeners.comet.fileno()),
        ]
        # fmt: on

    def run(self, ctx: Context, env: Environment) -> None:
        supervisor = self.config.supervisor
        os.makedirs(supervisor.log_dir, exist_ok=True)
        genesis_path = os.path.join(supervisor.log_dir, "l2-genesis.json")
        with open(genesis_path, "w") as f:
            json.dump(self.config.genesis.to_json_dict(), f, indent=2)

        node = supervisor.spawn(
            "l2-node",
            self.argv(genesis_path),
            ctx,
            pass_fds=self.config.listeners.fds(),
        )
        # A dead node process takes every one of its servers down with it.
        node.monitor(ctx, self.config.router, self.config.listener.on_engine_http_serve_err)
