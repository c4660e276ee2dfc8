"""
JSON-RPC clients for the L1 simulator and the L2 node.
"""

import itertools
import json
import logging
import threading
import time
from dataclasses import dataclass
from typing import Any

import requests

from opdevnet.context import Context
from opdevnet.errors import ContextCancelled, RpcError
from opdevnet.wait import PROBE_INTERVAL

CANCEL_POLL_INTERVAL = 0.05
MIN_REQUEST_TIMEOUT = 0.01


class JsonRpcClient:
    """
    JSON-RPC 2.0 client bound to a ``Context``.

    Methods are called as attributes. A call fails with the context's error
    as soon as the context is done, including while the request is in flight;
    the request timeout never outlives the context's deadline.

    Usage:
        rpc = JsonRpcClient("http://localhost:8545", ctx)
        chain_id = int(rpc.eth_chainId(), 16)
        block = rpc.call("eth_getBlockByNumber", "latest", False)
    """

    def __init__(self, url: str, ctx: Context | None = None, name: str | None = None, timeout: int = 30):
        self.url = url
        self.ctx = ctx or Context.background()
        self.name = name or url
        self.timeout = timeout
        self._ids = itertools.count(1)
        self._session = requests.Session()
        self.logger = logging.getLogger(f"rpc.{self.name}")

    def __getattr__(self, method: str):
        if method.startswith("_"):
            raise AttributeError(method)
        return lambda *params: self.call(method, *params)

    def call(self, method: str, *params) -> Any:
        """
        Raises:
            ContextCancelled: If the client's context is done.
            RpcError: If the node answers with an error or with invalid JSON.
            requests.RequestException: If the HTTP request fails.
        """
        self.ctx.raise_if_done()
        payload = {"jsonrpc": "2.0", "method": method, "params": list(params), "id": next(self._ids)}
        self.logger.debug(f"{method}{params}")

        try:
            resp = self._post(payload)
            resp.raise_for_status()
        except requests.RequestException as e:
            if self.ctx.done():
                raise self.ctx.err() from e
            self.logger.warning(f"{method} failed: {e}")
            raise

        try:
            body = resp.json()
        except json.JSONDecodeError as e:
            raise RpcError({"code": -1, "message": f"invalid JSON from {self.name}: {e}"}) from e

        if "error" in body:
            self.logger.warning(f"{method} returned error: {body['error']}")
            raise RpcError(body["error"])
        return body.get("result")

    def _request_timeout(self) -> float:
        deadline = self.ctx.deadline()
        if deadline is None:
            return self.timeout
        return max(MIN_REQUEST_TIMEOUT, min(self.timeout, deadline - time.monotonic()))

    def _post(self, payload: dict) -> requests.Response:
        # The request runs on a worker so the caller can return on cancellation.
        outcome: dict[str, Any] = {}
        finished = threading.Event()
        timeout = self._request_timeout()

        def _send():
            try:
                outcome["resp"] = self._session.post(self.url, json=payload, timeout=timeout)
            except Exception as e:
                outcome["error"] = e
            finally:
                finished.set()

        threading.Thread(target=_send, name=f"rpc-{self.name}", daemon=True).start()
        while not finished.wait(CANCEL_POLL_INTERVAL):
            if self.ctx.done():
                self.logger.debug(f"request abandoned: {self.ctx.err()}")
                self.close()
                self.ctx.raise_if_done()
        if "error" in outcome:
            raise outcome["error"]
        return outcome["resp"]

    def close(self) -> None:
        self._session.close()


def dial(url: str, ctx: Context, env=None, name: str | None = None) -> JsonRpcClient:
    """
    Create a client for ``url`` whose calls fail once ``ctx`` is done.

    If ``env`` is given, the client's connections are closed on release.

    Raises:
        ValueError: If ``url`` is not an http(s) URL.
        ContextCancelled: If ``ctx`` is already done.
    """
    ctx.raise_if_done()
    if not url.startswith(("http://", "https://")):
        raise ValueError(f"cannot dial '{url}': only http(s) JSON-RPC endpoints are supported")
    rpc = JsonRpcClient(url, ctx, name=name)
    if env is not None:
        env.defer_err(f"close rpc client {rpc.name}", rpc.close)
    return rpc


def wait_rpc_ready(url: str, ctx: Context, step: float = PROBE_INTERVAL, timeout: float = 1) -> bool:
    """
    Poll ``url`` with ``eth_chainId`` until a JSON-RPC server answers or ``ctx`` is done.

    Any JSON-RPC answer counts, including an error response. Bound the wait
    with a context created by ``with_timeout``.

    Returns:
        True once the server answers, False if ``ctx`` was cancelled first.
    """
    rpc = JsonRpcClient(url, ctx, name="readiness", timeout=timeout)
    try:
        while True:
            try:
                rpc.eth_chainId()
                return True
            except RpcError:
                return True
            except ContextCancelled:
                return False
            except requests.RequestException as e:
                rpc.logger.debug(f"{url} not answering yet: {e}")
            if ctx.sleep(step):
                return False
    finally:
        rpc.close()


@dataclass(frozen=True)
class L1BlockSnapshot:
    """The parts of an L1 block the rollup config is anchored to."""

    number: int
    hash: str
    timestamp: int
    parent_hash: str

    @classmethod
    def from_rpc(cls, block: dict) -> "L1BlockSnapshot":
        return cls(
            number=int(block["number"], 16),
            hash=block["hash"],
            timestamp=int(block["timestamp"], 16),
            parent_hash=block["parentHash"],
        )


class AnvilClient:
    """Anvil-specific and standard eth calls used during bring-up."""

    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    def set_balance(self, address: str, wei: int) -> None:
        self.rpc.anvil_setBalance(address, hex(wei))

    def balance(self, address: str) -> int:
        return int(self.rpc.eth_getBalance(address, "latest"), 16)

    def chain_id(self) -> int:
        return int(self.rpc.eth_chainId(), 16)

    def block_by_number(self, number: int | None = None) -> L1BlockSnapshot:
        """Fetch a block, the latest one when ``number`` is None."""
        tag = "latest" if number is None else hex(number)
        block = self.rpc.eth_getBlockByNumber(tag, False)
        if block is None:
            raise RpcError({"code": -1, "message": f"block {tag} not found"})
        return L1BlockSnapshot.from_rpc(block)


class L2Client:
    """Calls against the L2 node's engine endpoint."""

    def __init__(self, rpc: JsonRpcClient):
        self.rpc = rpc

    def genesis_hash(self) -> str:
        block = self.rpc.eth_getBlockByNumber("0x0", False)
        if block is None:
            raise RpcError({"code": -1, "message": "genesis block not found"})
        return block["hash"]

    def block_number(self) -> int:
        return int(self.rpc.eth_blockNumber(), 16)
