import json
import os
import socket
import sys
from http.server import BaseHTTPRequestHandler, ThreadingHTTPServer

import pytest

from opdevnet.config import Binaries
from opdevnet.environment import Environment

FAKES_DIR = os.path.join(os.path.dirname(os.path.abspath(__file__)), "fakes")

L2_GENESIS_HASH = "0x" + "42" * 32

PORTAL = "0x" + "11" * 20
SYSTEM_CONFIG = "0x" + "22" * 20
ORACLE = "0x" + "33" * 20
L1_STANDARD_BRIDGE = "0x" + "44" * 20
L1_MESSENGER = "0x" + "55" * 20
BATCH_SENDER = "0x" + "66" * 20
BATCH_INBOX = "0x" + "ff" * 20

DEPLOY_CONFIG = {
    "l1ChainID": 900,
    "l2ChainID": 901,
    "l2BlockTime": 2,
    "maxSequencerDrift": 300,
    "sequencerWindowSize": 200,
    "channelTimeout": 120,
    "batchInboxAddress": BATCH_INBOX,
    "batchSenderAddress": BATCH_SENDER,
    "gasPriceOracleOverhead": 2100,
    "gasPriceOracleScalar": 1000000,
    "l2GenesisBlockGasLimit": "0x1c9c380",
    "l2GenesisRegolithTimeOffset": "0x0",
    "l2GenesisEcotoneTimeOffset": 60,
    "finalizationPeriodSeconds": 2,
}

DEPLOYMENTS = {
    "OptimismPortalProxy": PORTAL,
    "SystemConfigProxy": SYSTEM_CONFIG,
    "L2OutputOracleProxy": ORACLE,
    "L1StandardBridgeProxy": L1_STANDARD_BRIDGE,
    "L1CrossDomainMessengerProxy": L1_MESSENGER,
}


def fake(script: str) -> tuple[str, ...]:
    return (sys.executable, os.path.join(FAKES_DIR, script))


def free_port() -> int:
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


def write_contracts_root(root, deploy_config=None, deployments=None) -> str:
    (root / "deploy-config").mkdir(parents=True, exist_ok=True)
    (root / "deployments" / "hardhat").mkdir(parents=True, exist_ok=True)
    (root / "deploy-config" / "hardhat.json").write_text(json.dumps(deploy_config or DEPLOY_CONFIG))
    (root / "deployments" / "hardhat" / ".deploy").write_text(json.dumps(deployments or DEPLOYMENTS))
    return str(root)


@pytest.fixture
def contracts_root(tmp_path):
    return write_contracts_root(tmp_path / "contracts-bedrock")


@pytest.fixture
def env():
    env = Environment()
    yield env
    env.release()


@pytest.fixture
def fake_binaries():
    return Binaries(
        anvil=fake("fake_anvil.py"),
        forge=fake("fake_forge.py"),
        op_node=fake("dummy_service.py"),
        op_batcher=fake("dummy_service.py"),
        op_proposer=fake("dummy_service.py"),
    )


class _EngineHandler(BaseHTTPRequestHandler):
    def do_POST(self):
        req = json.loads(self.rfile.read(int(self.headers["Content-Length"])))
        if req["method"] == "eth_getBlockByNumber":
            result = {"number": req["params"][0], "hash": L2_GENESIS_HASH}
        else:
            result = "0x0"
        body = json.dumps({"jsonrpc": "2.0", "id": req["id"], "result": result}).encode()
        self.send_response(200)
        self.send_header("Content-Type", "application/json")
        self.send_header("Content-Length", str(len(body)))
        self.end_headers()
        self.wfile.write(body)

    def log_message(self, format, *args):
        pass


class FakeNode:
    """In-process L2 node serving a fixed genesis block on the engine HTTP listener."""

    instances: list["FakeNode"] = []

    def __init__(self, config):
        self.config = config
        FakeNode.instances.append(self)

    def run(self, ctx, env):
        listener = self.config.listeners.engine_http
        server = ThreadingHTTPServer(
            (listener.endpoint.host, listener.endpoint.port), _EngineHandler, bind_and_activate=False
        )
        server.socket.close()
        server.socket = listener.socket
        env.go(server.serve_forever, name="fake-engine-http")
        env.defer_err("shutdown fake engine", server.shutdown)


@pytest.fixture
def fake_node():
    FakeNode.instances.clear()
    yield FakeNode
    FakeNode.instances.clear()
