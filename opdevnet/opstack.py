"""
The OP stack that runs on top of the devnet: op-node (sequencer),
op-batcher and op-proposer.
"""

import json
import logging
import os
import secrets

from opdevnet.accounts import TestKey
from opdevnet.config.rollup import RollupConfig
from opdevnet.config.settings import Binaries
from opdevnet.context import Context
from opdevnet.endpoint import Endpoint
from opdevnet.environment import Environment
from opdevnet.listener import ErrorRouter, EventListener, OPLogRecord
from opdevnet.process import ProcessHandle, Supervisor

logger = logging.getLogger(__name__)

POLL_INTERVAL = "1s"


def parse_log_line(source: str, line: str) -> OPLogRecord:
    """Turn a JSON log line into a record; anything else is kept as raw text."""
    try:
        entry = json.loads(line)
    except json.JSONDecodeError:
        entry = None
    if not isinstance(entry, dict):
        return OPLogRecord(source=source, level="INFO", msg=line, raw=line)

    level = str(entry.pop("lvl", entry.pop("level", "info"))).upper()
    msg = str(entry.pop("msg", ""))
    entry.pop("t", None)
    return OPLogRecord(source=source, level=level, msg=msg, attrs=entry, raw=line)


class OPStack:
    """
    Usage:
        op = OPStack(anvil_url, engine_url, op_node_url, oracle, key, rollup_config,
                     listener, supervisor, router)
        op.run(ctx, env)
    """

    def __init__(
        self,
        l1_url: Endpoint,
        engine_url: Endpoint,
        op_node_url: Endpoint,
        l2_output_oracle: str,
        key: TestKey,
        rollup_config: RollupConfig,
        listener: EventListener,
        supervisor: Supervisor,
        router: ErrorRouter,
        binaries: Binaries | None = None,
    ):
        self.l1_url = l1_url
        self.engine_url = engine_url
        self.op_node_url = op_node_url
        self.l2_output_oracle = l2_output_oracle
        self.key = key
        self.rollup_config = rollup_config
        self.listener = listener
        self.supervisor = supervisor
        self.router = router
        self.binaries = binaries or Binaries()

    def op_node_argv(self, rollup_config_path: str, jwt_secret_path: str) -> list[str]:
        # fmt: off
        return [
            *self.binaries.op_node,
            "--l1", str(self.l1_url),
            "--l1.trustrpc",
            "--l2", str(self.engine_url),
            "--l2.jwt-secret", jwt_secret_path,
            "--rollup.config", rollup_config_path,
            "--rpc.addr", self.op_node_url.host,
            "--rpc.port", self.op_node_url.port_str,
            "--sequencer.enabled",
            "--sequencer.l1-confs", "0",
            "--verifier.l1-confs", "0",
            "--p2p.disable",
            "--log.format", "json",
        ]
        # fmt: on

    def op_batcher_argv(self) -> list[str]:
        # fmt: off
        return [
            *self.binaries.op_batcher,
            "--l1-eth-rpc", str(self.l1_url),
            "--l2-eth-rpc", str(self.engine_url),
            "--rollup-rpc", str(self.op_node_url),
            "--private-key", self.key.private_key_hex,
            "--poll-interval", POLL_INTERVAL,
            "--num-confirmations", "1",
            "--max-channel-duration", "1",
            "--rpc.addr", "127.0.0.1",
            "--rpc.port", "0",
            "--log.format", "json",
        ]
        # fmt: on

    def op_proposer_argv(self) -> list[str]:
        # fmt: off
        return [
            *self.binaries.op_proposer,
            "--l1-eth-rpc", str(self.l1_url),
            "--rollup-rpc", str(self.op_node_url),
            "--l2oo-address", self.l2_output_oracle,
            "--private-key", self.key.private_key_hex,
            "--poll-interval", POLL_INTERVAL,
            "--num-confirmations", "1",
            "--allow-non-finalized",
            "--rpc.addr", "127.0.0.1",
            "--rpc.port", "0",
            "--log.format", "json",
        ]
        # fmt: on

    def write_config_files(self) -> tuple[str, str]:
        """Write rollup.json and the engine JWT secret next to the logs."""
        artifacts_dir = self.supervisor.log_dir
        os.makedirs(artifacts_dir, exist_ok=True)
        rollup_config_path = os.path.join(artifacts_dir, "rollup.json")
        with open(rollup_config_path, "w") as f:
            f.write(self.rollup_config.as_json_string())
        jwt_secret_path = os.path.join(artifacts_dir, "jwt.txt")
        with open(jwt_secret_path, "w") as f:
            f.write(secrets.token_hex(32))
        return rollup_config_path, jwt_secret_path

    def run(self, ctx: Context, env: Environment) -> dict[str, ProcessHandle]:
        """Start all three services in the background."""
        rollup_config_path, jwt_secret_path = self.write_config_files()
        commands = {
            "op-node": self.op_node_argv(rollup_config_path, jwt_secret_path),
            "op-batcher": self.op_batcher_argv(),
            "op-proposer": self.op_proposer_argv(),
        }

        handles = {}
        for name, argv in commands.items():
            handle = self.supervisor.spawn(name, argv, ctx, line_handler=self._log_handler(name))
            handle.monitor(ctx, self.router, self._exit_handler(name))
            handles[name] = handle
        logger.info(f"OP stack running, oracle at {self.l2_output_oracle}")
        return handles

    def _log_handler(self, source: str):
        def _handle(line: str) -> None:
            self.router.post(self.listener.on_op_log, parse_log_line(source, line))

        return _handle

    def _exit_handler(self, source: str):
        def _handle(err: Exception) -> None:
            self.listener.on_op_log(OPLogRecord(source=source, level="ERROR", msg=str(err)))

        return _handle
