"""
A whole devnet exposed as a single flexitest service.
"""

import logging
import os
import threading
from typing import Any

import flexitest

from opdevnet.context import Context
from opdevnet.environment import Environment
from opdevnet.listener import OPLogRecord, SelectiveListener
from opdevnet.rpc import AnvilClient, L2Client
from opdevnet.stack import RunningStack, Stack


class RecordingListener(SelectiveListener):
    """
    Collects every asynchronous failure and appends OP stack logs to a file.

    Functional tests assert ``errors`` is empty once they are done.
    """

    def __init__(self, op_log_path: str | None = None):
        super().__init__(
            on_anvil_err_cb=self._record,
            on_engine_http_serve_err_cb=self._record,
            on_engine_websocket_serve_err_cb=self._record,
            on_comet_serve_err_cb=self._record,
            on_prometheus_serve_err_cb=self._record,
            on_op_log_cb=self._write_op_log,
        )
        self.errors: list[Exception] = []
        self.op_log_path = op_log_path
        self._lock = threading.Lock()

    def _record(self, err: Exception) -> None:
        with self._lock:
            self.errors.append(err)

    def _write_op_log(self, record: OPLogRecord) -> None:
        if self.op_log_path is None:
            return
        with self._lock, open(self.op_log_path, "a") as f:
            f.write(f"[{record.source}] {record.level} {record.msg} {record.attrs or ''}\n")


class DevnetService(flexitest.Service):
    """
    Runs ``Stack`` on start() and tears the whole devnet down on stop().

    Usage:
        svc = DevnetService(props, stack, listener)
        svc.start()
        l1 = svc.create_l1_rpc()
        svc.stop()
    """

    def __init__(self, props: dict[str, Any], stack: Stack, listener: RecordingListener):
        super().__init__(props)
        self.stack = stack
        self.listener = listener
        self.running: RunningStack | None = None
        self._ctx: Context | None = None
        self._env: Environment | None = None
        self._logger = logging.getLogger("service.devnet")

    def start(self):
        """
        Raises:
            RuntimeError: If a service never became reachable and bring-up was skipped.
            StageError: If a bring-up stage failed.
        """
        os.makedirs(self.stack.artifacts_dir, exist_ok=True)
        self._ctx = Context.background()
        self._env = Environment()
        self.running = self.stack.run(self._ctx, self._env)
        if self.running is None:
            self.stop()
            raise RuntimeError("devnet bring-up was skipped: a service never became reachable")

    def stop(self):
        if self._env is None:
            return
        if self._ctx is not None:
            self._ctx.cancel()
        for err in self._env.release():
            self._logger.warning(f"cleanup failed: {err}")
        self.running = None

    def is_started(self) -> bool:
        return self.running is not None

    def check_status(self) -> bool:
        if self.running is None:
            return False
        return all(p.check_status() for p in self.running.op_processes.values())

    def require_running(self) -> RunningStack:
        """
        Raises:
            RuntimeError: If the devnet is not running.
        """
        if self.running is None:
            raise RuntimeError("devnet is not running")
        return self.running

    def async_errors(self) -> list[Exception]:
        """Errors reported by background processes and servers so far."""
        return self.listener.errors + self.require_running().router.callback_errors

    def create_l1_rpc(self) -> AnvilClient:
        return self.require_running().l1

    def create_l2_rpc(self) -> L2Client:
        return self.require_running().l2
