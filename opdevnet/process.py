"""
Supervision of external executables.

Output of every process goes to ``<log_dir>/<name>.log``, opened before the
process starts so partial output survives a kill. A process is observed in
one of two ways:

- ``wait(ctx)`` blocks the caller until exit and raises on failure.
- ``monitor(ctx, router, on_err)`` waits on a background task and reports a
  failed exit through the error router without touching the caller.
"""

import logging
import os
import subprocess
import threading
from collections.abc import Callable, Iterable

from opdevnet.context import Context
from opdevnet.environment import Environment
from opdevnet.errors import ProcessError, ProcessSpawnError
from opdevnet.listener import Err, ErrCallback, ErrorRouter, Ok

POLL_INTERVAL = 0.1
JOIN_TIMEOUT = 10


class ProcessHandle:
    """A running external process owned by a ``Supervisor``."""

    stop_timeout = 5

    def __init__(
        self,
        name: str,
        argv: list[str],
        proc: subprocess.Popen,
        log_path: str,
        log_file,
        env: Environment,
        step: float = POLL_INTERVAL,
    ):
        self.name = name
        self.argv = argv
        self.log_path = log_path
        self._proc = proc
        self._log_file = log_file
        self._env = env
        self._step = step
        self._lock = threading.Lock()
        self._stopping = False
        self._monitor_thread: threading.Thread | None = None
        self._pump_thread: threading.Thread | None = None
        self._logger = logging.getLogger(f"service.{name}")

    @property
    def pid(self) -> int:
        return self._proc.pid

    @property
    def returncode(self) -> int | None:
        return self._proc.returncode

    def check_status(self) -> bool:
        """True while the process is running."""
        return self._proc.poll() is None

    def wait(self, ctx: Context) -> None:
        """
        Block until the process exits.

        Raises:
            ProcessError: If the process exits with a nonzero code.
            ContextCancelled: If ``ctx`` is done first; the process is stopped.
        """
        rc = self._wait_exit(ctx)
        if rc is None:
            raise ctx.err()
        self._join_pump()
        if rc != 0:
            raise ProcessError(self.name, self.argv, rc)
        self._logger.info(f"{self.name} finished")

    def monitor(self, ctx: Context, router: ErrorRouter, on_err: ErrCallback) -> None:
        """Watch for exit in the background and report failures to ``on_err``."""

        def _monitor():
            rc = self._wait_exit(ctx)
            if rc is None or self._stopping:
                self._logger.info(f"{self.name} stopped")
                router.report(Ok(self.name), on_err)
            elif rc != 0:
                err = ProcessError(self.name, self.argv, rc)
                self._logger.warning(f"{self.name} exited unexpectedly: {err}")
                router.report(Err(self.name, err), on_err)
            else:
                router.report(Ok(self.name), on_err)

        self._monitor_thread = self._env.go(_monitor, name=f"{self.name}-monitor")

    def stop(self) -> None:
        """Terminate the process, killing it after ``stop_timeout`` seconds."""
        with self._lock:
            self._stopping = True
        if self._proc.poll() is None:
            self._logger.info(f"stopping {self.name} (pid {self.pid})")
            self._proc.terminate()
            try:
                self._proc.wait(timeout=self.stop_timeout)
            except subprocess.TimeoutExpired:
                self._logger.warning(f"{self.name} did not stop in time, killing")
                self._proc.kill()
                self._proc.wait()

        current = threading.current_thread()
        if self._monitor_thread is not None and self._monitor_thread is not current:
            self._monitor_thread.join(JOIN_TIMEOUT)
        self._join_pump()

    def _wait_exit(self, ctx: Context) -> int | None:
        # None means ctx finished first and the process has been stopped.
        while True:
            try:
                return self._proc.wait(timeout=self._step)
            except subprocess.TimeoutExpired:
                pass
            if ctx.done():
                self.stop()
                return None

    def _join_pump(self) -> None:
        if self._pump_thread is not None and self._pump_thread is not threading.current_thread():
            self._pump_thread.join(JOIN_TIMEOUT)

    def _pump(self, line_handler: Callable[[str], None]) -> None:
        assert self._proc.stdout is not None
        with self._proc.stdout:
            for line in self._proc.stdout:
                self._log_file.write(line)
                line_handler(line.rstrip("\n"))


class Supervisor:
    """
    Spawns processes whose logs and termination belong to an ``Environment``.

    Usage:
        supervisor = Supervisor(env, "artifacts")
        forge = supervisor.spawn("forge", ["forge", "script", ...], ctx)
        forge.wait(ctx)
    """

    def __init__(self, env: Environment, log_dir: str, step: float = POLL_INTERVAL):
        self.env = env
        self.log_dir = log_dir
        self.step = step

    def spawn(
        self,
        name: str,
        argv: list[str],
        ctx: Context,
        line_handler: Callable[[str], None] | None = None,
        pass_fds: Iterable[int] = (),
    ) -> ProcessHandle:
        """
        Start ``argv`` with its output captured to ``<log_dir>/<name>.log``.

        Args:
            line_handler: If given, each output line is also handed to it.
            pass_fds: File descriptors the child inherits.

        Raises:
            ProcessSpawnError: If the executable cannot be started.
        """
        ctx.raise_if_done()
        os.makedirs(self.log_dir, exist_ok=True)
        log_path = os.path.join(self.log_dir, f"{name}.log")
        log_file = open(log_path, "w", buffering=1, encoding="utf-8")
        self.env.defer_err(f"close log file: {log_path}", log_file.close)
        log_file.write(f"(process started as: {argv})\n")
        log_file.flush()

        if line_handler is None:
            stdout = log_file
            decoding = {}
        else:
            # Child output may contain invalid UTF-8.
            stdout = subprocess.PIPE
            decoding = {"encoding": "utf-8", "errors": "replace"}

        try:
            proc = subprocess.Popen(
                argv,
                stdout=stdout,
                stderr=subprocess.STDOUT,
                stdin=subprocess.DEVNULL,
                pass_fds=tuple(pass_fds),
                bufsize=1 if line_handler is not None else -1,
                **decoding,
            )
        except OSError as e:
            raise ProcessSpawnError(f"start {' '.join(argv)}: {e}") from e

        handle = ProcessHandle(name, argv, proc, log_path, log_file, self.env, self.step)
        self.env.defer_err(f"stop {name}", handle.stop)
        logging.getLogger(f"service.{name}").info(f"started {name} (pid {proc.pid}), logs at {log_path}")

        if line_handler is not None:
            handle._pump_thread = self.env.go(
                lambda: handle._pump(line_handler), name=f"{name}-output"
            )
        return handle
