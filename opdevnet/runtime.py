"""
Test runtime for devnet functional tests.

Every log record is tagged with the running test's name, and each test also
gets its own log file under ``<datadir>/logs/`` next to the devnet artifacts.
"""

import logging
import os

import flexitest

LOG_FORMAT = "%(asctime)s - %(test_name)s - %(name)s - %(levelname)s - %(message)s"

_current_test: str | None = None


class TestNameFilter(logging.Filter):
    """Injects the current test name as ``record.test_name``."""

    def filter(self, record: logging.LogRecord) -> bool:
        record.test_name = _current_test or "no-test"
        return True


def set_current_test(test_name: str | None) -> None:
    global _current_test
    _current_test = test_name


class DevnetRuntime(flexitest.TestRuntime):
    """
    Usage:
        runtime = DevnetRuntime(envs, datadir, factories)
        results = runtime.run_tests(tests)
    """

    def __init__(self, envs, datadir_root: str, factories):
        super().__init__(envs, datadir_root, factories)
        self.test_log_dir = os.path.join(datadir_root, "logs")

    def _open_test_log(self, test_name: str) -> logging.Handler:
        os.makedirs(self.test_log_dir, exist_ok=True)
        handler = logging.FileHandler(os.path.join(self.test_log_dir, f"{test_name}.log"))
        handler.setFormatter(logging.Formatter(LOG_FORMAT))
        handler.addFilter(TestNameFilter())
        return handler

    def _exec_test(self, test_name: str, env):
        set_current_test(test_name)
        handler = self._open_test_log(test_name)
        root = logging.getLogger()
        root.addHandler(handler)
        try:
            return super()._exec_test(test_name, env)
        finally:
            root.removeHandler(handler)
            handler.close()
            set_current_test(None)
