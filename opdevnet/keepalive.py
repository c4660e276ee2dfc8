"""
Keep-alive mode: start an env and leave its devnets running for debugging.
"""

import logging
import time

import flexitest

from opdevnet.base_test import DevnetTest

KEEP_ALIVE_TEST_NAME = "keepalive"
REPORT_INTERVAL = 60

logger = logging.getLogger(__name__)


def make_keepalive_test(env_name: str) -> type[DevnetTest]:
    """
    Build a test that starts ``env_name`` and blocks until interrupted.

    The endpoints and artifacts directory of every devnet in the env are
    printed so they can be used from another shell.
    """

    class KeepAliveTest(DevnetTest):
        def __init__(self, ctx: flexitest.InitContext):
            ctx.set_env(env_name)

        def main(self, ctx) -> bool:
            print("\n" + "=" * 60)
            print(f"Keep-alive mode: environment '{env_name}' is running")
            for name, svc in self.runctx.env.services.items():  # type: ignore[union-attr]
                print(f"[{name}]")
                for key, value in svc.props.items():
                    print(f"  {key}: {value}")
            print("Press Ctrl+C to stop...")
            print("=" * 60 + "\n")

            try:
                while True:
                    time.sleep(REPORT_INTERVAL)
                    for name, svc in self.runctx.env.services.items():  # type: ignore[union-attr]
                        if not svc.check_status():
                            logger.warning(f"{name}: an OP stack process has exited")
            except KeyboardInterrupt:
                print("\nShutting down...")
            return True

    return KeepAliveTest
