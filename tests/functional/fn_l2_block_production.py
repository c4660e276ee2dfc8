"""Test the sequencer drives L2 block production on top of the devnet."""

import logging

import flexitest

from opdevnet.base_test import DevnetTest
from opdevnet.wait import wait_until_with_value

logger = logging.getLogger(__name__)


@flexitest.register
class L2BlockProductionTest(DevnetTest):
    def __init__(self, ctx: flexitest.InitContext):
        ctx.set_env("devnet")

    def main(self, ctx):
        devnet = self.get_devnet()
        l2 = devnet.create_l2_rpc()

        start = l2.block_number()
        logger.info(f"L2 height at start: {start}")

        target = start + 3
        height = wait_until_with_value(
            l2.block_number,
            lambda h: h >= target,
            error_with=f"Timeout waiting for L2 height {target}",
            timeout=60,
            step=1.0,
        )
        logger.info(f"L2 reached height {height}")

        self.assert_no_async_errors(devnet)
        return True
