"""
L1 simulator bring-up: start anvil and fund the run's test key.
"""

import logging

from opdevnet.accounts import TestKey
from opdevnet.constants import FUNDING_AMOUNT_WEI
from opdevnet.context import Context
from opdevnet.endpoint import Endpoint
from opdevnet.listener import ErrorRouter, EventListener
from opdevnet.process import ProcessHandle, Supervisor
from opdevnet.rpc import AnvilClient

logger = logging.getLogger(__name__)


def format_block_time(seconds: float) -> str:
    """Render seconds the way anvil's --block-time expects, e.g. ``2`` or ``1.5``."""
    return f"{seconds:g}"


def anvil_argv(binary: tuple[str, ...], port: int, block_time: float) -> list[str]:
    # fmt: off
    return [
        *binary,
        "--port", str(port),
        "--order", "fifo",
        "--disable-block-gas-limit",
        "--gas-price", "0",
        "--block-time", format_block_time(block_time),
    ]
    # fmt: on


def start_anvil(
    supervisor: Supervisor,
    ctx: Context,
    router: ErrorRouter,
    listener: EventListener,
    endpoint: Endpoint,
    block_time: float,
    binary: tuple[str, ...] = ("anvil",),
) -> ProcessHandle:
    """
    Start anvil in the background.

    Anvil is expected to outlive every pipeline stage; if it dies, the error
    goes to ``listener.on_anvil_err`` and the pipeline is not interrupted.
    """
    anvil = supervisor.spawn("anvil", anvil_argv(binary, endpoint.port, block_time), ctx)
    anvil.monitor(ctx, router, listener.on_anvil_err)
    return anvil


def fund_account(anvil: AnvilClient, key: TestKey, amount: int = FUNDING_AMOUNT_WEI) -> None:
    anvil.set_balance(key.address, amount)
    logger.info(f"funded {key.address} with {amount} wei")
