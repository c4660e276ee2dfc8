"""
L1 contract deployment via ``forge script``.
"""

import logging
import os

from opdevnet.accounts import TestKey
from opdevnet.context import Context
from opdevnet.process import Supervisor

logger = logging.getLogger(__name__)

DEPLOY_SCRIPT = os.path.join("scripts", "Deploy.s.sol")
DEPLOY_CONTRACT = "Deploy"


def forge_argv(
    binary: tuple[str, ...],
    contracts_root_dir: str,
    rpc_url: str,
    key: TestKey,
) -> list[str]:
    target = f"{os.path.join(contracts_root_dir, DEPLOY_SCRIPT)}:{DEPLOY_CONTRACT}"
    # fmt: off
    return [
        *binary,
        "script",
        "--root", contracts_root_dir,
        "-vvv",
        target,
        "--rpc-url", rpc_url,
        "--broadcast",
        "--private-key", key.private_key_hex,
    ]
    # fmt: on


def deploy_contracts(
    supervisor: Supervisor,
    ctx: Context,
    contracts_root_dir: str,
    rpc_url: str,
    key: TestKey,
    binary: tuple[str, ...] = ("forge",),
) -> None:
    """
    Run the deploy script to completion with ``key`` as the deployer.

    The script writes the deployed addresses under
    ``<contracts_root_dir>/deployments``.

    Raises:
        ProcessSpawnError: If forge cannot be started.
        ProcessError: If the script exits with a nonzero code.
        ContextCancelled: If ``ctx`` is cancelled; forge is terminated first.
    """
    forge = supervisor.spawn("forge", forge_argv(binary, contracts_root_dir, rpc_url, key), ctx)
    forge.wait(ctx)
    logger.info(f"deployed L1 contracts from {key.address}")
