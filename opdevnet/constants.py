"""
Constants used throughout the devnet orchestrator.
"""

from enum import Enum

# Anvil always runs with this chain ID.
ANVIL_CHAIN_ID = 31337

# Chain ID the L2 node and the deploy config agree on.
L2_CHAIN_ID = 901

# The contracts repo only ships hardhat configs; anvil is compatible with them.
NETWORK_NAME = "hardhat"

# Recorded as the L2 genesis block number in the rollup config.
L2_GENESIS_NUMBER = 1

ONE_ETH_IN_WEI = 10**18

FUNDING_AMOUNT_WEI = 10 * ONE_ETH_IN_WEI

ZERO_ADDRESS = "0x" + "00" * 20


class ServiceType(str, Enum):
    """
    Service type identifiers for test environments.

    Using str Enum allows direct string comparison while providing
    IDE autocomplete and type safety.
    """

    Devnet = "devnet"

    def __str__(self) -> str:
        """Allow direct use in f-strings and format operations."""
        return self.value
