"""
Ephemeral test keys.

A fresh key is generated for every devnet run. It funds the contract
deployment and later signs for the batcher and proposer; it is never written
to disk.
"""

from dataclasses import dataclass

from eth_account import Account
from eth_account.signers.local import LocalAccount


@dataclass(frozen=True)
class TestKey:
    account: LocalAccount

    __test__ = False

    @classmethod
    def generate(cls) -> "TestKey":
        return cls(Account.create())

    @classmethod
    def from_key(cls, private_key: str) -> "TestKey":
        return cls(Account.from_key(private_key))

    @property
    def address(self) -> str:
        """The checksummed address of this key."""
        return self.account.address

    @property
    def private_key_hex(self) -> str:
        """The private key as bare hex, without a 0x prefix."""
        return bytes(self.account.key).hex()

    def __repr__(self) -> str:
        return f"TestKey(address={self.address})"
