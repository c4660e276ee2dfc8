"""
Deploy configuration and L1 deployment artifacts.

Both are read from the contracts root:
    <root>/deploy-config/<network>.json
    <root>/deployments/<network>/.deploy
"""

import json
import os
import time
from collections.abc import Iterator, Mapping
from dataclasses import dataclass, field, fields, replace
from typing import Any

from web3 import Web3

from opdevnet.errors import ConfigError

L2_OUTPUT_ORACLE_PROXY = "L2OutputOracleProxy"
OPTIMISM_PORTAL_PROXY = "OptimismPortalProxy"
SYSTEM_CONFIG_PROXY = "SystemConfigProxy"
L1_STANDARD_BRIDGE_PROXY = "L1StandardBridgeProxy"
L1_CROSS_DOMAIN_MESSENGER_PROXY = "L1CrossDomainMessengerProxy"
L1_ERC721_BRIDGE_PROXY = "L1ERC721BridgeProxy"


def _read_json(path: str, what: str) -> Any:
    try:
        with open(path) as f:
            return json.load(f)
    except FileNotFoundError as e:
        raise ConfigError(f"{what} not found at {path}") from e
    except json.JSONDecodeError as e:
        raise ConfigError(f"malformed {what} at {path}: {e}") from e


class L1Deployments(Mapping[str, str]):
    """
    Contract role name to deployed L1 address.

    Usage:
        deployments = load_l1_deployments(root, "hardhat")
        oracle = deployments.require(L2_OUTPUT_ORACLE_PROXY)
    """

    def __init__(self, addresses: Mapping[str, str]):
        normalized = {}
        for role, address in addresses.items():
            if not isinstance(address, str) or not Web3.is_address(address):
                raise ConfigError(f"deployment '{role}' has an invalid address: {address!r}")
            normalized[role] = Web3.to_checksum_address(address)
        self._addresses = normalized

    def __getitem__(self, role: str) -> str:
        return self._addresses[role]

    def __iter__(self) -> Iterator[str]:
        return iter(self._addresses)

    def __len__(self) -> int:
        return len(self._addresses)

    def require(self, role: str) -> str:
        """
        Return the address deployed for ``role``.

        Raises:
            ConfigError: If the role is missing or deployed at the zero address.
        """
        address = self._addresses.get(role)
        if address is None or int(address, 16) == 0:
            raise ConfigError(f"{role} cannot be address(0)")
        return address

    @property
    def l2_output_oracle_proxy(self) -> str:
        return self.require(L2_OUTPUT_ORACLE_PROXY)

    def __repr__(self) -> str:
        return f"L1Deployments({self._addresses})"


def load_l1_deployments(contracts_root_dir: str, network: str) -> L1Deployments:
    path = os.path.join(contracts_root_dir, "deployments", network, ".deploy")
    data = _read_json(path, "l1 deployments")
    if not isinstance(data, dict):
        raise ConfigError(f"l1 deployments at {path} must be a JSON object")
    return L1Deployments(data)


def _as_int(value: Any) -> int | None:
    # uint64 values may be serialized as hex strings
    if value is None:
        return None
    if isinstance(value, bool):
        raise ConfigError(f"expected an integer, got {value!r}")
    if isinstance(value, int):
        return value
    if isinstance(value, str):
        try:
            return int(value, 16) if value.startswith("0x") else int(value)
        except ValueError as e:
            raise ConfigError(f"expected an integer, got {value!r}") from e
    raise ConfigError(f"expected an integer, got {value!r}")


def _key(name: str, kind: str = "int"):
    return field(default=None, metadata={"json": name, "kind": kind})


@dataclass(frozen=True)
class DeployConfig:
    """
    The subset of the contracts deploy config the devnet reads or overrides.

    Keys not modelled here are preserved in ``extra``. Instances are frozen;
    overrides produce new instances via ``dataclasses.replace``.
    """

    l1_chain_id: int | None = _key("l1ChainID")
    l2_chain_id: int | None = _key("l2ChainID")
    l1_block_time: int | None = _key("l1BlockTime")
    l2_block_time: int | None = _key("l2BlockTime")
    max_sequencer_drift: int | None = _key("maxSequencerDrift")
    sequencer_window_size: int | None = _key("sequencerWindowSize")
    channel_timeout: int | None = _key("channelTimeout")
    batch_inbox_address: str | None = _key("batchInboxAddress", "str")
    batch_sender_address: str | None = _key("batchSenderAddress", "str")
    gas_price_oracle_overhead: int | None = _key("gasPriceOracleOverhead")
    gas_price_oracle_scalar: int | None = _key("gasPriceOracleScalar")
    l2_genesis_block_gas_limit: int | None = _key("l2GenesisBlockGasLimit")
    l1_use_clique: bool | None = _key("l1UseClique", "bool")
    l1_genesis_block_timestamp: int | None = _key("l1GenesisBlockTimestamp")
    fund_dev_accounts: bool | None = _key("fundDevAccounts", "bool")
    l2_genesis_regolith_time_offset: int | None = _key("l2GenesisRegolithTimeOffset")
    l2_genesis_canyon_time_offset: int | None = _key("l2GenesisCanyonTimeOffset")
    l2_genesis_delta_time_offset: int | None = _key("l2GenesisDeltaTimeOffset")
    l2_genesis_ecotone_time_offset: int | None = _key("l2GenesisEcotoneTimeOffset")
    l2_genesis_fjord_time_offset: int | None = _key("l2GenesisFjordTimeOffset")
    l1_standard_bridge_proxy: str | None = _key("l1StandardBridgeProxy", "str")
    l1_cross_domain_messenger_proxy: str | None = _key("l1CrossDomainMessengerProxy", "str")
    l1_erc721_bridge_proxy: str | None = _key("l1ERC721BridgeProxy", "str")
    system_config_proxy: str | None = _key("systemConfigProxy", "str")
    optimism_portal_proxy: str | None = _key("optimismPortalProxy", "str")
    extra: dict[str, Any] = field(default_factory=dict, compare=False)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "DeployConfig":
        kwargs: dict[str, Any] = {}
        extra = dict(data)
        for f in fields(cls):
            name = f.metadata.get("json")
            if name is None or name not in data:
                continue
            value = extra.pop(name)
            kind = f.metadata["kind"]
            if kind == "int":
                value = _as_int(value)
            elif kind == "bool" and value is not None and not isinstance(value, bool):
                raise ConfigError(f"{name}: expected a boolean, got {value!r}")
            elif kind == "str" and value is not None and not isinstance(value, str):
                raise ConfigError(f"{name}: expected a string, got {value!r}")
            kwargs[f.name] = value
        return cls(extra=extra, **kwargs)

    def to_dict(self) -> dict[str, Any]:
        data = dict(self.extra)
        for f in fields(self):
            name = f.metadata.get("json")
            if name is not None and getattr(self, f.name) is not None:
                data[name] = getattr(self, f.name)
        return data

    def with_deployments(self, deployments: L1Deployments) -> "DeployConfig":
        """Copy the deployed proxy addresses into the config."""
        return replace(
            self,
            l1_standard_bridge_proxy=deployments.get(L1_STANDARD_BRIDGE_PROXY),
            l1_cross_domain_messenger_proxy=deployments.get(L1_CROSS_DOMAIN_MESSENGER_PROXY),
            l1_erc721_bridge_proxy=deployments.get(L1_ERC721_BRIDGE_PROXY),
            system_config_proxy=deployments.get(SYSTEM_CONFIG_PROXY),
            optimism_portal_proxy=deployments.get(OPTIMISM_PORTAL_PROXY),
        )

    def hardfork_time(self, offset: int | None, genesis_time: int) -> int | None:
        """
        Activation timestamp for a fork offset.

        None leaves the fork disabled. A non-positive offset activates the fork
        at genesis and is reported as 0.
        """
        if offset is None:
            return None
        if offset <= 0:
            return 0
        return genesis_time + offset


def load_deploy_config(contracts_root_dir: str, network: str) -> DeployConfig:
    path = os.path.join(contracts_root_dir, "deploy-config", f"{network}.json")
    data = _read_json(path, "deploy config")
    if not isinstance(data, dict):
        raise ConfigError(f"deploy config at {path} must be a JSON object")
    return DeployConfig.from_dict(data)


def apply_devnet_defaults(
    deploy_config: DeployConfig,
    deployments: L1Deployments | None = None,
    now: int | None = None,
) -> DeployConfig:
    """
    Settings for fast in-memory devnets.

    Disables clique, starts L1 genesis now, funds dev accounts, uses 2s L1 and
    1s L2 blocks and shrinks the sequencer window to 4 blocks so unsafe block
    consolidation happens often.
    """
    cfg = replace(
        deploy_config,
        l1_use_clique=False,
        l1_genesis_block_timestamp=int(time.time()) if now is None else now,
        fund_dev_accounts=True,
        l1_block_time=2,
        l2_block_time=1,
        sequencer_window_size=4,
    )
    if deployments is not None:
        cfg = cfg.with_deployments(deployments)
    return cfg
