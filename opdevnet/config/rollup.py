"""
Rollup configuration derived from a finished L1 deployment.
"""

import json
from dataclasses import dataclass, replace
from typing import Any

from opdevnet.config.deploy import (
    L2_OUTPUT_ORACLE_PROXY,
    OPTIMISM_PORTAL_PROXY,
    SYSTEM_CONFIG_PROXY,
    DeployConfig,
    L1Deployments,
)
from opdevnet.constants import ANVIL_CHAIN_ID, L2_GENESIS_NUMBER, ZERO_ADDRESS
from opdevnet.errors import ConfigError
from opdevnet.rpc import L1BlockSnapshot


def _bytes32(value: int) -> str:
    return "0x" + format(value, "064x")


@dataclass(frozen=True)
class BlockID:
    hash: str
    number: int

    def to_json_dict(self) -> dict[str, Any]:
        return {"hash": self.hash, "number": self.number}


@dataclass(frozen=True)
class SystemConfig:
    batcher_addr: str
    overhead: str
    scalar: str
    gas_limit: int

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "batcherAddr": self.batcher_addr,
            "overhead": self.overhead,
            "scalar": self.scalar,
            "gasLimit": self.gas_limit,
        }


@dataclass(frozen=True)
class RollupGenesis:
    l1: BlockID
    l2: BlockID
    l2_time: int
    system_config: SystemConfig

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "l1": self.l1.to_json_dict(),
            "l2": self.l2.to_json_dict(),
            "l2_time": self.l2_time,
            "system_config": self.system_config.to_json_dict(),
        }


@dataclass(frozen=True)
class RollupConfig:
    """Binds the L2 chain to an L1 deployment. Serialized in the op-node format."""

    genesis: RollupGenesis
    block_time: int
    max_sequencer_drift: int
    seq_window_size: int
    channel_timeout: int
    l1_chain_id: int
    l2_chain_id: int
    batch_inbox_address: str
    deposit_contract_address: str
    l1_system_config_address: str
    regolith_time: int | None = None
    canyon_time: int | None = None
    delta_time: int | None = None
    ecotone_time: int | None = None
    fjord_time: int | None = None

    def to_json_dict(self) -> dict[str, Any]:
        return {
            "genesis": self.genesis.to_json_dict(),
            "block_time": self.block_time,
            "max_sequencer_drift": self.max_sequencer_drift,
            "seq_window_size": self.seq_window_size,
            "channel_timeout": self.channel_timeout,
            "l1_chain_id": self.l1_chain_id,
            "l2_chain_id": self.l2_chain_id,
            "regolith_time": self.regolith_time,
            "canyon_time": self.canyon_time,
            "delta_time": self.delta_time,
            "ecotone_time": self.ecotone_time,
            "fjord_time": self.fjord_time,
            "batch_inbox_address": self.batch_inbox_address,
            "deposit_contract_address": self.deposit_contract_address,
            "l1_system_config_address": self.l1_system_config_address,
        }

    def as_json_string(self) -> str:
        return json.dumps(self.to_json_dict(), indent=2)


@dataclass(frozen=True)
class Derivation:
    """Everything config derivation produces, handed on to the OP stack."""

    deploy_config: DeployConfig
    l1_deployments: L1Deployments
    rollup_config: RollupConfig


def _required(cfg: DeployConfig, name: str) -> Any:
    value = getattr(cfg, name)
    if value is None:
        raise ConfigError(f"deploy config is missing '{name}'")
    return value


def derive_rollup_config(
    deploy_config: DeployConfig,
    l1_deployments: L1Deployments,
    l1_block: L1BlockSnapshot,
    l2_genesis_hash: str,
    l2_chain_id: int,
    l2_genesis_number: int = L2_GENESIS_NUMBER,
) -> Derivation:
    """
    Align the deploy config with the running devnet and derive the rollup config.

    Overrides, in order: the L1 chain ID becomes anvil's (the hardhat template
    says 900), the L2 chain ID becomes ``l2_chain_id``, then the deployed
    addresses are injected. L2 genesis time is the L1 block's timestamp.

    Raises:
        ConfigError: If a required field or deployment address is missing.
    """
    cfg = replace(deploy_config, l1_chain_id=ANVIL_CHAIN_ID)
    cfg = replace(cfg, l2_chain_id=l2_chain_id)
    cfg = cfg.with_deployments(l1_deployments)

    portal = l1_deployments.require(OPTIMISM_PORTAL_PROXY)
    system_config = l1_deployments.require(SYSTEM_CONFIG_PROXY)
    # op-proposer submits outputs to the oracle
    l1_deployments.require(L2_OUTPUT_ORACLE_PROXY)

    genesis_time = l1_block.timestamp
    rollup_config = RollupConfig(
        genesis=RollupGenesis(
            l1=BlockID(l1_block.hash, l1_block.number),
            l2=BlockID(l2_genesis_hash, l2_genesis_number),
            l2_time=genesis_time,
            system_config=SystemConfig(
                batcher_addr=_required(cfg, "batch_sender_address"),
                overhead=_bytes32(cfg.gas_price_oracle_overhead or 0),
                scalar=_bytes32(cfg.gas_price_oracle_scalar or 0),
                gas_limit=_required(cfg, "l2_genesis_block_gas_limit"),
            ),
        ),
        block_time=_required(cfg, "l2_block_time"),
        max_sequencer_drift=_required(cfg, "max_sequencer_drift"),
        seq_window_size=_required(cfg, "sequencer_window_size"),
        channel_timeout=_required(cfg, "channel_timeout"),
        l1_chain_id=cfg.l1_chain_id,
        l2_chain_id=cfg.l2_chain_id,
        batch_inbox_address=cfg.batch_inbox_address or ZERO_ADDRESS,
        deposit_contract_address=portal,
        l1_system_config_address=system_config,
        regolith_time=cfg.hardfork_time(cfg.l2_genesis_regolith_time_offset, genesis_time),
        canyon_time=cfg.hardfork_time(cfg.l2_genesis_canyon_time_offset, genesis_time),
        delta_time=cfg.hardfork_time(cfg.l2_genesis_delta_time_offset, genesis_time),
        ecotone_time=cfg.hardfork_time(cfg.l2_genesis_ecotone_time_offset, genesis_time),
        fjord_time=cfg.hardfork_time(cfg.l2_genesis_fjord_time_offset, genesis_time),
    )
    return Derivation(deploy_config=cfg, l1_deployments=l1_deployments, rollup_config=rollup_config)
