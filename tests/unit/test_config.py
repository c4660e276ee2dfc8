import json

import pytest
from conftest import (
    BATCH_SENDER,
    DEPLOY_CONFIG,
    DEPLOYMENTS,
    ORACLE,
    PORTAL,
    SYSTEM_CONFIG,
    write_contracts_root,
)

from opdevnet.config import (
    DeployConfig,
    apply_devnet_defaults,
    derive_rollup_config,
    load_deploy_config,
    load_l1_deployments,
)
from opdevnet.constants import ANVIL_CHAIN_ID, L2_CHAIN_ID
from opdevnet.errors import ConfigError
from opdevnet.rpc import L1BlockSnapshot

L1_BLOCK = L1BlockSnapshot(number=7, hash="0x" + "ab" * 32, timestamp=1_700_000_000, parent_hash="0x" + "cd" * 32)
L2_HASH = "0x" + "42" * 32


def derive(root, l2_chain_id=L2_CHAIN_ID):
    return derive_rollup_config(
        load_deploy_config(root, "hardhat"),
        load_l1_deployments(root, "hardhat"),
        L1_BLOCK,
        L2_HASH,
        l2_chain_id,
    )


def test_l1_chain_id_is_forced_to_anvil(contracts_root):
    derivation = derive(contracts_root)
    assert DEPLOY_CONFIG["l1ChainID"] != ANVIL_CHAIN_ID
    assert derivation.deploy_config.l1_chain_id == ANVIL_CHAIN_ID
    assert derivation.rollup_config.l1_chain_id == ANVIL_CHAIN_ID


def test_l2_chain_id_override(contracts_root):
    derivation = derive(contracts_root, l2_chain_id=4242)
    assert derivation.deploy_config.l2_chain_id == 4242
    assert derivation.rollup_config.l2_chain_id == 4242


def test_deployments_are_injected(contracts_root):
    derivation = derive(contracts_root)
    cfg = derivation.deploy_config
    rollup = derivation.rollup_config

    assert cfg.optimism_portal_proxy == PORTAL
    assert cfg.system_config_proxy == SYSTEM_CONFIG
    assert rollup.deposit_contract_address == PORTAL
    assert rollup.l1_system_config_address == SYSTEM_CONFIG
    assert derivation.l1_deployments.l2_output_oracle_proxy == ORACLE
    # No ERC721 bridge in this deployment.
    assert cfg.l1_erc721_bridge_proxy is None


def test_genesis_anchors(contracts_root):
    genesis = derive(contracts_root).rollup_config.genesis
    assert genesis.l1.hash == L1_BLOCK.hash
    assert genesis.l1.number == L1_BLOCK.number
    assert genesis.l2.hash == L2_HASH
    assert genesis.l2.number == 1
    assert genesis.l2_time == L1_BLOCK.timestamp
    assert genesis.system_config.batcher_addr == BATCH_SENDER
    assert genesis.system_config.overhead == "0x" + format(2100, "064x")
    assert genesis.system_config.gas_limit == 30_000_000


def test_hardfork_times(contracts_root):
    rollup = derive(contracts_root).rollup_config
    # A zero offset activates at genesis.
    assert rollup.regolith_time == 0
    assert rollup.ecotone_time == L1_BLOCK.timestamp + 60
    assert rollup.canyon_time is None


@pytest.mark.parametrize(
    "offset, expected",
    [(None, None), (0, 0), (-30, 0), (1, 1_700_000_001), (3600, 1_700_003_600)],
)
def test_hardfork_time_offsets(contracts_root, offset, expected):
    cfg = load_deploy_config(contracts_root, "hardhat")
    assert cfg.hardfork_time(offset, 1_700_000_000) == expected


def test_rollup_json_format(contracts_root):
    data = json.loads(derive(contracts_root).rollup_config.as_json_string())
    assert data["genesis"]["l2"] == {"hash": L2_HASH, "number": 1}
    assert data["genesis"]["system_config"]["batcherAddr"] == BATCH_SENDER
    assert data["l1_chain_id"] == ANVIL_CHAIN_ID
    assert data["deposit_contract_address"] == PORTAL
    assert data["regolith_time"] == 0


@pytest.mark.parametrize("role", ["OptimismPortalProxy", "SystemConfigProxy", "L2OutputOracleProxy"])
def test_missing_required_deployment(tmp_path, role):
    deployments = {k: v for k, v in DEPLOYMENTS.items() if k != role}
    root = write_contracts_root(tmp_path, deployments=deployments)
    with pytest.raises(ConfigError, match=f"{role} cannot be address"):
        derive(root)


def test_zero_oracle_address(tmp_path):
    root = write_contracts_root(tmp_path, deployments={**DEPLOYMENTS, "L2OutputOracleProxy": "0x" + "00" * 20})
    with pytest.raises(ConfigError):
        derive(root)


def test_missing_deploy_config_field(tmp_path):
    config = {k: v for k, v in DEPLOY_CONFIG.items() if k != "channelTimeout"}
    root = write_contracts_root(tmp_path, deploy_config=config)
    with pytest.raises(ConfigError, match="channel_timeout"):
        derive(root)


def test_malformed_deploy_config(tmp_path):
    root = write_contracts_root(tmp_path)
    (tmp_path / "deploy-config" / "hardhat.json").write_text("{not json")
    with pytest.raises(ConfigError, match="malformed deploy config"):
        load_deploy_config(root, "hardhat")


def test_missing_deployments_file(tmp_path):
    with pytest.raises(ConfigError, match="not found"):
        load_l1_deployments(str(tmp_path), "hardhat")


def test_invalid_deployment_address(tmp_path):
    root = write_contracts_root(tmp_path, deployments={**DEPLOYMENTS, "SystemConfigProxy": "0x1234"})
    with pytest.raises(ConfigError, match="invalid address"):
        load_l1_deployments(root, "hardhat")


def test_deploy_config_keeps_unknown_keys():
    cfg = DeployConfig.from_dict(DEPLOY_CONFIG)
    assert cfg.extra == {"finalizationPeriodSeconds": 2}
    data = cfg.to_dict()
    assert data["finalizationPeriodSeconds"] == 2
    assert data["l2GenesisBlockGasLimit"] == 30_000_000


def test_deploy_config_rejects_bad_types():
    with pytest.raises(ConfigError):
        DeployConfig.from_dict({"l2BlockTime": "two"})
    with pytest.raises(ConfigError):
        DeployConfig.from_dict({"l1UseClique": "yes"})


def test_devnet_defaults(contracts_root):
    deployments = load_l1_deployments(contracts_root, "hardhat")
    cfg = apply_devnet_defaults(load_deploy_config(contracts_root, "hardhat"), deployments, now=1234)

    assert cfg.l1_use_clique is False
    assert cfg.l1_genesis_block_timestamp == 1234
    assert cfg.fund_dev_accounts is True
    assert (cfg.l1_block_time, cfg.l2_block_time, cfg.sequencer_window_size) == (2, 1, 4)
    assert cfg.optimism_portal_proxy == PORTAL
