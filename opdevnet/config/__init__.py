"""
Configuration: deploy config, L1 deployments, rollup config and settings.
"""

from opdevnet.config.deploy import (
    L2_OUTPUT_ORACLE_PROXY,
    OPTIMISM_PORTAL_PROXY,
    SYSTEM_CONFIG_PROXY,
    DeployConfig,
    L1Deployments,
    apply_devnet_defaults,
    load_deploy_config,
    load_l1_deployments,
)
from opdevnet.config.rollup import Derivation, RollupConfig, derive_rollup_config
from opdevnet.config.settings import Binaries, DevnetSettings, PortsConfig

__all__ = [
    # deploy.py
    "DeployConfig",
    "L1Deployments",
    "L2_OUTPUT_ORACLE_PROXY",
    "OPTIMISM_PORTAL_PROXY",
    "SYSTEM_CONFIG_PROXY",
    "apply_devnet_defaults",
    "load_deploy_config",
    "load_l1_deployments",
    # rollup.py
    "Derivation",
    "RollupConfig",
    "derive_rollup_config",
    # settings.py
    "Binaries",
    "DevnetSettings",
    "PortsConfig",
]
