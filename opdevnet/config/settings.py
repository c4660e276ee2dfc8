"""
Settings for launching devnets from the functional test runner.

Loaded from an optional TOML file, then overridden by ``DEVNET_*``
environment variables.
"""

import os
from dataclasses import asdict, dataclass, field
from typing import Any

import toml

from opdevnet.errors import ConfigError


def _argv(value: Any, name: str) -> tuple[str, ...]:
    if isinstance(value, str):
        return (value,)
    if isinstance(value, (list, tuple)) and value and all(isinstance(v, str) for v in value):
        return tuple(value)
    raise ConfigError(f"binaries.{name} must be a string or a non-empty list of strings")


@dataclass(frozen=True)
class Binaries:
    """Command prefix used to launch each external program."""

    anvil: tuple[str, ...] = ("anvil",)
    forge: tuple[str, ...] = ("forge",)
    node: tuple[str, ...] = ("monomer",)
    op_node: tuple[str, ...] = ("op-node",)
    op_batcher: tuple[str, ...] = ("op-batcher",)
    op_proposer: tuple[str, ...] = ("op-proposer",)

    @classmethod
    def from_dict(cls, data: dict[str, Any]) -> "Binaries":
        known = set(cls.__dataclass_fields__)
        unknown = set(data) - known
        if unknown:
            raise ConfigError(f"unknown binaries: {sorted(unknown)}")
        return cls(**{name: _argv(value, name) for name, value in data.items()})


@dataclass
class PortsConfig:
    start: int = field(default=18545)
    count: int = field(default=200)

    def as_range(self) -> range:
        return range(self.start, self.start + self.count)


@dataclass
class DevnetSettings:
    contracts_root_dir: str = field(default="optimism/packages/contracts-bedrock")
    l1_block_time: float = field(default=2)
    readiness_timeout: float = field(default=60)
    binaries: Binaries = field(default_factory=Binaries)
    ports: PortsConfig = field(default_factory=PortsConfig)

    @classmethod
    def load(cls, path: str | None = None) -> "DevnetSettings":
        """
        Load settings from ``path`` (if given) and the environment.

        Raises:
            ConfigError: If the file is unreadable or has invalid values.
        """
        data: dict[str, Any] = {}
        if path is not None:
            try:
                data = toml.load(path)
            except (OSError, toml.TomlDecodeError) as e:
                raise ConfigError(f"read settings {path}: {e}") from e

        settings = cls()
        if "contracts_root_dir" in data:
            settings.contracts_root_dir = str(data["contracts_root_dir"])
        if "l1_block_time" in data:
            settings.l1_block_time = float(data["l1_block_time"])
        if "readiness_timeout" in data:
            settings.readiness_timeout = float(data["readiness_timeout"])
        if "binaries" in data:
            settings.binaries = Binaries.from_dict(data["binaries"])
        if "ports" in data:
            settings.ports = PortsConfig(**data["ports"])

        settings.contracts_root_dir = os.getenv("DEVNET_CONTRACTS_DIR", settings.contracts_root_dir)
        if "DEVNET_L1_BLOCK_TIME" in os.environ:
            settings.l1_block_time = float(os.environ["DEVNET_L1_BLOCK_TIME"])
        if settings.l1_block_time <= 0:
            raise ConfigError(f"l1_block_time must be positive, got {settings.l1_block_time}")
        return settings

    def as_toml_string(self) -> str:
        d = asdict(self)
        d["binaries"] = {k: list(v) for k, v in d["binaries"].items()}
        return toml.dumps(d)
