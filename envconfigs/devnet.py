"""Environment configurations."""

from typing import cast

import flexitest

from factories.devnet import DevnetFactory
from opdevnet.constants import ServiceType


class DevnetEnvConfig(flexitest.EnvConfig):
    """
    Devnet environment: one or more independent devnets.

    The first devnet is registered as ``devnet``, further ones as
    ``devnet_1``, ``devnet_2``, ...
    """

    def __init__(self, count: int = 1):
        if count < 1:
            raise ValueError(f"count must be at least 1, got {count}")
        self.count = count

    def init(self, ectx: flexitest.EnvContext) -> flexitest.LiveEnv:
        factory = cast(DevnetFactory, ectx.get_factory(ServiceType.Devnet))

        services = {}
        for i in range(self.count):
            name = str(ServiceType.Devnet) if i == 0 else f"{ServiceType.Devnet}_{i}"
            services[name] = factory.create_devnet(name=name)

        return flexitest.LiveEnv(services)
