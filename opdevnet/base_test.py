"""
Base test class for devnet functional tests.
"""

import flexitest

from opdevnet.constants import ServiceType
from opdevnet.service import DevnetService


class DevnetTest(flexitest.Test):
    """
    Base class for all functional tests.

    Tests should explicitly:
    - Get the devnet from self.get_devnet()
    - Create RPC clients
    - Call self.assert_no_async_errors() before returning
    """

    def premain(self, ctx: flexitest.RunContext):
        """
        Things that need to be done before we run the test.
        """
        self.runctx = ctx

    def main(self, ctx) -> bool:  # type: ignore[override]
        raise NotImplementedError

    def get_devnet(self, name: str = ServiceType.Devnet) -> DevnetService:
        svc = self.runctx.get_service(name)
        if svc is None:
            raise RuntimeError(
                f"Service '{name}' not found. Available services: "
                f"{list(self.runctx.env.services.keys())}"  # type: ignore[union-attr]
            )
        return svc

    def assert_no_async_errors(self, devnet: DevnetService) -> None:
        errors = devnet.async_errors()
        assert not errors, f"devnet reported asynchronous errors: {errors}"
