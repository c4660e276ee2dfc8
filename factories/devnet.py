"""
Devnet factory.
Creates a full L1 + L2 + OP stack devnet as one flexitest service.
"""

import contextlib
import os

import flexitest

from opdevnet.config import DevnetSettings
from opdevnet.constants import ServiceType
from opdevnet.endpoint import Endpoint
from opdevnet.service import DevnetService, RecordingListener
from opdevnet.stack import Stack


class DevnetFactory(flexitest.Factory):
    """
    Factory for creating devnets.

    Usage:
        factory = DevnetFactory(range(18545, 18745), settings)
        devnet = factory.create_devnet()
        l1 = devnet.create_l1_rpc()
    """

    def __init__(self, port_range: range, settings: DevnetSettings):
        ports = list(port_range)
        if any(p < 1024 or p > 65535 for p in ports):
            raise ValueError(
                f"DevnetFactory: Port range must be between 1024 and 65535. "
                f"Got: {port_range.start}-{port_range.stop - 1}"
            )
        super().__init__(ports)
        self.settings = settings

    @flexitest.with_ectx("ctx")
    def create_devnet(self, name: str = ServiceType.Devnet, **kwargs) -> DevnetService:
        """
        Create and start a devnet.

        Returns:
            Service with RPC access via .create_l1_rpc() and .create_l2_rpc()
        """
        # The `with_ectx` ensures this is available.
        ctx: flexitest.EnvContext = kwargs["ctx"]

        artifacts_dir = ctx.make_service_dir(str(name))
        host = "127.0.0.1"
        anvil_url = Endpoint("http", host, self.next_port())
        engine_url = Endpoint("ws", host, self.next_port())
        comet_url = Endpoint("tcp", host, self.next_port())
        op_node_url = Endpoint("http", host, self.next_port())

        listener = RecordingListener(op_log_path=os.path.join(artifacts_dir, "op.log"))
        stack = Stack(
            anvil_url=anvil_url,
            l2_engine_url=engine_url,
            l2_comet_url=comet_url,
            op_node_url=op_node_url,
            contracts_root_dir=self.settings.contracts_root_dir,
            artifacts_dir=artifacts_dir,
            l1_block_time=self.settings.l1_block_time,
            event_listener=listener,
            binaries=self.settings.binaries,
            readiness_timeout=self.settings.readiness_timeout,
        )

        props = {
            "anvil_url": str(anvil_url),
            "engine_url": str(engine_url),
            "comet_url": str(comet_url),
            "op_node_url": str(op_node_url),
            "artifacts_dir": artifacts_dir,
        }

        svc = DevnetService(props, stack, listener)
        try:
            svc.start()
        except Exception as e:
            # Ensure cleanup on failure to prevent resource leaks
            with contextlib.suppress(Exception):
                svc.stop()
            raise RuntimeError(f"Failed to start devnet '{name}': {e}") from e

        return svc
