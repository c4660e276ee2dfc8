"""
The devnet bring-up pipeline.

Stages run strictly in order and each one only reads what earlier stages
returned:

    anvil -> fund key -> forge deploy -> latest L1 block -> L2 node
    -> L2 genesis hash -> rollup config -> OP stack
"""

import contextlib
import logging
from dataclasses import dataclass, field

from opdevnet.accounts import TestKey
from opdevnet.config.deploy import DeployConfig, L1Deployments, load_deploy_config, load_l1_deployments
from opdevnet.config.rollup import Derivation, RollupConfig, derive_rollup_config
from opdevnet.config.settings import Binaries
from opdevnet.constants import L2_CHAIN_ID, L2_GENESIS_NUMBER, NETWORK_NAME
from opdevnet.context import Context
from opdevnet.contracts import deploy_contracts
from opdevnet.endpoint import Endpoint
from opdevnet.environment import Environment
from opdevnet.errors import StageError
from opdevnet.l1 import fund_account, start_anvil
from opdevnet.l2 import ExecNode, NodeFactory, TxAdapters, bind_l2_listeners, start_l2_node
from opdevnet.listener import ErrorRouter, EventListener
from opdevnet.opstack import OPStack
from opdevnet.process import ProcessHandle, Supervisor
from opdevnet.rpc import AnvilClient, L1BlockSnapshot, L2Client, dial, wait_rpc_ready

logger = logging.getLogger(__name__)


@contextlib.contextmanager
def stage(name: str):
    """Wrap any failure inside the block as ``StageError(name, cause)``."""
    try:
        yield
    except StageError:
        raise
    except Exception as e:
        raise StageError(name, e) from e


@dataclass(frozen=True)
class RunningStack:
    """Handles to a devnet that finished bring-up."""

    l1: AnvilClient
    l2: L2Client
    key: TestKey
    l1_block: L1BlockSnapshot
    l2_genesis_hash: str
    derivation: Derivation
    op_processes: dict[str, ProcessHandle]
    router: ErrorRouter

    @property
    def deploy_config(self) -> DeployConfig:
        return self.derivation.deploy_config

    @property
    def l1_deployments(self) -> L1Deployments:
        return self.derivation.l1_deployments

    @property
    def rollup_config(self) -> RollupConfig:
        return self.derivation.rollup_config


@dataclass(frozen=True)
class Stack:
    """
    Configuration of one devnet run.

    All ports are assumed free and ``contracts_root_dir`` must hold the
    contracts repo with its deploy script and deploy configs.

    Usage:
        stack = Stack(anvil_url, engine_url, comet_url, op_node_url,
                      contracts_root_dir, "artifacts", 2, listener)
        env = Environment()
        try:
            running = stack.run(Context.background(), env)
        finally:
            env.release()
    """

    anvil_url: Endpoint
    l2_engine_url: Endpoint
    l2_comet_url: Endpoint
    op_node_url: Endpoint
    contracts_root_dir: str
    artifacts_dir: str
    l1_block_time: float
    event_listener: EventListener
    binaries: Binaries = field(default_factory=Binaries)
    node_factory: NodeFactory | None = None
    tx_adapters: TxAdapters | None = None
    readiness_timeout: float | None = None
    l2_chain_id: int = L2_CHAIN_ID
    network_name: str = NETWORK_NAME

    def run(self, ctx: Context, env: Environment) -> RunningStack | None:
        """
        Bring the devnet up.

        Returns None, without error, when anvil never accepts connections or
        the L2 node never answers JSON-RPC; no later stage runs in that case.

        Raises:
            StageError: If any stage fails. ``env`` has been released by then,
                so every process is stopped and every cleanup has run.
        """
        try:
            return self._run(ctx, env)
        except BaseException:
            env.release()
            raise

    @contextlib.contextmanager
    def _readiness_ctx(self, ctx: Context):
        bounded = ctx.with_cancel() if self.readiness_timeout is None else ctx.with_timeout(self.readiness_timeout)
        try:
            yield bounded
        finally:
            bounded.cancel()

    def _reachable(self, endpoint: Endpoint, ctx: Context) -> bool:
        with self._readiness_ctx(ctx) as bounded:
            return endpoint.is_reachable(bounded)

    def _rpc_ready(self, url: str, ctx: Context) -> bool:
        with self._readiness_ctx(ctx) as bounded:
            return wait_rpc_ready(url, bounded)

    def _run(self, ctx: Context, env: Environment) -> RunningStack | None:
        supervisor = Supervisor(env, self.artifacts_dir)
        router = ErrorRouter()
        router.start(env)

        with stage("set up l2 listeners"):
            listeners = bind_l2_listeners(self.l2_engine_url, self.l2_comet_url, env)

        with stage("run anvil"):
            start_anvil(
                supervisor,
                ctx,
                router,
                self.event_listener,
                self.anvil_url,
                self.l1_block_time,
                self.binaries.anvil,
            )
        # NOTE: unreachable services skip the rest of bring-up without failing.
        if not self._reachable(self.anvil_url, ctx):
            logger.warning(f"anvil never became reachable at {self.anvil_url}, skipping bring-up")
            return None

        with stage("dial anvil"):
            anvil = AnvilClient(dial(str(self.anvil_url), ctx, env, name="anvil"))
        with stage("generate key"):
            key = TestKey.generate()
        with stage("set balance"):
            fund_account(anvil, key)

        with stage("deploy l1 contracts"):
            deploy_contracts(
                supervisor,
                ctx,
                self.contracts_root_dir,
                str(self.anvil_url),
                key,
                self.binaries.forge,
            )
        with stage("get the latest l1 block"):
            l1_block = anvil.block_by_number()

        with stage("run l2 node"):
            start_l2_node(
                ctx,
                env,
                self.node_factory or ExecNode.factory(self.binaries.node),
                listeners,
                genesis_time=l1_block.timestamp,
                chain_id=self.l2_chain_id,
                listener=self.event_listener,
                supervisor=supervisor,
                router=router,
                tx_adapters=self.tx_adapters,
            )
        # The engine socket is bound by us, so only an RPC answer shows the node is serving.
        if not self._rpc_ready(str(listeners.engine_http.endpoint), ctx):
            logger.warning(f"L2 node never became reachable at {self.l2_engine_url}, skipping bring-up")
            return None

        with stage("dial l2 node"):
            l2 = L2Client(dial(str(listeners.engine_http.endpoint), ctx, env, name="l2-engine"))
        with stage("get l2 genesis block hash"):
            l2_genesis_hash = l2.genesis_hash()

        with stage("new l1 deployments"):
            l1_deployments = load_l1_deployments(self.contracts_root_dir, self.network_name)
        with stage("new deploy config"):
            deploy_config = load_deploy_config(self.contracts_root_dir, self.network_name)
        with stage("new rollup config"):
            derivation = derive_rollup_config(
                deploy_config,
                l1_deployments,
                l1_block,
                l2_genesis_hash,
                self.l2_chain_id,
                L2_GENESIS_NUMBER,
            )

        with stage("run the op stack"):
            op_stack = OPStack(
                self.anvil_url,
                self.l2_engine_url,
                self.op_node_url,
                derivation.l1_deployments.l2_output_oracle_proxy,
                key,
                derivation.rollup_config,
                self.event_listener,
                supervisor,
                router,
                self.binaries,
            )
            op_processes = op_stack.run(ctx, env)

        return RunningStack(
            l1=anvil,
            l2=l2,
            key=key,
            l1_block=l1_block,
            l2_genesis_hash=l2_genesis_hash,
            derivation=derivation,
            op_processes=op_processes,
            router=router,
        )
