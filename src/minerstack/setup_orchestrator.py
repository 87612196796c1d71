"""
Setup orchestrator: brings the stack up in dependency order with progress reporting.

Order: version checks, node (with corrupt-database recovery), wallet, initial
sync, optional p2pool, merge mining proxy. Every step opens a fixed progress
window; the observer only ever sees a stage name, optional parameters and a
monotonically increasing fraction.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from typing import Callable, Iterator, Optional, Tuple

from .adapters.mm_proxy import MmProxyStartConfig
from .app_config import AppConfigStore
from .binaries import BinaryName
from .binary_resolver import BinaryResolver
from .collaborators import TelemetryIdProvider, WalletIdentity, telemetry_id_or_default
from .config.settings import AppPaths, SupervisorSettings
from .errors import MinerStackError, ProcessExitError, ResolverError, SetupError, StartupCancelledError
from .in_progress import InProgressFlag
from .managers import GpuMiner, MmProxyManager, NodeManager, P2poolManager, WalletManager
from .progress import ProgressTracker, SetupObserver
from .shutdown import Shutdown

logger = logging.getLogger(__name__)

STARTING_UP_STAGE = "starting-up"
NODE_STAGE = "waiting-for-node"
WALLET_STAGE = "waiting-for-wallet"
SYNC_STAGE = "preparing-for-initial-sync"
P2POOL_STAGE = "starting-p2pool"
MM_PROXY_STAGE = "starting-mmproxy"
STARTED_STAGE = "application-started"
FAILED_STAGE = "setup-failed"

# (binary, stage, progress window end) in install order.
UPDATE_STEPS: Tuple[Tuple[BinaryName, str, int], ...] = (
    (BinaryName.NODE, "checking-latest-version-node", 10),
    (BinaryName.MERGE_MINING_PROXY, "checking-latest-version-mmproxy", 15),
    (BinaryName.WALLET, "checking-latest-version-wallet", 20),
    (BinaryName.GPU_MINER, "checking-latest-version-gpuminer", 25),
    (BinaryName.CPU_MINER, "checking-latest-version-xmrig", 30),
    (BinaryName.P2POOL_NODE, "checking-latest-version-sha-p2pool", 35),
)
NODE_MAX = 38
WALLET_MAX = 40
SYNC_MAX = 75
P2POOL_MAX = 85
MM_PROXY_MAX = 100


class SetupOrchestrator:
    """Runs setup once per session; a finished session makes further runs no-ops."""

    def __init__(
        self,
        *,
        resolver: BinaryResolver,
        node: NodeManager,
        wallet: WalletManager,
        p2pool: P2poolManager,
        mm_proxy: MmProxyManager,
        gpu_miner: GpuMiner,
        app_config: AppConfigStore,
        paths: AppPaths,
        settings: SupervisorSettings,
        shutdown: Shutdown,
        wallet_identity: WalletIdentity,
        telemetry: Optional[TelemetryIdProvider] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self._resolver = resolver
        self._node = node
        self._wallet = wallet
        self._p2pool = p2pool
        self._mm_proxy = mm_proxy
        self._gpu_miner = gpu_miner
        self._app_config = app_config
        self._paths = paths
        self._settings = settings
        self._shutdown = shutdown
        self._wallet_identity = wallet_identity
        self._telemetry = telemetry
        self._clock = clock
        self._running = InProgressFlag("setting up")
        self._finished = False

    @property
    def is_finished(self) -> bool:
        return self._finished

    async def run(self, observer: SetupObserver) -> None:
        """
        Execute the setup sequence.

        Raises:
            BusyError: Setup is already running in this session
            SetupError: A step failed fatally; a ``setup-failed`` event carrying the reason was emitted
            StartupCancelledError: Shutdown was triggered during setup
        """
        if self._finished:
            logger.info("Setup already finished for this session")
            return
        with self._running.hold():
            tracker = ProgressTracker(observer)
            try:
                await self._run(tracker)
            except SetupError as exc:
                logger.error("Setup failed at %s: %s", exc.stage, exc.reason)
                tracker.emit(FAILED_STAGE, {"stage": exc.stage, "reason": exc.reason}, tracker.last_progress)
                raise

    async def _run(self, tracker: ProgressTracker) -> None:
        signal = self._shutdown.to_signal()
        tracker.update(STARTING_UP_STAGE, None, 0)
        self._paths.ensure()

        await self._read_highest_versions()
        config = await self._app_config.snapshot()
        now = self._clock()
        last_check = config.last_binaries_update_timestamp
        if last_check is None or now - last_check > self._settings.version_check_staleness_seconds:
            await self._app_config.set_last_binaries_update_timestamp(now)
            await self._update_binaries(tracker)
        else:
            logger.info("Binaries checked %.0fs ago; skipping upgrade", now - last_check)
            await self._gpu_miner.detect(self._paths.config_dir)

        tracker.set_max(NODE_MAX)
        tracker.update(NODE_STAGE, None, 0)
        await self._start_node()
        logger.info("Node has started and is ready")

        tracker.set_max(WALLET_MAX)
        tracker.update(WALLET_STAGE, None, 0)
        with self._stage(WALLET_STAGE):
            await self._wallet.ensure_started(signal, self._paths.data_dir, self._paths.config_dir, self._paths.log_dir)

        tracker.set_max(SYNC_MAX)
        tracker.update(SYNC_STAGE, None, 0)
        with self._stage(SYNC_STAGE):
            await self._node.wait_synced(tracker, signal)

        config = await self._app_config.snapshot()
        if config.p2pool_enabled:
            tracker.set_max(P2POOL_MAX)
            tracker.update(P2POOL_STAGE, None, 0)
            with self._stage(P2POOL_STAGE):
                base_node_grpc = await self._node.get_grpc_port()
                await self._p2pool.ensure_started(
                    signal,
                    self._p2pool.pool_config(base_node_grpc),
                    self._paths.data_dir,
                    self._paths.config_dir,
                    self._paths.log_dir,
                )

        tracker.set_max(MM_PROXY_MAX)
        tracker.update(MM_PROXY_STAGE, None, 0)
        with self._stage(MM_PROXY_STAGE):
            proxy_config = await self._build_proxy_config(config.p2pool_enabled)
            await self._mm_proxy.start(proxy_config, signal)
            await self._mm_proxy.wait_ready()

        self._finished = True
        tracker.emit(STARTED_STAGE, None, 1.0)
        logger.info("Setup finished")

    async def _read_highest_versions(self) -> None:
        for binary in BinaryName:
            try:
                info = await self._resolver.read_current_highest_version(binary)
            except ResolverError as exc:  # policy_guard: allow-silent-handler
                logger.warning("Could not read highest version of %s: %s", binary.value, exc)
                continue
            logger.info("Highest known version of %s: %s", binary.value, info.version)

    async def _update_binaries(self, tracker: ProgressTracker) -> None:
        signal = self._shutdown.to_signal()
        for binary, stage, window_end in UPDATE_STEPS:
            if signal.is_triggered:
                raise StartupCancelledError("setup")
            tracker.set_max(window_end)
            tracker.update(stage, None, 0)
            try:
                await self._resolver.ensure_latest(binary, tracker, signal)
            except ResolverError as exc:  # policy_guard: allow-silent-handler
                logger.error("Could not ensure latest version of %s: %s", binary.value, exc)
            if binary is BinaryName.GPU_MINER:
                await self._gpu_miner.detect(self._paths.config_dir)

    async def _start_node(self) -> None:
        """Start the node, deleting its data directory once when it reports a corrupt database."""
        signal = self._shutdown.to_signal()
        cleaned = False
        attempts = self._settings.node_start_attempts
        for attempt in range(1, attempts + 1):
            try:
                await self._node.ensure_started(signal, self._paths.data_dir, self._paths.config_dir, self._paths.log_dir)
                return
            except StartupCancelledError:
                raise
            except ProcessExitError as exc:
                if attempt < attempts and not cleaned and self._is_corrupt_database(exc):
                    logger.warning("Database for node is corrupt or needs a reset; deleting and trying again")
                    with self._stage(NODE_STAGE):
                        await self._node.clean_data_folder(self._paths.data_dir)
                    cleaned = True
                    continue
                raise SetupError(NODE_STAGE, str(exc)) from exc
            except MinerStackError as exc:
                raise SetupError(NODE_STAGE, str(exc)) from exc

    def _is_corrupt_database(self, exc: ProcessExitError) -> bool:
        return exc.exit_code == self._settings.corrupt_database_exit_code or self._node.corruption_detected

    async def _build_proxy_config(self, p2pool_enabled: bool) -> MmProxyStartConfig:
        base_node_grpc_port = await self._node.get_grpc_port()
        config = MmProxyStartConfig(
            data_dir=self._paths.data_dir,
            config_dir=self._paths.config_dir,
            log_dir=self._paths.log_dir,
            network=self._settings.network,
            tari_address=self._wallet_identity.get_address(),
            base_node_grpc_port=base_node_grpc_port,
            monero_port=self._mm_proxy.listen_port,
            telemetry_id=telemetry_id_or_default(self._telemetry),
        )
        if p2pool_enabled:
            return config.set_to_use_p2pool(await self._p2pool.grpc_port())
        return config

    @contextmanager
    def _stage(self, stage: str) -> Iterator[None]:
        try:
            yield
        except (SetupError, StartupCancelledError):
            raise
        except MinerStackError as exc:
            raise SetupError(stage, str(exc)) from exc


__all__ = ["FAILED_STAGE", "STARTED_STAGE", "SetupOrchestrator", "UPDATE_STEPS"]
