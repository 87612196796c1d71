"""
Mining stack: owns every manager, the shutdown token and the re-entrancy
guards, and exposes the commands a front end issues.
"""

from __future__ import annotations

import logging
import time
from contextlib import contextmanager
from dataclasses import dataclass, field
from typing import Any, Dict, Iterator, List, Mapping, Optional

from .adapters import GpuMinerAdapter, GpuNodeSource, MmProxyAdapter, NodeAdapter, P2poolAdapter, WalletAdapter, XmrigAdapter
from .app_config import AppConfigStore, MiningMode
from .binaries import BinaryName
from .binary_resolver import BinaryResolver
from .collaborators import HardwareMonitor, NullHardwareMonitor, TelemetryIdProvider, WalletIdentity, telemetry_id_or_default
from .config.settings import AppPaths, SupervisorSettings
from .errors import BusyError, MinerStackError
from .health_types import QueryResult, Unavailable, UnavailableReason, is_unavailable
from .in_progress import InProgressFlag
from .managers import (
    CpuMiner,
    CpuMinerStatus,
    GpuMiner,
    GpuMinerStatus,
    MmProxyManager,
    NetworkStatus,
    NodeManager,
    P2poolManager,
    P2poolStats,
    WalletBalance,
    WalletManager,
)
from .process_watcher import ProcessWatcher
from .progress import NullProgress, ProgressSink, SetupObserver
from .setup_orchestrator import SetupOrchestrator
from .shutdown import Shutdown

logger = logging.getLogger(__name__)

MAX_ACCEPTABLE_COMMAND_SECONDS = 1.0


@dataclass(frozen=True)
class BaseNodeStatus:
    block_height: int
    block_time: int
    is_synced: bool
    is_connected: bool
    connected_peers: List[str] = field(default_factory=list)


@dataclass(frozen=True)
class MinerMetrics:
    cpu_hardware: Mapping[str, Any]
    cpu: CpuMinerStatus
    gpu_hardware: Mapping[str, Any]
    gpu: GpuMinerStatus
    base_node: BaseNodeStatus


@dataclass(frozen=True)
class WalletDetails:
    balance: WalletBalance
    address: str


@dataclass(frozen=True)
class ApplicationVersion:
    installed: Optional[str]
    latest: Optional[str]


@contextmanager
def timed_command(name: str) -> Iterator[None]:
    """Warn when a front-end command takes longer than a second."""
    started = time.monotonic()
    try:
        yield
    finally:
        elapsed = time.monotonic() - started
        if elapsed > MAX_ACCEPTABLE_COMMAND_SECONDS:
            logger.warning("%s took too long: %.2fs", name, elapsed)


class MiningStack:
    def __init__(
        self,
        *,
        paths: AppPaths,
        settings: SupervisorSettings,
        app_config: AppConfigStore,
        resolver: BinaryResolver,
        node: NodeManager,
        wallet: WalletManager,
        mm_proxy: MmProxyManager,
        p2pool: P2poolManager,
        cpu_miner: CpuMiner,
        gpu_miner: GpuMiner,
        wallet_identity: WalletIdentity,
        shutdown: Optional[Shutdown] = None,
        hardware_monitor: Optional[HardwareMonitor] = None,
        telemetry: Optional[TelemetryIdProvider] = None,
    ) -> None:
        self.paths = paths
        self.settings = settings
        self.app_config = app_config
        self.resolver = resolver
        self.node = node
        self.wallet = wallet
        self.mm_proxy = mm_proxy
        self.p2pool = p2pool
        self.cpu_miner = cpu_miner
        self.gpu_miner = gpu_miner
        self.shutdown = shutdown or Shutdown()
        self._wallet_identity = wallet_identity
        self._hardware_monitor = hardware_monitor or NullHardwareMonitor()
        self._telemetry = telemetry
        self._metrics_flag = InProgressFlag("getting miner metrics")
        self.orchestrator = SetupOrchestrator(
            resolver=resolver,
            node=node,
            wallet=wallet,
            p2pool=p2pool,
            mm_proxy=mm_proxy,
            gpu_miner=gpu_miner,
            app_config=app_config,
            paths=paths,
            settings=settings,
            shutdown=self.shutdown,
            wallet_identity=wallet_identity,
            telemetry=telemetry,
        )

    @classmethod
    def create(
        cls,
        paths: AppPaths,
        settings: SupervisorSettings,
        app_config: AppConfigStore,
        wallet_identity: WalletIdentity,
        *,
        hardware_monitor: Optional[HardwareMonitor] = None,
        telemetry: Optional[TelemetryIdProvider] = None,
    ) -> "MiningStack":
        """Wire real watchers and adapters for every role."""
        resolver = BinaryResolver(paths.install_dir, paths.cache_dir, settings)
        node = NodeManager(ProcessWatcher(NodeAdapter(resolver), settings), settings)
        wallet = WalletManager(ProcessWatcher(WalletAdapter(resolver), settings), settings, node, wallet_identity)
        return cls(
            paths=paths,
            settings=settings,
            app_config=app_config,
            resolver=resolver,
            node=node,
            wallet=wallet,
            mm_proxy=MmProxyManager(ProcessWatcher(MmProxyAdapter(resolver), settings), settings),
            p2pool=P2poolManager(ProcessWatcher(P2poolAdapter(resolver), settings), settings),
            cpu_miner=CpuMiner(ProcessWatcher(XmrigAdapter(resolver), settings), settings),
            gpu_miner=GpuMiner(ProcessWatcher(GpuMinerAdapter(resolver), settings), settings),
            wallet_identity=wallet_identity,
            hardware_monitor=hardware_monitor,
            telemetry=telemetry,
        )

    async def setup(self, observer: SetupObserver) -> None:
        await self.orchestrator.run(observer)

    async def start_mining(self) -> None:
        with timed_command("start_mining"):
            config = await self.app_config.snapshot()
            signal = self.shutdown.to_signal()
            if config.cpu_mining_enabled:
                proxy_port = await self.mm_proxy.get_monero_port()
                try:
                    await self.cpu_miner.start(signal, config.monero_address, proxy_port, self.paths, config.mode)
                except MinerStackError:
                    logger.exception("Could not start CPU mining")
                    await self.cpu_miner.stop()
                    raise

            gpu_available = self.gpu_miner.is_gpu_mining_available()
            logger.info("GPU availability %s", gpu_available)
            if config.gpu_mining_enabled and gpu_available:
                if config.p2pool_enabled:
                    source = GpuNodeSource.p2pool(await self.p2pool.grpc_port())
                else:
                    source = GpuNodeSource.base_node(await self.node.get_grpc_port())
                try:
                    await self.gpu_miner.start(
                        signal,
                        self._wallet_identity.get_address(),
                        source,
                        self.paths,
                        config.mode,
                        telemetry_id_or_default(self._telemetry),
                    )
                except MinerStackError:
                    logger.exception("Could not start GPU mining")
                    await self.cpu_miner.stop()
                    raise

    async def stop_mining(self) -> None:
        with timed_command("stop_mining"):
            await self.cpu_miner.stop()
            await self.gpu_miner.stop()

    async def set_mode(self, mode: MiningMode) -> None:
        with timed_command("set_mode"):
            await self.app_config.set_mode(mode)

    async def set_cpu_mining_enabled(self, enabled: bool) -> None:
        with timed_command("set_cpu_mining_enabled"):
            await self.app_config.set_cpu_mining_enabled(enabled)

    async def set_gpu_mining_enabled(self, enabled: bool) -> None:
        with timed_command("set_gpu_mining_enabled"):
            await self.app_config.set_gpu_mining_enabled(enabled)

    async def set_monero_address(self, address: str) -> None:
        with timed_command("set_monero_address"):
            await self.app_config.set_monero_address(address)

    async def set_p2pool_enabled(self, enabled: bool) -> None:
        """Persist the toggle and re-point a configured proxy at the pool or the node."""
        with timed_command("set_p2pool_enabled"):
            await self.app_config.set_p2pool_enabled(enabled)
            current = self.mm_proxy.config()
            if current is None:
                logger.warning("Tried to set p2pool_enabled but mmproxy has not been initialized yet")
                return
            if current.p2pool_enabled == enabled:
                return
            if enabled:
                new_config = current.set_to_use_p2pool(await self.p2pool.grpc_port())
            else:
                new_config = current.set_to_use_base_node(await self.node.get_grpc_port())
            await self.mm_proxy.change_config(new_config)

    async def get_miner_metrics(self) -> MinerMetrics:
        """
        Collect miner, hardware and node status.

        Raises:
            BusyError: Another metrics request is still running
        """
        with timed_command("get_miner_metrics"), self._metrics_flag.hold():
            network = await self.node.get_network_hash_rate_and_block_reward()
            if is_unavailable(network):
                if network.reason is not UnavailableReason.NOT_STARTED:
                    logger.warning("Error getting network hash rate and block reward: %s", network.detail)
                network = NetworkStatus.empty()

            cpu_status = await self.cpu_miner.status(network.randomx_hash_rate, network.block_reward)
            gpu_status = await self.gpu_miner.status(network.sha_hash_rate, network.block_reward)
            hardware = self._hardware_monitor.read_hardware_parameters()

            peers = await self.node.list_connected_peers()
            connected_peers = [] if is_unavailable(peers) else list(peers)
            return MinerMetrics(
                cpu_hardware=hardware.cpu,
                cpu=cpu_status,
                gpu_hardware=hardware.gpu,
                gpu=gpu_status,
                base_node=BaseNodeStatus(
                    block_height=network.block_height,
                    block_time=network.block_time,
                    is_synced=network.is_synced,
                    is_connected=bool(connected_peers),
                    connected_peers=connected_peers,
                ),
            )

    async def get_wallet_details(self) -> WalletDetails:
        """
        Raises:
            BusyError: A balance request is still running
        """
        with timed_command("get_wallet_details"):
            balance = await self.wallet.get_balance()
            if isinstance(balance, Unavailable):
                if balance.reason is UnavailableReason.BUSY:
                    raise BusyError("getting wallet balance")
                if balance.reason is not UnavailableReason.NOT_STARTED:
                    logger.warning("Wallet balance unavailable: %s", balance.detail)
                balance = WalletBalance.zero()
            return WalletDetails(balance=balance, address=self._wallet_identity.get_address())

    async def get_p2pool_stats(self) -> QueryResult[P2poolStats]:
        with timed_command("get_p2pool_stats"):
            stats = await self.p2pool.stats()
            if isinstance(stats, Unavailable) and stats.reason is UnavailableReason.BUSY:
                raise BusyError("getting p2pool stats")
            return stats

    def get_applications_versions(self) -> Dict[str, ApplicationVersion]:
        """Installed and latest known versions from local state only."""
        versions: Dict[str, ApplicationVersion] = {}
        for binary in BinaryName:
            installed = self.resolver.installed_version(binary)
            latest = self.resolver.get_latest_version(binary)
            versions[binary.value] = ApplicationVersion(
                installed=str(installed) if installed is not None else None,
                latest=str(latest.version) if latest is not None else None,
            )
        return versions

    async def update_applications(self, progress: Optional[ProgressSink] = None) -> None:
        """Force an upgrade check of every binary; failures propagate to the caller."""
        sink = progress or NullProgress()
        with timed_command("update_applications"):
            await self.app_config.set_last_binaries_update_timestamp(time.time())
            for binary in BinaryName:
                await self.resolver.ensure_latest(binary, sink, self.shutdown.to_signal())

    async def stop_all(self) -> Dict[str, int]:
        """Stop every process in reverse dependency order, then broadcast shutdown."""
        exit_codes: Dict[str, int] = {}
        for manager in (self.cpu_miner, self.gpu_miner, self.mm_proxy, self.p2pool, self.wallet, self.node):
            exit_codes[manager.role] = await manager.stop()
            logger.info("Stopped %s with exit code %s", manager.role, exit_codes[manager.role])
        self.shutdown.trigger()
        return exit_codes


__all__ = [
    "ApplicationVersion",
    "BaseNodeStatus",
    "MAX_ACCEPTABLE_COMMAND_SECONDS",
    "MinerMetrics",
    "MiningStack",
    "WalletDetails",
    "timed_command",
]
