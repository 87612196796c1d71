"""Base node manager: start, sync tracking and network queries."""

from __future__ import annotations

import asyncio
import logging
import shutil
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Any, List, Mapping, Optional

from ..adapters.node import CORRUPT_DATABASE_PATTERN, NodeStartConfig, node_data_path
from ..config.settings import SupervisorSettings
from ..errors import NotStartedError, ProcessError, ProcessExitError, StartupCancelledError, SyncTimeoutError
from ..health_types import HealthSnapshot, QueryResult, Unavailable, is_unavailable
from ..network_utils import get_free_port
from ..process_adapter import LineSeverity
from ..process_watcher import OutputWarning, ProcessState, ProcessStatus, ProcessWatcher
from ..progress import NullProgress, ProgressSink
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

SYNC_STAGE = "waiting-for-initial-sync"
SYNC_DONE_STATE = "done"


@dataclass(frozen=True)
class SyncProgress:
    state: str
    local_height: int
    tip_height: int
    connected_peers: int

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "SyncProgress":
        return cls(
            state=str(payload.get("state", "")),
            local_height=int(payload.get("local_height", 0)),
            tip_height=int(payload.get("tip_height", 0)),
            connected_peers=int(payload.get("connected_peers", 0)),
        )

    @property
    def is_synced(self) -> bool:
        if self.state == SYNC_DONE_STATE:
            return True
        return self.tip_height > 0 and self.local_height >= self.tip_height

    @property
    def percent(self) -> int:
        if self.tip_height <= 0:
            return 0
        return max(0, min(100, int(self.local_height * 100 / self.tip_height)))


@dataclass(frozen=True)
class NetworkStatus:
    sha_hash_rate: int
    randomx_hash_rate: int
    block_reward: int
    block_height: int
    block_time: int
    is_synced: bool

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "NetworkStatus":
        return cls(
            sha_hash_rate=int(payload.get("sha_hash_rate", 0)),
            randomx_hash_rate=int(payload.get("randomx_hash_rate", 0)),
            block_reward=int(payload.get("block_reward", 0)),
            block_height=int(payload.get("block_height", 0)),
            block_time=int(payload.get("block_time", 0)),
            is_synced=bool(payload.get("is_synced", False)),
        )

    @classmethod
    def empty(cls) -> "NetworkStatus":
        return cls(0, 0, 0, 0, 0, False)


class NodeManager(ServiceManager[NodeStartConfig]):
    """Runs the base node; ports are chosen once per manager and reused across restarts."""

    def __init__(
        self,
        watcher: ProcessWatcher[NodeStartConfig],
        settings: SupervisorSettings,
        *,
        grpc_port: Optional[int] = None,
        rpc_port: Optional[int] = None,
    ) -> None:
        super().__init__(watcher, settings)
        self._grpc_port = grpc_port if grpc_port is not None else get_free_port()
        self._rpc_port = rpc_port if rpc_port is not None else get_free_port()
        self._corruption_detected = False
        watcher.on_warning(self._on_output_warning)

    @property
    def corruption_detected(self) -> bool:
        """True once the current data directory has been reported corrupt by the node."""
        return self._corruption_detected

    async def ensure_started(self, shutdown: Optional[ShutdownSignal], data_dir: Path, config_dir: Path, log_dir: Path) -> ProcessStatus:
        config = NodeStartConfig(
            data_dir=data_dir,
            config_dir=config_dir,
            log_dir=log_dir,
            network=self._settings.network,
            grpc_port=self._grpc_port,
            rpc_port=self._rpc_port,
        )
        config.base_path.mkdir(parents=True, exist_ok=True)
        return await self._start(config, shutdown, probe=lambda client: client.call("get_version"))

    async def get_grpc_port(self) -> int:
        if self._config is None:
            raise NotStartedError(self.role)
        return self._grpc_port

    async def wait_synced(self, progress: Optional[ProgressSink] = None, shutdown: Optional[ShutdownSignal] = None) -> None:
        """
        Poll sync progress until the node reports itself synchronized.

        Raises:
            SyncTimeoutError: The maximum wait elapsed first
            StartupCancelledError: Shutdown was triggered while waiting
            ProcessExitError: The node exited while syncing
        """
        sink = progress or NullProgress()
        started = time.monotonic()
        while True:
            if shutdown is not None and shutdown.is_triggered:
                raise StartupCancelledError(self.role)
            result = await self._query(_fetch_sync_progress)
            if is_unavailable(result):
                logger.debug("Sync progress unavailable: %s", result.detail)
                self._raise_if_exited()
            else:
                params = {"local_height": result.local_height, "tip_height": result.tip_height, "peers": result.connected_peers}
                if result.is_synced:
                    sink.update(SYNC_STAGE, params, 100)
                    logger.info("Node synced at height %s", result.local_height)
                    return
                sink.update(SYNC_STAGE, params, result.percent)

            waited = time.monotonic() - started
            if waited >= self._settings.sync_max_wait_seconds:
                raise SyncTimeoutError(waited)
            if shutdown is not None:
                if not await shutdown.sleep(self._settings.sync_poll_interval_seconds):
                    raise StartupCancelledError(self.role)
            else:
                await asyncio.sleep(self._settings.sync_poll_interval_seconds)

    async def get_network_hash_rate_and_block_reward(self) -> QueryResult[NetworkStatus]:
        return await self._query(_fetch_network_status)

    async def list_connected_peers(self) -> QueryResult[List[str]]:
        return await self._query(_fetch_connected_peers)

    async def health_snapshot(self) -> QueryResult[HealthSnapshot]:
        tip = await self._query(lambda client: client.call("get_tip_info"))
        if isinstance(tip, Unavailable):
            return tip
        peers = await self.list_connected_peers()
        facts = {
            "height": int(tip.get("height", 0)),
            "is_synced": bool(tip.get("is_synced", False)),
            "connected_peers": 0 if isinstance(peers, Unavailable) else len(peers),
        }
        return HealthSnapshot(role=self.role, facts=facts)

    async def clean_data_folder(self, data_dir: Path) -> None:
        """Delete the node's chain data; the node must not be running."""
        if self._watcher.status().is_alive:
            raise ProcessError(f"Refusing to delete {self.role} data while it is running")
        target = node_data_path(data_dir, self._settings.network)
        logger.warning("Deleting node data directory %s", target)
        await asyncio.to_thread(shutil.rmtree, target, True)
        self._corruption_detected = False

    def _build_client(self, config: NodeStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.rpc_port, timeout_seconds=self._settings.rpc_timeout_seconds)

    def _raise_if_exited(self) -> None:
        crash = self._watcher.take_crash()
        if crash is not None:
            raise crash
        status = self._watcher.status()
        if status.state is ProcessState.NOT_STARTED:
            raise NotStartedError(self.role)
        if status.state is ProcessState.STOPPED:
            raise StartupCancelledError(self.role)
        if status.state is ProcessState.CRASHED:
            raise ProcessExitError(self.role, status.exit_code if status.exit_code is not None else -1)

    def _on_output_warning(self, warning: OutputWarning) -> None:
        if warning.severity is LineSeverity.FATAL and CORRUPT_DATABASE_PATTERN.search(warning.line):
            logger.warning("Node reported a corrupt database: %s", warning.line)
            self._corruption_detected = True


async def _fetch_sync_progress(client: LocalServiceClient) -> SyncProgress:
    return SyncProgress.from_payload(await client.call("get_sync_progress"))


async def _fetch_network_status(client: LocalServiceClient) -> NetworkStatus:
    return NetworkStatus.from_payload(await client.call("get_network_state"))


async def _fetch_connected_peers(client: LocalServiceClient) -> List[str]:
    payload = await client.call("list_connected_peers")
    peers = payload.get("connected_peers", []) if isinstance(payload, Mapping) else payload
    result: List[str] = []
    for peer in peers or []:
        if isinstance(peer, Mapping):
            result.append(str(peer.get("node_id") or peer.get("public_key") or ""))
        else:
            result.append(str(peer))
    return [peer for peer in result if peer]


__all__ = ["NetworkStatus", "NodeManager", "SYNC_STAGE", "SyncProgress"]
