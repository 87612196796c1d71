"""GPU miner manager, including the one-time availability probe."""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from ..adapters.gpu_miner import GpuMinerAdapter, GpuMinerStartConfig, GpuNodeSource
from ..app_config import MiningMode
from ..config.settings import AppPaths, SupervisorSettings
from ..earnings import estimate_daily_earnings
from ..errors import ResolverError
from ..health_types import is_unavailable
from ..network_utils import get_free_port
from ..process_watcher import ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

STATS_PATH = "/stats"
DETECT_TIMEOUT_SECONDS = 60.0


@dataclass(frozen=True)
class GpuMinerStatus:
    is_mining: bool
    hash_rate: int
    estimated_earnings: int
    is_available: bool

    @classmethod
    def idle(cls, is_available: bool) -> "GpuMinerStatus":
        return cls(is_mining=False, hash_rate=0, estimated_earnings=0, is_available=is_available)


def summarize_gpu_mining(hash_rate: int, network_hash_rate: int, block_reward: int, *, is_available: bool) -> GpuMinerStatus:
    return GpuMinerStatus(
        is_mining=True,
        hash_rate=hash_rate,
        estimated_earnings=estimate_daily_earnings(block_reward, hash_rate, network_hash_rate),
        is_available=is_available,
    )


class GpuMiner(ServiceManager[GpuMinerStartConfig]):
    def __init__(self, watcher: ProcessWatcher[GpuMinerStartConfig], settings: SupervisorSettings, *, http_api_port: Optional[int] = None) -> None:
        super().__init__(watcher, settings)
        self._http_api_port = http_api_port if http_api_port is not None else get_free_port()
        self._gpu_available = False

    def is_gpu_mining_available(self) -> bool:
        return self._gpu_available

    async def detect(self, config_dir: Path) -> bool:
        """
        Run the miner in detection mode once; exit code 0 means a usable GPU exists.

        Failures leave GPU mining unavailable and are only logged.
        """
        adapter = self._watcher.adapter
        if not isinstance(adapter, GpuMinerAdapter):
            raise TypeError(f"GPU detection needs a GpuMinerAdapter, got {type(adapter).__name__}")
        try:
            executable = adapter.resolve_executable()
        except ResolverError as exc:
            logger.warning("GPU miner is not installed; GPU mining unavailable: %s", exc)
            self._gpu_available = False
            return False

        args = adapter.detect_args(config_dir)
        try:
            process = await asyncio.create_subprocess_exec(
                str(executable), *args, stdout=asyncio.subprocess.DEVNULL, stderr=asyncio.subprocess.DEVNULL
            )
        except OSError as exc:
            logger.warning("Could not run GPU detection: %s", exc)
            self._gpu_available = False
            return False

        try:
            exit_code = await asyncio.wait_for(process.wait(), timeout=DETECT_TIMEOUT_SECONDS)
        except asyncio.TimeoutError:
            logger.warning("GPU detection did not finish within %.0fs", DETECT_TIMEOUT_SECONDS)
            try:
                process.kill()
            except ProcessLookupError:  # policy_guard: allow-silent-handler
                logger.debug("GPU detection exited before it could be killed")
            await process.wait()
            exit_code = -1

        self._gpu_available = exit_code == 0
        logger.info("GPU mining available: %s (detection exit code %s)", self._gpu_available, exit_code)
        return self._gpu_available

    async def start(
        self,
        shutdown: Optional[ShutdownSignal],
        tari_address: str,
        source: GpuNodeSource,
        paths: AppPaths,
        mode: MiningMode,
        telemetry_id: str,
    ) -> ProcessStatus:
        config = GpuMinerStartConfig(
            config_dir=paths.config_dir,
            log_dir=paths.log_dir,
            tari_address=tari_address,
            source=source,
            mode=mode,
            telemetry_id=telemetry_id,
            http_api_port=self._http_api_port,
        )
        logger.info("Starting GPU miner in %s mode against %s port %s", mode.value, source.kind.value, source.port)
        return await self._start(config, shutdown)

    async def status(self, network_hash_rate: int, block_reward: int) -> GpuMinerStatus:
        if not self.is_running():
            return GpuMinerStatus.idle(self._gpu_available)
        stats = await self._query(_fetch_stats)
        hash_rate = 0 if is_unavailable(stats) else int(stats.get("hashrate", 0))
        return summarize_gpu_mining(hash_rate, network_hash_rate, block_reward, is_available=self._gpu_available)

    def _build_client(self, config: GpuMinerStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.http_api_port, timeout_seconds=self._settings.rpc_timeout_seconds)


async def _fetch_stats(client: LocalServiceClient) -> Mapping[str, Any]:
    payload = await client.get_json(STATS_PATH)
    return payload if isinstance(payload, Mapping) else {}


__all__ = ["GpuMiner", "GpuMinerStatus", "summarize_gpu_mining"]
