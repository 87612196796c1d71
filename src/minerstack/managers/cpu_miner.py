"""CPU miner manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional

from ..adapters.xmrig import XmrigStartConfig
from ..app_config import MiningMode
from ..config.settings import AppPaths, SupervisorSettings
from ..earnings import estimate_daily_earnings
from ..health_types import is_unavailable
from ..network_utils import get_free_port
from ..process_watcher import ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

SUMMARY_PATH = "/2/summary"


@dataclass(frozen=True)
class CpuMinerStatus:
    is_mining: bool
    hash_rate: float
    estimated_earnings: int
    connection_ok: bool = False

    @classmethod
    def idle(cls) -> "CpuMinerStatus":
        return cls(is_mining=False, hash_rate=0.0, estimated_earnings=0)


@dataclass(frozen=True)
class XmrigSummary:
    hash_rate: float
    connected: bool

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "XmrigSummary":
        totals = (payload.get("hashrate") or {}).get("total") or []
        first = totals[0] if totals else None
        connection = payload.get("connection") or {}
        return cls(hash_rate=float(first or 0.0), connected=bool(connection.get("pool")))


def summarize_cpu_mining(summary: Optional[XmrigSummary], network_hash_rate: int, block_reward: int) -> CpuMinerStatus:
    """Combine a live miner summary with network parameters."""
    if summary is None:
        return CpuMinerStatus(is_mining=True, hash_rate=0.0, estimated_earnings=0)
    return CpuMinerStatus(
        is_mining=True,
        hash_rate=summary.hash_rate,
        estimated_earnings=estimate_daily_earnings(block_reward, summary.hash_rate, network_hash_rate),
        connection_ok=summary.connected,
    )


class CpuMiner(ServiceManager[XmrigStartConfig]):
    """Mines against the merge mining proxy's monero-compatible port; the upstream is chosen by the caller."""

    def __init__(self, watcher: ProcessWatcher[XmrigStartConfig], settings: SupervisorSettings, *, http_api_port: Optional[int] = None) -> None:
        super().__init__(watcher, settings)
        self._http_api_port = http_api_port if http_api_port is not None else get_free_port()

    async def start(
        self,
        shutdown: Optional[ShutdownSignal],
        monero_address: str,
        proxy_port: int,
        paths: AppPaths,
        mode: MiningMode,
    ) -> ProcessStatus:
        config = XmrigStartConfig(
            log_dir=paths.log_dir,
            monero_address=monero_address,
            proxy_port=proxy_port,
            http_api_port=self._http_api_port,
            mode=mode,
        )
        logger.info("Starting CPU miner in %s mode against proxy port %s", mode.value, proxy_port)
        return await self._start(config, shutdown)

    async def status(self, network_hash_rate: int, block_reward: int) -> CpuMinerStatus:
        if not self.is_running():
            return CpuMinerStatus.idle()
        summary = await self._query(_fetch_summary)
        if is_unavailable(summary):
            logger.debug("CPU miner summary unavailable: %s", summary.detail)
            return summarize_cpu_mining(None, network_hash_rate, block_reward)
        return summarize_cpu_mining(summary, network_hash_rate, block_reward)

    def _build_client(self, config: XmrigStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.http_api_port, timeout_seconds=self._settings.rpc_timeout_seconds)


async def _fetch_summary(client: LocalServiceClient) -> XmrigSummary:
    return XmrigSummary.from_payload(await client.get_json(SUMMARY_PATH))


__all__ = ["CpuMiner", "CpuMinerStatus", "XmrigSummary", "summarize_cpu_mining"]
