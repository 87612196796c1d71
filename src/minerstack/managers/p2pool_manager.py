"""Sha p2pool manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Mapping, Optional

from ..adapters.p2pool import P2poolConfig, P2poolStartConfig
from ..config.settings import SupervisorSettings
from ..errors import BusyError
from ..health_types import QueryResult, Unavailable, UnavailableReason
from ..in_progress import InProgressFlag
from ..network_utils import get_free_port
from ..process_watcher import ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

STATS_PATH = "/stats"


@dataclass(frozen=True)
class P2poolStats:
    connected: bool
    peer_count: int
    share_chain_height: int
    pool_hash_rate: int
    pool_total_earnings: int
    raw: Mapping[str, Any] = field(default_factory=dict, repr=False)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "P2poolStats":
        return cls(
            connected=bool(payload.get("connected", False)),
            peer_count=int(payload.get("peer_count", 0)),
            share_chain_height=int(payload.get("share_chain_height", 0)),
            pool_hash_rate=int(payload.get("pool_hash_rate", 0)),
            pool_total_earnings=int(payload.get("pool_total_earnings", 0)),
            raw=dict(payload),
        )


class P2poolManager(ServiceManager[P2poolStartConfig]):
    """The pool's gRPC port is fixed at construction so the proxy can be pointed at it before the pool runs."""

    def __init__(self, watcher: ProcessWatcher[P2poolStartConfig], settings: SupervisorSettings, *, grpc_port: Optional[int] = None) -> None:
        super().__init__(watcher, settings)
        self._grpc_port = grpc_port if grpc_port is not None else get_free_port()
        self._stats_flag = InProgressFlag("getting p2pool stats")

    def pool_config(self, base_node_grpc_port: int) -> P2poolConfig:
        return P2poolConfig.with_base_node(base_node_grpc_port, grpc_port=self._grpc_port)

    async def ensure_started(
        self,
        shutdown: Optional[ShutdownSignal],
        pool: P2poolConfig,
        data_dir: Path,
        config_dir: Path,
        log_dir: Path,
    ) -> ProcessStatus:
        self._grpc_port = pool.grpc_port
        config = P2poolStartConfig(pool=pool, data_dir=data_dir, config_dir=config_dir, log_dir=log_dir)
        return await self._start(config, shutdown, probe=_fetch_stats)

    async def grpc_port(self) -> int:
        return self._grpc_port

    async def stats(self) -> QueryResult[P2poolStats]:
        try:
            with self._stats_flag.hold():
                return await self._query(_fetch_stats)
        except BusyError as exc:
            return Unavailable(UnavailableReason.BUSY, str(exc))

    def _build_client(self, config: P2poolStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.pool.stats_port, timeout_seconds=self._settings.rpc_timeout_seconds)


async def _fetch_stats(client: LocalServiceClient) -> P2poolStats:
    return P2poolStats.from_payload(await client.get_json(STATS_PATH))


__all__ = ["P2poolManager", "P2poolStats"]
