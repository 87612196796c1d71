"""Console wallet manager."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from pathlib import Path
from typing import Any, Mapping, Optional

from ..adapters.wallet import WalletStartConfig
from ..collaborators import WalletIdentity
from ..config.settings import SupervisorSettings
from ..errors import BusyError
from ..health_types import QueryResult, Unavailable, UnavailableReason
from ..in_progress import InProgressFlag
from ..network_utils import get_free_port
from ..process_watcher import ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .node_manager import NodeManager
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class WalletBalance:
    """Balances in the smallest currency unit."""

    available_balance: int
    pending_incoming_balance: int
    pending_outgoing_balance: int
    timelocked_balance: int

    @classmethod
    def zero(cls) -> "WalletBalance":
        return cls(0, 0, 0, 0)

    @classmethod
    def from_payload(cls, payload: Mapping[str, Any]) -> "WalletBalance":
        return cls(
            available_balance=int(payload.get("available_balance", 0)),
            pending_incoming_balance=int(payload.get("pending_incoming_balance", 0)),
            pending_outgoing_balance=int(payload.get("pending_outgoing_balance", 0)),
            timelocked_balance=int(payload.get("timelocked_balance", 0)),
        )


class WalletManager(ServiceManager[WalletStartConfig]):
    def __init__(
        self,
        watcher: ProcessWatcher[WalletStartConfig],
        settings: SupervisorSettings,
        node_manager: NodeManager,
        identity: WalletIdentity,
        *,
        grpc_port: Optional[int] = None,
        rpc_port: Optional[int] = None,
    ) -> None:
        super().__init__(watcher, settings)
        self._node_manager = node_manager
        self._identity = identity
        self._grpc_port = grpc_port if grpc_port is not None else get_free_port()
        self._rpc_port = rpc_port if rpc_port is not None else get_free_port()
        self._balance_flag = InProgressFlag("getting wallet balance")

    async def ensure_started(self, shutdown: Optional[ShutdownSignal], data_dir: Path, config_dir: Path, log_dir: Path) -> ProcessStatus:
        base_node_grpc_port = await self._node_manager.get_grpc_port()
        config = WalletStartConfig(
            data_dir=data_dir,
            config_dir=config_dir,
            log_dir=log_dir,
            network=self._settings.network,
            grpc_port=self._grpc_port,
            rpc_port=self._rpc_port,
            base_node_grpc_port=base_node_grpc_port,
            keys=self._identity.get_keys(),
        )
        config.base_path.mkdir(parents=True, exist_ok=True)
        return await self._start(config, shutdown, probe=lambda client: client.call("get_version"))

    async def get_balance(self) -> QueryResult[WalletBalance]:
        """Live balance; a call overlapping another returns ``Unavailable(BUSY)`` instead of queueing."""
        try:
            with self._balance_flag.hold():
                return await self._query(_fetch_balance)
        except BusyError as exc:
            return Unavailable(UnavailableReason.BUSY, str(exc))

    def _build_client(self, config: WalletStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.rpc_port, timeout_seconds=self._settings.rpc_timeout_seconds)


async def _fetch_balance(client: LocalServiceClient) -> WalletBalance:
    return WalletBalance.from_payload(await client.call("get_balance"))


__all__ = ["WalletBalance", "WalletManager"]
