"""Merge mining proxy manager with restart-in-place reconfiguration."""

from __future__ import annotations

import logging
from typing import Any, Mapping, Optional

from ..adapters.mm_proxy import MmProxyStartConfig
from ..config.settings import SupervisorSettings
from ..errors import NotStartedError
from ..health_types import QueryResult
from ..network_utils import get_free_port
from ..process_watcher import ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..shutdown import ShutdownSignal
from .service_manager import ServiceManager

logger = logging.getLogger(__name__)

INFO_PATH = "/get_info"


class MmProxyManager(ServiceManager[MmProxyStartConfig]):
    """The monero-compatible listen port is chosen once and kept across reconfiguration."""

    def __init__(self, watcher: ProcessWatcher[MmProxyStartConfig], settings: SupervisorSettings, *, listen_port: Optional[int] = None) -> None:
        super().__init__(watcher, settings)
        self.listen_port = listen_port if listen_port is not None else get_free_port()

    async def start(self, config: MmProxyStartConfig, shutdown: Optional[ShutdownSignal] = None) -> ProcessStatus:
        return await self._start(config, shutdown)

    async def wait_ready(self) -> None:
        """Block until the proxy answers ``/get_info``."""
        async with self._state_lock.write_lock():
            await self._wait_until_answering(_fetch_info, self._shutdown, self._settings.proxy_ready_timeout_seconds)

    async def change_config(self, new_config: MmProxyStartConfig) -> ProcessStatus:
        """
        Restart the proxy with ``new_config``.

        Stop and start happen under the manager's write lock, so concurrent
        queries see the old configuration, ``Unavailable`` while restarting,
        or the new configuration, and nothing in between.
        """
        async with self._state_lock.write_lock():
            logger.info(
                "Reconfiguring %s: upstream %s -> %s",
                self.role,
                self._config.upstream_port if self._config is not None else None,
                new_config.upstream_port,
            )
            await self._stop_locked()
            return await self._start_locked(new_config, self._shutdown)

    async def get_monero_port(self) -> int:
        config = self._config
        if config is None:
            raise NotStartedError(self.role)
        return config.monero_port

    async def info(self) -> QueryResult[Mapping[str, Any]]:
        return await self._query(_fetch_info)

    def _build_client(self, config: MmProxyStartConfig) -> LocalServiceClient:
        return LocalServiceClient(self.role, config.monero_port, timeout_seconds=self._settings.rpc_timeout_seconds)


async def _fetch_info(client: LocalServiceClient) -> Mapping[str, Any]:
    return await client.get_json(INFO_PATH)


__all__ = ["MmProxyManager"]
