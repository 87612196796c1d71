"""
Shared plumbing of every service and miner manager.

A manager owns one :class:`~minerstack.process_watcher.ProcessWatcher`, the
configuration its current instance was started with and the client used to
query it. Lifecycle operations take the manager's write lock; domain queries
snapshot state under the read lock and never wait behind a restart.
"""

from __future__ import annotations

import asyncio
import logging
import time
from typing import Any, Awaitable, Callable, Generic, Optional, TypeVar

from ..config.settings import SupervisorSettings
from ..errors import NotReadyError, ProcessExitError, RpcError, StartupCancelledError, StartupTimeoutError
from ..health_types import QueryResult, Unavailable, UnavailableReason
from ..process_adapter import ConfigT
from ..process_watcher import ProcessState, ProcessStatus, ProcessWatcher
from ..rpc import LocalServiceClient
from ..rwlock import AsyncRWLock
from ..shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

T = TypeVar("T")

ClientOperation = Callable[[LocalServiceClient], Awaitable[T]]


class ServiceManager(Generic[ConfigT]):
    """Lifecycle and query boundary for one managed process."""

    def __init__(self, watcher: ProcessWatcher[ConfigT], settings: SupervisorSettings) -> None:
        self._watcher = watcher
        self._settings = settings
        self._state_lock = AsyncRWLock()
        self._config: Optional[ConfigT] = None
        self._client: Optional[LocalServiceClient] = None
        self._shutdown: Optional[ShutdownSignal] = None

    @property
    def role(self) -> str:
        return self._watcher.role

    def status(self) -> ProcessStatus:
        return self._watcher.status()

    def is_running(self) -> bool:
        return self._watcher.status().state is ProcessState.RUNNING

    def config(self) -> Optional[ConfigT]:
        """Configuration of the current instance; replaced as a whole on restart."""
        return self._config

    async def stop(self) -> int:
        async with self._state_lock.write_lock():
            return await self._stop_locked()

    def _build_client(self, config: ConfigT) -> Optional[LocalServiceClient]:
        """Return the client for ``config``'s query endpoint; ``None`` when the role exposes none."""
        return None

    async def _start(
        self,
        config: ConfigT,
        shutdown: Optional[ShutdownSignal],
        probe: Optional[ClientOperation[Any]] = None,
        probe_timeout_seconds: Optional[float] = None,
    ) -> ProcessStatus:
        """Start under the write lock and, with a ``probe``, return only once the process answers it."""
        async with self._state_lock.write_lock():
            already_running = self._watcher.status().state in (ProcessState.STARTING, ProcessState.RUNNING)
            status = await self._start_locked(config, shutdown)
            if probe is None or already_running:
                return status
            timeout = probe_timeout_seconds if probe_timeout_seconds is not None else self._settings.ready_probe_timeout_seconds
            try:
                await self._wait_until_answering(probe, shutdown, timeout)
            except (StartupTimeoutError, StartupCancelledError):
                await self._stop_locked()
                raise
            return self._watcher.status()

    async def _start_locked(self, config: ConfigT, shutdown: Optional[ShutdownSignal]) -> ProcessStatus:
        current = self._watcher.status()
        if current.state in (ProcessState.STARTING, ProcessState.RUNNING):
            logger.debug("%s already running; start is a no-op", self.role)
            return current
        status = await self._watcher.start(config, shutdown)
        await self._replace_client(self._build_client(config))
        self._config = config
        self._shutdown = shutdown
        return status

    async def _stop_locked(self) -> int:
        exit_code = await self._watcher.stop()
        await self._replace_client(None)
        return exit_code

    async def _replace_client(self, client: Optional[LocalServiceClient]) -> None:
        previous, self._client = self._client, client
        if previous is not None:
            await previous.close()

    async def _query(self, operation: ClientOperation[T]) -> QueryResult[T]:
        """
        Run ``operation`` against the current instance.

        Not-started, not-ready and timeout conditions come back as
        :class:`Unavailable`; RPC error payloads propagate as :class:`RpcError`.
        """
        if self._state_lock.write_pending:
            return Unavailable(UnavailableReason.NOT_READY, f"{self.role} is restarting")
        async with self._state_lock.read_lock():
            status = self._watcher.status()
            client = self._client
        if status.state is ProcessState.NOT_STARTED or client is None:
            return Unavailable(UnavailableReason.NOT_STARTED, f"{self.role} has not been started")
        if status.state is not ProcessState.RUNNING:
            return Unavailable(UnavailableReason.NOT_READY, f"{self.role} is {status.state.value}")
        try:
            return await operation(client)
        except NotReadyError as exc:
            logger.debug("%s query unavailable: %s", self.role, exc)
            reason = UnavailableReason.TIMEOUT if getattr(exc, "timeout_seconds", None) is not None else UnavailableReason.NOT_READY
            return Unavailable(reason, str(exc))

    async def _wait_until_answering(
        self, probe: ClientOperation[Any], shutdown: Optional[ShutdownSignal], timeout_seconds: float
    ) -> None:
        """Poll ``probe`` until it succeeds, the process exits, shutdown fires or ``timeout_seconds`` elapses."""
        client = self._client
        if client is None:
            return
        deadline = time.monotonic() + timeout_seconds
        while True:
            status = self._watcher.status()
            if status.is_terminal:
                raise ProcessExitError(self.role, status.exit_code if status.exit_code is not None else -1)
            try:
                await probe(client)
            except (NotReadyError, RpcError) as exc:  # policy_guard: allow-silent-handler
                logger.debug("%s not answering yet: %s", self.role, exc)
            else:
                logger.info("%s is answering requests", self.role)
                return
            if time.monotonic() >= deadline:
                raise StartupTimeoutError(self.role, timeout_seconds)
            if shutdown is not None:
                if not await shutdown.sleep(self._settings.ready_probe_interval_seconds):
                    raise StartupCancelledError(self.role)
            else:
                await asyncio.sleep(self._settings.ready_probe_interval_seconds)


__all__ = ["ClientOperation", "ServiceManager"]
