"""
User-facing application configuration.

The store itself belongs to the host application; the core only needs a
consistent snapshot and a handful of setters. :class:`InMemoryAppConfig`
serves headless runs and tests.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass, replace
from enum import Enum
from typing import Optional, Protocol

from .config.errors import ConfigurationError
from .rwlock import AsyncRWLock

logger = logging.getLogger(__name__)


class MiningMode(Enum):
    ECO = "eco"
    LUDICROUS = "ludicrous"

    @classmethod
    def parse(cls, raw: str) -> "MiningMode":
        try:
            return cls(raw.strip().lower())
        except ValueError as exc:
            raise ConfigurationError.invalid_value("mode", raw, "expected 'eco' or 'ludicrous'") from exc


@dataclass(frozen=True)
class AppConfig:
    p2pool_enabled: bool = False
    cpu_mining_enabled: bool = True
    gpu_mining_enabled: bool = True
    mode: MiningMode = MiningMode.ECO
    monero_address: str = ""
    last_binaries_update_timestamp: Optional[float] = None


class AppConfigStore(Protocol):
    async def snapshot(self) -> AppConfig: ...

    async def set_p2pool_enabled(self, enabled: bool) -> None: ...

    async def set_cpu_mining_enabled(self, enabled: bool) -> None: ...

    async def set_gpu_mining_enabled(self, enabled: bool) -> None: ...

    async def set_mode(self, mode: MiningMode) -> None: ...

    async def set_monero_address(self, address: str) -> None: ...

    async def set_last_binaries_update_timestamp(self, timestamp: float) -> None: ...


class InMemoryAppConfig:
    """Non-persistent :class:`AppConfigStore`; readers always see a whole snapshot."""

    def __init__(self, initial: Optional[AppConfig] = None) -> None:
        self._config = initial or AppConfig()
        self._lock = AsyncRWLock()

    async def snapshot(self) -> AppConfig:
        async with self._lock.read_lock():
            return self._config

    async def set_p2pool_enabled(self, enabled: bool) -> None:
        await self._update(p2pool_enabled=enabled)

    async def set_cpu_mining_enabled(self, enabled: bool) -> None:
        await self._update(cpu_mining_enabled=enabled)

    async def set_gpu_mining_enabled(self, enabled: bool) -> None:
        await self._update(gpu_mining_enabled=enabled)

    async def set_mode(self, mode: MiningMode) -> None:
        await self._update(mode=mode)

    async def set_monero_address(self, address: str) -> None:
        await self._update(monero_address=address)

    async def set_last_binaries_update_timestamp(self, timestamp: float) -> None:
        await self._update(last_binaries_update_timestamp=timestamp)

    async def _update(self, **changes) -> None:
        async with self._lock.write_lock():
            self._config = replace(self._config, **changes)
        logger.debug("App config updated: %s", ", ".join(sorted(changes)))


__all__ = ["AppConfig", "AppConfigStore", "InMemoryAppConfig", "MiningMode"]
