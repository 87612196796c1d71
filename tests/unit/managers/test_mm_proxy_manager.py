"""Tests for MmProxyManager reconfiguration."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any, List

import pytest

from minerstack.adapters import MmProxyStartConfig
from minerstack.config import SupervisorSettings
from minerstack.errors import NotStartedError, ProcessExitError
from minerstack.health_types import Unavailable
from minerstack.managers import MmProxyManager
from tests.helpers.fake_service import FakeService, serve
from tests.helpers.fake_watcher import FakeWatcher


def _config(tmp_path: Path, monero_port: int) -> MmProxyStartConfig:
    return MmProxyStartConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        log_dir=tmp_path / "logs",
        network="esmeralda",
        tari_address="tari-address",
        base_node_grpc_port=18142,
        monero_port=monero_port,
        telemetry_id="miner-1",
    )


class TestMmProxyManager:
    """Tests for MmProxyManager."""

    @pytest.mark.asyncio
    async def test_monero_port_requires_start(self, settings: SupervisorSettings) -> None:
        proxy = MmProxyManager(FakeWatcher("mm_proxy"), settings, listen_port=18081)

        with pytest.raises(NotStartedError):
            await proxy.get_monero_port()

    @pytest.mark.asyncio
    async def test_wait_ready_probes_info(self, settings: SupervisorSettings, tmp_path: Path) -> None:
        service = FakeService(routes={"/get_info": {"height": 7}})
        async with serve(service) as server:
            proxy = MmProxyManager(FakeWatcher("mm_proxy"), settings, listen_port=server.port)
            await proxy.start(_config(tmp_path, server.port))
            try:
                await proxy.wait_ready()
                assert await proxy.info() == {"height": 7}
                assert await proxy.get_monero_port() == server.port
            finally:
                await proxy.stop()

    @pytest.mark.asyncio
    async def test_wait_ready_raises_when_proxy_exited(self, settings: SupervisorSettings, tmp_path: Path) -> None:
        async with serve(FakeService()) as server:
            watcher = FakeWatcher("mm_proxy")
            proxy = MmProxyManager(watcher, settings, listen_port=server.port)
            await proxy.start(_config(tmp_path, server.port))
            watcher.crash(3)

            try:
                with pytest.raises(ProcessExitError):
                    await proxy.wait_ready()
            finally:
                await proxy.stop()

    @pytest.mark.asyncio
    async def test_change_config_restarts_once_without_torn_reads(self, settings: SupervisorSettings, tmp_path: Path) -> None:
        """Concurrent readers observe either the old or the new configuration, never a mix."""
        service = FakeService(routes={"/get_info": {"height": 7}})
        async with serve(service) as server:
            watcher = FakeWatcher("mm_proxy")
            proxy = MmProxyManager(watcher, settings, listen_port=server.port)
            old = _config(tmp_path, server.port)
            new = old.set_to_use_p2pool(19000)
            await proxy.start(old)

            observed: List[Any] = []
            infos: List[Any] = []

            async def reader() -> None:
                for _ in range(20):
                    observed.append(proxy.config())
                    infos.append(await proxy.info())
                    await asyncio.sleep(0.005)

            watcher.start_gate = asyncio.Event()
            asyncio.get_running_loop().call_later(0.05, watcher.start_gate.set)
            try:
                await asyncio.gather(proxy.change_config(new), reader(), reader())
                assert proxy.config() == new
            finally:
                await proxy.stop()

        assert watcher.stop_calls == 2
        assert watcher.start_calls == [old, new]
        assert all(config in (old, new) for config in observed)
        assert any(isinstance(info, Unavailable) for info in infos)
        assert all(info == {"height": 7} or isinstance(info, Unavailable) for info in infos)
