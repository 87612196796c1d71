"""Tests for WalletManager and P2poolManager."""

from __future__ import annotations

import asyncio

import pytest

from minerstack.adapters import P2poolConfig
from minerstack.collaborators import StaticWalletIdentity, WalletKeys
from minerstack.config import AppPaths, SupervisorSettings
from minerstack.health_types import Unavailable, UnavailableReason
from minerstack.managers import P2poolManager, P2poolStats, WalletBalance, WalletManager
from minerstack.network_utils import get_free_port
from tests.helpers.fake_service import FakeService, serve
from tests.helpers.fake_watcher import FakeWatcher

BALANCE = {"available_balance": 1500, "pending_incoming_balance": 20, "pending_outgoing_balance": 5, "timelocked_balance": 0}
STATS = {"connected": True, "peer_count": 4, "share_chain_height": 321, "pool_hash_rate": 9000, "pool_total_earnings": 77}


class StubNode:
    async def get_grpc_port(self) -> int:
        return 18142


def _wallet(settings: SupervisorSettings, rpc_port: int) -> tuple:
    watcher = FakeWatcher("wallet")
    identity = StaticWalletIdentity("tari-address", WalletKeys(view_key="view", spend_key="spend"))
    return WalletManager(watcher, settings, StubNode(), identity, grpc_port=18150, rpc_port=rpc_port), watcher


class TestWalletManager:
    """Tests for WalletManager."""

    @pytest.mark.asyncio
    async def test_start_uses_node_port_and_keys(self, settings: SupervisorSettings, paths: AppPaths) -> None:
        service = FakeService(results={"get_version": "1.0.0", "get_balance": BALANCE})
        async with serve(service) as server:
            wallet, watcher = _wallet(settings, server.port)
            await wallet.ensure_started(None, paths.data_dir, paths.config_dir, paths.log_dir)
            try:
                balance = await wallet.get_balance()
            finally:
                await wallet.stop()

        config = watcher.start_calls[0]
        assert config.base_node_grpc_port == 18142
        assert config.keys.spend_key == "spend"
        assert balance == WalletBalance(1500, 20, 5, 0)

    @pytest.mark.asyncio
    async def test_overlapping_balance_calls_report_busy(self, settings: SupervisorSettings, paths: AppPaths) -> None:
        """A second balance request while one is in flight fails fast with BUSY."""
        service = FakeService(results={"get_version": "1.0.0", "get_balance": BALANCE})
        async with serve(service) as server:
            wallet, _ = _wallet(settings, server.port)
            await wallet.ensure_started(None, paths.data_dir, paths.config_dir, paths.log_dir)
            service.delay_seconds = 0.2
            try:
                first, second = await asyncio.gather(wallet.get_balance(), wallet.get_balance())
            finally:
                await wallet.stop()

        assert isinstance(first, WalletBalance)
        assert isinstance(second, Unavailable)
        assert second.reason is UnavailableReason.BUSY

    @pytest.mark.asyncio
    async def test_balance_before_start(self, settings: SupervisorSettings) -> None:
        wallet, _ = _wallet(settings, get_free_port())

        result = await wallet.get_balance()

        assert isinstance(result, Unavailable)
        assert result.reason is UnavailableReason.NOT_STARTED


class TestP2poolManager:
    """Tests for P2poolManager."""

    @pytest.mark.asyncio
    async def test_start_and_stats(self, settings: SupervisorSettings, paths: AppPaths) -> None:
        service = FakeService(routes={"/stats": STATS})
        async with serve(service) as server:
            pool_manager = P2poolManager(FakeWatcher("p2pool"), settings, grpc_port=19000)
            pool = P2poolConfig.with_base_node(18142, grpc_port=19000, stats_port=server.port)
            await pool_manager.ensure_started(None, pool, paths.data_dir, paths.config_dir, paths.log_dir)
            try:
                stats = await pool_manager.stats()
            finally:
                await pool_manager.stop()

        assert isinstance(stats, P2poolStats)
        assert stats.share_chain_height == 321
        assert stats.raw["peer_count"] == 4
        assert await pool_manager.grpc_port() == 19000

    def test_pool_config_reuses_fixed_grpc_port(self, settings: SupervisorSettings) -> None:
        pool_manager = P2poolManager(FakeWatcher("p2pool"), settings, grpc_port=19010)

        pool = pool_manager.pool_config(18142)

        assert pool.grpc_port == 19010
        assert pool.base_node_grpc_port == 18142

    @pytest.mark.asyncio
    async def test_overlapping_stats_calls_report_busy(self, settings: SupervisorSettings, paths: AppPaths) -> None:
        service = FakeService(routes={"/stats": STATS})
        async with serve(service) as server:
            pool_manager = P2poolManager(FakeWatcher("p2pool"), settings, grpc_port=19000)
            pool = P2poolConfig.with_base_node(18142, grpc_port=19000, stats_port=server.port)
            await pool_manager.ensure_started(None, pool, paths.data_dir, paths.config_dir, paths.log_dir)
            service.delay_seconds = 0.2
            try:
                results = await asyncio.gather(pool_manager.stats(), pool_manager.stats())
            finally:
                await pool_manager.stop()

        assert [type(result) for result in results] == [P2poolStats, Unavailable]
