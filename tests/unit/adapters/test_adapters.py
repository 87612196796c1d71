"""Tests for the role adapters' command lines and output classification."""

from __future__ import annotations

from pathlib import Path

import pytest

from minerstack.adapters import (
    GpuMinerAdapter,
    GpuMinerStartConfig,
    GpuNodeSource,
    MmProxyAdapter,
    MmProxyStartConfig,
    NodeAdapter,
    NodeStartConfig,
    P2poolConfig,
    WalletAdapter,
    WalletStartConfig,
    XmrigAdapter,
    XmrigStartConfig,
)
from minerstack.app_config import MiningMode
from minerstack.collaborators import WalletKeys
from minerstack.config import ConfigurationError
from minerstack.process_adapter import LineSeverity
from tests.helpers.python_adapter import PythonBinarySource


def _proxy_config(tmp_path: Path) -> MmProxyStartConfig:
    return MmProxyStartConfig(
        data_dir=tmp_path / "data",
        config_dir=tmp_path / "config",
        log_dir=tmp_path / "logs",
        network="esmeralda",
        tari_address="tari-address",
        base_node_grpc_port=18142,
        monero_port=18081,
        telemetry_id="miner-1",
    )


class TestNodeAdapter:
    """Tests for NodeAdapter."""

    def test_args_carry_ports_and_network(self, tmp_path: Path) -> None:
        config = NodeStartConfig(tmp_path, tmp_path / "config", tmp_path / "logs", "esmeralda", 18142, 18143)

        args = NodeAdapter(PythonBinarySource()).build_args(config)

        assert args[:2] == ["--base-path", str(tmp_path / "node" / "esmeralda")]
        assert "base_node.grpc_address=/ip4/127.0.0.1/tcp/18142" in args
        assert "base_node.json_rpc_address=127.0.0.1:18143" in args

    def test_corrupt_database_line_is_fatal(self) -> None:
        adapter = NodeAdapter(PythonBinarySource())

        assert adapter.classify_line("Database is corrupt, please reset") is LineSeverity.FATAL
        assert adapter.classify_line("WARN peer dropped") is LineSeverity.WARNING
        assert adapter.classify_line("synced block 12") is LineSeverity.INFO
        assert adapter.ready_on_spawn


class TestWalletAdapter:
    """Tests for WalletAdapter."""

    def test_keys_only_in_environment(self, tmp_path: Path) -> None:
        config = WalletStartConfig(
            tmp_path, tmp_path, tmp_path, "esmeralda", 1, 2, 18142, WalletKeys(view_key="view-secret", spend_key="spend-secret")
        )
        adapter = WalletAdapter(PythonBinarySource())

        spec = adapter.launch_spec(config)

        assert "view-secret" not in " ".join(spec.args)
        assert spec.env["MINOTARI_WALLET_VIEW_PRIVATE_KEY"] == "view-secret"
        assert "spend-secret" not in repr(config)
        assert "wallet.custom_base_node=/ip4/127.0.0.1/tcp/18142" in spec.args


class TestMmProxyConfig:
    """Tests for MmProxyStartConfig re-pointing."""

    def test_set_to_use_p2pool_returns_copy(self, tmp_path: Path) -> None:
        original = _proxy_config(tmp_path)

        pointed = original.set_to_use_p2pool(19000)

        assert original.upstream_port == 18142
        assert not original.p2pool_enabled
        assert pointed.upstream_port == 19000
        assert "merge_mining_proxy.p2pool_enabled=true" in MmProxyAdapter(PythonBinarySource()).build_args(pointed)

    def test_set_to_use_base_node(self, tmp_path: Path) -> None:
        pooled = _proxy_config(tmp_path).set_to_use_p2pool(19000)

        back = pooled.set_to_use_base_node(18200)

        assert back.upstream_port == 18200
        assert not back.p2pool_enabled
        assert back.monero_port == pooled.monero_port


class TestP2poolConfig:
    """Tests for P2poolConfig validation."""

    def test_rejects_invalid_port(self) -> None:
        with pytest.raises(ConfigurationError):
            P2poolConfig(grpc_port=0, stats_port=19001, base_node_grpc_port=18142)

    def test_with_base_node_keeps_explicit_ports(self) -> None:
        config = P2poolConfig.with_base_node(18142, grpc_port=19000, stats_port=19001)
        assert (config.grpc_port, config.stats_port, config.base_node_grpc_port) == (19000, 19001, 18142)


class TestMinerAdapters:
    """Tests for the CPU and GPU miner adapters."""

    def test_xmrig_ready_marker_and_mode(self, tmp_path: Path) -> None:
        adapter = XmrigAdapter(PythonBinarySource())
        args = adapter.build_args(XmrigStartConfig(tmp_path, "4Address", 18081, 18090, MiningMode.LUDICROUS))

        assert not adapter.ready_on_spawn
        assert adapter.is_ready_line("[2024-01-01] cpu      READY threads 8/8 (8) huge pages 100%")
        assert args[args.index("--cpu-max-threads-hint") + 1] == "100"
        assert args[args.index("--url") + 1] == "127.0.0.1:18081"

    def test_xmrig_stays_in_foreground(self, tmp_path: Path) -> None:
        """The miner must remain the supervised process rather than forking into the background."""
        adapter = XmrigAdapter(PythonBinarySource())
        args = adapter.build_args(XmrigStartConfig(tmp_path, "4Address", 18081, 18090, MiningMode.ECO))

        assert "--daemon" not in args
        assert "-B" not in args

    def test_gpu_source_selects_flags(self, tmp_path: Path) -> None:
        adapter = GpuMinerAdapter(PythonBinarySource())
        base = GpuMinerStartConfig(tmp_path, tmp_path, "tari", GpuNodeSource.base_node(18142), MiningMode.ECO, "miner-1", 18300)
        pooled = GpuMinerStartConfig(tmp_path, tmp_path, "tari", GpuNodeSource.p2pool(19000), MiningMode.ECO, "miner-1", 18300)

        assert "--p2pool-enabled" not in adapter.build_args(base)
        pooled_args = adapter.build_args(pooled)
        assert "--p2pool-enabled" in pooled_args
        assert "http://127.0.0.1:19000" in pooled_args
        assert adapter.detect_args(tmp_path)[:2] == ["--detect", "true"]
