"""Merge mining proxy adapter and its start configuration."""

from __future__ import annotations

from dataclasses import dataclass, replace
from pathlib import Path
from typing import List, Optional

from ..binaries import BinaryName
from ..process_adapter import ProcessAdapter


@dataclass(frozen=True)
class MmProxyStartConfig:
    """
    Launch parameters of the proxy.

    The proxy forwards block templates to either the p2pool node or the base
    node; ``set_to_use_p2pool`` and ``set_to_use_base_node`` return re-pointed
    copies and never modify the receiver.
    """

    data_dir: Path
    config_dir: Path
    log_dir: Path
    network: str
    tari_address: str
    base_node_grpc_port: int
    monero_port: int
    telemetry_id: str
    p2pool_enabled: bool = False
    p2pool_grpc_port: Optional[int] = None

    @property
    def upstream_port(self) -> int:
        if self.p2pool_enabled and self.p2pool_grpc_port is not None:
            return self.p2pool_grpc_port
        return self.base_node_grpc_port

    def set_to_use_p2pool(self, p2pool_grpc_port: int) -> "MmProxyStartConfig":
        return replace(self, p2pool_enabled=True, p2pool_grpc_port=p2pool_grpc_port)

    def set_to_use_base_node(self, base_node_grpc_port: int) -> "MmProxyStartConfig":
        return replace(self, p2pool_enabled=False, base_node_grpc_port=base_node_grpc_port)


class MmProxyAdapter(ProcessAdapter[MmProxyStartConfig]):
    role = "mm_proxy"
    binary = BinaryName.MERGE_MINING_PROXY

    def build_args(self, config: MmProxyStartConfig) -> List[str]:
        return [
            "--base-path",
            str(config.data_dir / "mm_proxy"),
            "--non-interactive-mode",
            "--network",
            config.network,
            "--log-path",
            str(config.log_dir / "mm_proxy"),
            "-p",
            f"merge_mining_proxy.listener_address=/ip4/127.0.0.1/tcp/{config.monero_port}",
            "-p",
            f"merge_mining_proxy.base_node_grpc_address=/ip4/127.0.0.1/tcp/{config.upstream_port}",
            "-p",
            f"merge_mining_proxy.p2pool_enabled={str(config.p2pool_enabled).lower()}",
            "-p",
            f"merge_mining_proxy.wallet_payment_address={config.tari_address}",
            "-p",
            f"merge_mining_proxy.coinbase_extra={config.telemetry_id}",
        ]


__all__ = ["MmProxyAdapter", "MmProxyStartConfig"]
