"""Console wallet adapter."""

from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List

from ..binaries import BinaryName
from ..collaborators import WalletKeys
from ..process_adapter import ProcessAdapter


@dataclass(frozen=True)
class WalletStartConfig:
    data_dir: Path
    config_dir: Path
    log_dir: Path
    network: str
    grpc_port: int
    rpc_port: int
    base_node_grpc_port: int
    keys: WalletKeys = field(repr=False)

    @property
    def base_path(self) -> Path:
        return self.data_dir / "wallet" / self.network


class WalletAdapter(ProcessAdapter[WalletStartConfig]):
    role = "wallet"
    binary = BinaryName.WALLET

    def build_args(self, config: WalletStartConfig) -> List[str]:
        return [
            "--base-path",
            str(config.base_path),
            "--non-interactive-mode",
            "--network",
            config.network,
            "--log-path",
            str(config.log_dir / "wallet"),
            "-p",
            "wallet.grpc_enabled=true",
            "-p",
            f"wallet.grpc_address=/ip4/127.0.0.1/tcp/{config.grpc_port}",
            "-p",
            f"wallet.json_rpc_address=127.0.0.1:{config.rpc_port}",
            "-p",
            f"wallet.custom_base_node=/ip4/127.0.0.1/tcp/{config.base_node_grpc_port}",
        ]

    def build_env(self, config: WalletStartConfig) -> Dict[str, str]:
        # Keys go through the environment so they never appear in the process list.
        return {
            "MINOTARI_WALLET_VIEW_PRIVATE_KEY": config.keys.view_key,
            "MINOTARI_WALLET_SPEND_KEY": config.keys.spend_key,
        }


__all__ = ["WalletAdapter", "WalletStartConfig"]
