"""Base node adapter."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ..binaries import BinaryName
from ..process_adapter import GENERIC_FATAL_PATTERNS, ProcessAdapter

CORRUPT_DATABASE_PATTERN = re.compile(r"database (?:is )?(?:corrupt|needs a reset)", re.IGNORECASE)


@dataclass(frozen=True)
class NodeStartConfig:
    data_dir: Path
    config_dir: Path
    log_dir: Path
    network: str
    grpc_port: int
    rpc_port: int

    @property
    def base_path(self) -> Path:
        return node_data_path(self.data_dir, self.network)


def node_data_path(data_dir: Path, network: str) -> Path:
    return data_dir / "node" / network


class NodeAdapter(ProcessAdapter[NodeStartConfig]):
    role = "node"
    binary = BinaryName.NODE
    FATAL_PATTERNS = GENERIC_FATAL_PATTERNS + (CORRUPT_DATABASE_PATTERN,)

    def build_args(self, config: NodeStartConfig) -> List[str]:
        return [
            "--base-path",
            str(config.base_path),
            "--non-interactive-mode",
            "--network",
            config.network,
            "--log-path",
            str(config.log_dir / "node"),
            "-p",
            "base_node.grpc_enabled=true",
            "-p",
            f"base_node.grpc_address=/ip4/127.0.0.1/tcp/{config.grpc_port}",
            "-p",
            f"base_node.json_rpc_address=127.0.0.1:{config.rpc_port}",
        ]

    def build_env(self, config: NodeStartConfig) -> Dict[str, str]:
        return {"MINOTARI_NETWORK": config.network}


__all__ = ["CORRUPT_DATABASE_PATTERN", "NodeAdapter", "NodeStartConfig", "node_data_path"]
