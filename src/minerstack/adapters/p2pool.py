"""Sha p2pool node adapter."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import List, Optional

from ..binaries import BinaryName
from ..config.errors import ConfigurationError
from ..network_utils import get_free_port, is_port_valid
from ..process_adapter import ProcessAdapter


@dataclass(frozen=True)
class P2poolConfig:
    grpc_port: int
    stats_port: int
    base_node_grpc_port: int

    def __post_init__(self) -> None:
        for name in ("grpc_port", "stats_port", "base_node_grpc_port"):
            value = getattr(self, name)
            if not is_port_valid(value):
                raise ConfigurationError.invalid_value(name, value, "must be a TCP port")

    @classmethod
    def with_base_node(
        cls, base_node_grpc_port: int, *, grpc_port: Optional[int] = None, stats_port: Optional[int] = None
    ) -> "P2poolConfig":
        return cls(
            grpc_port=grpc_port if grpc_port is not None else get_free_port(),
            stats_port=stats_port if stats_port is not None else get_free_port(),
            base_node_grpc_port=base_node_grpc_port,
        )


@dataclass(frozen=True)
class P2poolStartConfig:
    pool: P2poolConfig
    data_dir: Path
    config_dir: Path
    log_dir: Path


class P2poolAdapter(ProcessAdapter[P2poolStartConfig]):
    role = "p2pool"
    binary = BinaryName.P2POOL_NODE

    def build_args(self, config: P2poolStartConfig) -> List[str]:
        return [
            "start",
            "--grpc-port",
            str(config.pool.grpc_port),
            "--stats-server-port",
            str(config.pool.stats_port),
            "--base-node-address",
            f"http://127.0.0.1:{config.pool.base_node_grpc_port}",
            "--base-dir",
            str(config.data_dir / "sha-p2pool"),
        ]


__all__ = ["P2poolAdapter", "P2poolConfig", "P2poolStartConfig"]
