"""GPU miner adapter."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from pathlib import Path
from typing import Dict, List

from ..app_config import MiningMode
from ..binaries import BinaryName
from ..process_adapter import ProcessAdapter

GPU_GRID_SIZES: Dict[MiningMode, int] = {MiningMode.ECO: 2, MiningMode.LUDICROUS: 1024}


class GpuNodeSourceKind(Enum):
    BASE_NODE = "base_node"
    P2POOL = "p2pool"


@dataclass(frozen=True)
class GpuNodeSource:
    kind: GpuNodeSourceKind
    port: int

    @classmethod
    def base_node(cls, port: int) -> "GpuNodeSource":
        return cls(GpuNodeSourceKind.BASE_NODE, port)

    @classmethod
    def p2pool(cls, port: int) -> "GpuNodeSource":
        return cls(GpuNodeSourceKind.P2POOL, port)


@dataclass(frozen=True)
class GpuMinerStartConfig:
    config_dir: Path
    log_dir: Path
    tari_address: str
    source: GpuNodeSource
    mode: MiningMode
    telemetry_id: str
    http_api_port: int


def gpu_config_path(config_dir: Path) -> Path:
    return config_dir / "gpuminer" / "config.json"


class GpuMinerAdapter(ProcessAdapter[GpuMinerStartConfig]):
    role = "gpu_miner"
    binary = BinaryName.GPU_MINER

    def build_args(self, config: GpuMinerStartConfig) -> List[str]:
        args = [
            "--tari-address",
            config.tari_address,
            "--tari-node-url",
            f"http://127.0.0.1:{config.source.port}",
            "--config",
            str(gpu_config_path(config.config_dir)),
            "--http-server-port",
            str(config.http_api_port),
            "--grid-size",
            str(GPU_GRID_SIZES[config.mode]),
            "--coinbase-extra",
            config.telemetry_id,
            "--log-path",
            str(config.log_dir / "gpuminer"),
        ]
        if config.source.kind is GpuNodeSourceKind.P2POOL:
            args.append("--p2pool-enabled")
        return args

    def detect_args(self, config_dir: Path) -> List[str]:
        return ["--detect", "true", "--config", str(gpu_config_path(config_dir))]


__all__ = [
    "GPU_GRID_SIZES",
    "GpuMinerAdapter",
    "GpuMinerStartConfig",
    "GpuNodeSource",
    "GpuNodeSourceKind",
    "gpu_config_path",
]
