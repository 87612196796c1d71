"""CPU miner (xmrig) adapter."""

from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List

from ..app_config import MiningMode
from ..binaries import BinaryName
from ..process_adapter import ProcessAdapter

CPU_THREAD_HINTS: Dict[MiningMode, int] = {MiningMode.ECO: 30, MiningMode.LUDICROUS: 100}


@dataclass(frozen=True)
class XmrigStartConfig:
    log_dir: Path
    monero_address: str
    proxy_port: int
    http_api_port: int
    mode: MiningMode


class XmrigAdapter(ProcessAdapter[XmrigStartConfig]):
    role = "cpu_miner"
    binary = BinaryName.CPU_MINER
    READY_PATTERNS = (re.compile(r"\bREADY threads\b"),)

    def build_args(self, config: XmrigStartConfig) -> List[str]:
        return [
            "--coin",
            "monero",
            "--url",
            f"127.0.0.1:{config.proxy_port}",
            "--user",
            config.monero_address,
            "--http-host",
            "127.0.0.1",
            "--http-port",
            str(config.http_api_port),
            "--cpu-max-threads-hint",
            str(CPU_THREAD_HINTS[config.mode]),
            "--log-file",
            str(config.log_dir / "xmrig.log"),
            "--no-color",
        ]


__all__ = ["CPU_THREAD_HINTS", "XmrigAdapter", "XmrigStartConfig"]
