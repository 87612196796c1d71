"""Role-specific managers combining a process watcher with domain queries."""

from .cpu_miner import CpuMiner, CpuMinerStatus
from .gpu_miner import GpuMiner, GpuMinerStatus
from .mm_proxy_manager import MmProxyManager
from .node_manager import NetworkStatus, NodeManager, SyncProgress
from .p2pool_manager import P2poolManager, P2poolStats
from .service_manager import ServiceManager
from .wallet_manager import WalletBalance, WalletManager

__all__ = [
    "CpuMiner",
    "CpuMinerStatus",
    "GpuMiner",
    "GpuMinerStatus",
    "MmProxyManager",
    "NetworkStatus",
    "NodeManager",
    "P2poolManager",
    "P2poolStats",
    "ServiceManager",
    "SyncProgress",
    "WalletBalance",
    "WalletManager",
]
