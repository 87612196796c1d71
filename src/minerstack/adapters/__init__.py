"""Process adapters, one per managed binary."""

from .gpu_miner import GpuMinerAdapter, GpuMinerStartConfig, GpuNodeSource, GpuNodeSourceKind
from .mm_proxy import MmProxyAdapter, MmProxyStartConfig
from .node import NodeAdapter, NodeStartConfig, node_data_path
from .p2pool import P2poolAdapter, P2poolConfig, P2poolStartConfig
from .wallet import WalletAdapter, WalletStartConfig
from .xmrig import XmrigAdapter, XmrigStartConfig

__all__ = [
    "GpuMinerAdapter",
    "GpuMinerStartConfig",
    "GpuNodeSource",
    "GpuNodeSourceKind",
    "MmProxyAdapter",
    "MmProxyStartConfig",
    "NodeAdapter",
    "NodeStartConfig",
    "P2poolAdapter",
    "P2poolConfig",
    "P2poolStartConfig",
    "WalletAdapter",
    "WalletStartConfig",
    "XmrigAdapter",
    "XmrigStartConfig",
    "node_data_path",
]
