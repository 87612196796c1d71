"""Clients for the local endpoints exposed by managed processes."""

from .client import JSON_RPC_PATH, LOCALHOST, LocalServiceClient
from .session_manager import RpcSessionManager

__all__ = ["JSON_RPC_PATH", "LOCALHOST", "LocalServiceClient", "RpcSessionManager"]
