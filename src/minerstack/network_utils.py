"""Local port allocation for managed processes."""

from __future__ import annotations

import socket

LOCALHOST = "127.0.0.1"


def get_free_port(host: str = LOCALHOST) -> int:
    """Ask the OS for an unused TCP port on ``host``."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as sock:
        sock.bind((host, 0))
        return sock.getsockname()[1]


def is_port_valid(port: int) -> bool:
    return 0 < port < 65536


__all__ = ["LOCALHOST", "get_free_port", "is_port_valid"]
