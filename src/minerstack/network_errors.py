"""
Network error detection and classification.

Local services refusing connections or timing out are normal during startup
and shutdown windows; callers use these helpers to tell them apart from real
application-level errors.
"""

import asyncio
import socket

import aiohttp

NETWORK_ERROR_TYPES = (
    aiohttp.ClientConnectorError,
    aiohttp.ServerDisconnectedError,
    aiohttp.ServerTimeoutError,
    asyncio.TimeoutError,
    socket.gaierror,
    ConnectionError,
    OSError,
)


def is_network_unreachable_error(exception: BaseException) -> bool:
    """
    Determine if an exception represents a network connectivity failure.

    Args:
        exception: Exception to check

    Returns:
        True if this is a network-level error that indicates connectivity issues
    """
    if isinstance(exception, NETWORK_ERROR_TYPES):
        return True

    os_error = getattr(exception, "os_error", None)
    return isinstance(os_error, OSError)


def is_connection_refused_error(exception: BaseException) -> bool:
    """Return True when nothing is listening on the target port yet."""
    if isinstance(exception, ConnectionRefusedError):
        return True
    os_error = getattr(exception, "os_error", None)
    if isinstance(os_error, ConnectionRefusedError):
        return True
    return isinstance(exception, aiohttp.ClientConnectorError)


def is_timeout_error(exception: BaseException) -> bool:
    return isinstance(exception, (asyncio.TimeoutError, aiohttp.ServerTimeoutError))


__all__ = ["NETWORK_ERROR_TYPES", "is_connection_refused_error", "is_network_unreachable_error", "is_timeout_error"]
