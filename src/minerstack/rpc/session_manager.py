"""HTTP session lifecycle for one local service client."""

from __future__ import annotations

import asyncio
import logging
from typing import Optional

import aiohttp

SESSION_CLOSE_TIMEOUT_SECONDS = 5.0


class RpcSessionManager:
    """Lazily creates and closes the aiohttp session used to talk to one managed process."""

    def __init__(self, role: str, request_timeout: float) -> None:
        self.role = role
        self.request_timeout = request_timeout
        self.session: Optional[aiohttp.ClientSession] = None
        self.logger = logging.getLogger(f"{__name__}.{role}")

    def get_session(self) -> aiohttp.ClientSession:
        if self.session is None or self.session.closed:
            timeout = aiohttp.ClientTimeout(total=self.request_timeout, connect=self.request_timeout)
            self.session = aiohttp.ClientSession(
                timeout=timeout,
                headers={"User-Agent": f"minerstack-{self.role}-client/1.0"},
                connector=aiohttp.TCPConnector(limit=10, force_close=True),
            )
            self.logger.debug("HTTP session created")
        return self.session

    async def close_session(self) -> None:
        if self.session is None:
            return
        try:
            if not self.session.closed:
                await asyncio.wait_for(self.session.close(), timeout=SESSION_CLOSE_TIMEOUT_SECONDS)
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError):  # policy_guard: allow-silent-handler
            self.logger.warning("Error closing HTTP session")
        finally:
            self.session = None


__all__ = ["RpcSessionManager"]
