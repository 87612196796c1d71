"""
Bounded-timeout client for the HTTP and JSON-RPC endpoints of a managed process.

Connection refusal maps to :class:`NotReadyError`, timeouts to
:class:`RpcTimeoutError` and error payloads to :class:`RpcError`; the managers
turn the first two into ``Unavailable`` results.
"""

from __future__ import annotations

import asyncio
import itertools
import logging
from typing import Any, Mapping, Optional

import aiohttp
import orjson

from ..errors import NotReadyError, RpcError, RpcTimeoutError
from ..network_errors import is_connection_refused_error, is_network_unreachable_error, is_timeout_error
from .session_manager import RpcSessionManager

HTTP_SUCCESS_MIN = 200
HTTP_CLIENT_ERROR_MIN = 400
JSON_RPC_PATH = "/json_rpc"
LOCALHOST = "127.0.0.1"


class LocalServiceClient:
    """Talks to ``http://127.0.0.1:<port>`` for one role."""

    def __init__(self, role: str, port: int, *, timeout_seconds: float, host: str = LOCALHOST) -> None:
        self.role = role
        self.port = port
        self.base_url = f"http://{host}:{port}"
        self.timeout_seconds = timeout_seconds
        self._sessions = RpcSessionManager(role, timeout_seconds)
        self._ids = itertools.count(1)
        self.logger = logging.getLogger(f"{__name__}.{role}")

    async def get_json(self, path: str) -> Any:
        return await self._request("GET", path, operation=path)

    async def call(self, method: str, params: Optional[Mapping[str, Any]] = None) -> Any:
        """Issue a JSON-RPC 2.0 call and return its ``result`` member."""
        request_id = next(self._ids)
        payload = {"jsonrpc": "2.0", "id": request_id, "method": method, "params": dict(params or {})}
        body = await self._request(
            "POST", JSON_RPC_PATH, operation=method, data=orjson.dumps(payload), headers={"Content-Type": "application/json"}
        )
        if not isinstance(body, Mapping):
            raise RpcError(self.role, method, "response is not a JSON object")
        error = body.get("error")
        if error:
            message = error.get("message") if isinstance(error, Mapping) else str(error)
            raise RpcError(self.role, method, str(message))
        if "result" not in body:
            raise RpcError(self.role, method, "response has no result")
        return body["result"]

    async def close(self) -> None:
        await self._sessions.close_session()

    async def _request(self, http_method: str, path: str, *, operation: str, **kwargs: Any) -> Any:
        session = self._sessions.get_session()
        url = f"{self.base_url}{path}"
        self.logger.debug("%s %s", http_method, url)
        try:
            async with session.request(http_method, url, **kwargs) as response:
                if not HTTP_SUCCESS_MIN <= response.status < HTTP_CLIENT_ERROR_MIN:
                    raise RpcError(self.role, operation, f"HTTP {response.status}")
                raw = await response.read()
        except (asyncio.TimeoutError, aiohttp.ServerTimeoutError) as exc:
            raise RpcTimeoutError(self.role, operation, self.timeout_seconds) from exc
        except (aiohttp.ClientError, OSError) as exc:
            if is_timeout_error(exc):
                raise RpcTimeoutError(self.role, operation, self.timeout_seconds) from exc
            if is_connection_refused_error(exc):
                raise NotReadyError(self.role, f"{operation}: connection refused") from exc
            if is_network_unreachable_error(exc):
                raise NotReadyError(self.role, f"{operation}: {type(exc).__name__}") from exc
            raise RpcError(self.role, operation, str(exc)) from exc

        try:
            return orjson.loads(raw)
        except orjson.JSONDecodeError as exc:
            raise RpcError(self.role, operation, "response is not valid JSON") from exc


__all__ = ["JSON_RPC_PATH", "LOCALHOST", "LocalServiceClient"]
