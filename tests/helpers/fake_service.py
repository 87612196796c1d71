"""Local HTTP/JSON-RPC endpoint standing in for a managed binary."""

from __future__ import annotations

import asyncio
from contextlib import asynccontextmanager
from typing import Any, AsyncIterator, Dict, List, Optional

from aiohttp import web
from aiohttp.test_utils import TestServer


class FakeService:
    """Answers JSON-RPC calls from ``results`` and GET requests from ``routes``."""

    def __init__(self, results: Optional[Dict[str, Any]] = None, routes: Optional[Dict[str, Any]] = None) -> None:
        self.results: Dict[str, Any] = dict(results or {})
        self.routes: Dict[str, Any] = dict(routes or {})
        self.errors: Dict[str, str] = {}
        self.delay_seconds = 0.0
        self.calls: List[str] = []

    def build_app(self) -> web.Application:
        app = web.Application()
        app.router.add_post("/json_rpc", self._json_rpc)
        app.router.add_get("/{path:.*}", self._get)
        return app

    async def _json_rpc(self, request: web.Request) -> web.Response:
        body = await request.json()
        method = body["method"]
        self.calls.append(method)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if method in self.errors:
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": {"code": -1, "message": self.errors[method]}})
        if method not in self.results:
            return web.json_response({"jsonrpc": "2.0", "id": body["id"], "error": {"code": -32601, "message": "Method not found"}})
        return web.json_response({"jsonrpc": "2.0", "id": body["id"], "result": self.results[method]})

    async def _get(self, request: web.Request) -> web.Response:
        path = "/" + request.match_info["path"]
        self.calls.append(path)
        if self.delay_seconds:
            await asyncio.sleep(self.delay_seconds)
        if path not in self.routes:
            raise web.HTTPNotFound()
        return web.json_response(self.routes[path])


@asynccontextmanager
async def serve(service: FakeService) -> AsyncIterator[TestServer]:
    server = TestServer(service.build_app(), host="127.0.0.1")
    await server.start_server()
    try:
        yield server
    finally:
        await server.close()
