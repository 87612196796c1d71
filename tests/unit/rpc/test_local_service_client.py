"""Tests for LocalServiceClient against a local fake service."""

from __future__ import annotations

import pytest

from minerstack.errors import NotReadyError, RpcError, RpcTimeoutError
from minerstack.network_utils import get_free_port
from minerstack.rpc import LocalServiceClient
from tests.helpers.fake_service import FakeService, serve


class TestLocalServiceClient:
    """Tests for LocalServiceClient."""

    @pytest.mark.asyncio
    async def test_json_rpc_result(self) -> None:
        service = FakeService(results={"get_version": {"version": "1.0.0"}})
        async with serve(service) as server:
            client = LocalServiceClient("node", server.port, timeout_seconds=2)
            try:
                assert await client.call("get_version") == {"version": "1.0.0"}
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_error_payload_raises_rpc_error(self) -> None:
        service = FakeService()
        service.errors["get_balance"] = "wallet locked"
        async with serve(service) as server:
            client = LocalServiceClient("wallet", server.port, timeout_seconds=2)
            try:
                with pytest.raises(RpcError, match="wallet locked"):
                    await client.call("get_balance")
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_http_error_status(self) -> None:
        async with serve(FakeService()) as server:
            client = LocalServiceClient("p2pool", server.port, timeout_seconds=2)
            try:
                with pytest.raises(RpcError, match="HTTP 404"):
                    await client.get_json("/missing")
            finally:
                await client.close()

    @pytest.mark.asyncio
    async def test_refused_connection_is_not_ready(self) -> None:
        client = LocalServiceClient("node", get_free_port(), timeout_seconds=2)
        try:
            with pytest.raises(NotReadyError) as excinfo:
                await client.call("get_version")
            assert not isinstance(excinfo.value, RpcTimeoutError)
            assert excinfo.value.detail == "get_version: connection refused"
        finally:
            await client.close()

    @pytest.mark.asyncio
    async def test_slow_service_times_out(self) -> None:
        service = FakeService(routes={"/stats": {}})
        service.delay_seconds = 1.0
        async with serve(service) as server:
            client = LocalServiceClient("p2pool", server.port, timeout_seconds=0.2)
            try:
                with pytest.raises(RpcTimeoutError):
                    await client.get_json("/stats")
            finally:
                await client.close()
