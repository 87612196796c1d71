"""Tests for AsyncRWLock."""

from __future__ import annotations

import asyncio

import pytest

from minerstack.rwlock import AsyncRWLock


class TestAsyncRWLock:
    """Tests for AsyncRWLock."""

    @pytest.mark.asyncio
    async def test_readers_share(self) -> None:
        lock = AsyncRWLock()
        async with lock.read_lock():
            async with lock.read_lock():
                assert lock.readers == 2
        assert lock.readers == 0

    @pytest.mark.asyncio
    async def test_writer_excludes_readers(self) -> None:
        lock = AsyncRWLock()
        order = []

        async def reader() -> None:
            async with lock.read_lock():
                order.append("read")

        async with lock.write_lock():
            task = asyncio.create_task(reader())
            await asyncio.sleep(0.01)
            order.append("write-done")
        await task

        assert order == ["write-done", "read"]

    @pytest.mark.asyncio
    async def test_pending_writer_blocks_new_readers(self) -> None:
        """A waiting writer is visible through write_pending and gets in before later readers."""
        lock = AsyncRWLock()
        order = []

        async def writer() -> None:
            async with lock.write_lock():
                order.append("write")

        async def late_reader() -> None:
            async with lock.read_lock():
                order.append("late-read")

        await lock.acquire_read()
        writer_task = asyncio.create_task(writer())
        await asyncio.sleep(0.01)
        assert lock.write_pending
        reader_task = asyncio.create_task(late_reader())
        await asyncio.sleep(0.01)
        await lock.release_read()
        await asyncio.gather(writer_task, reader_task)

        assert order == ["write", "late-read"]
        assert not lock.write_pending
