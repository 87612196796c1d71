"""Drain a child process stream line by line."""

from __future__ import annotations

import asyncio
import logging
from typing import Callable

logger = logging.getLogger(__name__)

STREAM_LIMIT_BYTES = 1024 * 1024

LineHandler = Callable[[str, str], None]


async def drain_stream(stream: asyncio.StreamReader, *, stream_name: str, on_line: LineHandler) -> None:
    """Feed every decoded line to ``on_line(stream_name, line)`` until EOF."""
    while True:
        try:
            raw = await stream.readline()
        except (asyncio.LimitOverrunError, ValueError):  # policy_guard: allow-silent-handler
            # Over-long line without a newline; take what is buffered and carry on.
            raw = await stream.read(STREAM_LIMIT_BYTES)
        if not raw:
            return
        line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
        if not line:
            continue
        try:
            on_line(stream_name, line)
        except (RuntimeError, ValueError, TypeError):  # policy_guard: allow-silent-handler
            logger.exception("Line handler failed for %s", stream_name)


__all__ = ["LineHandler", "STREAM_LIMIT_BYTES", "drain_stream"]
