"""Read-only client for the remote release manifest."""

from __future__ import annotations

import asyncio
import logging
from typing import Any, Dict, Mapping

import aiohttp
import orjson

from ..binaries import BinaryName, VersionInfo
from ..errors import VersionLookupError

logger = logging.getLogger(__name__)

HTTP_OK = 200


class ReleaseIndexClient:
    """Fetches ``{"binaries": {<name>: {"version", "assets"}}}`` and parses it into :class:`VersionInfo` values."""

    def __init__(self, index_url: str, *, timeout_seconds: float) -> None:
        self.index_url = index_url
        self.timeout_seconds = timeout_seconds

    async def fetch(self) -> Dict[BinaryName, VersionInfo]:
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": "minerstack-resolver/1.0"}) as session:
                async with session.get(self.index_url) as response:
                    if response.status != HTTP_OK:
                        raise VersionLookupError(f"Release index returned HTTP {response.status}")
                    body = await response.read()
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            raise VersionLookupError(f"Release index {self.index_url} unreachable") from exc

        try:
            payload = orjson.loads(body)
        except orjson.JSONDecodeError as exc:
            raise VersionLookupError("Release index is not valid JSON") from exc
        return parse_release_index(payload)


def parse_release_index(payload: Any) -> Dict[BinaryName, VersionInfo]:
    """Parse a manifest payload; unknown binaries are ignored, malformed entries are skipped with a warning."""
    if not isinstance(payload, Mapping) or not isinstance(payload.get("binaries"), Mapping):
        raise VersionLookupError("Release index must contain a 'binaries' object")

    releases: Dict[BinaryName, VersionInfo] = {}
    for raw_name, entry in payload["binaries"].items():
        try:
            name = BinaryName(raw_name)
        except ValueError:  # policy_guard: allow-silent-handler
            logger.debug("Ignoring unknown binary %s in release index", raw_name)
            continue
        try:
            releases[name] = VersionInfo.from_dict(entry)
        except (KeyError, TypeError, ValueError) as exc:  # policy_guard: allow-silent-handler
            logger.warning("Skipping malformed release entry for %s: %s", raw_name, exc)
    return releases


__all__ = ["ReleaseIndexClient", "parse_release_index"]
