"""On-disk cache of the highest known release per binary, with last-checked timestamps."""

from __future__ import annotations

import asyncio
import logging
import os
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Mapping, Optional

import orjson

from ..binaries import BinaryName, VersionInfo

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class CacheEntry:
    info: VersionInfo
    checked_at: float

    def is_fresh(self, now: float, ttl_seconds: float) -> bool:
        return now - self.checked_at < ttl_seconds


class VersionCache:
    """One lock per binary entry; entries are replaced, never mutated."""

    def __init__(self, path: Path) -> None:
        self.path = path
        self._entries: Dict[BinaryName, CacheEntry] = self._load()
        self._locks: Dict[BinaryName, asyncio.Lock] = {}

    def lock_for(self, name: BinaryName) -> asyncio.Lock:
        lock = self._locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._locks[name] = lock
        return lock

    def get(self, name: BinaryName) -> Optional[CacheEntry]:
        return self._entries.get(name)

    def put(self, name: BinaryName, info: VersionInfo, checked_at: float) -> CacheEntry:
        entry = CacheEntry(info=info, checked_at=checked_at)
        self._entries[name] = entry
        self._persist()
        return entry

    def _load(self) -> Dict[BinaryName, CacheEntry]:
        if not self.path.exists():
            return {}
        try:
            payload = orjson.loads(self.path.read_bytes())
        except (OSError, orjson.JSONDecodeError) as exc:  # policy_guard: allow-silent-handler
            logger.warning("Ignoring unreadable version cache %s: %s", self.path, exc)
            return {}
        if not isinstance(payload, Mapping):
            logger.warning("Ignoring version cache %s: expected a JSON object, found %s", self.path, type(payload).__name__)
            return {}

        entries: Dict[BinaryName, CacheEntry] = {}
        for raw_name, raw_entry in payload.items():
            try:
                entries[BinaryName(raw_name)] = CacheEntry(
                    info=VersionInfo.from_dict(raw_entry["info"]),
                    checked_at=float(raw_entry["checked_at"]),
                )
            except (KeyError, TypeError, ValueError) as exc:  # policy_guard: allow-silent-handler
                logger.debug("Dropping malformed cache entry %s: %s", raw_name, exc)
        return entries

    def _persist(self) -> None:
        payload = {name.value: {"info": entry.info.to_dict(), "checked_at": entry.checked_at} for name, entry in self._entries.items()}
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_suffix(self.path.suffix + ".tmp")
        try:
            tmp_path.write_bytes(orjson.dumps(payload, option=orjson.OPT_INDENT_2))
            os.replace(tmp_path, self.path)
        except OSError as exc:  # policy_guard: allow-silent-handler
            logger.warning("Could not persist version cache %s: %s", self.path, exc)


__all__ = ["CacheEntry", "VersionCache"]
