"""
Binary resolver: maps a logical binary name to a verified, installed executable.

Finding the highest published version and installing it are separate
operations so callers can throttle update checks independently of forcing an
install, and so read-only accessors never wait on the network.
"""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from pathlib import Path
from typing import Callable, Dict, Optional

from .binaries import ArchiveFormat, BinaryName, ResolvedBinary, SemanticVersion, VersionInfo, current_platform_key
from .binary_resolver_helpers import ArchiveDownloader, BinaryInstaller, ReleaseIndexClient, VersionCache, verify_checksum
from .config import SupervisorSettings
from .errors import BinaryNotInstalledError, VersionLookupError
from .progress import NullProgress, ProgressSink
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

_ARCHIVE_SUFFIXES = {
    ArchiveFormat.ZIP: ".zip",
    ArchiveFormat.TAR_GZ: ".tar.gz",
    ArchiveFormat.RAW: ".bin",
}


class BinaryResolver:
    """
    Owns the only mutable "current binary" slot per name.

    :meth:`resolve` hands out a :class:`ResolvedBinary` by value; when an
    upgrade lands the slot is replaced and holders of the previous value keep
    using their path until they resolve again.
    """

    def __init__(
        self,
        install_root: Path,
        cache_dir: Path,
        settings: SupervisorSettings,
        *,
        index_client: Optional[ReleaseIndexClient] = None,
        downloader: Optional[ArchiveDownloader] = None,
        installer: Optional[BinaryInstaller] = None,
        cache: Optional[VersionCache] = None,
        platform_key: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ) -> None:
        self.settings = settings
        self.cache_dir = cache_dir
        self.platform_key = platform_key or current_platform_key()
        self._index_client = index_client or ReleaseIndexClient(settings.release_index_url, timeout_seconds=settings.rpc_timeout_seconds * 2)
        self._downloader = downloader or ArchiveDownloader(
            timeout_seconds=settings.download_timeout_seconds, chunk_size=settings.download_chunk_size
        )
        self._installer = installer or BinaryInstaller(install_root)
        self._cache = cache or VersionCache(cache_dir / "versions.json")
        self._clock = clock
        self._resolved: Dict[BinaryName, ResolvedBinary] = {}
        self._install_locks: Dict[BinaryName, asyncio.Lock] = {}

    async def read_current_highest_version(self, name: BinaryName) -> VersionInfo:
        """Return the highest published version, preferring a fresh cache entry.

        Raises:
            VersionLookupError: The index is unreachable (or does not list ``name``) and nothing is cached.
        """
        async with self._cache.lock_for(name):
            entry = self._cache.get(name)
            now = self._clock()
            if entry is not None and entry.is_fresh(now, self.settings.version_cache_ttl_seconds):
                return entry.info

            try:
                releases = await self._index_client.fetch()
            except VersionLookupError as exc:
                if entry is None:
                    raise
                logger.warning("Release index unavailable, using cached %s %s: %s", name.value, entry.info.version, exc)
                return entry.info

            info = releases.get(name)
            if info is None:
                if entry is not None:
                    return entry.info
                raise VersionLookupError(f"Release index does not list {name.value}")

            self._cache.put(name, info, now)
            logger.debug("Highest published %s is %s", name.value, info.version)
            return info

    async def ensure_latest(
        self,
        name: BinaryName,
        progress: Optional[ProgressSink] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ) -> ResolvedBinary:
        """Install the highest published version unless it (or something newer) is already installed.

        Raises:
            VersionLookupError, DownloadError, ChecksumMismatchError, InstallError. The previously
            installed version stays usable in every failure case.
        """
        progress = progress or NullProgress()
        info = await self.read_current_highest_version(name)

        async with self._install_lock(name):
            installed = self._installer.highest_installed(name)
            if installed is not None:
                self._resolved[name] = installed
                if installed.version >= info.version:
                    logger.info("%s %s is up to date", name.value, installed.version)
                    return installed

            asset = info.asset_for(self.platform_key)
            if asset is None:
                raise VersionLookupError.no_release(name.value, self.platform_key)

            archive_path = self.cache_dir / "downloads" / f"{name.value}-{info.version}-{uuid.uuid4().hex[:8]}{_ARCHIVE_SUFFIXES[asset.archive_format]}"
            logger.info("Downloading %s %s from %s", name.value, info.version, asset.url)
            try:
                digest = await self._downloader.download(
                    asset.url,
                    archive_path,
                    on_progress=_DownloadProgress(name, progress),
                    shutdown=shutdown,
                )
                verify_checksum(name.value, asset.sha256, digest, archive_path)
                resolved = await self._installer.install(name, info.version, archive_path, asset.archive_format)
            finally:
                _discard(archive_path)

            self._resolved[name] = resolved
            return resolved

    def get_latest_version(self, name: BinaryName) -> Optional[VersionInfo]:
        """Cache-only: the highest published version last seen, or ``None``."""
        entry = self._cache.get(name)
        return entry.info if entry is not None else None

    def installed_version(self, name: BinaryName) -> Optional[SemanticVersion]:
        resolved = self._current(name)
        return resolved.version if resolved is not None else None

    def resolve(self, name: BinaryName) -> ResolvedBinary:
        """Return the binary to launch; never touches the network.

        Raises:
            BinaryNotInstalledError: Nothing has been installed for ``name``.
        """
        resolved = self._current(name)
        if resolved is None:
            raise BinaryNotInstalledError(name.value)
        return resolved

    def _current(self, name: BinaryName) -> Optional[ResolvedBinary]:
        resolved = self._resolved.get(name)
        if resolved is not None and resolved.path.is_file():
            return resolved
        resolved = self._installer.highest_installed(name)
        if resolved is not None:
            self._resolved[name] = resolved
        return resolved

    def _install_lock(self, name: BinaryName) -> asyncio.Lock:
        lock = self._install_locks.get(name)
        if lock is None:
            lock = asyncio.Lock()
            self._install_locks[name] = lock
        return lock


class _DownloadProgress:
    """Forwards byte counts to a progress sink, only when the whole-percent step changes."""

    def __init__(self, name: BinaryName, sink: ProgressSink) -> None:
        self.stage = f"downloading-{name.value}"
        self.sink = sink
        self._last_step = -1

    def __call__(self, downloaded: int, content_length: Optional[int]) -> None:
        if content_length:
            step = min(100, int(downloaded * 100 / content_length))
        else:
            step = 0
        if step == self._last_step and content_length:
            return
        self._last_step = step
        self.sink.update(self.stage, {"downloaded": downloaded, "content_length": content_length}, step)


def _discard(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:  # policy_guard: allow-silent-handler
        return
    except OSError as exc:  # policy_guard: allow-silent-handler
        logger.warning("Could not remove temporary archive %s: %s", path, exc)


__all__ = ["BinaryResolver"]
