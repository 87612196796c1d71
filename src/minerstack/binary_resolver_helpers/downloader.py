"""Streaming archive download with incremental progress and checksum verification."""

from __future__ import annotations

import asyncio
import hashlib
import logging
from pathlib import Path
from typing import Callable, Optional

import aiohttp

from ..errors import ChecksumMismatchError, DownloadError
from ..shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

ProgressCallback = Callable[[int, Optional[int]], None]

HTTP_OK = 200


class ArchiveDownloader:
    """Downloads to a temporary path; the partial file is removed on any failure or cancellation."""

    def __init__(self, *, timeout_seconds: float, chunk_size: int) -> None:
        self.timeout_seconds = timeout_seconds
        self.chunk_size = chunk_size

    async def download(
        self,
        url: str,
        destination: Path,
        *,
        on_progress: Optional[ProgressCallback] = None,
        shutdown: Optional[ShutdownSignal] = None,
    ) -> str:
        """Stream ``url`` into ``destination`` and return the hex SHA-256 of the bytes written."""
        destination.parent.mkdir(parents=True, exist_ok=True)
        digest = hashlib.sha256()
        downloaded = 0
        timeout = aiohttp.ClientTimeout(total=self.timeout_seconds)
        try:
            async with aiohttp.ClientSession(timeout=timeout, headers={"User-Agent": "minerstack-resolver/1.0"}) as session:
                async with session.get(url) as response:
                    if response.status != HTTP_OK:
                        raise DownloadError(f"GET {url} returned HTTP {response.status}")
                    content_length = response.content_length
                    with destination.open("wb") as handle:
                        async for chunk in response.content.iter_chunked(self.chunk_size):
                            if shutdown is not None and shutdown.is_triggered:
                                raise DownloadError(f"Download of {url} cancelled by shutdown")
                            handle.write(chunk)
                            digest.update(chunk)
                            downloaded += len(chunk)
                            if on_progress is not None:
                                on_progress(downloaded, content_length)
        except DownloadError:
            _remove_partial(destination)
            raise
        except (aiohttp.ClientError, asyncio.TimeoutError, OSError) as exc:
            _remove_partial(destination)
            raise DownloadError(f"Download of {url} failed after {downloaded} bytes") from exc
        except asyncio.CancelledError:
            _remove_partial(destination)
            raise

        logger.debug("Downloaded %s (%d bytes)", url, downloaded)
        return digest.hexdigest()


def verify_checksum(binary: str, expected: str, actual: str, archive_path: Path) -> None:
    """Raise :class:`ChecksumMismatchError` and delete the archive when digests differ."""
    if expected.lower() == actual.lower():
        return
    _remove_partial(archive_path)
    raise ChecksumMismatchError(binary, expected.lower(), actual.lower())


def _remove_partial(path: Path) -> None:
    try:
        path.unlink()
    except FileNotFoundError:  # policy_guard: allow-silent-handler
        return
    except OSError as exc:  # policy_guard: allow-silent-handler
        logger.warning("Could not remove partial download %s: %s", path, exc)


__all__ = ["ArchiveDownloader", "ProgressCallback", "verify_checksum"]
