"""Building blocks of the binary resolver."""

from .downloader import ArchiveDownloader, verify_checksum
from .installer import BinaryInstaller
from .release_index import ReleaseIndexClient, parse_release_index
from .version_cache import CacheEntry, VersionCache

__all__ = [
    "ArchiveDownloader",
    "BinaryInstaller",
    "CacheEntry",
    "ReleaseIndexClient",
    "VersionCache",
    "parse_release_index",
    "verify_checksum",
]
