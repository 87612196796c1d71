"""Binary identities, semantic versions and release asset descriptors."""

from __future__ import annotations

import platform
import re
import sys
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Mapping, Optional

_VERSION_RE = re.compile(r"^v?(?P<major>\d+)\.(?P<minor>\d+)\.(?P<patch>\d+)(?:-(?P<pre>[0-9A-Za-z.-]+))?(?:\+[0-9A-Za-z.-]+)?$")


def _prerelease_key(prerelease: str) -> tuple:
    """Order dot-separated identifiers: numeric ones by value and below alphanumeric ones."""
    if not prerelease:
        return ()
    return tuple((0, int(part), "") if part.isdigit() else (1, 0, part) for part in prerelease.split("."))


class BinaryName(Enum):
    """Closed set of executables the stack manages."""

    NODE = "minotari_node"
    WALLET = "minotari_console_wallet"
    MERGE_MINING_PROXY = "minotari_merge_mining_proxy"
    P2POOL_NODE = "sha_p2pool"
    GPU_MINER = "xtrgpuminer"
    CPU_MINER = "xmrig"

    def executable_name(self, system: Optional[str] = None) -> str:
        system = system or sys.platform
        if system.startswith("win"):
            return f"{self.value}.exe"
        return self.value


class ArchiveFormat(Enum):
    ZIP = "zip"
    TAR_GZ = "tar.gz"
    RAW = "raw"


@dataclass(frozen=True, order=False)
class SemanticVersion:
    major: int
    minor: int
    patch: int
    prerelease: str = ""

    @classmethod
    def parse(cls, raw: str) -> "SemanticVersion":
        match = _VERSION_RE.match(raw.strip())
        if match is None:
            raise ValueError(f"Not a semantic version: {raw!r}")
        return cls(
            major=int(match.group("major")),
            minor=int(match.group("minor")),
            patch=int(match.group("patch")),
            prerelease=match.group("pre") or "",
        )

    @classmethod
    def try_parse(cls, raw: str) -> Optional["SemanticVersion"]:
        try:
            return cls.parse(raw)
        except ValueError:  # policy_guard: allow-silent-handler
            return None

    def _sort_key(self) -> tuple:
        # A release sorts after any of its pre-releases.
        return (self.major, self.minor, self.patch, self.prerelease == "", _prerelease_key(self.prerelease))

    def __lt__(self, other: "SemanticVersion") -> bool:
        return self._sort_key() < other._sort_key()

    def __le__(self, other: "SemanticVersion") -> bool:
        return self._sort_key() <= other._sort_key()

    def __gt__(self, other: "SemanticVersion") -> bool:
        return self._sort_key() > other._sort_key()

    def __ge__(self, other: "SemanticVersion") -> bool:
        return self._sort_key() >= other._sort_key()

    def __str__(self) -> str:
        base = f"{self.major}.{self.minor}.{self.patch}"
        return f"{base}-{self.prerelease}" if self.prerelease else base


@dataclass(frozen=True)
class AssetDescriptor:
    url: str
    archive_format: ArchiveFormat
    sha256: str

    def to_dict(self) -> Dict[str, str]:
        return {"url": self.url, "format": self.archive_format.value, "sha256": self.sha256}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "AssetDescriptor":
        return cls(
            url=str(payload["url"]),
            archive_format=ArchiveFormat(str(payload.get("format", ArchiveFormat.ZIP.value))),
            sha256=str(payload["sha256"]).lower(),
        )


@dataclass(frozen=True)
class VersionInfo:
    """A published release: version plus one download asset per platform key."""

    version: SemanticVersion
    assets: Mapping[str, AssetDescriptor] = field(default_factory=dict)

    def asset_for(self, platform_key: str) -> Optional[AssetDescriptor]:
        return self.assets.get(platform_key)

    def to_dict(self) -> Dict[str, Any]:
        return {"version": str(self.version), "assets": {key: asset.to_dict() for key, asset in self.assets.items()}}

    @classmethod
    def from_dict(cls, payload: Mapping[str, Any]) -> "VersionInfo":
        raw_assets = payload.get("assets") or {}
        return cls(
            version=SemanticVersion.parse(str(payload["version"])),
            assets={str(key): AssetDescriptor.from_dict(value) for key, value in raw_assets.items()},
        )


@dataclass(frozen=True)
class ResolvedBinary:
    """A binary bound to an installed path; handed out by value."""

    name: BinaryName
    path: Path
    version: SemanticVersion


def current_platform_key() -> str:
    """Return the ``<os>-<arch>`` key used by the release index."""
    system = platform.system().lower()
    os_name = {"darwin": "macos"}.get(system, system)
    machine = platform.machine().lower()
    arch = {"amd64": "x86_64", "x64": "x86_64", "arm64": "aarch64"}.get(machine, machine)
    return f"{os_name}-{arch}"


__all__ = [
    "ArchiveFormat",
    "AssetDescriptor",
    "BinaryName",
    "ResolvedBinary",
    "SemanticVersion",
    "VersionInfo",
    "current_platform_key",
]
