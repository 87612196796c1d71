"""
Versioned install directories with an atomic swap.

Layout::

    <install_root>/<binary>/<version>/.../<executable>

An archive is extracted into a hidden staging directory next to the final
location and renamed into place only after the executable was found inside
it, so a crash mid-install never touches a previously working version.
"""

from __future__ import annotations

import asyncio
import logging
import os
import shutil
import stat
import tarfile
import uuid
import zipfile
from pathlib import Path
from typing import List, Optional

from ..binaries import ArchiveFormat, BinaryName, ResolvedBinary, SemanticVersion
from ..errors import InstallError

logger = logging.getLogger(__name__)

STAGING_PREFIX = ".staging-"
RETIRED_PREFIX = ".retired-"


class BinaryInstaller:
    def __init__(self, install_root: Path) -> None:
        self.install_root = install_root

    def binary_root(self, name: BinaryName) -> Path:
        return self.install_root / name.value

    def installed_versions(self, name: BinaryName) -> List[SemanticVersion]:
        root = self.binary_root(name)
        if not root.is_dir():
            return []
        versions = []
        for entry in root.iterdir():
            if not entry.is_dir() or entry.name.startswith("."):
                continue
            version = SemanticVersion.try_parse(entry.name)
            if version is not None and self._find_executable(entry, name) is not None:
                versions.append(version)
        return sorted(versions)

    def highest_installed(self, name: BinaryName) -> Optional[ResolvedBinary]:
        versions = self.installed_versions(name)
        if not versions:
            return None
        version = versions[-1]
        executable = self._find_executable(self.binary_root(name) / str(version), name)
        if executable is None:
            return None
        return ResolvedBinary(name=name, path=executable, version=version)

    async def install(self, name: BinaryName, version: SemanticVersion, archive_path: Path, archive_format: ArchiveFormat) -> ResolvedBinary:
        return await asyncio.to_thread(self._install_sync, name, version, archive_path, archive_format)

    def _install_sync(self, name: BinaryName, version: SemanticVersion, archive_path: Path, archive_format: ArchiveFormat) -> ResolvedBinary:
        root = self.binary_root(name)
        final_dir = root / str(version)
        staging_dir = root / f"{STAGING_PREFIX}{version}-{uuid.uuid4().hex[:8]}"
        try:
            root.mkdir(parents=True, exist_ok=True)
            staging_dir.mkdir()
            _extract(archive_path, staging_dir, archive_format, name)
            executable = self._find_executable(staging_dir, name)
            if executable is None:
                raise InstallError(f"Archive for {name.value} {version} does not contain {name.executable_name()}")
            _make_executable(executable)
            relative = executable.relative_to(staging_dir)
            self._swap_into_place(staging_dir, final_dir)
        except InstallError:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise
        except (OSError, zipfile.BadZipFile, tarfile.TarError) as exc:
            shutil.rmtree(staging_dir, ignore_errors=True)
            raise InstallError(f"Could not install {name.value} {version}: {exc}") from exc

        logger.info("Installed %s %s into %s", name.value, version, final_dir)
        return ResolvedBinary(name=name, path=final_dir / relative, version=version)

    @staticmethod
    def _swap_into_place(staging_dir: Path, final_dir: Path) -> None:
        if not final_dir.exists():
            os.replace(staging_dir, final_dir)
            return
        retired = final_dir.parent / f"{RETIRED_PREFIX}{final_dir.name}-{uuid.uuid4().hex[:8]}"
        os.replace(final_dir, retired)
        try:
            os.replace(staging_dir, final_dir)
        except OSError:
            os.replace(retired, final_dir)
            raise
        shutil.rmtree(retired, ignore_errors=True)

    @staticmethod
    def _find_executable(directory: Path, name: BinaryName) -> Optional[Path]:
        target = name.executable_name()
        direct = directory / target
        if direct.is_file():
            return direct
        for candidate in sorted(directory.rglob(target)):
            if candidate.is_file():
                return candidate
        return None


def _extract(archive_path: Path, destination: Path, archive_format: ArchiveFormat, name: BinaryName) -> None:
    if archive_format is ArchiveFormat.ZIP:
        with zipfile.ZipFile(archive_path) as archive:
            _reject_unsafe_members(archive.namelist(), archive_path)
            archive.extractall(destination)
    elif archive_format is ArchiveFormat.TAR_GZ:
        with tarfile.open(archive_path, "r:gz") as archive:
            _reject_unsafe_members(archive.getnames(), archive_path)
            if hasattr(tarfile, "data_filter"):
                archive.extractall(destination, filter="data")
            else:
                archive.extractall(destination)
    else:
        shutil.copyfile(archive_path, destination / name.executable_name())


def _reject_unsafe_members(members: List[str], archive_path: Path) -> None:
    for member in members:
        normalized = Path(member)
        if normalized.is_absolute() or ".." in normalized.parts:
            raise InstallError(f"Archive {archive_path.name} contains unsafe path {member!r}")


def _make_executable(path: Path) -> None:
    mode = path.stat().st_mode
    path.chmod(mode | stat.S_IXUSR | stat.S_IXGRP | stat.S_IXOTH)


__all__ = ["BinaryInstaller"]
