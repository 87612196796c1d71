"""
Process adapter: role-specific translation from a typed start configuration to
launch arguments, plus interpretation of the process's output.

The generic :class:`~minerstack.process_watcher.ProcessWatcher` never branches
on role; everything role-specific lives in an adapter subclass.
"""

from __future__ import annotations

import logging
import os
import re
from abc import ABC, abstractmethod
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path
from typing import Dict, Generic, List, Mapping, Optional, Pattern, Protocol, Tuple, TypeVar

from .binaries import BinaryName, ResolvedBinary

ConfigT = TypeVar("ConfigT")


class LineSeverity(Enum):
    DEBUG = logging.DEBUG
    INFO = logging.INFO
    WARNING = logging.WARNING
    ERROR = logging.ERROR
    FATAL = logging.CRITICAL


class BinarySource(Protocol):
    def resolve(self, name: BinaryName) -> ResolvedBinary: ...


@dataclass(frozen=True)
class LaunchSpec:
    executable: Path
    args: Tuple[str, ...]
    env: Mapping[str, str] = field(default_factory=dict)
    cwd: Optional[Path] = None


GENERIC_FATAL_PATTERNS: Tuple[Pattern[str], ...] = (
    re.compile(r"\bpanicked at\b"),
    re.compile(r"\bFATAL\b"),
    re.compile(r"[Aa]ddress already in use"),
)
GENERIC_ERROR_PATTERNS: Tuple[Pattern[str], ...] = (re.compile(r"\bERROR\b"),)
GENERIC_WARNING_PATTERNS: Tuple[Pattern[str], ...] = (re.compile(r"\bWARN(?:ING)?\b"),)
GENERIC_DEBUG_PATTERNS: Tuple[Pattern[str], ...] = (re.compile(r"\b(?:DEBUG|TRACE)\b"),)


class ProcessAdapter(ABC, Generic[ConfigT]):
    """Builds the command line for one binary and classifies the lines it prints.

    Subclasses set ``role`` and ``binary`` and may extend the pattern tuples.
    An adapter without ``READY_PATTERNS`` is considered ready as soon as the
    process has been spawned.
    """

    role: str = "process"
    binary: BinaryName
    READY_PATTERNS: Tuple[Pattern[str], ...] = ()
    FATAL_PATTERNS: Tuple[Pattern[str], ...] = GENERIC_FATAL_PATTERNS
    ERROR_PATTERNS: Tuple[Pattern[str], ...] = GENERIC_ERROR_PATTERNS
    WARNING_PATTERNS: Tuple[Pattern[str], ...] = GENERIC_WARNING_PATTERNS
    DEBUG_PATTERNS: Tuple[Pattern[str], ...] = GENERIC_DEBUG_PATTERNS

    def __init__(self, binaries: BinarySource) -> None:
        self._binaries = binaries

    def resolve_executable(self) -> Path:
        return self._binaries.resolve(self.binary).path

    @abstractmethod
    def build_args(self, config: ConfigT) -> List[str]:
        """Return the command-line arguments (without the executable)."""

    def build_env(self, config: ConfigT) -> Dict[str, str]:
        return {}

    def working_dir(self, config: ConfigT) -> Optional[Path]:
        return None

    def launch_spec(self, config: ConfigT) -> LaunchSpec:
        env = dict(os.environ)
        env.update(self.build_env(config))
        return LaunchSpec(
            executable=self.resolve_executable(),
            args=tuple(self.build_args(config)),
            env=env,
            cwd=self.working_dir(config),
        )

    @property
    def ready_on_spawn(self) -> bool:
        return not self.READY_PATTERNS

    def is_ready_line(self, line: str) -> bool:
        return any(pattern.search(line) for pattern in self.READY_PATTERNS)

    def classify_line(self, line: str) -> LineSeverity:
        if any(pattern.search(line) for pattern in self.FATAL_PATTERNS):
            return LineSeverity.FATAL
        if any(pattern.search(line) for pattern in self.ERROR_PATTERNS):
            return LineSeverity.ERROR
        if any(pattern.search(line) for pattern in self.WARNING_PATTERNS):
            return LineSeverity.WARNING
        if any(pattern.search(line) for pattern in self.DEBUG_PATTERNS):
            return LineSeverity.DEBUG
        return LineSeverity.INFO


__all__ = [
    "BinarySource",
    "ConfigT",
    "GENERIC_FATAL_PATTERNS",
    "LaunchSpec",
    "LineSeverity",
    "ProcessAdapter",
]
