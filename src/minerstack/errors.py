"""Error types raised by the supervisor, resolver, managers and orchestrator."""

from __future__ import annotations

from typing import Optional


class MinerStackError(RuntimeError):
    """Base class for every error raised by this package."""


class ProcessError(MinerStackError):
    """Base class for process lifecycle failures."""


class AlreadyRunningError(ProcessError):
    """Raised when ``start`` is called while a process is starting or running."""

    def __init__(self, role: str, pid: Optional[int] = None) -> None:
        suffix = f" (PID {pid})" if pid is not None else ""
        super().__init__(f"{role} is already running{suffix}")
        self.role = role
        self.pid = pid


class StartupTimeoutError(ProcessError):
    """Raised when a spawned process does not become ready in time."""

    def __init__(self, role: str, timeout_seconds: float) -> None:
        super().__init__(f"{role} did not become ready within {timeout_seconds:.1f}s")
        self.role = role
        self.timeout_seconds = timeout_seconds


class StartupCancelledError(ProcessError):
    """Raised when a start is abandoned because stop or shutdown was requested."""

    def __init__(self, role: str) -> None:
        super().__init__(f"{role} start was cancelled by a stop request")
        self.role = role


class ProcessExitError(ProcessError):
    """Raised when a managed process exits without a stop request; carries the OS exit code verbatim."""

    def __init__(self, role: str, exit_code: int) -> None:
        super().__init__(f"{role} exited unexpectedly with code {exit_code}")
        self.role = role
        self.exit_code = exit_code


class NotStartedError(MinerStackError):
    """Raised when a query is issued before the service was started."""

    def __init__(self, role: str) -> None:
        super().__init__(f"{role} has not been started")
        self.role = role


class NotReadyError(MinerStackError):
    """Raised when the service process is alive but not answering requests yet."""

    def __init__(self, role: str, detail: str = "") -> None:
        msg = f"{role} is not ready"
        if detail:
            msg += f": {detail}"
        super().__init__(msg)
        self.role = role
        self.detail = detail


class RpcTimeoutError(NotReadyError):
    """Raised when a local RPC call exceeds its timeout."""

    def __init__(self, role: str, method: str, timeout_seconds: float) -> None:
        super().__init__(role, f"{method} timed out after {timeout_seconds:.1f}s")
        self.method = method
        self.timeout_seconds = timeout_seconds


class RpcError(MinerStackError):
    """Raised when a service answers an RPC call with an error payload."""

    def __init__(self, role: str, method: str, message: str) -> None:
        super().__init__(f"{role} {method} failed: {message}")
        self.role = role
        self.method = method


class BusyError(MinerStackError):
    """Raised when a guarded operation is already in progress."""

    def __init__(self, operation: str) -> None:
        super().__init__(f"Already {operation}")
        self.operation = operation


class SyncTimeoutError(MinerStackError):
    """Raised when the node does not finish its initial sync within the allowed time."""

    def __init__(self, waited_seconds: float) -> None:
        super().__init__(f"Node did not finish syncing within {waited_seconds:.0f}s")
        self.waited_seconds = waited_seconds


class ResolverError(MinerStackError):
    """Base class for binary resolution failures; never fatal during periodic upgrade checks."""


class VersionLookupError(ResolverError):
    """Raised when the release index is unreachable and nothing is cached."""

    @classmethod
    def no_release(cls, binary: str, platform_key: str) -> "VersionLookupError":
        return cls(f"Release index has no {binary} asset for {platform_key}")


class DownloadError(ResolverError):
    """Raised when an archive cannot be downloaded."""


class ChecksumMismatchError(ResolverError):
    """Raised when a downloaded archive does not match its published checksum."""

    def __init__(self, binary: str, expected: str, actual: str) -> None:
        super().__init__(f"Checksum mismatch for {binary}: expected {expected}, got {actual}")
        self.binary = binary
        self.expected = expected
        self.actual = actual


class InstallError(ResolverError):
    """Raised when a verified archive cannot be installed."""


class BinaryNotInstalledError(ResolverError):
    """Raised when no installed version of a binary is available."""

    def __init__(self, binary: str) -> None:
        super().__init__(f"No installed version of {binary}")
        self.binary = binary


class SetupError(MinerStackError):
    """Raised when application setup fails; carries the stage that failed."""

    def __init__(self, stage: str, reason: str) -> None:
        super().__init__(f"Setup failed at {stage}: {reason}")
        self.stage = stage
        self.reason = reason


__all__ = [
    "AlreadyRunningError",
    "BinaryNotInstalledError",
    "BusyError",
    "ChecksumMismatchError",
    "DownloadError",
    "InstallError",
    "MinerStackError",
    "NotReadyError",
    "NotStartedError",
    "ProcessError",
    "ProcessExitError",
    "ResolverError",
    "RpcError",
    "RpcTimeoutError",
    "SetupError",
    "StartupCancelledError",
    "StartupTimeoutError",
    "SyncTimeoutError",
    "VersionLookupError",
]
