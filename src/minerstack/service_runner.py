"""Run the mining stack headless with single-instance protection and signal-driven shutdown."""

from __future__ import annotations

import asyncio
import logging
import os
import signal
import sys
from contextlib import contextmanager
from pathlib import Path
from typing import Iterator, Optional

from .app_config import AppConfigStore
from .collaborators import HardwareMonitor, TelemetryIdProvider, WalletIdentity
from .config.settings import AppPaths, SupervisorSettings
from .errors import MinerStackError, StartupCancelledError
from .logging_config import setup_logging
from .mining_stack import MiningStack
from .progress import SetupStatusEvent

try:
    import fcntl
except ImportError:  # pragma: no cover - fcntl unavailable on non-POSIX platforms  # policy_guard: allow-silent-handler
    fcntl = None

logger = logging.getLogger(__name__)

SERVICE_NAME = "minerstack"


class SingleInstanceError(RuntimeError):
    """Raised when another instance already owns the application home."""


class ServiceInstanceLock:
    """File-lock guard allowing one running stack per application home."""

    def __init__(self, service_name: str, runtime_dir: Path) -> None:
        self.service_name = service_name
        env_override = os.getenv("SERVICE_RUNTIME_DIR")
        self.runtime_dir = Path(env_override) if env_override else runtime_dir
        self.runtime_dir.mkdir(parents=True, exist_ok=True)
        self.lock_path = self.runtime_dir / f"{service_name}.lock"
        self._fd: Optional[int] = None
        self._released = False

    def acquire(self) -> None:
        if fcntl is None:  # pragma: no cover - non-POSIX platforms
            raise SingleInstanceError("Single instance enforcement requires fcntl on this platform.")

        fd = os.open(self.lock_path, os.O_RDWR | os.O_CREAT, 0o664)
        try:
            fcntl.flock(fd, fcntl.LOCK_EX | fcntl.LOCK_NB)
        except BlockingIOError as exc:
            existing_pid = _read_pid(fd)
            suffix = f" (PID {existing_pid})." if existing_pid else "."
            raise SingleInstanceError(f"'{self.service_name}' appears to be running already" + suffix) from exc

        os.ftruncate(fd, 0)
        os.write(fd, str(os.getpid()).encode("utf-8"))
        os.fsync(fd)
        self._fd = fd

    def release(self) -> None:
        if self._released:
            return
        if self._fd is not None:
            try:
                if fcntl is not None:
                    fcntl.flock(self._fd, fcntl.LOCK_UN)
            finally:
                try:
                    os.close(self._fd)
                except OSError:  # policy_guard: allow-silent-handler
                    pass
                self._fd = None
        try:
            self.lock_path.unlink(missing_ok=True)
        except OSError:  # policy_guard: allow-silent-handler
            pass
        self._released = True


def _read_pid(fd: int) -> Optional[str]:
    try:
        with os.fdopen(fd, "r") as fh:
            data = fh.read().strip()
    except (OSError, ValueError):  # policy_guard: allow-silent-handler
        return None
    return data or None


@contextmanager
def single_instance_guard(service_name: str, runtime_dir: Path) -> Iterator[None]:
    lock = ServiceInstanceLock(service_name, runtime_dir)
    lock.acquire()
    try:
        yield
    finally:
        lock.release()


class LoggingSetupObserver:
    """Setup observer for headless runs: every status event becomes a log line."""

    def emit(self, event: SetupStatusEvent) -> None:
        params = f" {dict(event.title_params)}" if event.title_params else ""
        logger.info("Setup %s (%.0f%%)%s", event.title, event.progress * 100, params)


async def run_stack(stack: MiningStack, *, start_mining: bool) -> None:
    """Set up the stack, optionally start mining, and stop everything once shutdown is triggered."""
    loop = asyncio.get_running_loop()
    if sys.platform != "win32":
        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, stack.shutdown.trigger)

    try:
        await stack.setup(LoggingSetupObserver())
        if start_mining:
            await stack.start_mining()
        await stack.shutdown.to_signal().wait()
    except StartupCancelledError:  # policy_guard: allow-silent-handler
        logger.info("Setup interrupted by shutdown")
    finally:
        await stack.stop_all()
        if sys.platform != "win32":
            for sig in (signal.SIGINT, signal.SIGTERM):
                loop.remove_signal_handler(sig)


def run_headless(
    app_config: AppConfigStore,
    wallet_identity: WalletIdentity,
    *,
    paths: Optional[AppPaths] = None,
    settings: Optional[SupervisorSettings] = None,
    start_mining: bool = False,
    hardware_monitor: Optional[HardwareMonitor] = None,
    telemetry: Optional[TelemetryIdProvider] = None,
) -> int:
    """Blocking entry point; returns the process exit status."""
    paths = (paths or AppPaths.from_env()).ensure()
    settings = settings or SupervisorSettings()
    try:
        with single_instance_guard(SERVICE_NAME, paths.data_dir / "run"):
            setup_logging(SERVICE_NAME, paths.log_dir)
            stack = MiningStack.create(
                paths, settings, app_config, wallet_identity, hardware_monitor=hardware_monitor, telemetry=telemetry
            )
            try:
                asyncio.run(run_stack(stack, start_mining=start_mining))
            except KeyboardInterrupt:  # policy_guard: allow-silent-handler
                logger.info("%s interrupted by user", SERVICE_NAME)
            except MinerStackError:
                logger.exception("%s stopped with an error", SERVICE_NAME)
                return 1
    except SingleInstanceError as exc:
        sys.stderr.write(str(exc) + "\n")
        return 1
    return 0


__all__ = [
    "LoggingSetupObserver",
    "SERVICE_NAME",
    "ServiceInstanceLock",
    "SingleInstanceError",
    "run_headless",
    "run_stack",
    "single_instance_guard",
]
