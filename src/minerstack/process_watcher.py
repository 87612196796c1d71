"""
Process watcher: spawn one child per start request, drain its output, detect
readiness, observe its exit and stop it gracefully.

One watcher supervises one role. Every spawn is a new *instance*; the status
reported by :meth:`ProcessWatcher.status` always refers to the latest one.
"""

from __future__ import annotations

import asyncio
import logging
from collections import deque
from dataclasses import dataclass, field
from typing import Callable, Deque, Generic, List, Optional

from .config.settings import SupervisorSettings
from .errors import AlreadyRunningError, ProcessError, ProcessExitError, StartupCancelledError, StartupTimeoutError
from .process_adapter import ConfigT, LineSeverity, ProcessAdapter
from .process_watcher_helpers import STREAM_LIMIT_BYTES, ProcessState, ProcessStatus, StatusCell, drain_stream, terminate_process
from .shutdown import ShutdownSignal

logger = logging.getLogger(__name__)

MAX_RECENT_WARNINGS = 50
DRAIN_AFTER_EXIT_SECONDS = 1.0
EXIT_POLL_SECONDS = 0.2

CrashCallback = Callable[[ProcessExitError], None]
WarningCallback = Callable[["OutputWarning"], None]


@dataclass(frozen=True)
class OutputWarning:
    role: str
    instance: int
    severity: LineSeverity
    stream: str
    line: str


@dataclass
class _ProcessHandle:
    process: asyncio.subprocess.Process
    instance: int
    ready: asyncio.Event = field(default_factory=asyncio.Event)
    drain_tasks: List["asyncio.Task[None]"] = field(default_factory=list)
    exit_task: Optional["asyncio.Task[ProcessStatus]"] = None
    shutdown_task: Optional["asyncio.Task[None]"] = None
    stop_task: Optional["asyncio.Task[int]"] = None
    stop_requested: bool = False

    @property
    def exited(self) -> bool:
        return self.exit_task is not None and self.exit_task.done()


class ProcessWatcher(Generic[ConfigT]):
    """Supervises the child process of one role through an adapter."""

    def __init__(
        self,
        adapter: ProcessAdapter[ConfigT],
        settings: Optional[SupervisorSettings] = None,
        *,
        startup_timeout_seconds: Optional[float] = None,
    ) -> None:
        self._adapter = adapter
        self._settings = settings or SupervisorSettings()
        self._startup_timeout = (
            startup_timeout_seconds if startup_timeout_seconds is not None else self._settings.startup_timeout_seconds
        )
        self._cell = StatusCell()
        self._handle: Optional[_ProcessHandle] = None
        self._start_lock = asyncio.Lock()
        self._warnings: Deque[OutputWarning] = deque(maxlen=MAX_RECENT_WARNINGS)
        self._crash_callbacks: List[CrashCallback] = []
        self._warning_callbacks: List[WarningCallback] = []
        self._pending_crash: Optional[ProcessExitError] = None

    @property
    def role(self) -> str:
        return self._adapter.role

    @property
    def adapter(self) -> ProcessAdapter[ConfigT]:
        return self._adapter

    def status(self) -> ProcessStatus:
        return self._cell.get()

    def is_running(self) -> bool:
        return self._cell.get().is_running

    def on_crash(self, callback: CrashCallback) -> None:
        self._crash_callbacks.append(callback)

    def on_warning(self, callback: WarningCallback) -> None:
        self._warning_callbacks.append(callback)

    def recent_warnings(self) -> List[OutputWarning]:
        return list(self._warnings)

    def take_crash(self) -> Optional[ProcessExitError]:
        """Return the pending crash of the latest instance once, then clear it."""
        crash, self._pending_crash = self._pending_crash, None
        return crash

    async def start(self, config: ConfigT, shutdown: Optional[ShutdownSignal] = None) -> ProcessStatus:
        """
        Spawn a new instance and wait until it is ready.

        Raises:
            AlreadyRunningError: An instance is already starting or running
            StartupTimeoutError: No readiness marker within the startup timeout; the child is stopped
            ProcessExitError: The child exited before becoming ready
            StartupCancelledError: A stop was requested while starting
        """
        async with self._start_lock:
            current = self._cell.get()
            if current.state in (ProcessState.STARTING, ProcessState.RUNNING):
                raise AlreadyRunningError(self.role, current.pid)
            previous = self._handle
            if previous is not None and previous.exit_task is not None and not previous.exited:
                await asyncio.wait({previous.exit_task})

            spec = self._adapter.launch_spec(config)
            logger.info("Starting %s: %s %s", self.role, spec.executable, " ".join(spec.args))
            try:
                process = await asyncio.create_subprocess_exec(
                    str(spec.executable),
                    *spec.args,
                    stdin=asyncio.subprocess.DEVNULL,
                    stdout=asyncio.subprocess.PIPE,
                    stderr=asyncio.subprocess.PIPE,
                    env=dict(spec.env),
                    cwd=str(spec.cwd) if spec.cwd is not None else None,
                    limit=STREAM_LIMIT_BYTES,
                )
            except OSError as exc:
                raise ProcessError(f"Could not spawn {self.role} ({spec.executable}): {exc}") from exc

            status = self._cell.begin(process.pid)
            handle = _ProcessHandle(process=process, instance=status.instance)
            self._handle = handle
            self._pending_crash = None
            logger.info("%s started with PID %s (instance %s)", self.role, process.pid, handle.instance)

            if process.stdout is not None:
                handle.drain_tasks.append(asyncio.create_task(self._drain(handle, process.stdout, "stdout")))
            if process.stderr is not None:
                handle.drain_tasks.append(asyncio.create_task(self._drain(handle, process.stderr, "stderr")))
            handle.exit_task = asyncio.create_task(self._watch_exit(handle))
            if shutdown is not None:
                handle.shutdown_task = asyncio.create_task(self._stop_on_shutdown(handle, shutdown))
            if self._adapter.ready_on_spawn:
                self._mark_ready(handle)

        return await self._await_startup(handle)

    async def stop(self) -> int:
        """Stop the current instance; idempotent. Returns the last exit code (0 if never started)."""
        handle = self._handle
        status = self._cell.get()
        if handle is None:
            return 0
        if handle.exited or status.is_terminal:
            if handle.exit_task is not None and not handle.exit_task.done():
                await asyncio.wait({handle.exit_task})
            final = self._cell.get()
            return final.exit_code if final.exit_code is not None else 0
        return await self._stop_handle(handle)

    async def _await_startup(self, handle: _ProcessHandle) -> ProcessStatus:
        assert handle.exit_task is not None
        ready_task = asyncio.create_task(handle.ready.wait())
        try:
            await asyncio.wait({ready_task, handle.exit_task}, timeout=self._startup_timeout, return_when=asyncio.FIRST_COMPLETED)
        finally:
            if not ready_task.done():
                ready_task.cancel()

        if handle.exited:
            if handle.stop_requested:
                raise StartupCancelledError(self.role)
            self._pending_crash = None
            raise ProcessExitError(self.role, handle.exit_task.result().exit_code)

        if handle.ready.is_set():
            status = self._cell.get()
            if handle.stop_requested or status.instance != handle.instance or status.state is not ProcessState.RUNNING:
                raise StartupCancelledError(self.role)
            return status

        if handle.stop_requested:
            await self._stop_handle(handle)
            raise StartupCancelledError(self.role)

        logger.error("%s did not report readiness within %.1fs; stopping it", self.role, self._startup_timeout)
        await self._stop_handle(handle)
        raise StartupTimeoutError(self.role, self._startup_timeout)

    async def _stop_handle(self, handle: _ProcessHandle) -> int:
        assert handle.exit_task is not None
        if handle.stop_task is None:
            handle.stop_requested = True
            self._cell.transition(handle.instance, (ProcessState.STARTING, ProcessState.RUNNING), ProcessState.STOPPING)
            logger.info("Stopping %s (PID %s)", self.role, handle.process.pid)
            handle.stop_task = asyncio.create_task(
                terminate_process(
                    handle.process,
                    handle.exit_task,
                    role=self.role,
                    graceful_timeout=self._settings.stop_grace_seconds,
                    force_timeout=self._settings.force_kill_timeout_seconds,
                )
            )
        return await asyncio.shield(handle.stop_task)

    async def _drain(self, handle: _ProcessHandle, stream: asyncio.StreamReader, stream_name: str) -> None:
        await drain_stream(stream, stream_name=stream_name, on_line=lambda name, line: self._on_line(handle, name, line))

    def _on_line(self, handle: _ProcessHandle, stream_name: str, line: str) -> None:
        severity = self._adapter.classify_line(line)
        logger.log(severity.value, "[%s] %s", self.role, line)
        if not handle.ready.is_set() and self._adapter.is_ready_line(line):
            self._mark_ready(handle)
        if severity in (LineSeverity.WARNING, LineSeverity.ERROR, LineSeverity.FATAL):
            warning = OutputWarning(self.role, handle.instance, severity, stream_name, line)
            self._warnings.append(warning)
            for callback in list(self._warning_callbacks):
                callback(warning)

    def _mark_ready(self, handle: _ProcessHandle) -> None:
        if self._cell.transition(handle.instance, (ProcessState.STARTING,), ProcessState.RUNNING):
            logger.info("%s is running (PID %s)", self.role, handle.process.pid)
        handle.ready.set()

    async def _watch_exit(self, handle: _ProcessHandle) -> ProcessStatus:
        exit_code = await _wait_for_exit(handle.process)
        if handle.drain_tasks:
            _, pending = await asyncio.wait(handle.drain_tasks, timeout=DRAIN_AFTER_EXIT_SECONDS)
            if pending:
                # A descendant still holds the output pipes.
                logger.debug("%s output still open %.1fs after exit; no longer draining", self.role, DRAIN_AFTER_EXIT_SECONDS)
                for task in pending:
                    task.cancel()
                await asyncio.gather(*pending, return_exceptions=True)

        new_state = ProcessState.STOPPED if handle.stop_requested else ProcessState.CRASHED
        previous = self._cell.finish(handle.instance, new_state, exit_code)
        if handle.shutdown_task is not None and handle.shutdown_task is not asyncio.current_task():
            handle.shutdown_task.cancel()

        if new_state is ProcessState.STOPPED:
            logger.info("%s stopped with exit code %s", self.role, exit_code)
        elif previous is ProcessState.RUNNING:
            logger.error("%s exited unexpectedly with exit code %s", self.role, exit_code)
            crash = ProcessExitError(self.role, exit_code)
            self._pending_crash = crash
            for callback in list(self._crash_callbacks):
                callback(crash)
        else:
            logger.error("%s exited during startup with exit code %s", self.role, exit_code)
        return self._cell.get()

    async def _stop_on_shutdown(self, handle: _ProcessHandle, shutdown: ShutdownSignal) -> None:
        await shutdown.wait()
        if not handle.exited:
            logger.info("Shutdown requested; stopping %s", self.role)
            await self._stop_handle(handle)


async def _wait_for_exit(process: asyncio.subprocess.Process) -> int:
    """
    Return the exit code as soon as the child is reaped.

    ``Process.wait`` only resolves once every pipe has closed, which a surviving
    descendant holding stdout can postpone indefinitely.
    """
    waiter = asyncio.ensure_future(process.wait())
    try:
        while True:
            done, _ = await asyncio.wait({waiter}, timeout=EXIT_POLL_SECONDS)
            if done:
                return waiter.result()
            if process.returncode is not None:
                return process.returncode
    finally:
        if not waiter.done():
            waiter.cancel()


__all__ = ["OutputWarning", "ProcessState", "ProcessStatus", "ProcessWatcher"]
