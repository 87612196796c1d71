"""Tests for the process watcher using real short-lived Python children."""

from __future__ import annotations

import asyncio
import sys
from typing import List

import psutil
import pytest

from minerstack.config import SupervisorSettings
from minerstack.errors import AlreadyRunningError, ProcessExitError, StartupTimeoutError
from minerstack.process_adapter import LineSeverity
from minerstack.process_watcher import ProcessState, ProcessWatcher
from minerstack.shutdown import Shutdown
from tests.helpers.python_adapter import (
    IGNORE_SIGTERM,
    READY_THEN_SLEEP,
    SLEEP_WITHOUT_READY,
    SPAWN_SLEEPER_THEN_SLEEP,
    PythonScriptAdapter,
    ScriptConfig,
    exit_immediately,
    ready_then_exit,
    spawn_sleeper_then_exit,
)

posix_only = pytest.mark.skipif(sys.platform == "win32", reason="relies on POSIX signal semantics")


async def _wait_for_state(watcher: ProcessWatcher, state: ProcessState, timeout: float = 10.0) -> None:
    deadline = asyncio.get_running_loop().time() + timeout
    while watcher.status().state is not state:
        if asyncio.get_running_loop().time() > deadline:
            raise AssertionError(f"watcher stayed in {watcher.status().state}, expected {state}")
        await asyncio.sleep(0.02)


def _alive(pid: int) -> bool:
    try:
        return psutil.Process(pid).status() != psutil.STATUS_ZOMBIE
    except psutil.NoSuchProcess:
        return False


async def _wait_until_gone(pids: List[int], timeout: float = 5.0) -> List[int]:
    deadline = asyncio.get_running_loop().time() + timeout
    alive = [pid for pid in pids if _alive(pid)]
    while alive and asyncio.get_running_loop().time() < deadline:
        await asyncio.sleep(0.05)
        alive = [pid for pid in alive if _alive(pid)]
    return alive


def _kill_quietly(pids: List[int]) -> None:
    for pid in pids:
        try:
            psutil.Process(pid).kill()
        except psutil.NoSuchProcess:
            continue


@pytest.fixture
def watcher(settings: SupervisorSettings) -> ProcessWatcher:
    return ProcessWatcher(PythonScriptAdapter(), settings)


class TestStart:
    """Tests for ProcessWatcher.start."""

    @pytest.mark.asyncio
    async def test_reaches_running_on_ready_marker(self, watcher: ProcessWatcher) -> None:
        """A readiness line moves the instance from Starting to Running."""
        status = await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        try:
            assert status.state is ProcessState.RUNNING
            assert status.instance == 1
            assert status.pid is not None
            assert watcher.status() == status
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_ready_on_spawn_without_marker(self, settings: SupervisorSettings) -> None:
        """Adapters without readiness patterns are Running as soon as the child exists."""
        watcher = ProcessWatcher(PythonScriptAdapter(ready_pattern=None), settings)
        status = await watcher.start(ScriptConfig(SLEEP_WITHOUT_READY))
        try:
            assert status.state is ProcessState.RUNNING
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_rejects_second_start_while_running(self, watcher: ProcessWatcher) -> None:
        """Starting a running watcher raises instead of spawning a second process."""
        first = await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        try:
            with pytest.raises(AlreadyRunningError) as excinfo:
                await watcher.start(ScriptConfig(READY_THEN_SLEEP))
            assert excinfo.value.pid == first.pid
            assert watcher.status().instance == 1
        finally:
            await watcher.stop()

    @pytest.mark.asyncio
    async def test_exit_before_ready_raises_exit_code(self, watcher: ProcessWatcher) -> None:
        """An immediate exit surfaces the child's own exit status."""
        with pytest.raises(ProcessExitError) as excinfo:
            await watcher.start(ScriptConfig(exit_immediately(7)))

        assert excinfo.value.exit_code == 7
        assert watcher.status().state is ProcessState.CRASHED
        assert watcher.status().exit_code == 7
        assert watcher.take_crash() is None

    @pytest.mark.asyncio
    async def test_startup_timeout_stops_child(self, settings: SupervisorSettings) -> None:
        """A child that never reports readiness is stopped and the start fails."""
        watcher = ProcessWatcher(PythonScriptAdapter(), settings, startup_timeout_seconds=0.5)

        with pytest.raises(StartupTimeoutError):
            await watcher.start(ScriptConfig(SLEEP_WITHOUT_READY))

        assert watcher.status().state is ProcessState.STOPPED


class TestStop:
    """Tests for ProcessWatcher.stop."""

    @pytest.mark.asyncio
    async def test_stop_before_start_returns_zero(self, watcher: ProcessWatcher) -> None:
        """Stopping a never-started watcher returns immediately."""
        assert await watcher.stop() == 0
        assert watcher.status().state is ProcessState.NOT_STARTED

    @pytest.mark.asyncio
    async def test_stop_is_idempotent(self, watcher: ProcessWatcher) -> None:
        """A second stop returns the same exit code without signalling again."""
        await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        first = await watcher.stop()
        second = await watcher.stop()

        assert first == second
        assert watcher.status().state is ProcessState.STOPPED
        assert watcher.status().exit_code == first

    @pytest.mark.asyncio
    async def test_concurrent_stops_share_one_termination(self, watcher: ProcessWatcher) -> None:
        """Overlapping stop calls resolve with the same exit code."""
        await watcher.start(ScriptConfig(READY_THEN_SLEEP))

        codes = await asyncio.gather(watcher.stop(), watcher.stop(), watcher.stop())

        assert len(set(codes)) == 1
        assert watcher.status().state is ProcessState.STOPPED

    @posix_only
    @pytest.mark.asyncio
    async def test_force_kills_after_grace_period(self) -> None:
        """A child ignoring SIGTERM is killed once the grace period elapses."""
        settings = SupervisorSettings(stop_grace_seconds=0.3, force_kill_timeout_seconds=3.0)
        watcher = ProcessWatcher(PythonScriptAdapter(), settings)
        await watcher.start(ScriptConfig(IGNORE_SIGTERM))

        exit_code = await watcher.stop()

        assert exit_code == -9
        assert watcher.status().state is ProcessState.STOPPED

    @pytest.mark.asyncio
    async def test_restart_creates_new_instance(self, watcher: ProcessWatcher) -> None:
        """start, stop, start spawns a fresh instance and reports only the newest one."""
        first = await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        await watcher.stop()
        second = await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        try:
            assert second.instance == first.instance + 1
            assert second.pid != first.pid
            assert watcher.status().instance == second.instance
            assert watcher.status().state is ProcessState.RUNNING
        finally:
            await watcher.stop()


class TestCrash:
    """Tests for unexpected exits while Running."""

    @pytest.mark.asyncio
    async def test_crash_is_reported_once(self, watcher: ProcessWatcher) -> None:
        """An exit without a stop request becomes Crashed and is reported exactly once."""
        crashes = []
        watcher.on_crash(crashes.append)

        await watcher.start(ScriptConfig(ready_then_exit(3)))
        await _wait_for_state(watcher, ProcessState.CRASHED)
        await asyncio.sleep(0.1)

        assert watcher.status().exit_code == 3
        assert [crash.exit_code for crash in crashes] == [3]
        first = watcher.take_crash()
        assert first is not None and first.exit_code == 3
        assert watcher.take_crash() is None
        assert watcher.status().state is ProcessState.CRASHED

    @pytest.mark.asyncio
    async def test_restart_after_crash(self, watcher: ProcessWatcher) -> None:
        """A crashed instance is terminal; the next start re-enters Starting with a new instance."""
        await watcher.start(ScriptConfig(ready_then_exit(5, delay=0.2)))
        await _wait_for_state(watcher, ProcessState.CRASHED)

        status = await watcher.start(ScriptConfig(READY_THEN_SLEEP))
        try:
            assert status.instance == 2
            assert status.state is ProcessState.RUNNING
        finally:
            await watcher.stop()


class TestShutdownAndOutput:
    """Tests for shutdown propagation and output classification."""

    @pytest.mark.asyncio
    async def test_shutdown_signal_stops_child(self, watcher: ProcessWatcher) -> None:
        """Triggering the shared shutdown token gracefully stops the child."""
        shutdown = Shutdown()
        await watcher.start(ScriptConfig(READY_THEN_SLEEP), shutdown.to_signal())

        shutdown.trigger()
        await _wait_for_state(watcher, ProcessState.STOPPED)

        assert watcher.take_crash() is None

    @pytest.mark.asyncio
    async def test_error_lines_become_warnings(self, watcher: ProcessWatcher) -> None:
        """Lines matching error patterns are surfaced while the process stays healthy."""
        seen = []
        watcher.on_warning(seen.append)
        script = "import time\nprint('READY', flush=True)\nprint('ERROR disk almost full', flush=True)\ntime.sleep(30)\n"

        await watcher.start(ScriptConfig(script))
        try:
            for _ in range(100):
                if seen:
                    break
                await asyncio.sleep(0.02)
            assert watcher.is_running()
            assert [warning.line for warning in watcher.recent_warnings()] == ["ERROR disk almost full"]
            assert seen[0].severity is LineSeverity.ERROR
            assert seen[0].instance == 1
        finally:
            await watcher.stop()


@posix_only
class TestDescendants:
    """Tests for children spawned by the supervised process."""

    @pytest.mark.asyncio
    async def test_stop_leaves_no_descendant_running(self, watcher: ProcessWatcher) -> None:
        """A descendant that outlives its parent's graceful exit is killed by stop."""
        status = await watcher.start(ScriptConfig(SPAWN_SLEEPER_THEN_SLEEP))
        descendants = [child.pid for child in psutil.Process(status.pid).children(recursive=True)]
        try:
            assert descendants

            await watcher.stop()

            assert watcher.status().state is ProcessState.STOPPED
            assert await _wait_until_gone(descendants) == []
        finally:
            _kill_quietly(descendants)

    @pytest.mark.asyncio
    async def test_exit_recorded_while_descendant_holds_output(self, watcher: ProcessWatcher) -> None:
        """A crash is reported even though a descendant keeps the output pipes open."""
        status = await watcher.start(ScriptConfig(spawn_sleeper_then_exit(3)))
        descendants = [child.pid for child in psutil.Process(status.pid).children(recursive=True)]
        try:
            await _wait_for_state(watcher, ProcessState.CRASHED, timeout=5.0)

            assert watcher.status().exit_code == 3
            assert any(_alive(pid) for pid in descendants)
        finally:
            _kill_quietly(descendants)
