"""Tests for the graceful-then-forced terminator."""

from __future__ import annotations

import asyncio
from unittest.mock import MagicMock, patch

import psutil
import pytest

from minerstack.process_watcher_helpers.terminator import FORCE_KILLED_EXIT_CODE, terminate_process

PSUTIL_PROCESS = "minerstack.process_watcher_helpers.terminator.psutil.Process"


def _process(returncode=None) -> MagicMock:
    process = MagicMock()
    process.pid = 4321
    process.returncode = returncode
    return process


class TestTerminateProcess:
    """Tests for terminate_process."""

    @pytest.mark.asyncio
    async def test_graceful_exit_skips_kill(self) -> None:
        """A child that exits after terminate is never force-killed."""
        process = _process(returncode=-15)
        exit_task = asyncio.get_running_loop().create_future()
        exit_task.set_result(None)

        with patch(PSUTIL_PROCESS) as psutil_process:
            psutil_process.return_value.children.return_value = []
            code = await terminate_process(process, exit_task, role="node", graceful_timeout=1.0, force_timeout=1.0)

        assert code == -15
        process.terminate.assert_called_once()
        process.kill.assert_not_called()

    @pytest.mark.asyncio
    async def test_kills_tree_after_grace_period(self) -> None:
        """Children and the process itself are killed when terminate is ignored."""
        process = _process()
        child = MagicMock()
        exit_task = asyncio.get_running_loop().create_future()

        with patch(PSUTIL_PROCESS) as psutil_process:
            psutil_process.return_value.children.return_value = [child]
            code = await terminate_process(process, exit_task, role="node", graceful_timeout=0.01, force_timeout=0.01)

        assert code == FORCE_KILLED_EXIT_CODE
        child.kill.assert_called_once()
        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_tolerates_already_exited_process(self) -> None:
        """ProcessLookupError from terminate is not an error."""
        process = _process(returncode=0)
        process.terminate.side_effect = ProcessLookupError()
        exit_task = asyncio.get_running_loop().create_future()
        exit_task.set_result(None)

        with patch(PSUTIL_PROCESS, side_effect=psutil.NoSuchProcess(4321)):
            code = await terminate_process(process, exit_task, role="wallet", graceful_timeout=1.0, force_timeout=1.0)

        assert code == 0

    @pytest.mark.asyncio
    async def test_vanished_children_are_skipped(self) -> None:
        """Children that disappear before the kill do not abort termination."""
        process = _process()
        child = MagicMock()
        child.kill.side_effect = psutil.NoSuchProcess(99)
        exit_task = asyncio.get_running_loop().create_future()

        with patch(PSUTIL_PROCESS) as psutil_process:
            psutil_process.return_value.children.return_value = [child]
            await terminate_process(process, exit_task, role="p2pool", graceful_timeout=0.01, force_timeout=0.01)

        process.kill.assert_called_once()

    @pytest.mark.asyncio
    async def test_graceful_exit_kills_leftover_children(self) -> None:
        """Descendants still running after the parent exits are killed; exited ones are left alone."""
        process = _process(returncode=-15)
        leftover = MagicMock()
        leftover.is_running.return_value = True
        finished = MagicMock()
        finished.is_running.return_value = False
        exit_task = asyncio.get_running_loop().create_future()
        exit_task.set_result(None)

        with patch(PSUTIL_PROCESS) as psutil_process:
            psutil_process.return_value.children.return_value = [leftover, finished]
            code = await terminate_process(process, exit_task, role="cpu_miner", graceful_timeout=1.0, force_timeout=1.0)

        assert code == -15
        leftover.kill.assert_called_once()
        finished.kill.assert_not_called()
        process.kill.assert_not_called()
