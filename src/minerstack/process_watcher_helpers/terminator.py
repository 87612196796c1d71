"""Terminate a child process: graceful request, bounded wait, then force-kill the whole tree."""

from __future__ import annotations

import asyncio
import logging
from typing import List

import psutil

logger = logging.getLogger(__name__)

FORCE_KILLED_EXIT_CODE = -9


async def terminate_process(
    process: asyncio.subprocess.Process,
    exit_task: "asyncio.Task[object]",
    *,
    role: str,
    graceful_timeout: float,
    force_timeout: float,
) -> int:
    """
    Stop ``process`` and return its exit code; never hangs.

    Args:
        process: The spawned child
        exit_task: Task that completes when the child has been reaped
        role: Name used in log messages
        graceful_timeout: Seconds to wait after the termination request
        force_timeout: Seconds to wait after force-kill

    Returns:
        The OS exit code, or ``FORCE_KILLED_EXIT_CODE`` if the process could not be reaped
    """
    pid = process.pid
    children = _collect_children(pid)

    try:
        process.terminate()
    except ProcessLookupError:  # policy_guard: allow-silent-handler
        logger.debug("%s process %s already gone before terminate", role, pid)

    if await _wait_for(exit_task, graceful_timeout):
        logger.info("%s process %s terminated gracefully", role, pid)
        _kill_leftover_children(children, role)
        return _exit_code(process)

    logger.warning("%s process %s did not terminate within %.1fs; sending SIGKILL", role, pid, graceful_timeout)
    _kill_tree(process, children, role)

    if await _wait_for(exit_task, force_timeout):
        logger.info("%s process %s force killed", role, pid)
        return _exit_code(process)

    logger.error("%s process %s persisted after SIGKILL for %.1fs; manual intervention required", role, pid, force_timeout)
    return _exit_code(process)


async def _wait_for(task: "asyncio.Task[object]", timeout: float) -> bool:
    done, _ = await asyncio.wait({task}, timeout=timeout)
    return bool(done)


def _exit_code(process: asyncio.subprocess.Process) -> int:
    return process.returncode if process.returncode is not None else FORCE_KILLED_EXIT_CODE


def _collect_children(pid: int) -> List[psutil.Process]:
    try:
        return psutil.Process(pid).children(recursive=True)
    except (psutil.NoSuchProcess, psutil.AccessDenied):  # policy_guard: allow-silent-handler
        return []


def _kill_leftover_children(children: List[psutil.Process], role: str) -> None:
    """Kill descendants that outlived their parent's graceful exit."""
    for child in children:
        try:
            if child.is_running():
                logger.info("Killing leftover %s child process %s", role, child.pid)
                child.kill()
        except psutil.NoSuchProcess:  # policy_guard: allow-silent-handler
            continue
        except psutil.AccessDenied:  # policy_guard: allow-silent-handler
            logger.warning("Access denied killing %s child process %s", role, child.pid)


def _kill_tree(process: asyncio.subprocess.Process, children: List[psutil.Process], role: str) -> None:
    for child in children:
        try:
            child.kill()
        except psutil.NoSuchProcess:  # policy_guard: allow-silent-handler
            continue
        except psutil.AccessDenied:  # policy_guard: allow-silent-handler
            logger.warning("Access denied killing %s child process %s", role, child.pid)
    try:
        process.kill()
    except ProcessLookupError:  # policy_guard: allow-silent-handler
        logger.debug("%s process %s exited before SIGKILL", role, process.pid)


__all__ = ["FORCE_KILLED_EXIT_CODE", "terminate_process"]
