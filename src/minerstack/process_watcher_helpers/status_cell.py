"""Lock-protected lifecycle status shared by the watcher's concurrent tasks."""

from __future__ import annotations

import threading
import time
from dataclasses import dataclass, replace
from enum import Enum
from typing import Iterable, Optional


class ProcessState(Enum):
    NOT_STARTED = "not_started"
    STARTING = "starting"
    RUNNING = "running"
    STOPPING = "stopping"
    STOPPED = "stopped"
    CRASHED = "crashed"


ALIVE_STATES = frozenset({ProcessState.STARTING, ProcessState.RUNNING, ProcessState.STOPPING})
TERMINAL_STATES = frozenset({ProcessState.STOPPED, ProcessState.CRASHED})


@dataclass(frozen=True)
class ProcessStatus:
    """Snapshot of one watcher; ``instance`` increases with every spawn."""

    state: ProcessState = ProcessState.NOT_STARTED
    instance: int = 0
    pid: Optional[int] = None
    exit_code: Optional[int] = None
    started_at: Optional[float] = None
    ended_at: Optional[float] = None

    @property
    def is_alive(self) -> bool:
        return self.state in ALIVE_STATES

    @property
    def is_running(self) -> bool:
        return self.state is ProcessState.RUNNING

    @property
    def is_terminal(self) -> bool:
        return self.state in TERMINAL_STATES


class StatusCell:
    """Holds the current :class:`ProcessStatus`; transitions are compare-and-set on (instance, state)."""

    def __init__(self) -> None:
        self._lock = threading.Lock()
        self._status = ProcessStatus()

    def get(self) -> ProcessStatus:
        with self._lock:
            return self._status

    def begin(self, pid: int) -> ProcessStatus:
        """Record a freshly spawned instance in ``Starting``."""
        with self._lock:
            self._status = ProcessStatus(
                state=ProcessState.STARTING,
                instance=self._status.instance + 1,
                pid=pid,
                started_at=time.time(),
            )
            return self._status

    def transition(self, instance: int, allowed_from: Iterable[ProcessState], new_state: ProcessState) -> bool:
        with self._lock:
            if self._status.instance != instance or self._status.state not in set(allowed_from):
                return False
            self._status = replace(self._status, state=new_state)
            return True

    def finish(self, instance: int, new_state: ProcessState, exit_code: int) -> Optional[ProcessState]:
        """Move ``instance`` into a terminal state; returns the state it left, or ``None`` if it was not current."""
        with self._lock:
            if self._status.instance != instance or self._status.is_terminal:
                return None
            previous = self._status.state
            self._status = replace(self._status, state=new_state, exit_code=exit_code, ended_at=time.time())
            return previous


__all__ = ["ALIVE_STATES", "ProcessState", "ProcessStatus", "StatusCell", "TERMINAL_STATES"]
