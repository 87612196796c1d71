"""
Setup progress reporting.

The presentation layer sees a narrow one-way interface: a stage name, optional
parameters and a 0.0-1.0 progress value. Stage steps are expressed as fixed
progress budgets rather than wall-clock proportions: ``set_max`` opens a new
window above the previous one and ``update`` places a 0-100 step inside it.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping, Optional, Protocol

logger = logging.getLogger(__name__)

SETUP_STATUS_EVENT = "setup_status"
STEP_SCALE = 100


@dataclass(frozen=True)
class SetupStatusEvent:
    title: str
    progress: float
    title_params: Optional[Mapping[str, Any]] = None
    event_type: str = SETUP_STATUS_EVENT


class SetupObserver(Protocol):
    """Receiver of setup status events; must not block."""

    def emit(self, event: SetupStatusEvent) -> None: ...


class ProgressSink(Protocol):
    def update(self, stage: str, params: Optional[Mapping[str, Any]], step: int) -> None: ...

    def set_max(self, total_steps: int) -> None: ...


class NullProgress:
    """Progress sink that discards every update."""

    def update(self, stage: str, params: Optional[Mapping[str, Any]], step: int) -> None:
        return None

    def set_max(self, total_steps: int) -> None:
        return None


class ProgressTracker:
    """Maps stage windows onto a monotonically increasing fraction and forwards it to an observer."""

    def __init__(self, observer: SetupObserver) -> None:
        self._observer = observer
        self._window_start = 0
        self._window_end = 0
        self._last_progress = 0.0

    @property
    def last_progress(self) -> float:
        return self._last_progress

    def set_max(self, total_steps: int) -> None:
        total_steps = max(0, min(STEP_SCALE, total_steps))
        if total_steps < self._window_end:
            logger.debug("Ignoring regressive progress window %s < %s", total_steps, self._window_end)
            return
        self._window_start = self._window_end
        self._window_end = total_steps

    def update(self, stage: str, params: Optional[Mapping[str, Any]], step: int) -> None:
        step = max(0, min(STEP_SCALE, step))
        span = self._window_end - self._window_start
        absolute = self._window_start + span * step / STEP_SCALE
        progress = max(self._last_progress, absolute / STEP_SCALE)
        self._last_progress = progress
        self.emit(stage, params, progress)

    def emit(self, stage: str, params: Optional[Mapping[str, Any]], progress: float) -> None:
        """Send an event with an explicit progress value, bypassing the window mapping."""
        event = SetupStatusEvent(title=stage, title_params=dict(params) if params else None, progress=progress)
        try:
            self._observer.emit(event)
        except (RuntimeError, ValueError, TypeError, OSError):  # policy_guard: allow-silent-handler
            logger.exception("Could not emit setup status event %s", stage)


__all__ = ["NullProgress", "ProgressSink", "ProgressTracker", "SETUP_STATUS_EVENT", "SetupObserver", "SetupStatusEvent"]
