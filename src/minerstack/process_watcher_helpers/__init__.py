"""Building blocks of the process watcher."""

from .output_drain import STREAM_LIMIT_BYTES, drain_stream
from .status_cell import ALIVE_STATES, TERMINAL_STATES, ProcessState, ProcessStatus, StatusCell
from .terminator import FORCE_KILLED_EXIT_CODE, terminate_process

__all__ = [
    "ALIVE_STATES",
    "FORCE_KILLED_EXIT_CODE",
    "ProcessState",
    "ProcessStatus",
    "STREAM_LIMIT_BYTES",
    "StatusCell",
    "TERMINAL_STATES",
    "drain_stream",
    "terminate_process",
]
