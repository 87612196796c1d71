"""Fail-fast guard for operations that must not overlap with themselves."""

from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Iterator

from .errors import BusyError

logger = logging.getLogger(__name__)


class InProgressFlag:
    """
    A duplicate call while the flag is held raises :class:`BusyError` instead of queueing.

    The check-and-set happens without an ``await`` in between, so it is atomic
    with respect to other tasks on the same event loop. The flag is always
    cleared when the guarded block exits, whether it succeeded or raised.
    """

    def __init__(self, operation: str) -> None:
        self.operation = operation
        self._busy = False

    @property
    def is_set(self) -> bool:
        return self._busy

    @contextmanager
    def hold(self) -> Iterator[None]:
        if self._busy:
            logger.warning("Already %s", self.operation)
            raise BusyError(self.operation)
        self._busy = True
        try:
            yield
        finally:
            self._busy = False


__all__ = ["InProgressFlag"]
