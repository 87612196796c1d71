"""Typed results for live service queries."""

from __future__ import annotations

import time
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Mapping, TypeVar, Union

T = TypeVar("T")


class UnavailableReason(Enum):
    NOT_STARTED = "not_started"
    NOT_READY = "not_ready"
    TIMEOUT = "timeout"
    BUSY = "busy"


@dataclass(frozen=True)
class Unavailable:
    """Returned in place of a query result during startup/shutdown windows; falsy."""

    reason: UnavailableReason
    detail: str = ""

    def __bool__(self) -> bool:
        return False


QueryResult = Union[T, Unavailable]


def is_unavailable(value: Any) -> bool:
    return isinstance(value, Unavailable)


@dataclass(frozen=True)
class HealthSnapshot:
    """Facts pulled live from one running process; never cached beyond a single query."""

    role: str
    facts: Mapping[str, Any]
    taken_at: float = field(default_factory=time.time)


__all__ = ["HealthSnapshot", "QueryResult", "Unavailable", "UnavailableReason", "is_unavailable"]
