"""Poll outcomes: the only values a Poller run can produce."""

from __future__ import annotations

from dataclasses import dataclass
from enum import StrEnum
from typing import Any


class Classification(StrEnum):
    """Four-way classification of a fetched snapshot."""

    READY = "ready"
    FAILED = "failed"
    ABSENT = "absent"
    IN_PROGRESS = "in_progress"

    @property
    def terminal(self) -> bool:
        return self is not Classification.IN_PROGRESS


@dataclass(frozen=True, slots=True)
class Ready:
    snapshot: Any


@dataclass(frozen=True, slots=True)
class Failed:
    reason: str
    snapshot: Any = None


@dataclass(frozen=True, slots=True)
class Gone:
    # Last snapshot observed before the object went away, if any.
    last_snapshot: Any = None


@dataclass(frozen=True, slots=True)
class TimedOut:
    last_snapshot: Any = None


@dataclass(frozen=True, slots=True)
class Cancelled:
    last_snapshot: Any = None
    reason: str = ""


PollOutcome = Ready | Failed | Gone | TimedOut | Cancelled
