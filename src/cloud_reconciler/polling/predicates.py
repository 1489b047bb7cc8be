"""Predicate sets: how a resource kind classifies a fetched snapshot."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import dataclass, replace
from typing import Any

import structlog

from cloud_reconciler.polling.outcome import Classification

logger = structlog.get_logger()

Predicate = Callable[[Any], bool]


def never(_snapshot: Any) -> bool:
    return False


def default_failure_reason(snapshot: Any) -> str:
    """Prefer the remote diagnostic message, fall back to the status."""
    message = getattr(snapshot, "status_message", None)
    if message:
        return str(message)
    status = getattr(snapshot, "status", None)
    if status:
        return str(status)
    return "unknown failure"


@dataclass(frozen=True, slots=True)
class PredicateSet:
    """Ready / failed / absent classifiers for one resource kind.

    Anything none of the three accept is in progress.  If more than one
    accepts the same snapshot the classification is ambiguous and falls
    back to in progress, so polling continues instead of guessing.
    """

    is_ready: Predicate
    is_failed: Predicate
    is_absent: Predicate = never
    failure_reason: Callable[[Any], str] = default_failure_reason

    def classify(self, snapshot: Any) -> Classification:
        matches = [
            verdict
            for verdict, predicate in (
                (Classification.READY, self.is_ready),
                (Classification.FAILED, self.is_failed),
                (Classification.ABSENT, self.is_absent),
            )
            if predicate(snapshot)
        ]
        if len(matches) == 1:
            return matches[0]
        if matches:
            logger.warning(
                "predicates.ambiguous",
                matches=[m.value for m in matches],
                status=getattr(snapshot, "status", None),
            )
        return Classification.IN_PROGRESS

    def for_deletion(self) -> PredicateSet:
        """Variant used while waiting for a delete: ready never terminates."""
        return replace(self, is_ready=never)
