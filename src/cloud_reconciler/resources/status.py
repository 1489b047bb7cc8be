"""Status tables mapping each kind's status vocabulary to a classification."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from enum import StrEnum
from typing import Any

import structlog

from cloud_reconciler.polling.outcome import Classification
from cloud_reconciler.polling.predicates import PredicateSet, default_failure_reason

logger = structlog.get_logger()


def normalize_status(raw: str | None) -> str:
    return (raw or "").strip().lower()


class StatusTable:
    """Classify status strings of one resource kind.

    Every member of *vocabulary* maps to exactly one classification;
    members not listed as ready, failed or absent are in progress.  Status
    strings outside the vocabulary are also in progress.
    """

    def __init__(
        self,
        kind: str,
        vocabulary: type[StrEnum],
        *,
        ready: Iterable[StrEnum],
        failed: Iterable[StrEnum] = (),
        absent: Iterable[StrEnum] = (),
    ) -> None:
        self.kind = kind
        self.vocabulary = vocabulary
        groups = {
            Classification.READY: frozenset(ready),
            Classification.FAILED: frozenset(failed),
            Classification.ABSENT: frozenset(absent),
        }
        self._mapping: dict[str, Classification] = {
            member.value: Classification.IN_PROGRESS for member in vocabulary
        }
        for verdict, members in groups.items():
            for member in members:
                if member not in vocabulary:
                    msg = f"{kind}: status {member!r} is not in {vocabulary.__name__}"
                    raise ValueError(msg)
                if self._mapping[member.value] is not Classification.IN_PROGRESS:
                    msg = (
                        f"{kind}: status {member.value!r} classified as both "
                        f"{self._mapping[member.value]} and {verdict}"
                    )
                    raise ValueError(msg)
                self._mapping[member.value] = verdict

    def classify(self, status: str | None) -> Classification:
        value = normalize_status(status)
        verdict = self._mapping.get(value)
        if verdict is None:
            if value:
                logger.debug("status.unrecognised", kind=self.kind, status=value)
            return Classification.IN_PROGRESS
        return verdict

    def declared(self) -> dict[str, Classification]:
        return dict(self._mapping)

    def statuses(self, verdict: Classification) -> list[str]:
        return [s for s, v in self._mapping.items() if v is verdict]

    def predicates(
        self,
        *,
        ready_when: Callable[[Any], bool] | None = None,
        target: Iterable[str] | None = None,
    ) -> PredicateSet:
        """Build the kind's :class:`PredicateSet`.

        *ready_when* adds an extra condition on top of a ready status (a NAT
        gateway is only usable once it has an endpoint IP).

        *target* replaces readiness with membership in an explicit set of
        statuses, e.g. waiting for a volume to reach ``attached`` rather than
        any settled state.  Other ready statuses are then in progress.
        """
        wanted = None if target is None else self._target(target)

        def is_ready(snapshot: Any) -> bool:
            if wanted is not None:
                return normalize_status(snapshot.status) in wanted
            if self.classify(snapshot.status) is not Classification.READY:
                return False
            return ready_when is None or ready_when(snapshot)

        def is_failed(snapshot: Any) -> bool:
            return self.classify(snapshot.status) is Classification.FAILED

        def is_absent(snapshot: Any) -> bool:
            return self.classify(snapshot.status) is Classification.ABSENT

        return PredicateSet(
            is_ready=is_ready,
            is_failed=is_failed,
            is_absent=is_absent,
            failure_reason=default_failure_reason,
        )

    def _target(self, statuses: Iterable[str]) -> frozenset[str]:
        wanted = frozenset(normalize_status(s) for s in statuses)
        if not wanted:
            msg = f"{self.kind}: target statuses must not be empty"
            raise ValueError(msg)
        for status in sorted(wanted):
            verdict = self._mapping.get(status)
            if verdict is None:
                msg = (
                    f"{self.kind}: target status {status!r} is not in "
                    f"{self.vocabulary.__name__}"
                )
                raise ValueError(msg)
            if verdict in (Classification.FAILED, Classification.ABSENT):
                msg = f"{self.kind}: target status {status!r} is {verdict}"
                raise ValueError(msg)
        return wanted
