"""Reconciliation poller — fixed-interval wait loop for eventually-consistent resources.

A run repeatedly awaits ``fetch()`` and classifies each snapshot with a
:class:`PredicateSet` until a terminal predicate fires, the deadline
elapses or the cancel token fires.  Both the fetch and the inter-cycle
sleep race the cancel token, so a hung network call is cancelled rather
than waited out.  Transport errors are retried in place with tenacity,
using the same interval and the same cancel and deadline guards.
"""

from __future__ import annotations

import asyncio
import functools
import time
from collections.abc import Awaitable, Callable
from contextlib import suppress
from dataclasses import dataclass, field
from typing import Any, TypeVar

import structlog
from tenacity import (
    AsyncRetrying,
    RetryCallState,
    retry_if_exception_type,
    stop_after_attempt,
    wait_fixed,
)

from cloud_reconciler.errors import ResourceNotFoundError, TransportError
from cloud_reconciler.polling.cancel import CancelToken
from cloud_reconciler.polling.outcome import (
    Cancelled,
    Classification,
    Failed,
    Gone,
    PollOutcome,
    Ready,
    TimedOut,
)
from cloud_reconciler.polling.predicates import PredicateSet

logger = structlog.get_logger()

T = TypeVar("T")

#: Seconds between fetches.  Fixed, no backoff: waits are human-scale.
DEFAULT_POLL_INTERVAL: float = 1.0

#: Consecutive transport errors tolerated before the error is raised.
DEFAULT_MAX_TRANSIENT_RETRIES: int = 3

Fetch = Callable[[], Awaitable[Any]]
Sleep = Callable[[float], Awaitable[None]]


@dataclass(slots=True)
class PollConfig:
    """Per-run polling parameters.

    ``deadline`` is in seconds from the start of the run; ``None`` polls
    until the cancel token fires.
    """

    interval: float = DEFAULT_POLL_INTERVAL
    deadline: float | None = None
    cancel: CancelToken = field(default_factory=CancelToken)
    max_transient_retries: int = DEFAULT_MAX_TRANSIENT_RETRIES

    def __post_init__(self) -> None:
        if self.interval <= 0:
            msg = f"interval must be positive, got {self.interval}"
            raise ValueError(msg)
        if self.deadline is not None and self.deadline <= 0:
            msg = f"deadline must be positive or None, got {self.deadline}"
            raise ValueError(msg)
        if self.max_transient_retries < 0:
            msg = "max_transient_retries must be >= 0"
            raise ValueError(msg)


class _CancelFired(Exception):
    pass


class _DeadlineReached(Exception):
    pass


class Poller:
    """Single-use poll run over one resource handle."""

    def __init__(
        self,
        fetch: Fetch,
        predicates: PredicateSet,
        config: PollConfig | None = None,
        *,
        label: str = "resource",
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._fetch = fetch
        self._predicates = predicates
        self._config = config or PollConfig()
        self._label = label
        self._clock = clock
        self._sleep = sleep
        self._fetches = 0

    async def run(self) -> PollOutcome:
        cfg = self._config
        started = self._clock()
        deadline_at = None if cfg.deadline is None else started + cfg.deadline
        last: Any = None

        while True:
            if cfg.cancel.cancelled:
                return self._cancelled(last)
            remaining = self._remaining(deadline_at)
            if remaining is not None and remaining <= 0:
                return self._timed_out(last, started)

            try:
                snapshot = await self._fetch_with_retries(deadline_at)
            except _CancelFired:
                return self._cancelled(last)
            except _DeadlineReached:
                return self._timed_out(last, started)
            except ResourceNotFoundError:
                logger.info("poller.gone", resource=self._label, fetches=self._fetches)
                return Gone(last)

            last = snapshot
            outcome = self._classify(snapshot, started)
            if outcome is not None:
                return outcome

            try:
                await self._pause(deadline_at, cfg.interval)
            except _CancelFired:
                return self._cancelled(last)

    async def _fetch_with_retries(self, deadline_at: float | None) -> Any:
        """One logical fetch; consecutive transport errors are retried in place."""
        cfg = self._config
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(TransportError),
            stop=stop_after_attempt(cfg.max_transient_retries + 1),
            wait=wait_fixed(cfg.interval),
            sleep=functools.partial(self._pause, deadline_at),
            before_sleep=self._log_transient,
            reraise=True,
        )
        try:
            async for attempt in retrying:
                with attempt:
                    snapshot = await self._fetch_once(deadline_at)
        except TransportError as exc:
            logger.error(
                "poller.transient_retries_exhausted",
                resource=self._label,
                attempts=cfg.max_transient_retries + 1,
                error=str(exc),
            )
            raise
        return snapshot

    async def _fetch_once(self, deadline_at: float | None) -> Any:
        if self._config.cancel.cancelled:
            raise _CancelFired
        remaining = self._remaining(deadline_at)
        if remaining is not None and remaining <= 0:
            raise _DeadlineReached
        try:
            snapshot = await self._guard(self._fetch(), remaining)
        except (ResourceNotFoundError, TransportError):
            self._fetches += 1
            raise
        self._fetches += 1
        return snapshot

    async def _pause(self, deadline_at: float | None, seconds: float) -> None:
        """Sleep *seconds*, truncated to the deadline; raises if cancelled."""
        remaining = self._remaining(deadline_at)
        if remaining is not None:
            seconds = max(0.0, min(seconds, remaining))
        await self._guard(self._sleep(seconds), None)

    def _log_transient(self, retry_state: RetryCallState) -> None:
        logger.warning(
            "poller.transient_error",
            resource=self._label,
            attempt=retry_state.attempt_number,
            max_retries=self._config.max_transient_retries,
            error=str(retry_state.outcome.exception()),
        )

    def _classify(self, snapshot: Any, started: float) -> PollOutcome | None:
        verdict = self._predicates.classify(snapshot)
        status = getattr(snapshot, "status", None)
        if verdict is Classification.READY:
            logger.info(
                "poller.ready",
                resource=self._label,
                status=status,
                fetches=self._fetches,
                elapsed=round(self._clock() - started, 3),
            )
            return Ready(snapshot)
        if verdict is Classification.FAILED:
            reason = self._predicates.failure_reason(snapshot)
            logger.warning(
                "poller.failed",
                resource=self._label,
                status=status,
                reason=reason,
                fetches=self._fetches,
            )
            return Failed(reason, snapshot)
        if verdict is Classification.ABSENT:
            logger.info(
                "poller.gone",
                resource=self._label,
                status=status,
                fetches=self._fetches,
            )
            return Gone(snapshot)
        logger.debug(
            "poller.in_progress",
            resource=self._label,
            status=status,
            fetches=self._fetches,
        )
        return None

    def _remaining(self, deadline_at: float | None) -> float | None:
        if deadline_at is None:
            return None
        return deadline_at - self._clock()

    def _timed_out(self, last: Any, started: float) -> TimedOut:
        logger.warning(
            "poller.timed_out",
            resource=self._label,
            fetches=self._fetches,
            elapsed=round(self._clock() - started, 3),
            last_status=getattr(last, "status", None),
        )
        return TimedOut(last)

    def _cancelled(self, last: Any) -> Cancelled:
        reason = self._config.cancel.reason
        logger.info(
            "poller.cancelled", resource=self._label, fetches=self._fetches, reason=reason
        )
        return Cancelled(last, reason)

    async def _guard(self, awaitable: Awaitable[T], timeout: float | None) -> T:
        """Await *awaitable* unless the cancel token fires or *timeout* passes."""
        cancel = self._config.cancel
        work = asyncio.ensure_future(awaitable)
        watcher = asyncio.ensure_future(cancel.wait())
        try:
            done, _ = await asyncio.wait(
                {work, watcher},
                timeout=timeout,
                return_when=asyncio.FIRST_COMPLETED,
            )
        finally:
            watcher.cancel()
            if not work.done():
                work.cancel()
                with suppress(asyncio.CancelledError):
                    await work

        if work in done and not cancel.cancelled:
            return work.result()
        if work.done() and not work.cancelled():
            # Consume the result so a late error is not reported as unhandled.
            work.exception()
        if cancel.cancelled:
            raise _CancelFired
        raise _DeadlineReached


async def poll_until(
    fetch: Fetch,
    predicates: PredicateSet,
    config: PollConfig | None = None,
    **kwargs: Any,
) -> PollOutcome:
    """Convenience wrapper: build a :class:`Poller` and run it once."""
    return await Poller(fetch, predicates, config, **kwargs).run()
