"""Resource lifecycle driver — create/update/delete/read with a wait loop.

One driver per resource kind.  Each mutating operation issues the remote
call, optionally runs a :class:`Poller` over the handle, and maps the
outcome onto the caller contract:

========== ======================= ===================== ======================
outcome    create / update         delete                read
========== ======================= ===================== ======================
Ready      return                  (never, see below)    return snapshot
Failed     TerminalFailureError    TerminalFailureError  return snapshot
Gone       ResourceDisappeared     success, clear handle clear handle, None
TimedOut   WaitTimeoutError        WaitTimeoutError      n/a
Cancelled  OperationCancelledError OperationCancelled    n/a
========== ======================= ===================== ======================

The delete wait uses the deletion predicate set, so a transient ``ready``
report while the object is being torn down keeps polling.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Callable, Iterable
from typing import Any

import structlog

from cloud_reconciler.config.models import Operation, ReconcilerConfig, WaitPolicy
from cloud_reconciler.errors import (
    OperationCancelledError,
    ResourceDisappearedError,
    ResourceNotFoundError,
    TerminalFailureError,
    WaitTimeoutError,
)
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
from cloud_reconciler.polling.poller import PollConfig, Poller, Sleep
from cloud_reconciler.polling.predicates import PredicateSet
from cloud_reconciler.resources.api import ResourceApi
from cloud_reconciler.resources.handle import ResourceHandle
from cloud_reconciler.resources.kinds import ResourceKind
from cloud_reconciler.resources.snapshot import ResourceSnapshot

logger = structlog.get_logger()


def _status_of(snapshot: Any) -> str | None:
    return getattr(snapshot, "status", None) or None


class LifecycleDriver:
    """Wraps one kind's remote API with the reconciliation poller."""

    def __init__(
        self,
        kind: ResourceKind,
        api: ResourceApi,
        config: ReconcilerConfig | None = None,
        *,
        clock: Callable[[], float] = time.monotonic,
        sleep: Sleep = asyncio.sleep,
    ) -> None:
        self._kind = kind
        self._api = api
        self._config = config or ReconcilerConfig()
        self._predicates = kind.predicates()
        self._clock = clock
        self._sleep = sleep

    @property
    def kind(self) -> ResourceKind:
        return self._kind

    def new_handle(self, identity: str = "") -> ResourceHandle:
        return ResourceHandle(self._kind.name, identity)

    def default_policy(self, operation: Operation) -> WaitPolicy:
        return self._config.policy_for(self._kind.name, operation)

    # -- Operations ------------------------------------------------------------

    async def create(
        self,
        spec: dict[str, Any],
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> ResourceHandle:
        """Create the object and, unless fire-and-forget, wait until ready.

        The returned handle is bound as soon as the create call succeeds;
        every wait error carries it so the caller can persist the identity.
        """
        policy = policy or self.default_policy(Operation.CREATE)
        created = await self._api.create(spec)
        handle = self.new_handle()
        handle.bind(created.identity)
        handle.snapshot = created
        logger.info(
            "driver.create_issued",
            kind=self._kind.name,
            identity=handle.identity,
            status=created.status,
            wait=policy.wait,
        )
        if not policy.wait:
            return handle
        await self._await(handle, policy, cancel, phase="creation")
        return handle

    async def await_ready(
        self,
        handle: ResourceHandle,
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> ResourceSnapshot:
        """Wait for an existing object to become ready."""
        policy = policy or self.default_policy(Operation.UPDATE)
        return await self._await(handle, policy, cancel, phase="ready")

    async def await_status(
        self,
        handle: ResourceHandle,
        statuses: Iterable[str],
        policy: WaitPolicy,
        *,
        cancel: CancelToken | None = None,
        goal: str | None = None,
    ) -> ResourceSnapshot:
        """Wait until the object reports one of *statuses*.

        Used for waits whose target is narrower than the kind's readiness,
        e.g. a block volume settling in ``attached`` or back in ``available``.
        """
        statuses = tuple(statuses)
        predicates = self._kind.predicates(target=statuses)
        return await self._await(
            handle,
            policy,
            cancel,
            phase="status",
            predicates=predicates,
            goal=goal or " or ".join(statuses),
        )

    async def update(
        self,
        handle: ResourceHandle,
        spec: dict[str, Any],
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> ResourceSnapshot:
        policy = policy or self.default_policy(Operation.UPDATE)
        identity = handle.require()
        updated = await self._api.update(identity, spec)
        handle.snapshot = updated
        logger.info(
            "driver.update_issued",
            kind=self._kind.name,
            identity=identity,
            status=updated.status,
            wait=policy.wait,
        )
        if not policy.wait:
            return updated
        return await self._await(handle, policy, cancel, phase="update")

    async def delete(
        self,
        handle: ResourceHandle,
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        """Delete the object; an absent object counts as deleted."""
        if not handle:
            logger.debug("driver.delete_noop", kind=self._kind.name)
            return
        policy = policy or self.default_policy(Operation.DELETE)
        identity = handle.identity
        try:
            await self._api.delete(identity)
        except ResourceNotFoundError:
            logger.info("driver.delete_not_found", kind=self._kind.name, identity=identity)
            handle.clear()
            return
        logger.info(
            "driver.delete_issued", kind=self._kind.name, identity=identity, wait=policy.wait
        )
        if not policy.wait:
            handle.clear()
            return

        outcome = await self._poll(handle, self._predicates.for_deletion(), policy, cancel)
        label = self._kind.label
        match outcome:
            case Gone():
                logger.info("driver.deleted", kind=self._kind.name, identity=identity)
                handle.clear()
            case Failed(reason=reason):
                msg = f"{label} {identity} failed to delete: {reason}"
                raise TerminalFailureError(msg, reason=reason, handle=handle)
            case TimedOut(last_snapshot=last):
                msg = f"timeout while waiting for {label} {identity} to be deleted"
                status = _status_of(last)
                if status:
                    msg += f". Current status: {status}"
                raise WaitTimeoutError(msg, handle=handle, last_status=status)
            case Cancelled(reason=reason):
                msg = f"cancelled while waiting for {label} {identity} to be deleted"
                if reason:
                    msg += f": {reason}"
                raise OperationCancelledError(msg, handle)
            case Ready(snapshot=snapshot):
                # Deletion predicates never report ready.
                msg = f"{label} {identity} unexpectedly ready during deletion"
                raise TerminalFailureError(
                    msg, reason=_status_of(snapshot) or "ready", handle=handle
                )

    async def read(self, handle: ResourceHandle) -> ResourceSnapshot | None:
        """Single fetch for a refresh; ``None`` means the object is gone.

        Transport errors propagate and leave the handle untouched.
        """
        if not handle:
            return None
        identity = handle.identity
        try:
            snapshot = await self._api.get(identity)
        except ResourceNotFoundError:
            logger.info("driver.read_not_found", kind=self._kind.name, identity=identity)
            handle.clear()
            return None
        if self._predicates.classify(snapshot) is Classification.ABSENT:
            logger.info(
                "driver.read_absent",
                kind=self._kind.name,
                identity=identity,
                status=snapshot.status,
            )
            handle.clear()
            return None
        handle.snapshot = snapshot
        return snapshot

    # -- Internals -------------------------------------------------------------

    async def _await(
        self,
        handle: ResourceHandle,
        policy: WaitPolicy,
        cancel: CancelToken | None,
        *,
        phase: str,
        predicates: PredicateSet | None = None,
        goal: str = "ready",
    ) -> ResourceSnapshot:
        identity = handle.require()
        outcome = await self._poll(handle, predicates or self._predicates, policy, cancel)
        label = self._kind.label
        match outcome:
            case Ready(snapshot=snapshot):
                handle.snapshot = snapshot
                return snapshot
            case Failed(reason=reason, snapshot=snapshot):
                handle.snapshot = snapshot
                msg = f"{label} is in failed state: {reason}"
                raise TerminalFailureError(msg, reason=reason, handle=handle)
            case Gone():
                if phase == "creation":
                    msg = f"{label} {identity} disappeared immediately after creation"
                elif phase == "update":
                    msg = f"{label} {identity} was not found after update"
                else:
                    msg = f"{label} {identity} was not found"
                raise ResourceDisappearedError(msg, handle)
            case TimedOut(last_snapshot=last):
                msg = f"timeout while waiting for {label} to be {goal}"
                status = _status_of(last)
                if status:
                    msg += f". Current status: {status}"
                raise WaitTimeoutError(msg, handle=handle, last_status=status)
            case Cancelled(reason=reason):
                msg = f"cancelled while waiting for {label} {identity} to be {goal}"
                if reason:
                    msg += f": {reason}"
                raise OperationCancelledError(msg, handle)
        msg = f"unexpected poll outcome: {outcome!r}"
        raise AssertionError(msg)

    async def _poll(
        self,
        handle: ResourceHandle,
        predicates: PredicateSet,
        policy: WaitPolicy,
        cancel: CancelToken | None,
    ) -> PollOutcome:
        identity = handle.require()

        async def fetch() -> ResourceSnapshot:
            return await self._api.get(identity)

        config = PollConfig(
            interval=policy.interval_seconds,
            deadline=policy.deadline_seconds,
            cancel=cancel or CancelToken(),
            max_transient_retries=self._config.polling.max_transient_retries,
        )
        poller = Poller(
            fetch,
            predicates,
            config,
            label=f"{self._kind.name}/{identity}",
            clock=self._clock,
            sleep=self._sleep,
        )
        return await poller.run()
