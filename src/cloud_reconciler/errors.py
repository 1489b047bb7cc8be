"""Error taxonomy shared by the poller, the lifecycle drivers and the client."""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from cloud_reconciler.resources.handle import ResourceHandle


class ReconcileError(Exception):
    """Base class for every error raised by this package."""


class ResourceNotFoundError(ReconcileError):
    """Raised when the remote object does not exist (HTTP 404)."""

    def __init__(self, kind: str, identity: str) -> None:
        super().__init__(f"{kind} {identity} not found")
        self.kind = kind
        self.identity = identity


class TransportError(ReconcileError):
    """Network, auth or server-side error talking to the control plane.

    Never reclassified as not-found or terminal failure.
    """

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class HandleError(ReconcileError):
    """Raised on misuse of a ResourceHandle."""


class WaitError(ReconcileError):
    """Base for outcomes of a wait that the caller must surface."""

    def __init__(self, message: str, handle: ResourceHandle | None = None) -> None:
        super().__init__(message)
        self.handle = handle


class TerminalFailureError(WaitError):
    """The remote object reached an explicit failure status."""

    def __init__(
        self,
        message: str,
        *,
        reason: str,
        handle: ResourceHandle | None = None,
    ) -> None:
        super().__init__(message, handle)
        self.reason = reason


class ResourceDisappearedError(WaitError):
    """The remote object vanished while it was expected to exist."""


class WaitTimeoutError(WaitError):
    """The wait deadline elapsed while the object was still in progress.

    The handle stays valid: the remote operation is likely still running
    and a later read may resolve it.
    """

    def __init__(
        self,
        message: str,
        *,
        handle: ResourceHandle | None = None,
        last_status: str | None = None,
    ) -> None:
        super().__init__(message, handle)
        self.last_status = last_status


class OperationCancelledError(WaitError):
    """The caller's cancel token fired before a terminal state was reached."""


class AttachmentConflictError(ReconcileError):
    """The volume is attached, or being attached, to a different machine."""
