"""ResourceApi protocol — the narrow remote interface a driver depends on."""

from __future__ import annotations

from typing import Any, Protocol, runtime_checkable

from cloud_reconciler.resources.snapshot import ResourceSnapshot


@runtime_checkable
class ResourceApi(Protocol):
    """Create/get/update/delete for one resource kind.

    Mutating calls return as soon as the control plane accepts them; the
    object is provisioned asynchronously.  ``get`` raises
    ``ResourceNotFoundError`` for an absent object and ``TransportError``
    for anything else that went wrong.
    """

    async def create(self, spec: dict[str, Any]) -> ResourceSnapshot:
        """Issue the remote create call."""
        ...

    async def get(self, identity: str) -> ResourceSnapshot:
        """Fetch the current snapshot of *identity*."""
        ...

    async def update(self, identity: str, spec: dict[str, Any]) -> ResourceSnapshot:
        """Issue the remote update call."""
        ...

    async def delete(self, identity: str) -> None:
        """Issue the remote delete call."""
        ...


@runtime_checkable
class ResourceActionApi(Protocol):
    """Named sub-resource actions (``POST {collection}/{identity}/{action}``)."""

    async def action(
        self, identity: str, name: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        """Invoke *name* on *identity*; returns the decoded body, if any."""
        ...
