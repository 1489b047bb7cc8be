"""Remote-assigned identity of one provisioned object."""

from __future__ import annotations

from typing import TYPE_CHECKING

from cloud_reconciler.errors import HandleError

if TYPE_CHECKING:
    from cloud_reconciler.resources.snapshot import ResourceSnapshot


class ResourceHandle:
    """Identity string owned by the operation that created it.

    Binding is one-way: once set, the identity can only be cleared (after
    a confirmed delete or an absent read), never replaced.
    """

    def __init__(self, kind: str, identity: str = "") -> None:
        self.kind = kind
        self._identity = identity
        self.snapshot: ResourceSnapshot | None = None

    @property
    def identity(self) -> str:
        return self._identity

    def __bool__(self) -> bool:
        return bool(self._identity)

    def require(self) -> str:
        """Return the identity, raising if the handle is empty."""
        if not self._identity:
            msg = f"{self.kind} handle has no identity"
            raise HandleError(msg)
        return self._identity

    def bind(self, identity: str) -> None:
        if not identity:
            msg = f"cannot bind {self.kind} handle to an empty identity"
            raise HandleError(msg)
        if self._identity and self._identity != identity:
            msg = (
                f"{self.kind} handle already bound to {self._identity}, "
                f"refusing to rebind to {identity}"
            )
            raise HandleError(msg)
        self._identity = identity

    def clear(self) -> None:
        self._identity = ""
        self.snapshot = None

    def __repr__(self) -> str:
        return f"ResourceHandle(kind={self.kind!r}, identity={self._identity!r})"
