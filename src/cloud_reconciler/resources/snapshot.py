"""Current-state record returned by a fetch."""

from __future__ import annotations

from datetime import datetime
from typing import Any

from pydantic import BaseModel, Field, model_validator

_IDENTITY_KEYS = ("identity", "id")
_MESSAGE_KEYS = ("status_message", "statusMessage")
_UPDATED_KEYS = ("updated_at", "updatedAt")


def _pop_first(payload: dict[str, Any], keys: tuple[str, ...]) -> Any:
    value = None
    for key in keys:
        found = payload.pop(key, None)
        if value is None and found is not None:
            value = found
    return value


class ResourceSnapshot(BaseModel):
    """Status-bearing view of a remote object.

    Only the fields the reconciler reasons about are typed; everything
    else the control plane returns is kept verbatim in ``attributes``.
    """

    identity: str
    status: str = ""
    status_message: str | None = None
    updated_at: datetime | None = None
    attributes: dict[str, Any] = Field(default_factory=dict)

    @model_validator(mode="before")
    @classmethod
    def split_payload(cls, data: Any) -> Any:
        """Lift the typed fields out of a raw API payload.

        Some kinds (machines) report ``status`` as an object with its own
        ``status`` / ``statusMessage`` fields; those are flattened.
        """
        if not isinstance(data, dict):
            return data
        payload = dict(data)
        attributes = dict(payload.pop("attributes", None) or {})

        identity = _pop_first(payload, _IDENTITY_KEYS)
        status = payload.pop("status", None)
        message = _pop_first(payload, _MESSAGE_KEYS)
        if isinstance(status, dict):
            nested = dict(status)
            status = nested.get("status")
            if message is None:
                message = _pop_first(nested, _MESSAGE_KEYS)
        updated_at = _pop_first(payload, _UPDATED_KEYS)

        attributes.update(payload)
        return {
            "identity": identity if identity is not None else "",
            "status": status or "",
            "status_message": message,
            "updated_at": updated_at,
            "attributes": attributes,
        }

    def attribute(self, name: str, default: Any = None) -> Any:
        return self.attributes.get(name, default)
