"""Pydantic configuration models for the reconciler."""

from __future__ import annotations

from enum import StrEnum
from typing import Self

from pydantic import BaseModel, Field, SecretStr, field_validator, model_validator


class Operation(StrEnum):
    """Mutating lifecycle operations that may wait on the control plane."""

    CREATE = "create"
    UPDATE = "update"
    DELETE = "delete"
    # Block volumes only.
    ATTACH = "attach"
    DETACH = "detach"


class ApiConfig(BaseModel):
    """Control-plane REST API settings."""

    base_url: str = "http://localhost:8080"
    token: SecretStr | None = None
    organisation: str | None = None
    timeout_seconds: float = Field(default=30.0, gt=0)
    # wait_until_reachable() retry budget
    retry_max_attempts: int = Field(default=5, ge=1)
    retry_wait_seconds: float = Field(default=2.0, gt=0)
    retry_max_wait_seconds: float = Field(default=30.0, gt=0)

    @field_validator("base_url")
    @classmethod
    def validate_base_url(cls, v: str) -> str:
        if not v.startswith(("http://", "https://")):
            msg = f"base_url must be an http(s) URL, got {v!r}"
            raise ValueError(msg)
        return v.rstrip("/")


class PollingConfig(BaseModel):
    """Defaults applied to every wait."""

    interval_seconds: float = Field(default=1.0, gt=0)
    max_transient_retries: int = Field(default=3, ge=0)


class WaitPolicy(BaseModel):
    """Caller-facing wait selection for one operation.

    ``wait=False`` is fire-and-forget.  ``timeout_minutes=None`` polls
    until the caller cancels.
    """

    wait: bool = True
    timeout_minutes: float | None = Field(default=20.0, gt=0)
    interval_seconds: float = Field(default=1.0, gt=0)

    @property
    def deadline_seconds(self) -> float | None:
        if self.timeout_minutes is None:
            return None
        return self.timeout_minutes * 60.0


class KindTimeouts(BaseModel):
    """Per-operation wait timeouts (minutes) for one resource kind."""

    create_timeout_minutes: float | None = Field(default=20.0, gt=0)
    update_timeout_minutes: float | None = Field(default=20.0, gt=0)
    delete_timeout_minutes: float | None = Field(default=20.0, gt=0)
    attach_timeout_minutes: float | None = Field(default=5.0, gt=0)
    detach_timeout_minutes: float | None = Field(default=5.0, gt=0)

    def for_operation(self, operation: Operation) -> float | None:
        return getattr(self, f"{operation.value}_timeout_minutes")


class ReconcilerConfig(BaseModel):
    """Top-level configuration."""

    api: ApiConfig = Field(default_factory=ApiConfig)
    polling: PollingConfig = Field(default_factory=PollingConfig)
    resources: dict[str, KindTimeouts] = Field(default_factory=dict)

    @model_validator(mode="after")
    def check_resource_kinds(self) -> Self:
        """Reject timeout overrides for kinds that do not exist."""
        from cloud_reconciler.resources.kinds import KINDS

        unknown = sorted(set(self.resources) - set(KINDS))
        if unknown:
            msg = f"Unknown resource kind(s) in resources: {unknown}"
            raise ValueError(msg)
        return self

    def timeouts_for(self, kind: str) -> KindTimeouts:
        return self.resources.get(kind) or KindTimeouts()

    def policy_for(
        self,
        kind: str,
        operation: Operation | str,
        *,
        wait: bool = True,
    ) -> WaitPolicy:
        """Build the WaitPolicy for one operation from configured timeouts."""
        op = Operation(operation)
        return WaitPolicy(
            wait=wait,
            timeout_minutes=self.timeouts_for(kind).for_operation(op),
            interval_seconds=self.polling.interval_seconds,
        )
