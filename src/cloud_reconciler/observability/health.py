"""Health probes for the control plane."""

from __future__ import annotations

from dataclasses import dataclass, field
from enum import StrEnum

import httpx
import structlog

from cloud_reconciler.client.http import ORGANISATION_HEADER
from cloud_reconciler.config.models import ApiConfig, ReconcilerConfig

logger = structlog.get_logger()


class Status(StrEnum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    UNKNOWN = "unknown"


@dataclass
class ComponentHealth:
    name: str
    status: Status = Status.UNKNOWN
    detail: str = ""


@dataclass
class PlatformHealth:
    components: list[ComponentHealth] = field(default_factory=list)

    @property
    def healthy(self) -> bool:
        return all(c.status == Status.HEALTHY for c in self.components)

    @property
    def summary(self) -> dict[str, str]:
        return {c.name: c.status.value for c in self.components}


def check_control_plane(api: ApiConfig) -> ComponentHealth:
    """Check the control-plane API root."""
    headers: dict[str, str] = {}
    if api.token is not None:
        headers["Authorization"] = f"Bearer {api.token.get_secret_value()}"
    if api.organisation:
        headers[ORGANISATION_HEADER] = api.organisation
    try:
        resp = httpx.get(f"{api.base_url}/", headers=headers, timeout=5)
        resp.raise_for_status()
        return ComponentHealth(
            name="control-plane",
            status=Status.HEALTHY,
            detail=f"HTTP {resp.status_code} from {api.base_url}",
        )
    except Exception as exc:
        logger.warning("health.control_plane_unreachable", error=str(exc))
        return ComponentHealth(
            name="control-plane", status=Status.UNHEALTHY, detail=str(exc)
        )


def check_platform_health(config: ReconcilerConfig | None = None) -> PlatformHealth:
    """Run all health checks and return aggregated result."""
    cfg = config or ReconcilerConfig()
    return PlatformHealth(components=[check_control_plane(cfg.api)])
