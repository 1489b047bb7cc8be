"""REST adapter for the control-plane API (httpx)."""

from __future__ import annotations

from typing import Any

import httpx
import structlog
from tenacity import (
    AsyncRetrying,
    retry_if_exception_type,
    stop_after_attempt,
    wait_exponential,
)

from cloud_reconciler.config.models import ApiConfig
from cloud_reconciler.errors import ResourceNotFoundError, TransportError
from cloud_reconciler.resources.kinds import ResourceKind
from cloud_reconciler.resources.snapshot import ResourceSnapshot

logger = structlog.get_logger()

ORGANISATION_HEADER = "X-Organisation-Identity"


class ControlPlaneClient:
    """Thin async wrapper around the control-plane REST API."""

    def __init__(
        self,
        config: ApiConfig | None = None,
        *,
        transport: httpx.AsyncBaseTransport | None = None,
    ) -> None:
        self._config = config or ApiConfig()
        headers = {"Accept": "application/json"}
        if self._config.token is not None:
            headers["Authorization"] = f"Bearer {self._config.token.get_secret_value()}"
        if self._config.organisation:
            headers[ORGANISATION_HEADER] = self._config.organisation
        self._client = httpx.AsyncClient(
            base_url=self._config.base_url,
            headers=headers,
            timeout=self._config.timeout_seconds,
            transport=transport,
        )

    async def close(self) -> None:
        await self._client.aclose()

    async def __aenter__(self) -> ControlPlaneClient:
        return self

    async def __aexit__(self, *exc: object) -> None:
        await self.close()

    # -- Health ----------------------------------------------------------------

    async def wait_until_reachable(self) -> None:
        """Block until the API root answers, retrying with backoff."""
        retrying = AsyncRetrying(
            retry=retry_if_exception_type(httpx.HTTPError),
            stop=stop_after_attempt(self._config.retry_max_attempts),
            wait=wait_exponential(
                multiplier=self._config.retry_wait_seconds,
                max=self._config.retry_max_wait_seconds,
            ),
            reraise=True,
        )
        async for attempt in retrying:
            with attempt:
                resp = await self._client.get("/")
                resp.raise_for_status()
        logger.info("client.reachable", url=self._config.base_url)

    # -- Requests --------------------------------------------------------------

    async def request(
        self,
        method: str,
        path: str,
        *,
        kind: str,
        identity: str = "",
        json: dict[str, Any] | None = None,
    ) -> Any:
        """Send one request; map 404 to not-found and everything else to transport."""
        try:
            resp = await self._client.request(method, path, json=json)
        except httpx.TransportError as exc:
            msg = f"{method} {path} failed: {exc}"
            raise TransportError(msg) from exc

        if resp.status_code == 404:
            raise ResourceNotFoundError(kind, identity or path)
        if resp.is_error:
            msg = f"server returned status {resp.status_code}: {resp.text}"
            raise TransportError(msg, status_code=resp.status_code)
        if not resp.content:
            return None
        try:
            return resp.json()
        except ValueError as exc:
            msg = f"{method} {path} returned invalid JSON"
            raise TransportError(msg, status_code=resp.status_code) from exc

    def api_for(self, kind: ResourceKind, *, parent: str | None = None) -> HttpResourceApi:
        """Return a ResourceApi bound to *kind*'s collection path."""
        if "{parent}" in kind.path:
            if not parent:
                msg = f"{kind.name} requires a parent identity"
                raise ValueError(msg)
            path = kind.path.format(parent=parent)
        else:
            path = kind.path
        return HttpResourceApi(self, kind.name, path)


class HttpResourceApi:
    """ResourceApi implementation over one REST collection."""

    def __init__(self, client: ControlPlaneClient, kind: str, path: str) -> None:
        self._client = client
        self._kind = kind
        self._path = path.rstrip("/")

    @property
    def path(self) -> str:
        return self._path

    async def create(self, spec: dict[str, Any]) -> ResourceSnapshot:
        data = await self._client.request("POST", self._path, kind=self._kind, json=spec)
        return self._parse(data)

    async def get(self, identity: str) -> ResourceSnapshot:
        data = await self._client.request(
            "GET", f"{self._path}/{identity}", kind=self._kind, identity=identity
        )
        if data is None:
            raise ResourceNotFoundError(self._kind, identity)
        return self._parse(data)

    async def update(self, identity: str, spec: dict[str, Any]) -> ResourceSnapshot:
        data = await self._client.request(
            "PUT",
            f"{self._path}/{identity}",
            kind=self._kind,
            identity=identity,
            json=spec,
        )
        if data is None:
            # Some endpoints answer 204; fall back to a fresh read.
            return await self.get(identity)
        return self._parse(data)

    async def delete(self, identity: str) -> None:
        await self._client.request(
            "DELETE", f"{self._path}/{identity}", kind=self._kind, identity=identity
        )
        logger.debug("client.delete_accepted", kind=self._kind, identity=identity)

    async def action(
        self, identity: str, name: str, body: dict[str, Any] | None = None
    ) -> dict[str, Any] | None:
        data = await self._client.request(
            "POST",
            f"{self._path}/{identity}/{name}",
            kind=self._kind,
            identity=identity,
            json=body,
        )
        if data is not None and not isinstance(data, dict):
            msg = f"expected a JSON object from {self._kind} {name}, got {type(data).__name__}"
            raise TransportError(msg)
        return data

    def _parse(self, data: Any) -> ResourceSnapshot:
        if not isinstance(data, dict):
            msg = f"expected a JSON object for {self._kind}, got {type(data).__name__}"
            raise TransportError(msg)
        return ResourceSnapshot.model_validate(data)
