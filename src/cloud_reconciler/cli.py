"""Typer CLI for the reconciler."""

from __future__ import annotations

import asyncio
import signal
from collections.abc import Awaitable, Callable
from contextlib import suppress
from pathlib import Path
from typing import TypeVar

import structlog
import typer
from rich.console import Console
from rich.markup import escape
from rich.table import Table

from cloud_reconciler.client.http import ControlPlaneClient
from cloud_reconciler.config.loader import load_config
from cloud_reconciler.config.models import Operation, ReconcilerConfig
from cloud_reconciler.errors import ReconcileError
from cloud_reconciler.observability.health import Status, check_platform_health
from cloud_reconciler.polling.cancel import CancelToken
from cloud_reconciler.polling.outcome import Classification
from cloud_reconciler.resources.attachment import VolumeAttachments
from cloud_reconciler.resources.driver import LifecycleDriver
from cloud_reconciler.resources.kinds import KINDS, get_kind

T = TypeVar("T")

logger = structlog.get_logger()
console = Console()
app = typer.Typer(name="reconcile", help="Control-plane resource reconciler")

_CLASS_STYLE = {
    Classification.READY: "green",
    Classification.FAILED: "red",
    Classification.ABSENT: "dim",
    Classification.IN_PROGRESS: "yellow",
}


def _load(config_path: str | None) -> ReconcilerConfig:
    if config_path is not None and not Path(config_path).exists():
        console.print(f"[red]Config file not found: {config_path}[/red]")
        raise typer.Exit(1)
    try:
        return load_config(config_path)
    except (ValueError, TypeError) as exc:
        console.print(f"[red]Invalid config:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


def _check_kind(kind: str, parent: str | None = None) -> None:
    try:
        resolved = get_kind(kind)
    except ValueError as exc:
        console.print(f"[red]{escape(str(exc))}[/red]")
        raise typer.Exit(1) from exc
    if "{parent}" in resolved.path and not parent:
        console.print(f"[red]{kind} requires --parent[/red]")
        raise typer.Exit(1)


def _driver(
    client: ControlPlaneClient,
    config: ReconcilerConfig,
    kind_name: str,
    parent: str | None,
) -> LifecycleDriver:
    kind = get_kind(kind_name)
    return LifecycleDriver(kind, client.api_for(kind, parent=parent), config)


def _run(work: Callable[[CancelToken], Awaitable[T]]) -> T:
    """Run *work* with SIGINT/SIGTERM wired to a cancel token."""

    async def _main() -> T:
        cancel = CancelToken()
        loop = asyncio.get_running_loop()
        for signum in (signal.SIGINT, signal.SIGTERM):
            with suppress(NotImplementedError):
                loop.add_signal_handler(signum, cancel.cancel, f"signal {signum.name}")
        return await work(cancel)

    try:
        return asyncio.run(_main())
    except ReconcileError as exc:
        console.print(f"[red]{type(exc).__name__}:[/red] {escape(str(exc))}")
        raise typer.Exit(1) from exc


ConfigOption = typer.Option(None, "--config", "-c", help="Reconciler YAML")
ParentOption = typer.Option(
    None, "--parent", help="Parent identity (e.g. cluster for node pools)"
)


@app.command()
def validate(config_path: str = typer.Argument(..., help="Path to reconciler YAML")) -> None:
    """Validate a configuration file."""
    config = _load(config_path)
    console.print(f"[green]Valid[/green] — api={config.api.base_url}")
    console.print(f"  poll interval: {config.polling.interval_seconds}s")
    console.print(f"  transient retries: {config.polling.max_transient_retries}")
    for name in sorted(config.resources):
        t = config.timeouts_for(name)
        console.print(
            f"  {name}: create={t.create_timeout_minutes} "
            f"update={t.update_timeout_minutes} delete={t.delete_timeout_minutes} "
            f"attach={t.attach_timeout_minutes} detach={t.detach_timeout_minutes}"
        )


@app.command()
def kinds() -> None:
    """Show how every resource kind classifies its statuses."""
    table = Table(title="Resource kinds")
    table.add_column("Kind", style="cyan")
    table.add_column("Path")
    table.add_column("Statuses")

    for kind in KINDS.values():
        statuses = ", ".join(
            f"[{_CLASS_STYLE[verdict]}]{status}[/{_CLASS_STYLE[verdict]}]"
            for status, verdict in kind.table.declared().items()
        )
        table.add_row(kind.name, kind.path, statuses)

    console.print(table)
    console.print(
        "[green]ready[/green] [red]failed[/red] [dim]absent[/dim] "
        "[yellow]in progress[/yellow]"
    )


@app.command()
def health(config_path: str | None = ConfigOption) -> None:
    """Check that the control plane is reachable."""
    result = check_platform_health(_load(config_path))

    table = Table(title="Control plane health")
    table.add_column("Component", style="cyan")
    table.add_column("Status")
    table.add_column("Detail")
    for c in result.components:
        style = "green" if c.status == Status.HEALTHY else "red"
        table.add_row(c.name, f"[{style}]{c.status}[/{style}]", c.detail)

    console.print(table)
    if not result.healthy:
        raise typer.Exit(1)


@app.command()
def read(
    kind: str = typer.Argument(..., help="Resource kind"),
    identity: str = typer.Argument(..., help="Resource identity"),
    parent: str | None = ParentOption,
    config_path: str | None = ConfigOption,
) -> None:
    """Fetch one resource once."""
    _check_kind(kind, parent)
    config = _load(config_path)

    async def _read(_cancel: CancelToken) -> None:
        async with ControlPlaneClient(config.api) as client:
            driver = _driver(client, config, kind, parent)
            snapshot = await driver.read(driver.new_handle(identity))
        if snapshot is None:
            console.print(f"[yellow]{kind} {identity} not found[/yellow]")
            raise typer.Exit(1)
        console.print(f"[cyan]{snapshot.identity}[/cyan] status={snapshot.status}")
        if snapshot.status_message:
            console.print(f"  message: {snapshot.status_message}")

    _run(_read)


@app.command()
def wait(
    kind: str = typer.Argument(..., help="Resource kind"),
    identity: str = typer.Argument(..., help="Resource identity"),
    timeout_minutes: float | None = typer.Option(
        None, "--timeout-minutes", help="Override the configured timeout"
    ),
    parent: str | None = ParentOption,
    config_path: str | None = ConfigOption,
) -> None:
    """Wait until a resource is ready."""
    _check_kind(kind, parent)
    config = _load(config_path)
    policy = config.policy_for(kind, Operation.UPDATE)
    if timeout_minutes is not None:
        policy = policy.model_copy(update={"timeout_minutes": timeout_minutes})

    async def _wait(cancel: CancelToken) -> None:
        async with ControlPlaneClient(config.api) as client:
            driver = _driver(client, config, kind, parent)
            snapshot = await driver.await_ready(
                driver.new_handle(identity), policy, cancel=cancel
            )
        console.print(f"[green]{kind} {identity} is {snapshot.status}[/green]")

    _run(_wait)


@app.command()
def delete(
    kind: str = typer.Argument(..., help="Resource kind"),
    identity: str = typer.Argument(..., help="Resource identity"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Do not wait for deletion"),
    parent: str | None = ParentOption,
    config_path: str | None = ConfigOption,
) -> None:
    """Delete a resource and wait until it is gone."""
    _check_kind(kind, parent)
    config = _load(config_path)
    policy = config.policy_for(kind, Operation.DELETE, wait=not no_wait)

    async def _delete(cancel: CancelToken) -> None:
        async with ControlPlaneClient(config.api) as client:
            driver = _driver(client, config, kind, parent)
            await driver.delete(driver.new_handle(identity), policy, cancel=cancel)
        console.print(f"[green]{kind} {identity} deleted[/green]")

    _run(_delete)


def _attachments(client: ControlPlaneClient, config: ReconcilerConfig) -> VolumeAttachments:
    kind = get_kind("block_volume")
    api = client.api_for(kind)
    return VolumeAttachments(LifecycleDriver(kind, api, config), api)


@app.command()
def attach(
    volume: str = typer.Argument(..., help="Block volume identity"),
    machine: str = typer.Argument(..., help="Virtual machine identity"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Do not wait for attached"),
    config_path: str | None = ConfigOption,
) -> None:
    """Attach a block volume to a virtual machine."""
    config = _load(config_path)
    policy = config.policy_for("block_volume", Operation.ATTACH, wait=not no_wait)

    async def _attach(cancel: CancelToken) -> None:
        async with ControlPlaneClient(config.api) as client:
            attachment = await _attachments(client, config).attach(
                volume, machine, policy, cancel=cancel
            )
        console.print(
            f"[green]{volume} attached to {machine}[/green] "
            f"attachment={attachment.identity} serial={attachment.serial or '-'}"
        )

    _run(_attach)


@app.command()
def detach(
    volume: str = typer.Argument(..., help="Block volume identity"),
    machine: str = typer.Argument(..., help="Virtual machine identity"),
    no_wait: bool = typer.Option(False, "--no-wait", help="Do not wait for detached"),
    config_path: str | None = ConfigOption,
) -> None:
    """Detach a block volume from a virtual machine."""
    config = _load(config_path)
    policy = config.policy_for("block_volume", Operation.DETACH, wait=not no_wait)

    async def _detach(cancel: CancelToken) -> None:
        async with ControlPlaneClient(config.api) as client:
            await _attachments(client, config).detach(
                volume, machine, policy, cancel=cancel
            )
        console.print(f"[green]{volume} detached from {machine}[/green]")

    _run(_detach)
