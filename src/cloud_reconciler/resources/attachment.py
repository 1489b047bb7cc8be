"""Block volume attachments — attach/detach a volume to a virtual machine.

An attachment has no collection of its own: it is driven through the
volume's ``attach``/``detach`` actions and observed through the volume's
status and ``attachments`` list.  Waits reuse the block volume driver
with an explicit target status.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Any

import structlog

from cloud_reconciler.config.models import Operation, WaitPolicy
from cloud_reconciler.errors import (
    AttachmentConflictError,
    ResourceDisappearedError,
    ResourceNotFoundError,
    TransportError,
)
from cloud_reconciler.polling.cancel import CancelToken
from cloud_reconciler.resources.api import ResourceActionApi
from cloud_reconciler.resources.driver import LifecycleDriver
from cloud_reconciler.resources.kinds import VolumeStatus
from cloud_reconciler.resources.snapshot import ResourceSnapshot
from cloud_reconciler.resources.status import normalize_status

logger = structlog.get_logger()

#: ``resourceType`` the control plane uses for virtual machine attachments.
MACHINE_RESOURCE_TYPE = "cloud_virtual_machine"


@dataclass(frozen=True, slots=True)
class VolumeAttachment:
    identity: str
    volume: str
    machine: str
    serial: str | None = None


def find_attachment(snapshot: ResourceSnapshot, machine: str) -> VolumeAttachment | None:
    """Return the attachment of *snapshot*'s volume to *machine*, if listed."""
    for entry in snapshot.attribute("attachments") or []:
        if not isinstance(entry, dict):
            continue
        if entry.get("attachedToResourceType") != MACHINE_RESOURCE_TYPE:
            continue
        if entry.get("attachedToIdentity") != machine:
            continue
        return VolumeAttachment(
            identity=entry.get("identity") or "",
            volume=snapshot.identity,
            machine=machine,
            serial=entry.get("serial"),
        )
    return None


class VolumeAttachments:
    """Attach and detach block volumes through the volume actions API."""

    def __init__(self, volumes: LifecycleDriver, actions: ResourceActionApi) -> None:
        if volumes.kind.name != "block_volume":
            msg = f"attachments need the block_volume driver, got {volumes.kind.name}"
            raise ValueError(msg)
        self._volumes = volumes
        self._actions = actions

    async def attach(
        self,
        volume: str,
        machine: str,
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> VolumeAttachment:
        """Attach *volume* to *machine* and wait until the volume is attached.

        A volume still detaching from a previous machine is first waited
        back to ``available``.  Attaching a volume that is already attached
        to *machine* returns the existing attachment.

        Raises:
            AttachmentConflictError: The volume belongs to another machine.
            ResourceNotFoundError: The volume does not exist.
        """
        policy = policy or self._volumes.default_policy(Operation.ATTACH)
        handle = self._volumes.new_handle(volume)
        snapshot = await self._volumes.read(handle)
        if snapshot is None:
            raise ResourceNotFoundError(self._volumes.kind.name, volume)

        status = normalize_status(snapshot.status)
        if status == VolumeStatus.DETACHING:
            logger.info("attachment.waiting_for_detach", volume=volume, machine=machine)
            snapshot = await self._volumes.await_status(
                handle,
                (VolumeStatus.AVAILABLE, VolumeStatus.ATTACHING, VolumeStatus.ATTACHED),
                self._volumes.default_policy(Operation.DETACH),
                cancel=cancel,
                goal="available",
            )
            status = normalize_status(snapshot.status)
            if status == VolumeStatus.ATTACHING:
                msg = "volume is already being attached to a different virtual machine"
                raise AttachmentConflictError(msg)

        if status == VolumeStatus.ATTACHED:
            existing = find_attachment(snapshot, machine)
            if existing is None:
                msg = "volume is already attached to a different virtual machine"
                raise AttachmentConflictError(msg)
            logger.info(
                "attachment.already_attached",
                volume=volume,
                machine=machine,
                identity=existing.identity,
            )
            return existing

        response = await self._actions.action(volume, "attach", _request(machine)) or {}
        identity = response.get("identity") or response.get("id")
        if not identity:
            msg = f"attach of block volume {volume} returned no attachment identity"
            raise TransportError(msg)
        logger.info(
            "attachment.attach_issued",
            volume=volume,
            machine=machine,
            identity=identity,
            wait=policy.wait,
        )
        attachment = VolumeAttachment(
            identity=identity, volume=volume, machine=machine, serial=response.get("serial")
        )
        if not policy.wait:
            return attachment

        snapshot = await self._volumes.await_status(
            handle, (VolumeStatus.ATTACHED,), policy, cancel=cancel, goal="attached"
        )
        listed = find_attachment(snapshot, machine)
        if listed is not None and not attachment.serial:
            attachment = VolumeAttachment(identity, volume, machine, listed.serial)
        return attachment

    async def detach(
        self,
        volume: str,
        machine: str,
        policy: WaitPolicy | None = None,
        *,
        cancel: CancelToken | None = None,
    ) -> None:
        """Detach *volume* from *machine*; a missing volume counts as detached."""
        policy = policy or self._volumes.default_policy(Operation.DETACH)
        try:
            await self._actions.action(volume, "detach", _request(machine))
        except ResourceNotFoundError:
            logger.info("attachment.detach_not_found", volume=volume, machine=machine)
            return
        logger.info(
            "attachment.detach_issued", volume=volume, machine=machine, wait=policy.wait
        )
        if not policy.wait:
            return

        handle = self._volumes.new_handle(volume)
        try:
            await self._volumes.await_status(
                handle, (VolumeStatus.AVAILABLE,), policy, cancel=cancel, goal="detached"
            )
        except ResourceDisappearedError:
            logger.info("attachment.volume_gone", volume=volume, machine=machine)
            handle.clear()
            return
        logger.info("attachment.detached", volume=volume, machine=machine)

    async def read(self, volume: str, machine: str) -> VolumeAttachment | None:
        """Current attachment of *volume* to *machine*; ``None`` if not attached."""
        snapshot = await self._volumes.read(self._volumes.new_handle(volume))
        if snapshot is None:
            return None
        return find_attachment(snapshot, machine)


def _request(machine: str) -> dict[str, Any]:
    return {"resourceType": MACHINE_RESOURCE_TYPE, "resourceIdentity": machine}
