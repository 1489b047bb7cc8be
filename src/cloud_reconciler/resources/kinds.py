"""Status vocabularies and predicates for every supported resource kind."""

from __future__ import annotations

from collections.abc import Callable, Iterable
from dataclasses import dataclass
from enum import StrEnum
from typing import Any

from cloud_reconciler.polling.predicates import PredicateSet
from cloud_reconciler.resources.status import StatusTable


class DbClusterStatus(StrEnum):
    PENDING = "pending"
    CREATING = "creating"
    READY = "ready"
    UPDATING = "updating"
    UPGRADING_MAJOR_VERSION = "upgrading-major-version"
    UPGRADING_MINOR_VERSION = "upgrading-minor-version"
    FAILED = "failed"
    DELETING = "deleting"
    DELETED = "deleted"
    UNKNOWN = "unknown"


class NetworkStatus(StrEnum):
    """Shared by VPCs, subnets, NAT gateways and route tables."""

    CREATING = "creating"
    UPDATING = "updating"
    READY = "ready"
    ACTIVE = "active"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"


class VolumeStatus(StrEnum):
    CREATING = "creating"
    AVAILABLE = "available"
    READY = "ready"
    ATTACHING = "attaching"
    ATTACHED = "attached"
    DETACHING = "detaching"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    ERROR = "error"


class SnapshotStatus(StrEnum):
    PENDING = "pending"
    CREATING = "creating"
    AVAILABLE = "available"
    READY = "ready"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    ERROR = "error"


class SecurityGroupStatus(StrEnum):
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    READY = "ready"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"


class PeeringStatus(StrEnum):
    PENDING = "pending"
    PENDING_ACCEPTANCE = "pending-acceptance"
    ACCEPTED = "accepted"
    PROVISIONING = "provisioning"
    ACTIVE = "active"
    REJECTED = "rejected"
    EXPIRED = "expired"
    FAILED = "failed"
    DELETING = "deleting"
    DELETED = "deleted"


class LoadbalancerStatus(StrEnum):
    CREATING = "creating"
    UPDATING = "updating"
    READY = "ready"
    DELETING = "deleting"
    DELETED = "deleted"
    FAILED = "failed"
    ERROR = "error"


class MachineStatus(StrEnum):
    CREATING = "creating"
    PROVISIONING = "provisioning"
    STARTING = "starting"
    RUNNING = "running"
    READY = "ready"
    STOPPING = "stopping"
    # Could be intentional or a crash; keep polling rather than guess.
    STOPPED = "stopped"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"
    FAILED = "failed"


class KubernetesClusterStatus(StrEnum):
    PENDING = "pending"
    PROVISIONING = "provisioning"
    CREATING = "creating"
    READY = "ready"
    UPDATING = "updating"
    UPGRADING = "upgrading"
    DELETING = "deleting"
    DELETED = "deleted"
    ERROR = "error"
    FAILED = "failed"


class NodePoolStatus(StrEnum):
    PROVISIONING = "provisioning"
    READY = "ready"
    FAILED = "failed"
    UPDATING = "updating"
    DELETING = "deleting"
    DELETED = "deleted"


def has_endpoint_ip(snapshot: Any) -> bool:
    return bool(str(snapshot.attribute("endpointIP") or "").strip())


@dataclass(frozen=True)
class ResourceKind:
    """One resource kind: name, API path, status table, readiness extras."""

    name: str
    label: str
    path: str
    table: StatusTable
    ready_when: Callable[[Any], bool] | None = None

    def predicates(self, target: Iterable[str] | None = None) -> PredicateSet:
        if target is not None:
            return self.table.predicates(target=target)
        return self.table.predicates(ready_when=self.ready_when)


def _kind(
    name: str,
    label: str,
    path: str,
    vocabulary: type[StrEnum],
    *,
    ready: tuple[StrEnum, ...],
    failed: tuple[StrEnum, ...] = (),
    absent: tuple[StrEnum, ...] = (),
    ready_when: Callable[[Any], bool] | None = None,
) -> ResourceKind:
    table = StatusTable(name, vocabulary, ready=ready, failed=failed, absent=absent)
    return ResourceKind(name, label, path, table, ready_when)


_NET_READY = (NetworkStatus.READY, NetworkStatus.ACTIVE)

KINDS: dict[str, ResourceKind] = {
    k.name: k
    for k in (
        _kind(
            "db_cluster",
            "db cluster",
            "/v1/dbaas/dbclusters",
            DbClusterStatus,
            ready=(DbClusterStatus.READY,),
            failed=(DbClusterStatus.FAILED,),
            absent=(DbClusterStatus.DELETED,),
        ),
        _kind(
            "vpc",
            "vpc",
            "/v1/vpcs",
            NetworkStatus,
            ready=_NET_READY,
            failed=(NetworkStatus.FAILED,),
            absent=(NetworkStatus.DELETED,),
        ),
        _kind(
            "subnet",
            "subnet",
            "/v1/subnets",
            NetworkStatus,
            ready=_NET_READY,
            failed=(NetworkStatus.FAILED,),
            absent=(NetworkStatus.DELETED,),
        ),
        _kind(
            "nat_gateway",
            "natGateway",
            "/v1/nat-gateways",
            NetworkStatus,
            ready=_NET_READY,
            failed=(NetworkStatus.FAILED,),
            absent=(NetworkStatus.DELETED,),
            ready_when=has_endpoint_ip,
        ),
        _kind(
            "route_table",
            "route table",
            "/v1/route-tables",
            NetworkStatus,
            ready=_NET_READY,
            failed=(NetworkStatus.FAILED,),
            absent=(NetworkStatus.DELETED,),
        ),
        _kind(
            "block_volume",
            "block volume",
            "/v1/volumes",
            VolumeStatus,
            ready=(VolumeStatus.AVAILABLE, VolumeStatus.READY, VolumeStatus.ATTACHED),
            failed=(VolumeStatus.FAILED, VolumeStatus.ERROR),
            absent=(VolumeStatus.DELETED,),
        ),
        _kind(
            "snapshot",
            "snapshot",
            "/v1/snapshots",
            SnapshotStatus,
            ready=(SnapshotStatus.AVAILABLE, SnapshotStatus.READY),
            failed=(SnapshotStatus.FAILED, SnapshotStatus.ERROR),
            absent=(SnapshotStatus.DELETED,),
        ),
        _kind(
            "security_group",
            "security group",
            "/v1/security-groups",
            SecurityGroupStatus,
            ready=(SecurityGroupStatus.ACTIVE, SecurityGroupStatus.READY),
            failed=(SecurityGroupStatus.ERROR,),
            absent=(SecurityGroupStatus.DELETED,),
        ),
        _kind(
            "vpc_peering_connection",
            "VPC peering connection",
            "/v1/vpc-peering-connections",
            PeeringStatus,
            ready=(PeeringStatus.ACTIVE,),
            failed=(
                PeeringStatus.FAILED,
                PeeringStatus.REJECTED,
                PeeringStatus.EXPIRED,
            ),
            absent=(PeeringStatus.DELETED,),
        ),
        _kind(
            "loadbalancer",
            "loadbalancer",
            "/v1/loadbalancers",
            LoadbalancerStatus,
            ready=(LoadbalancerStatus.READY,),
            failed=(LoadbalancerStatus.FAILED, LoadbalancerStatus.ERROR),
            absent=(LoadbalancerStatus.DELETED,),
        ),
        _kind(
            "machine",
            "virtual machine instance",
            "/v1/machines",
            MachineStatus,
            ready=(MachineStatus.READY, MachineStatus.RUNNING),
            failed=(MachineStatus.ERROR, MachineStatus.FAILED),
            absent=(MachineStatus.DELETED,),
        ),
        _kind(
            "kubernetes_cluster",
            "kubernetes cluster",
            "/v1/kubernetes/clusters",
            KubernetesClusterStatus,
            ready=(KubernetesClusterStatus.READY,),
            failed=(KubernetesClusterStatus.ERROR, KubernetesClusterStatus.FAILED),
            absent=(KubernetesClusterStatus.DELETED,),
        ),
        _kind(
            "kubernetes_node_pool",
            "kubernetes node pool",
            "/v1/kubernetes/clusters/{parent}/node-pools",
            NodePoolStatus,
            ready=(NodePoolStatus.READY,),
            failed=(NodePoolStatus.FAILED,),
            absent=(NodePoolStatus.DELETED,),
        ),
    )
}


def get_kind(name: str) -> ResourceKind:
    try:
        return KINDS[name]
    except KeyError:
        msg = f"Unknown resource kind: {name!r} (expected one of {sorted(KINDS)})"
        raise ValueError(msg) from None
