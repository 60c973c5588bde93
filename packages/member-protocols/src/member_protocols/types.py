"""
Generic types for the member protocol system.

This module defines the data structures exchanged across the protocol
boundary: store membership as reported by the placement coordinator, and
the orchestration objects (replica sets, pods, volume claims, services,
config maps) the reconciler reads and writes.

All types use @dataclass. They are plain value objects - adapters convert
wire formats (PD JSON, Kubernetes objects) into these types.
"""

from dataclasses import dataclass, field
from datetime import datetime
from typing import Any


# Type aliases for common patterns
StoreId = str
"""Unique identifier for a store registered with the placement coordinator."""


@dataclass
class StoreInfo:
    """
    A store as reported by the placement coordinator.

    Attributes:
        id: Store identifier assigned by the coordinator.
        address: Advertised address in format "host:port".
        state: Store state name - one of "Up", "Down", "Offline",
            "Tombstone" or "Disconnected".
        leader_count: Number of region leaders held by the store.
        labels: Store labels (engine, zone, host, ...).
        has_status: False when the coordinator returned no status block
            for the store (e.g. it never sent a heartbeat).
    """

    id: StoreId
    address: str
    state: str
    leader_count: int = 0
    labels: dict[str, str] = field(default_factory=dict)
    has_status: bool = True


@dataclass
class ReplicationConfig:
    """
    Replication section of the placement coordinator configuration.

    Attributes:
        enable_placement_rules: None when the coordinator does not report it.
        location_labels: Topology label keys used for replica placement.
        max_replicas: Replication factor.
    """

    enable_placement_rules: bool | None = None
    location_labels: list[str] = field(default_factory=list)
    max_replicas: int = 3


@dataclass
class ReplicaSetStatus:
    """Live rollout status of a replica set."""

    replicas: int = 0
    ready_replicas: int = 0
    current_replicas: int = 0
    updated_replicas: int = 0
    current_revision: str = ""
    update_revision: str = ""
    observed_generation: int = 0


@dataclass
class ReplicaSet:
    """
    An ordered set of stateful replicas named `<name>-<ordinal>`.

    The pod template is opaque to the reconciler: it is built by a
    ReplicaSetBuilder and only compared, never interpreted.

    Attributes:
        update_strategy: "RollingUpdate" or "OnDelete".
        partition: Ordinals >= partition receive the new template.
        resource_version: Optimistic concurrency token. Empty until created.
    """

    name: str
    namespace: str
    replicas: int
    template: dict[str, Any] = field(default_factory=dict)
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    update_strategy: str = "RollingUpdate"
    partition: int | None = None
    volume_claim_templates: list[dict[str, Any]] = field(default_factory=list)
    service_name: str = ""
    generation: int = 0
    resource_version: str = ""
    status: ReplicaSetStatus = field(default_factory=ReplicaSetStatus)


@dataclass
class Pod:
    """
    A running replica.

    Attributes:
        ready_transition_time: When the Ready condition last changed.
    """

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    ready: bool = False
    node_name: str = ""
    created_at: datetime | None = None
    ready_transition_time: datetime | None = None
    resource_version: str = ""


@dataclass
class VolumeClaim:
    """A persistent volume claim bound to one replica ordinal."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    resource_version: str = ""


@dataclass
class Service:
    """Network endpoint object. Only `spec` participates in diffs."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    spec: dict[str, Any] = field(default_factory=dict)


@dataclass
class ConfigMap:
    """Configuration files mounted into replicas."""

    name: str
    namespace: str
    labels: dict[str, str] = field(default_factory=dict)
    data: dict[str, str] = field(default_factory=dict)
