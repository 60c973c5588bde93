"""
Per-component capability sets.

Every stateful component is reconciled by the same MemberReconciler; what
differs between components is injected as a ComponentVariant: its scaler,
failover controller, upgrader and object builder, plus a few descriptive
flags. Variants are composed, not subclassed.
"""

from dataclasses import dataclass, field
from typing import Protocol, runtime_checkable

from member_core.types import MemberType, TidbCluster
from member_protocols import ConfigMap, ReplicaSet, Service


@runtime_checkable
class ScalerProtocol(Protocol):
    async def scale(self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet) -> None:
        """Move `new_set.replicas` at most one ordinal from `old_set.replicas`."""
        ...


@runtime_checkable
class FailoverProtocol(Protocol):
    async def failover(self, cluster: TidbCluster) -> None:
        """Record failed members."""
        ...

    async def remove_undesired_failures(self, cluster: TidbCluster) -> None:
        """Drop records that no longer need a replacement."""
        ...

    async def recover(self, cluster: TidbCluster) -> bool:
        """Clear all records when intent and quorum allow. Returns True if cleared."""
        ...

    async def members_healthy(self, cluster: TidbCluster) -> bool: ...


@runtime_checkable
class UpgraderProtocol(Protocol):
    async def upgrade(self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet) -> None:
        """Advance the rollout of `new_set.template` by at most one ordinal."""
        ...

    async def is_upgrading(self, cluster: TidbCluster, replica_set: ReplicaSet) -> bool: ...


@runtime_checkable
class ObjectBuilderProtocol(Protocol):
    """Builds desired objects from the declared spec."""

    def build_replica_set(
        self, cluster: TidbCluster, member_type: MemberType, config_map: ConfigMap | None
    ) -> ReplicaSet: ...

    def build_service(self, cluster: TidbCluster, member_type: MemberType) -> Service: ...

    def build_config_map(
        self, cluster: TidbCluster, member_type: MemberType
    ) -> ConfigMap | None:
        """Return None for components without configuration files."""
        ...


@runtime_checkable
class ClusterStoreProtocol(Protocol):
    """Access to cluster resources and their status sub-resource."""

    async def list_clusters(self, namespace: str) -> list[tuple[str, str]]:
        """Return (namespace, name) keys; empty namespace means all."""
        ...

    async def get_cluster(self, namespace: str, name: str) -> TidbCluster | None: ...

    async def update_status(self, cluster: TidbCluster) -> None: ...


@dataclass
class ComponentVariant:
    """
    Capability set of one component type.

    Attributes:
        has_stores: The component registers stores with the coordinator.
        store_engine: Value of the store "engine" label identifying this
            component's stores; None matches stores without the label.
        needs_placement_rules: Placement rules must be enabled in the
            coordinator before the component can serve.
        container_name: Main container, used to report the running image.
    """

    member_type: MemberType
    scaler: ScalerProtocol
    failover: FailoverProtocol
    upgrader: UpgraderProtocol
    builder: ObjectBuilderProtocol
    has_stores: bool = False
    store_engine: str | None = None
    needs_placement_rules: bool = False
    container_name: str = ""
    ports: dict[str, int] = field(default_factory=dict)
