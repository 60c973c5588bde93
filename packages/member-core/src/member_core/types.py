"""
Shared data types for the member reconciler.

This module defines the cluster model the reconciler works on: the
declared topology of each component (read-only to the reconciler) and the
status sub-resource the reconciler maintains (phase, store partitions,
failure records).

All types use @dataclass. Pydantic models are reserved for settings and
API/resource parsing in adapters.
"""

from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum

from member_protocols.types import ReplicaSetStatus, StoreId


class MemberType(str, Enum):
    """Stateful components of a cluster."""

    PD = "pd"
    """Placement coordinator."""

    TIKV = "tikv"
    """Key-value storage engine."""

    TIFLASH = "tiflash"
    """Columnar replica."""

    TIDB = "tidb"
    """SQL gateway."""

    TICDC = "ticdc"
    """Change-data-capture replica."""

    PUMP = "pump"
    """Binlog node."""


class Phase(str, Enum):
    """Component lifecycle phase recorded in status."""

    NORMAL = "Normal"
    SCALE = "Scale"
    UPGRADE = "Upgrade"


class StoreState(str, Enum):
    """Store states reported by the placement coordinator."""

    UP = "Up"
    DOWN = "Down"
    OFFLINE = "Offline"
    TOMBSTONE = "Tombstone"
    DISCONNECTED = "Disconnected"


class UpdateStrategy(str, Enum):
    ROLLING_UPDATE = "RollingUpdate"
    ON_DELETE = "OnDelete"


class ConfigUpdateStrategy(str, Enum):
    IN_PLACE = "InPlace"
    ROLLING_UPDATE = "RollingUpdate"


@dataclass
class StorageClaim:
    """A volume requested for every replica, e.g. StorageClaim("data0", "100Gi")."""

    name: str
    size: str
    storage_class: str | None = None


@dataclass
class ComponentSpec:
    """
    Declared topology of one component (ClusterTopology).

    Attributes:
        replicas: Desired replica count, excluding failover replacements.
        image: Container image; its tag is the component version.
        storage_claims: Volumes created per replica.
        config: Rendered configuration files, keyed by file name.
        max_failover_count: Upper bound on concurrent failure records.
            None disables failover for the component.
        recover_failover: Opt-in flag allowing failover recovery.
        recover_by_uid: Recovery token; recovery is allowed when it
            matches the failover UID recorded in status.
        suspend: Skip reconciling the component entirely.
        failover_period: How long a member must be down before it is
            recorded as failed.
        graceful_shutdown_timeout: Upper bound for the capture graceful
            shutdown handshake.
    """

    replicas: int
    image: str = ""
    labels: dict[str, str] = field(default_factory=dict)
    annotations: dict[str, str] = field(default_factory=dict)
    storage_claims: list[StorageClaim] = field(default_factory=list)
    config: dict[str, str] = field(default_factory=dict)
    update_strategy: UpdateStrategy = UpdateStrategy.ROLLING_UPDATE
    config_update_strategy: ConfigUpdateStrategy = ConfigUpdateStrategy.IN_PLACE
    max_failover_count: int | None = 3
    recover_failover: bool = False
    recover_by_uid: str = ""
    suspend: bool = False
    failover_period: timedelta = field(default_factory=lambda: timedelta(minutes=5))
    graceful_shutdown_timeout: timedelta = field(
        default_factory=lambda: timedelta(minutes=10)
    )

    @property
    def version(self) -> str:
        """Image tag, or "latest" when the image carries none."""
        _, sep, tag = self.image.rpartition(":")
        if not sep or "/" in tag:
            return "latest"
        return tag


@dataclass
class ClusterSpec:
    """
    Declared cluster specification.

    Attributes:
        components: Component specs; absent components are not reconciled.
        paused: Stop before touching replica sets.
        cluster_domain: Cluster DNS domain used in store addresses.
        pd_address: External coordinator address for clusters that join
            another cluster's coordinator instead of running their own.
    """

    components: dict[MemberType, ComponentSpec] = field(default_factory=dict)
    paused: bool = False
    cluster_domain: str = ""
    pd_address: str = ""


@dataclass
class StoreRecord:
    """
    A store as tracked in component status.

    Attributes:
        pod_name: Replica the store runs in, derived from its address.
        last_transition_time: When `state` last changed.
    """

    id: StoreId
    address: str
    pod_name: str
    ip: str
    state: str
    leader_count: int
    last_transition_time: datetime
    labels: dict[str, str] = field(default_factory=dict)


@dataclass
class FailureRecord:
    """
    A failed member awaiting replacement or recovery.

    At most one record exists per ordinal. Records are only removed by
    remove_undesired_failures() or recover().

    Attributes:
        reason: Why the member was recorded as failed.
        detected_at: When the record was written.
        store_id: Failed store, empty for pod-based failover.
        recovery_eligible: True once the member is healthy again.
    """

    pod_name: str
    ordinal: int
    reason: str
    detected_at: datetime
    store_id: StoreId = ""
    recovery_eligible: bool = False


@dataclass
class ComponentStatus:
    """
    Status of one component, persisted in the cluster status sub-resource.

    Attributes:
        synced: False when the last store refresh failed.
        stores: Stores owned by this cluster's replicas.
        peer_stores: Stores of the same component run by another cluster
            sharing the coordinator.
        tombstone_stores: Permanently removed owned stores.
        failure_members: Failure records keyed by ordinal.
        failover_uid: Token identifying the current failover episode.
    """

    phase: Phase = Phase.NORMAL
    synced: bool = False
    replica_set: ReplicaSetStatus | None = None
    stores: dict[StoreId, StoreRecord] = field(default_factory=dict)
    peer_stores: dict[StoreId, StoreRecord] = field(default_factory=dict)
    tombstone_stores: dict[StoreId, StoreRecord] = field(default_factory=dict)
    failure_members: dict[int, FailureRecord] = field(default_factory=dict)
    failover_uid: str = ""
    image: str = ""


@dataclass
class ClusterStatus:
    components: dict[MemberType, ComponentStatus] = field(default_factory=dict)


@dataclass
class TidbCluster:
    """
    A cluster resource: metadata, declared spec and maintained status.

    Example:
        tc = TidbCluster(
            name="basic",
            namespace="db",
            spec=ClusterSpec(components={
                MemberType.PD: ComponentSpec(replicas=3, image="pingcap/pd:v7.5.0"),
            }),
        )
        tc.desired_replicas(MemberType.PD)  # 3
    """

    name: str
    namespace: str
    spec: ClusterSpec = field(default_factory=ClusterSpec)
    status: ClusterStatus = field(default_factory=ClusterStatus)
    uid: str = ""
    resource_version: str = ""

    def component_spec(self, member_type: MemberType) -> ComponentSpec | None:
        return self.spec.components.get(member_type)

    def component_status(self, member_type: MemberType) -> ComponentStatus:
        """Return the component status, creating an empty one if needed."""
        status = self.status.components.get(member_type)
        if status is None:
            status = ComponentStatus()
            self.status.components[member_type] = status
        return status

    def desired_replicas(self, member_type: MemberType) -> int:
        """Spec replicas plus one replacement per failure record."""
        spec = self.component_spec(member_type)
        if spec is None:
            return 0
        failures = len(self.component_status(member_type).failure_members)
        return max(spec.replicas, 0) + failures

    def desired_ordinals(self, member_type: MemberType, exclude_failover: bool) -> set[int]:
        """Ordinals that should exist; optionally without failover replacements."""
        spec = self.component_spec(member_type)
        if spec is None:
            return set()
        count = spec.replicas if exclude_failover else self.desired_replicas(member_type)
        return set(range(max(count, 0)))

    def is_upgrading(self, member_type: MemberType) -> bool:
        status = self.status.components.get(member_type)
        return status is not None and status.phase == Phase.UPGRADE

    def all_pods_started(self, member_type: MemberType) -> bool:
        status = self.component_status(member_type)
        if status.replica_set is None:
            return False
        return self.desired_replicas(member_type) == status.replica_set.replicas

    def all_stores_ready(self, member_type: MemberType) -> bool:
        """True when every desired replica has an Up store."""
        status = self.component_status(member_type)
        if len(status.stores) != self.desired_replicas(member_type):
            return False
        return all(store.state == StoreState.UP for store in status.stores.values())
