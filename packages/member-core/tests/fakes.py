"""
In-memory fakes shared by the member-core tests.

FakeObjects implements both ClusterSnapshotProtocol and
ObjectControlProtocol over dicts, bumping resource versions on every write
and counting writes so tests can assert idempotence. FakePD and FakeCDC
record every call and return scripted answers.
"""

import copy
from dataclasses import replace
from datetime import datetime, timedelta, timezone

from member_core.naming import (
    POD_NAME_LABEL,
    REVISION_LABEL,
    component_labels,
    member_name,
    peer_member_name,
    pod_name,
)
from member_core.types import ComponentSpec, ClusterSpec, MemberType, TidbCluster
from member_protocols import (
    ConfigMap,
    ObjectConflictError,
    ObjectNotFoundError,
    Pod,
    ReplicaSet,
    ReplicationConfig,
    Service,
    StoreInfo,
    VolumeClaim,
)

NAMESPACE = "db"
CLUSTER = "basic"
T0 = datetime(2026, 1, 1, 12, 0, 0, tzinfo=timezone.utc)


class FakeClock:
    def __init__(self, now: datetime = T0):
        self.now = now

    def __call__(self) -> datetime:
        return self.now

    def advance(self, **kwargs) -> None:
        self.now = self.now + timedelta(**kwargs)


def _matches(labels: dict[str, str], selector: dict[str, str]) -> bool:
    return all(labels.get(k) == v for k, v in selector.items())


class FakeObjects:
    """Orchestration objects held in memory."""

    def __init__(self):
        self.replica_sets: dict[str, ReplicaSet] = {}
        self.pods: dict[str, Pod] = {}
        self.claims: dict[str, VolumeClaim] = {}
        self.services: dict[str, Service] = {}
        self.config_maps: dict[str, ConfigMap] = {}
        self.nodes: dict[str, dict[str, str]] = {}
        self.writes: list[tuple[str, str]] = []
        self.fail_next: dict[str, Exception] = {}
        self._version = 100

    def _bump(self) -> str:
        self._version += 1
        return str(self._version)

    def _record(self, op: str, name: str) -> None:
        error = self.fail_next.pop(op, None)
        if error is not None:
            raise error
        self.writes.append((op, name))

    def writes_of(self, op: str) -> list[str]:
        return [name for o, name in self.writes if o == op]

    # Read side

    async def get_replica_set(self, namespace, name):
        rs = self.replica_sets.get(name)
        return copy.deepcopy(rs)

    async def get_pod(self, namespace, name):
        return copy.deepcopy(self.pods.get(name))

    async def list_pods(self, namespace, selector):
        return [copy.deepcopy(p) for p in self.pods.values() if _matches(p.labels, selector)]

    async def list_volume_claims(self, namespace, selector):
        return [copy.deepcopy(c) for c in self.claims.values() if _matches(c.labels, selector)]

    async def get_service(self, namespace, name):
        return copy.deepcopy(self.services.get(name))

    async def get_config_map(self, namespace, name):
        return copy.deepcopy(self.config_maps.get(name))

    async def get_node_labels(self, node_name):
        labels = self.nodes.get(node_name)
        return dict(labels) if labels is not None else None

    # Write side

    async def create_replica_set(self, replica_set):
        self._record("create_replica_set", replica_set.name)
        if replica_set.name in self.replica_sets:
            raise ObjectConflictError("replicaset", replica_set.name)
        stored = copy.deepcopy(replica_set)
        stored.resource_version = self._bump()
        stored.generation = 1
        self.replica_sets[stored.name] = stored
        return copy.deepcopy(stored)

    async def update_replica_set(self, replica_set):
        self._record("update_replica_set", replica_set.name)
        current = self.replica_sets.get(replica_set.name)
        if current is None:
            raise ObjectNotFoundError("replicaset", replica_set.name)
        if current.resource_version != replica_set.resource_version:
            raise ObjectConflictError("replicaset", replica_set.name)
        stored = copy.deepcopy(replica_set)
        stored.resource_version = self._bump()
        stored.generation = current.generation + 1
        self.replica_sets[stored.name] = stored
        return copy.deepcopy(stored)

    async def update_pod(self, pod):
        self._record("update_pod", pod.name)
        if pod.name not in self.pods:
            raise ObjectNotFoundError("pod", pod.name)
        stored = copy.deepcopy(pod)
        stored.resource_version = self._bump()
        self.pods[pod.name] = stored
        return copy.deepcopy(stored)

    async def update_volume_claim(self, claim):
        self._record("update_volume_claim", claim.name)
        if claim.name not in self.claims:
            raise ObjectNotFoundError("persistentvolumeclaim", claim.name)
        stored = copy.deepcopy(claim)
        stored.resource_version = self._bump()
        self.claims[claim.name] = stored
        return copy.deepcopy(stored)

    async def delete_volume_claim(self, namespace, name):
        self._record("delete_volume_claim", name)
        if name not in self.claims:
            raise ObjectNotFoundError("persistentvolumeclaim", name)
        del self.claims[name]

    async def create_service(self, service):
        self._record("create_service", service.name)
        self.services[service.name] = copy.deepcopy(service)
        return service

    async def update_service(self, service):
        self._record("update_service", service.name)
        self.services[service.name] = copy.deepcopy(service)
        return service

    async def create_or_update_config_map(self, config_map):
        self._record("write_config_map", config_map.name)
        self.config_maps[config_map.name] = copy.deepcopy(config_map)
        return copy.deepcopy(config_map)

    # Test helpers

    def add_pod(self, cluster: TidbCluster, member_type: MemberType, ordinal: int, **kwargs) -> Pod:
        name = pod_name(cluster.name, member_type, ordinal)
        labels = component_labels(cluster, member_type)
        labels[POD_NAME_LABEL] = name
        revision = kwargs.pop("revision", None)
        if revision is not None:
            labels[REVISION_LABEL] = revision
        kwargs.setdefault("ready", True)
        kwargs.setdefault("created_at", T0 - timedelta(days=1))
        pod = Pod(name=name, namespace=cluster.namespace, labels=labels, **kwargs)
        self.pods[name] = pod
        return pod

    def add_claim(
        self, cluster: TidbCluster, member_type: MemberType, ordinal: int, annotations=None
    ) -> VolumeClaim:
        owner = pod_name(cluster.name, member_type, ordinal)
        labels = component_labels(cluster, member_type)
        labels[POD_NAME_LABEL] = owner
        claim = VolumeClaim(
            name=f"data-{owner}",
            namespace=cluster.namespace,
            labels=labels,
            annotations=dict(annotations or {}),
            resource_version=self._bump(),
        )
        self.claims[claim.name] = claim
        return claim

    def set_status(self, name: str, **kwargs) -> None:
        """Simulate the replica set controller updating status."""
        rs = self.replica_sets[name]
        rs.status = replace(rs.status, **kwargs)
        rs.resource_version = self._bump()


class FakePD:
    """Scripted placement coordinator."""

    def __init__(self):
        self.stores: list[StoreInfo] = []
        self.tombstones: list[StoreInfo] = []
        self.replication = ReplicationConfig(enable_placement_rules=True)
        self.leader = ""
        self.calls: list[tuple] = []
        self.fail: dict[str, Exception] = {}

    def _call(self, name: str, *args) -> None:
        self.calls.append((name, *args))
        error = self.fail.get(name)
        if error is not None:
            raise error

    def called(self, name: str) -> list[tuple]:
        return [c[1:] for c in self.calls if c[0] == name]

    async def get_stores(self):
        self._call("get_stores")
        return copy.deepcopy(self.stores)

    async def get_tombstone_stores(self):
        self._call("get_tombstone_stores")
        return copy.deepcopy(self.tombstones)

    async def get_replication_config(self):
        self._call("get_replication_config")
        return copy.deepcopy(self.replication)

    async def update_replication_config(self, config):
        self._call("update_replication_config", config)
        self.replication = copy.deepcopy(config)

    async def set_store_labels(self, store_id, labels):
        self._call("set_store_labels", store_id, labels)
        for store in self.stores:
            if store.id == store_id:
                store.labels.update(labels)
        return True

    async def delete_store(self, store_id):
        self._call("delete_store", store_id)

    async def get_leader_name(self):
        self._call("get_leader_name")
        return self.leader

    async def transfer_leader(self, to_member):
        self._call("transfer_leader", to_member)

    async def delete_member(self, name):
        self._call("delete_member", name)

    async def add_evict_leader_scheduler(self, store_id):
        self._call("add_evict_leader_scheduler", store_id)

    async def remove_evict_leader_scheduler(self, store_id):
        self._call("remove_evict_leader_scheduler", store_id)


class FakeCDC:
    """Scripted capture control: answers are popped from the lists, then repeat the last."""

    def __init__(self):
        self.drain_results: list[tuple[int, bool]] = [(0, False)]
        self.resign_results: list[bool] = [True]
        self.calls: list[tuple[str, int]] = []

    async def drain_capture(self, ordinal):
        self.calls.append(("drain_capture", ordinal))
        if len(self.drain_results) > 1:
            return self.drain_results.pop(0)
        return self.drain_results[0]

    async def resign_owner(self, ordinal):
        self.calls.append(("resign_owner", ordinal))
        if len(self.resign_results) > 1:
            return self.resign_results.pop(0)
        return self.resign_results[0]


def make_cluster(**components: ComponentSpec) -> TidbCluster:
    """
    Build a cluster from keyword component specs.

    Example:
        make_cluster(tikv=ComponentSpec(replicas=3, image="pingcap/tikv:v7.5.0"))
    """
    return TidbCluster(
        name=CLUSTER,
        namespace=NAMESPACE,
        spec=ClusterSpec(components={MemberType(k): v for k, v in components.items()}),
    )


def store_address(cluster: TidbCluster, member_type: MemberType, ordinal: int, port: int = 20160) -> str:
    name = pod_name(cluster.name, member_type, ordinal)
    peer = peer_member_name(cluster.name, member_type)
    return f"{name}.{peer}.{cluster.namespace}.svc:{port}"


def store(
    cluster: TidbCluster,
    member_type: MemberType,
    ordinal: int,
    state: str = "Up",
    store_id: str | None = None,
    **kwargs,
) -> StoreInfo:
    return StoreInfo(
        id=store_id or str(ordinal + 1),
        address=store_address(cluster, member_type, ordinal),
        state=state,
        **kwargs,
    )


def live_replica_set(
    objects: FakeObjects,
    cluster: TidbCluster,
    member_type: MemberType,
    replicas: int,
    revision: str = "rev-1",
) -> ReplicaSet:
    """Store a live replica set whose rollout is complete."""
    from member_core.apply import set_last_applied
    from member_protocols import ReplicaSetStatus

    rs = ReplicaSet(
        name=member_name(cluster.name, member_type),
        namespace=cluster.namespace,
        replicas=replicas,
        template={"spec": {"containers": [{"name": member_type.value, "image": "img:v1"}]}},
        labels=component_labels(cluster, member_type),
        partition=replicas,
        resource_version="1",
        generation=1,
        status=ReplicaSetStatus(
            replicas=replicas,
            ready_replicas=replicas,
            current_replicas=replicas,
            updated_replicas=replicas,
            current_revision=revision,
            update_revision=revision,
            observed_generation=1,
        ),
    )
    set_last_applied(rs)
    objects.replica_sets[rs.name] = rs
    return copy.deepcopy(rs)
