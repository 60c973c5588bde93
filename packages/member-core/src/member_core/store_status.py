"""
Store membership tracking.

The placement coordinator knows every store registered against it, which
may include stores run by other clusters sharing the coordinator. Stores
are attributed to this cluster by matching their advertised address
against the replica naming pattern, and classified into three disjoint
maps kept in component status:

- stores: owned by this cluster's replicas and not tombstoned
- peer_stores: same component (by engine label) but run elsewhere
- tombstone_stores: owned stores that have been permanently removed
"""

import logging
from datetime import datetime

from member_core.deps import Dependencies
from member_core.errors import ReconcileError
from member_core.naming import ordinal_from_name, split_store_address, store_address_pattern
from member_core.types import ComponentStatus, MemberType, StoreRecord, StoreState, TidbCluster
from member_protocols import StoreId, StoreInfo

logger = logging.getLogger(__name__)

ENGINE_LABEL = "engine"

# Node label keys renamed to the short names used as coordinator location labels.
_WELL_KNOWN_TOPOLOGY_KEYS = {
    "topology.kubernetes.io/region": "region",
    "topology.kubernetes.io/zone": "zone",
    "kubernetes.io/hostname": "host",
}


def engine_matches(labels: dict[str, str], engine: str | None) -> bool:
    """
    Check a store's engine label against a component's engine.

    Stores without an engine label are row stores; `engine=None` matches
    those.
    """
    value = labels.get(ENGINE_LABEL)
    if engine is None:
        return value is None or value == "tikv"
    return value == engine


class StoreStatusTracker:
    """
    Refreshes store partitions of a component from the coordinator.

    Example:
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, MemberType.TIKV, engine=None)
        cluster.component_status(MemberType.TIKV).stores
    """

    def __init__(self, deps: Dependencies) -> None:
        self.deps = deps

    async def refresh(
        self, cluster: TidbCluster, member_type: MemberType, engine: str | None
    ) -> None:
        """
        Replace the three store maps with a fresh classification.

        On any RPC failure status.synced becomes False, the previous maps
        are left untouched and the error is raised.

        Raises:
            TransientInfraError: When either coordinator query fails.
        """
        status = cluster.component_status(member_type)
        pd = self.deps.pd_control(cluster)
        try:
            active = await self.deps.rpc(
                pd.get_stores(), f"list {member_type.value} stores"
            )
            tombstoned = await self.deps.rpc(
                pd.get_tombstone_stores(), f"list {member_type.value} tombstone stores"
            )
        except ReconcileError as e:
            status.synced = False
            logger.warning(
                f"Failed to refresh stores of {cluster.namespace}/{cluster.name} "
                f"{member_type.value}: {e}"
            )
            raise

        pattern = store_address_pattern(cluster, member_type)
        now = self.deps.clock()
        stores: dict[StoreId, StoreRecord] = {}
        peers: dict[StoreId, StoreRecord] = {}
        tombstones: dict[StoreId, StoreRecord] = {}

        for info in active:
            if not info.has_status:
                continue
            owned = pattern.match(info.address) is not None
            record = self._to_record(info, status, now)
            if info.state == StoreState.TOMBSTONE:
                if owned:
                    tombstones[info.id] = record
            elif owned:
                stores[info.id] = record
            elif engine_matches(info.labels, engine):
                peers[info.id] = record

        for info in tombstoned:
            if not info.has_status or pattern.match(info.address) is None:
                continue
            tombstones[info.id] = self._to_record(info, status, now)

        for store_id in tombstones:
            stores.pop(store_id, None)
            peers.pop(store_id, None)

        status.stores = stores
        status.peer_stores = peers
        status.tombstone_stores = tombstones
        status.synced = True
        logger.debug(
            f"{cluster.name} {member_type.value}: {len(stores)} stores, "
            f"{len(peers)} peer stores, {len(tombstones)} tombstones"
        )

    @staticmethod
    def _to_record(info: StoreInfo, status: ComponentStatus, now: datetime) -> StoreRecord:
        pod, host = split_store_address(info.address)
        previous = (
            status.stores.get(info.id)
            or status.peer_stores.get(info.id)
            or status.tombstone_stores.get(info.id)
        )
        transition = now
        if previous is not None and previous.state == info.state:
            transition = previous.last_transition_time
        return StoreRecord(
            id=info.id,
            address=info.address,
            pod_name=pod,
            ip=host,
            state=info.state,
            leader_count=info.leader_count,
            last_transition_time=transition,
            labels=dict(info.labels),
        )

    async def sync_store_labels(self, cluster: TidbCluster, member_type: MemberType) -> int:
        """
        Copy topology labels of each store's node onto the store.

        Only labels listed as location labels in the coordinator's
        replication config are sent. Best effort: failures are logged per
        store and never fail the tick.

        Returns:
            Number of stores whose labels were updated.
        """
        if not self.deps.nodes_available:
            logger.debug("Node access unavailable, skipping store label sync")
            return 0
        status = cluster.component_status(member_type)
        if not status.stores:
            return 0
        pd = self.deps.pd_control(cluster)
        try:
            config = await self.deps.rpc(pd.get_replication_config(), "get replication config")
        except ReconcileError as e:
            logger.warning(f"Skipping store label sync for {cluster.name}: {e}")
            return 0
        if not config.location_labels:
            return 0

        updated = 0
        for store in status.stores.values():
            if ordinal_from_name(store.pod_name) is None:
                continue
            try:
                pod = await self.deps.snapshot.get_pod(cluster.namespace, store.pod_name)
                if pod is None or not pod.node_name:
                    continue
                node_labels = await self.deps.snapshot.get_node_labels(pod.node_name)
            except ReconcileError as e:
                logger.warning(f"Failed to read node labels for store {store.id}: {e}")
                continue
            if not node_labels:
                continue
            labels = _location_labels(node_labels, config.location_labels)
            if not labels or all(store.labels.get(k) == v for k, v in labels.items()):
                continue
            try:
                applied = await self.deps.rpc(
                    pd.set_store_labels(store.id, labels), f"set labels of store {store.id}"
                )
            except ReconcileError as e:
                logger.warning(f"Failed to set labels of store {store.id}: {e}")
                continue
            if applied:
                updated += 1
        return updated


def _location_labels(node_labels: dict[str, str], keys: list[str]) -> dict[str, str]:
    labels = {}
    for node_key, value in node_labels.items():
        key = _WELL_KNOWN_TOPOLOGY_KEYS.get(node_key, node_key)
        if key in keys:
            labels[key] = value
    return labels
