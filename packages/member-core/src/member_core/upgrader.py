"""
Rolling upgrades through the replica set partition.

Replicas with ordinal >= partition run the new template. The upgrader
lowers the partition one ordinal at a time, from the highest ordinal down,
and only once every replica already at the new revision is ready (and, for
store components, its store is Up). Before an ordinal is rolled, a
per-variant hook prepares it:

- CoordinatorUpgrader: transfers leadership away from the pod
- StoreUpgrader: evicts region leaders from the pod's store
- CaptureUpgrader: runs the graceful shutdown handshake
"""

import copy
import logging

from member_core.apply import applied_template, template_equal
from member_core.deps import Dependencies
from member_core.errors import RequeueError
from member_core.naming import REVISION_LABEL, component_labels, member_name, pod_name
from member_core.shutdown import graceful_shutdown
from member_core.types import (
    MemberType,
    Phase,
    StoreRecord,
    StoreState,
    TidbCluster,
    UpdateStrategy,
)
from member_protocols import Pod, ReplicaSet

logger = logging.getLogger(__name__)


async def replica_set_is_upgrading(
    deps: Dependencies, cluster: TidbCluster, member_type: MemberType, replica_set: ReplicaSet
) -> bool:
    """
    True while a rollout of the replica set is in progress.

    A rollout is in progress when current and update revisions differ, the
    latest generation has not been observed yet, or a live pod carries a
    revision other than the update revision.
    """
    status = replica_set.status
    if status.current_revision != status.update_revision:
        return True
    if replica_set.generation > status.observed_generation and replica_set.replicas == status.replicas:
        return True
    pods = await deps.snapshot.list_pods(cluster.namespace, component_labels(cluster, member_type))
    for pod in pods:
        revision = pod.labels.get(REVISION_LABEL)
        if revision is None:
            return False
        if revision != status.update_revision:
            return True
    return False


class Upgrader:
    """
    Partition-driven upgrader.

    Args:
        deps: Dependency bundle.
        member_type: Component upgraded.
        wait_for: Components whose upgrade must finish before this one starts.
    """

    def __init__(
        self,
        deps: Dependencies,
        member_type: MemberType,
        wait_for: tuple[MemberType, ...] = (),
    ) -> None:
        self.deps = deps
        self.member_type = member_type
        self.wait_for = wait_for

    async def is_upgrading(self, cluster: TidbCluster, replica_set: ReplicaSet) -> bool:
        return await replica_set_is_upgrading(self.deps, cluster, self.member_type, replica_set)

    async def upgrade(self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet) -> None:
        status = cluster.component_status(self.member_type)
        name = member_name(cluster.name, self.member_type)

        if status.phase == Phase.SCALE or old_set.replicas != new_set.replicas:
            logger.info(f"{name} is scaling, postponing upgrade")
            _keep_live_rollout(old_set, new_set)
            return
        blocking = [mt for mt in self.wait_for if cluster.is_upgrading(mt)]
        if blocking:
            logger.info(
                f"{name} waits for {', '.join(mt.value for mt in blocking)} to finish upgrading"
            )
            _keep_live_rollout(old_set, new_set)
            return

        status.phase = Phase.UPGRADE
        if not template_equal(new_set, old_set):
            # New template goes out with the partition at the top; rolling starts next tick.
            new_set.partition = old_set.replicas
            return
        observed = status.replica_set or old_set.status
        if observed.update_revision == observed.current_revision:
            new_set.partition = old_set.partition
            return

        if old_set.update_strategy == UpdateStrategy.ON_DELETE or old_set.partition is None:
            new_set.update_strategy = old_set.update_strategy
            new_set.partition = old_set.partition
            logger.info(f"{name} uses {old_set.update_strategy}, pods roll when deleted")
            return

        new_set.partition = old_set.partition
        for ordinal in range(old_set.replicas - 1, -1, -1):
            pod_id = pod_name(cluster.name, self.member_type, ordinal)
            pod = await self.deps.snapshot.get_pod(cluster.namespace, pod_id)
            if pod is None:
                raise RequeueError(f"upgrade {name}: pod {pod_id} not found")
            revision = pod.labels.get(REVISION_LABEL)
            if revision is None:
                raise RequeueError(f"upgrade {name}: pod {pod_id} has no revision label")

            if revision == observed.update_revision:
                if not pod.ready:
                    raise RequeueError(f"upgrade {name}: upgraded pod {pod_id} is not ready")
                await self.check_upgraded(cluster, ordinal, pod)
                continue

            if ordinal >= old_set.partition:
                raise RequeueError(f"upgrade {name}: waiting for pod {pod_id} to be recreated")
            await self.before_upgrade(cluster, ordinal, pod)
            new_set.partition = ordinal
            logger.info(f"Upgrading {pod_id} (partition {ordinal})")
            return

    async def check_upgraded(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        """Raise RequeueError while an upgraded member is not serving yet."""

    async def before_upgrade(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        """Prepare an ordinal for being rolled; raise RequeueError to wait."""


def _keep_live_rollout(old_set: ReplicaSet, new_set: ReplicaSet) -> None:
    new_set.template = copy.deepcopy(applied_template(old_set))
    new_set.update_strategy = old_set.update_strategy
    new_set.partition = old_set.partition


class StoreUpgrader(Upgrader):
    """Upgrader for store components: evicts region leaders before rolling."""

    def _store_of(self, cluster: TidbCluster, pod: Pod) -> StoreRecord | None:
        for store in cluster.component_status(self.member_type).stores.values():
            if store.pod_name == pod.name:
                return store
        return None

    async def check_upgraded(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        store = self._store_of(cluster, pod)
        if store is None:
            return
        if store.state != StoreState.UP:
            raise RequeueError(f"store {store.id} of upgraded {pod.name} is {store.state}")
        pd = self.deps.pd_control(cluster)
        await self.deps.rpc(
            pd.remove_evict_leader_scheduler(store.id), f"remove evict-leader scheduler {store.id}"
        )

    async def before_upgrade(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        store = self._store_of(cluster, pod)
        if store is None or store.state != StoreState.UP or store.leader_count == 0:
            return
        pd = self.deps.pd_control(cluster)
        await self.deps.rpc(
            pd.add_evict_leader_scheduler(store.id), f"add evict-leader scheduler {store.id}"
        )
        raise RequeueError(
            f"evicting {store.leader_count} region leaders from store {store.id} of {pod.name}"
        )


class CoordinatorUpgrader(Upgrader):
    """Upgrader for the coordinator: the leader is moved off before its pod rolls."""

    async def before_upgrade(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        replicas = cluster.component_spec(self.member_type).replicas
        if replicas < 2:
            return
        pd = self.deps.pd_control(cluster)
        leader = await self.deps.rpc(pd.get_leader_name(), "get coordinator leader")
        if leader != pod.name:
            return
        successor = ordinal + 1 if ordinal + 1 < replicas else ordinal - 1
        target = pod_name(cluster.name, self.member_type, successor)
        await self.deps.rpc(pd.transfer_leader(target), f"transfer leader to {target}")
        raise RequeueError(f"transferring coordinator leadership from {pod.name} to {target}")


class CaptureUpgrader(Upgrader):
    """Upgrader for captures: drains each capture before its pod rolls."""

    async def before_upgrade(self, cluster: TidbCluster, ordinal: int, pod: Pod) -> None:
        spec = cluster.component_spec(self.member_type)
        await graceful_shutdown(
            self.deps, cluster, pod, spec.graceful_shutdown_timeout, action="upgrade"
        )
