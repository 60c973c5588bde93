"""
MemberReconciler: one component of one cluster, once per tick.

The reconciler is the only entry point per component. Each sync() call
walks the same strict sequence, and every step is idempotent, so a tick
that finds nothing to change writes nothing:

 1. skip suspended components
 2. ensure placement rules are enabled (best effort)
 3. headless peer service
 4. status refresh: replica set status, phase, stores, image
 5. stop here for paused clusters
 6. config map
 7. failure record cleanup and recovery
 8. desired replica set
 9. create the replica set once the coordinator is available
10. store topology labels (best effort)
11. scale
12. failover
13. upgrade
14. persist the replica set with a version precheck

Any error raised by a step aborts the tick; effects of earlier steps
(including status changes) are kept.
"""

import copy
import logging

from member_core.apply import (
    CONFIG_MAP_ANNOTATION,
    container_image,
    set_last_applied,
    sync_config_map,
    sync_service,
    template_equal,
    update_replica_set_with_precheck,
)
from member_core.component import ComponentVariant
from member_core.deps import Dependencies
from member_core.errors import ConflictError, ReconcileError
from member_core.naming import member_name
from member_core.store_status import StoreStatusTracker
from member_core.types import MemberType, Phase, TidbCluster
from member_protocols import ConfigMap, ObjectConflictError, ReplicaSet, ReplicationConfig

logger = logging.getLogger(__name__)


class MemberReconciler:
    """
    Reconciles one component type using its injected capability set.

    Example:
        reconciler = MemberReconciler(deps, variants[MemberType.TIKV])
        await reconciler.sync(cluster)
    """

    def __init__(
        self,
        deps: Dependencies,
        variant: ComponentVariant,
        tracker: StoreStatusTracker | None = None,
    ) -> None:
        self.deps = deps
        self.variant = variant
        self.tracker = tracker or StoreStatusTracker(deps)

    @property
    def member_type(self) -> MemberType:
        return self.variant.member_type

    async def sync(self, cluster: TidbCluster) -> None:
        spec = cluster.component_spec(self.member_type)
        if spec is None:
            return
        if spec.suspend:
            logger.info(f"{cluster.namespace}/{cluster.name} {self.member_type.value} is suspended")
            return

        if self.variant.needs_placement_rules:
            await self._enable_placement_rules(cluster)

        if not cluster.spec.paused:
            await sync_service(
                self.deps, self.variant.builder.build_service(cluster, self.member_type)
            )

        await self._sync_replica_set(cluster)

    async def _sync_replica_set(self, cluster: TidbCluster) -> None:
        live = await self.deps.snapshot.get_replica_set(
            cluster.namespace, member_name(cluster.name, self.member_type)
        )
        old_set = copy.deepcopy(live) if live is not None else None

        await self._sync_status(cluster, old_set)

        if cluster.spec.paused:
            logger.debug(f"{cluster.namespace}/{cluster.name} is paused")
            return

        config_map = await self._sync_config_map(cluster, old_set)

        status = cluster.component_status(self.member_type)
        if status.failure_members:
            await self.variant.failover.remove_undesired_failures(cluster)
        if status.failure_members:
            await self.variant.failover.recover(cluster)

        new_set = self.variant.builder.build_replica_set(cluster, self.member_type, config_map)

        if old_set is None:
            await self._create_replica_set(cluster, new_set)
            return

        if self.variant.has_stores:
            await self.tracker.sync_store_labels(cluster, self.member_type)

        await self.variant.scaler.scale(cluster, old_set, new_set)

        spec = cluster.component_spec(self.member_type)
        if self.deps.settings.auto_failover and spec.max_failover_count is not None:
            if cluster.all_pods_started(self.member_type) and not await self.variant.failover.members_healthy(cluster):
                await self.variant.failover.failover(cluster)

        if not template_equal(new_set, old_set) or status.phase == Phase.UPGRADE:
            await self.variant.upgrader.upgrade(cluster, old_set, new_set)

        await update_replica_set_with_precheck(self.deps, new_set, old_set)

    async def _sync_status(self, cluster: TidbCluster, old_set: ReplicaSet | None) -> None:
        if old_set is None:
            return
        status = cluster.component_status(self.member_type)
        status.replica_set = copy.deepcopy(old_set.status)
        upgrading = await self.variant.upgrader.is_upgrading(cluster, old_set)
        if cluster.desired_replicas(self.member_type) != old_set.replicas:
            status.phase = Phase.SCALE
        elif upgrading:
            status.phase = Phase.UPGRADE
        else:
            status.phase = Phase.NORMAL

        if self.variant.container_name:
            image = container_image(old_set.template, self.variant.container_name)
            if image:
                status.image = image

        if self.variant.has_stores:
            await self.tracker.refresh(cluster, self.member_type, self.variant.store_engine)

    async def _sync_config_map(
        self, cluster: TidbCluster, old_set: ReplicaSet | None
    ) -> ConfigMap | None:
        desired = self.variant.builder.build_config_map(cluster, self.member_type)
        if desired is None:
            return None
        spec = cluster.component_spec(self.member_type)
        in_use = old_set.annotations.get(CONFIG_MAP_ANNOTATION) if old_set is not None else None
        return await sync_config_map(self.deps, desired, spec.config_update_strategy, in_use)

    async def _create_replica_set(self, cluster: TidbCluster, new_set: ReplicaSet) -> None:
        if not self._coordinator_available(cluster):
            logger.info(
                f"Coordinator of {cluster.namespace}/{cluster.name} is not available yet, "
                f"deferring creation of {new_set.name}"
            )
            return
        set_last_applied(new_set)
        try:
            await self.deps.control.create_replica_set(new_set)
        except ObjectConflictError as e:
            raise ConflictError(f"replica set {new_set.namespace}/{new_set.name}") from e
        logger.info(f"Created replica set {new_set.namespace}/{new_set.name} with {new_set.replicas} replicas")

    def _coordinator_available(self, cluster: TidbCluster) -> bool:
        """A ready majority of coordinator replicas exists (or none is managed here)."""
        if self.member_type == MemberType.PD or cluster.spec.pd_address:
            return True
        pd_spec = cluster.component_spec(MemberType.PD)
        if pd_spec is None:
            return True
        pd_status = cluster.status.components.get(MemberType.PD)
        if pd_status is None or pd_status.replica_set is None:
            return False
        return pd_status.replica_set.ready_replicas >= pd_spec.replicas // 2 + 1

    async def _enable_placement_rules(self, cluster: TidbCluster) -> None:
        pd = self.deps.pd_control(cluster)
        try:
            config = await self.deps.rpc(pd.get_replication_config(), "get replication config")
            if config.enable_placement_rules is False:
                enabled = ReplicationConfig(
                    enable_placement_rules=True,
                    location_labels=config.location_labels,
                    max_replicas=config.max_replicas,
                )
                await self.deps.rpc(
                    pd.update_replication_config(enabled), "enable placement rules"
                )
                logger.info(f"Enabled placement rules for {cluster.namespace}/{cluster.name}")
        except ReconcileError as e:
            logger.error(f"Failed to enable placement rules for {cluster.namespace}/{cluster.name}: {e}")
