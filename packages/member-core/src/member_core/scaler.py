"""
Scaling with volume lifecycle management.

Replica count moves by at most one ordinal per tick. Scale-in removes the
highest ordinal, scale-out adds the next one. Volume claims of removed
replicas are not deleted right away: they are annotated with a
deferred-deletion timestamp, and only deleted once the grace window has
elapsed and the owning pod is confirmed absent, either by the periodic
sweep or when the ordinal is about to be reused by a scale-out.

Scaler variants:
- Scaler: stateless components; scale-in only defers volumes
- StoreScaler: waits for the coordinator to tombstone the store first
- CaptureScaler: runs the graceful shutdown handshake first
- CoordinatorScaler: moves leadership away and removes the member first
"""

import logging
from dataclasses import dataclass, replace
from datetime import datetime, timedelta

from member_core.deps import Dependencies
from member_core.errors import ConflictError, FatalForTickError, RequeueError
from member_core.naming import (
    DEFER_DELETING_ANNOTATION,
    POD_NAME_LABEL,
    component_labels,
    format_timestamp,
    member_name,
    ordinal_from_name,
    parse_timestamp,
    pod_name,
)
from member_core.shutdown import graceful_shutdown
from member_core.types import MemberType, Phase, StoreState, TidbCluster
from member_protocols import ObjectConflictError, ObjectNotFoundError, Pod, ReplicaSet, VolumeClaim

logger = logging.getLogger(__name__)

# A store-less replica that never became ready is removed after this many resyncs.
_UNREADY_SCALE_IN_RESYNCS = 5


@dataclass
class ScaleStep:
    """
    One scaling step derived from desired and live replicas.

    Attributes:
        direction: 1 for scale-out, -1 for scale-in, 0 when at target.
        ordinal: Ordinal added or removed; -1 when at target.
        replicas: Replica count after the step.
    """

    direction: int
    ordinal: int
    replicas: int


def scale_one(actual: ReplicaSet, desired: ReplicaSet) -> ScaleStep:
    """
    Compute the next single-ordinal step from `actual` towards `desired`.

    Example:
        scale_one(live_with_3, desired_with_5)
        # ScaleStep(direction=1, ordinal=3, replicas=4)
    """
    if desired.replicas > actual.replicas:
        return ScaleStep(1, actual.replicas, actual.replicas + 1)
    if desired.replicas < actual.replicas:
        return ScaleStep(-1, actual.replicas - 1, actual.replicas - 1)
    return ScaleStep(0, -1, actual.replicas)


class Scaler:
    """Scaler for components without stores or handshakes."""

    def __init__(self, deps: Dependencies, member_type: MemberType) -> None:
        self.deps = deps
        self.member_type = member_type

    async def scale(self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet) -> None:
        step = scale_one(old_set, new_set)
        if step.direction > 0:
            await self.scale_out(cluster, old_set, new_set)
        elif step.direction < 0:
            await self.scale_in(cluster, old_set, new_set)
        else:
            await self.sweep_deferred_volumes(cluster, old_set.replicas)

    async def scale_out(
        self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet
    ) -> None:
        """
        Add the next ordinal.

        Blocked while the component is upgrading. Leftover volumes of the
        ordinal from an earlier scale-in must be gone before it is reused.

        Raises:
            RequeueError: Upgrading, or leftover volumes are pending deletion.
        """
        step = scale_one(old_set, new_set)
        new_set.replicas = old_set.replicas
        if step.direction <= 0:
            return
        # MemberReconciler records phase Scale whenever the replica count
        # differs, so this only fires for callers that set Upgrade themselves.
        # Scale before upgrade is ordered by the reconciler, not by this check.
        if cluster.is_upgrading(self.member_type):
            raise RequeueError(
                f"{member_name(cluster.name, self.member_type)} is upgrading, "
                f"can not scale out until the upgrade completes"
            )
        await self._reclaim_volumes(cluster, step.ordinal)
        logger.info(
            f"Scaling out {member_name(cluster.name, self.member_type)}: "
            f"replicas {old_set.replicas} -> {step.replicas}"
        )
        new_set.replicas = step.replicas

    async def scale_in(
        self, cluster: TidbCluster, old_set: ReplicaSet, new_set: ReplicaSet
    ) -> None:
        """Remove the highest ordinal, deferring deletion of its volumes."""
        step = scale_one(old_set, new_set)
        new_set.replicas = old_set.replicas
        if step.direction >= 0:
            return
        name = pod_name(cluster.name, self.member_type, step.ordinal)
        pod = await self.deps.snapshot.get_pod(cluster.namespace, name)
        await self.before_scale_in(cluster, step.ordinal, pod)
        await self._finish_scale_in(cluster, step, pod)
        new_set.replicas = step.replicas

    async def before_scale_in(self, cluster: TidbCluster, ordinal: int, pod: Pod | None) -> None:
        """Hook run before the ordinal is removed; raise to wait."""

    async def _finish_scale_in(self, cluster: TidbCluster, step: ScaleStep, pod: Pod | None) -> None:
        cluster.component_status(self.member_type).phase = Phase.SCALE
        await self.defer_volume_deletion(cluster, step.ordinal)
        logger.info(
            f"Scaling in {member_name(cluster.name, self.member_type)}: "
            f"replicas {step.replicas + 1} -> {step.replicas}"
        )

    async def volumes_of(self, cluster: TidbCluster, ordinal: int) -> list[VolumeClaim]:
        """
        Volume claims belonging to one ordinal.

        Claims are matched by pod-name label, or for unlabelled claims by
        the `<template>-<replica set>-<ordinal>` naming convention.
        """
        claims = await self.deps.snapshot.list_volume_claims(
            cluster.namespace, component_labels(cluster, self.member_type)
        )
        owner = pod_name(cluster.name, self.member_type, ordinal)
        result = []
        for claim in claims:
            label = claim.labels.get(POD_NAME_LABEL)
            if label is not None:
                if label == owner:
                    result.append(claim)
            elif claim.name.endswith(f"-{owner}"):
                result.append(claim)
        return result

    async def defer_volume_deletion(self, cluster: TidbCluster, ordinal: int) -> None:
        """
        Annotate the ordinal's volume claims for deferred deletion.

        Claims already annotated keep their original timestamp. Missing
        claims are treated as clean.

        Raises:
            ConflictError: A claim changed while being annotated.
        """
        claims = await self.volumes_of(cluster, ordinal)
        if not claims:
            logger.info(
                f"No volume claims for {pod_name(cluster.name, self.member_type, ordinal)}, "
                f"nothing to defer"
            )
            return
        now = format_timestamp(self.deps.clock())
        for claim in claims:
            if DEFER_DELETING_ANNOTATION in claim.annotations:
                continue
            annotations = dict(claim.annotations)
            annotations[DEFER_DELETING_ANNOTATION] = now
            try:
                await self.deps.control.update_volume_claim(replace(claim, annotations=annotations))
            except ObjectNotFoundError:
                continue
            except ObjectConflictError as e:
                raise ConflictError(f"volume claim {claim.namespace}/{claim.name}") from e
            logger.info(f"Deferred deletion of volume claim {claim.namespace}/{claim.name}")

    async def sweep_deferred_volumes(self, cluster: TidbCluster, replicas: int) -> int:
        """
        Delete deferred claims of removed ordinals once they are due.

        Args:
            replicas: Live replica count; claims of ordinals below it are
                never swept.

        Returns:
            Number of claims deleted.
        """
        claims = await self.deps.snapshot.list_volume_claims(
            cluster.namespace, component_labels(cluster, self.member_type)
        )
        now = self.deps.clock()
        deleted = 0
        for claim in claims:
            if DEFER_DELETING_ANNOTATION not in claim.annotations:
                continue
            ordinal = _claim_ordinal(claim)
            if ordinal is None or ordinal < replicas:
                continue
            if await self._deletion_due(cluster, claim, ordinal, now):
                await self._delete_claim(claim)
                deleted += 1
        return deleted

    async def _reclaim_volumes(self, cluster: TidbCluster, ordinal: int) -> None:
        claims = await self.volumes_of(cluster, ordinal)
        if not claims:
            return
        now = self.deps.clock()
        for claim in claims:
            if DEFER_DELETING_ANNOTATION not in claim.annotations:
                # Unknown provenance: start the grace window instead of deleting.
                await self.defer_volume_deletion(cluster, ordinal)
                break
            if await self._deletion_due(cluster, claim, ordinal, now):
                await self._delete_claim(claim)
        raise RequeueError(
            f"volume claims {', '.join(c.name for c in claims)} of "
            f"{pod_name(cluster.name, self.member_type, ordinal)} are pending deletion",
            retry_after=self.deps.settings.resync_seconds,
        )

    async def _deletion_due(
        self, cluster: TidbCluster, claim: VolumeClaim, ordinal: int, now: datetime
    ) -> bool:
        value = claim.annotations[DEFER_DELETING_ANNOTATION]
        try:
            deferred_at = parse_timestamp(value)
        except ValueError:
            logger.warning(
                f"Volume claim {claim.namespace}/{claim.name} has malformed "
                f"{DEFER_DELETING_ANNOTATION}={value!r}, not deleting"
            )
            return False
        grace = timedelta(seconds=self.deps.settings.volume_deletion_grace_seconds)
        if now - deferred_at < grace:
            return False
        owner = pod_name(cluster.name, self.member_type, ordinal)
        return await self.deps.snapshot.get_pod(cluster.namespace, owner) is None

    async def _delete_claim(self, claim: VolumeClaim) -> None:
        try:
            await self.deps.control.delete_volume_claim(claim.namespace, claim.name)
        except ObjectNotFoundError:
            return
        logger.info(f"Deleted deferred volume claim {claim.namespace}/{claim.name}")


def _claim_ordinal(claim: VolumeClaim) -> int | None:
    owner = claim.labels.get(POD_NAME_LABEL, claim.name)
    return ordinal_from_name(owner)


class StoreScaler(Scaler):
    """
    Scaler for store components.

    A replica is only removed once its store is tombstoned, so its data has
    been moved to other stores. A replica whose store never registered is
    removed once it has stayed unready for several resync periods.
    """

    async def before_scale_in(self, cluster: TidbCluster, ordinal: int, pod: Pod | None) -> None:
        name = pod_name(cluster.name, self.member_type, ordinal)
        status = cluster.component_status(self.member_type)
        status.phase = Phase.SCALE

        for store in status.tombstone_stores.values():
            if store.pod_name == name:
                return

        for store in status.stores.values():
            if store.pod_name != name:
                continue
            if store.state == StoreState.OFFLINE:
                raise RequeueError(f"store {store.id} of {name} is going offline")
            pd = self.deps.pd_control(cluster)
            await self.deps.rpc(pd.delete_store(store.id), f"delete store {store.id}")
            logger.info(f"Requested deletion of store {store.id} of {name}")
            raise RequeueError(f"store {store.id} of {name} is being deleted")

        if pod is None:
            # Replica already gone and never registered a store.
            return
        if not pod.ready and pod.created_at is not None:
            deadline = pod.created_at + timedelta(
                seconds=self.deps.settings.resync_seconds * _UNREADY_SCALE_IN_RESYNCS
            )
            if self.deps.clock() > deadline:
                logger.info(f"{name} has no store and never became ready, removing it")
                return
            raise RequeueError(f"{name} has no store yet, waiting before removing it")
        raise FatalForTickError(f"{name} is ready but has no store in status")


class CaptureScaler(Scaler):
    """Scaler for capture replicas: drains the capture before removal."""

    async def before_scale_in(self, cluster: TidbCluster, ordinal: int, pod: Pod | None) -> None:
        name = pod_name(cluster.name, self.member_type, ordinal)
        if pod is None:
            raise FatalForTickError(f"pod {cluster.namespace}/{name} not found")
        spec = cluster.component_spec(self.member_type)
        await graceful_shutdown(
            self.deps, cluster, pod, spec.graceful_shutdown_timeout, action="scale in"
        )


class CoordinatorScaler(Scaler):
    """Scaler for coordinator members: hands off leadership and removes the member."""

    async def before_scale_in(self, cluster: TidbCluster, ordinal: int, pod: Pod | None) -> None:
        name = pod_name(cluster.name, self.member_type, ordinal)
        pd = self.deps.pd_control(cluster)
        leader = await self.deps.rpc(pd.get_leader_name(), "get coordinator leader")
        if leader == name and ordinal > 0:
            target = pod_name(cluster.name, self.member_type, ordinal - 1)
            await self.deps.rpc(pd.transfer_leader(target), f"transfer leader to {target}")
            raise RequeueError(f"transferring coordinator leadership from {name} to {target}")
        await self.deps.rpc(pd.delete_member(name), f"delete coordinator member {name}")
        logger.info(f"Removed coordinator member {name}")
