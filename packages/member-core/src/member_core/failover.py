"""
Failover: replacing failed members and recovering from replacements.

A member that stays unhealthy longer than the failover period is recorded
in status.failure_members. Each record raises the desired replica count by
one, so the scaler creates a replacement replica. Records are cleared by:

- remove_undesired_failures(): the ordinal is no longer desired, or the
  member healed before its replacement was created
- recover(): an explicit recovery intent (recover_failover flag or a
  recover_by_uid token matching the failover UID) AND the quorum policy
  holding; the scaler then removes the replacement replicas

Per-ordinal states:

    Healthy -> Suspect -> Failed -> Recovering -> Healthy | Removed
"""

import logging
import uuid
from datetime import datetime
from enum import Enum

from member_core.deps import Dependencies
from member_core.naming import ordinal_from_name, pod_name
from member_core.types import FailureRecord, MemberType, StoreRecord, StoreState, TidbCluster

logger = logging.getLogger(__name__)


class FailoverState(str, Enum):
    HEALTHY = "Healthy"
    SUSPECT = "Suspect"
    FAILED = "Failed"
    RECOVERING = "Recovering"
    REMOVED = "Removed"


class BaseFailover:
    """
    Shared record bookkeeping; subclasses decide what "healthy" means.

    Subclasses implement _unhealthy_since() and _is_healthy().
    """

    def __init__(self, deps: Dependencies, member_type: MemberType) -> None:
        self.deps = deps
        self.member_type = member_type

    async def _unhealthy_since(self, cluster: TidbCluster, ordinal: int) -> tuple[datetime, str] | None:
        """Return (since, reason) for an unhealthy member, None when healthy."""
        raise NotImplementedError

    async def _is_healthy(self, cluster: TidbCluster, ordinal: int) -> bool:
        raise NotImplementedError

    async def failover(self, cluster: TidbCluster) -> None:
        spec = cluster.component_spec(self.member_type)
        if spec is None or spec.max_failover_count is None:
            return
        status = cluster.component_status(self.member_type)
        now = self.deps.clock()

        for ordinal in sorted(cluster.desired_ordinals(self.member_type, exclude_failover=True)):
            if ordinal in status.failure_members:
                continue
            unhealthy = await self._unhealthy_since(cluster, ordinal)
            if unhealthy is None:
                continue
            since, reason = unhealthy
            if now - since < spec.failover_period:
                logger.debug(f"{pod_name(cluster.name, self.member_type, ordinal)} is suspect: {reason}")
                continue
            if len(status.failure_members) >= spec.max_failover_count:
                logger.warning(
                    f"{cluster.namespace}/{cluster.name} {self.member_type.value} reached "
                    f"max failover count {spec.max_failover_count}, not recording "
                    f"{pod_name(cluster.name, self.member_type, ordinal)}"
                )
                break
            if not status.failover_uid:
                status.failover_uid = str(uuid.uuid4())
            record = FailureRecord(
                pod_name=pod_name(cluster.name, self.member_type, ordinal),
                ordinal=ordinal,
                reason=reason,
                detected_at=now,
                store_id=self._store_id(cluster, ordinal),
            )
            status.failure_members[ordinal] = record
            logger.info(f"Recorded failed member {record.pod_name}: {reason}")

    async def remove_undesired_failures(self, cluster: TidbCluster) -> None:
        status = cluster.component_status(self.member_type)
        if not status.failure_members:
            return
        desired = cluster.desired_ordinals(self.member_type, exclude_failover=True)
        for ordinal in list(status.failure_members):
            if ordinal not in desired:
                record = status.failure_members.pop(ordinal)
                logger.info(f"Removed failure record of {record.pod_name}: ordinal no longer desired")

        live = status.replica_set.replicas if status.replica_set is not None else 0
        for ordinal, record in list(status.failure_members.items()):
            record.recovery_eligible = await self._is_healthy(cluster, ordinal)
            if record.recovery_eligible and live < cluster.desired_replicas(self.member_type):
                del status.failure_members[ordinal]
                logger.info(
                    f"Removed failure record of {record.pod_name}: healed before "
                    f"a replacement was created"
                )
        if not status.failure_members:
            status.failover_uid = ""

    def recovery_intended(self, cluster: TidbCluster) -> bool:
        spec = cluster.component_spec(self.member_type)
        if spec is None:
            return False
        status = cluster.component_status(self.member_type)
        return spec.recover_failover or (
            bool(spec.recover_by_uid) and spec.recover_by_uid == status.failover_uid
        )

    async def quorum_met(self, cluster: TidbCluster) -> bool:
        """
        Check the configured QuorumPolicy over desired, non-replacement ordinals.
        """
        spec = cluster.component_spec(self.member_type)
        if spec is None:
            return False
        policy = self.deps.settings.quorum_policy(self.member_type)
        healthy = 0
        for ordinal in cluster.desired_ordinals(self.member_type, exclude_failover=True):
            if await self._is_healthy(cluster, ordinal):
                healthy += 1
        return healthy >= policy.threshold(spec.replicas)

    async def recover(self, cluster: TidbCluster) -> bool:
        status = cluster.component_status(self.member_type)
        if not status.failure_members:
            return False
        if not self.recovery_intended(cluster):
            return False
        if not await self.quorum_met(cluster):
            logger.info(
                f"{cluster.namespace}/{cluster.name} {self.member_type.value}: recovery "
                f"requested but quorum not met, deferring"
            )
            return False
        names = ", ".join(r.pod_name for r in status.failure_members.values())
        status.failure_members = {}
        status.failover_uid = ""
        logger.info(f"Recovered from failover of {names}")
        return True

    async def members_healthy(self, cluster: TidbCluster) -> bool:
        for ordinal in cluster.desired_ordinals(self.member_type, exclude_failover=False):
            if not await self._is_healthy(cluster, ordinal):
                return False
        return True

    async def member_state(self, cluster: TidbCluster, ordinal: int) -> FailoverState:
        status = cluster.component_status(self.member_type)
        record = status.failure_members.get(ordinal)
        if record is not None:
            return FailoverState.RECOVERING if record.recovery_eligible else FailoverState.FAILED
        if ordinal not in cluster.desired_ordinals(self.member_type, exclude_failover=False):
            return FailoverState.REMOVED
        if await self._unhealthy_since(cluster, ordinal) is not None:
            return FailoverState.SUSPECT
        return FailoverState.HEALTHY

    def _store_id(self, cluster: TidbCluster, ordinal: int) -> str:
        return ""


class StoreFailover(BaseFailover):
    """Failover driven by coordinator-reported store state."""

    def _store_of(self, cluster: TidbCluster, ordinal: int) -> StoreRecord | None:
        status = cluster.component_status(self.member_type)
        for store in status.stores.values():
            if ordinal_from_name(store.pod_name) == ordinal:
                return store
        return None

    async def _unhealthy_since(self, cluster: TidbCluster, ordinal: int) -> tuple[datetime, str] | None:
        store = self._store_of(cluster, ordinal)
        if store is None or store.state != StoreState.DOWN:
            return None
        return store.last_transition_time, f"store {store.id} is Down"

    async def _is_healthy(self, cluster: TidbCluster, ordinal: int) -> bool:
        store = self._store_of(cluster, ordinal)
        return store is not None and store.state == StoreState.UP

    async def members_healthy(self, cluster: TidbCluster) -> bool:
        return cluster.all_stores_ready(self.member_type)

    def _store_id(self, cluster: TidbCluster, ordinal: int) -> str:
        store = self._store_of(cluster, ordinal)
        return store.id if store is not None else ""


class PodFailover(BaseFailover):
    """Failover driven by pod readiness, for components without stores."""

    async def _unhealthy_since(self, cluster: TidbCluster, ordinal: int) -> tuple[datetime, str] | None:
        name = pod_name(cluster.name, self.member_type, ordinal)
        pod = await self.deps.snapshot.get_pod(cluster.namespace, name)
        if pod is None or pod.ready:
            return None
        since = pod.ready_transition_time or pod.created_at
        if since is None:
            return None
        return since, f"pod {name} is not ready"

    async def _is_healthy(self, cluster: TidbCluster, ordinal: int) -> bool:
        name = pod_name(cluster.name, self.member_type, ordinal)
        pod = await self.deps.snapshot.get_pod(cluster.namespace, name)
        return pod is not None and pod.ready


class NoopFailover:
    """Components that are never replaced by failover."""

    async def failover(self, cluster: TidbCluster) -> None:
        return None

    async def remove_undesired_failures(self, cluster: TidbCluster) -> None:
        return None

    async def recover(self, cluster: TidbCluster) -> bool:
        return False

    async def members_healthy(self, cluster: TidbCluster) -> bool:
        return True
