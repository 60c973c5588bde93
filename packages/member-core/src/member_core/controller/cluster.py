"""
ClusterController: reconciles every component of one cluster.
"""

import copy
import logging

from member_core.component import ClusterStoreProtocol
from member_core.errors import combine_errors
from member_core.reconciler import MemberReconciler
from member_core.types import MemberType, TidbCluster

logger = logging.getLogger(__name__)

# Coordinator first: the other components wait for it to be available.
RECONCILE_ORDER = (
    MemberType.PD,
    MemberType.TIKV,
    MemberType.TIFLASH,
    MemberType.TIDB,
    MemberType.TICDC,
    MemberType.PUMP,
)


class ClusterController:
    """
    Runs component reconcilers in dependency order and persists status.

    The first failing component stops the tick. Status is written back
    whenever it changed, even if the tick failed, so progress such as
    failure records or store state is never lost. All errors of a tick
    are raised as one combined error.

    Example:
        controller = ClusterController(store, reconcilers)
        await controller.sync("db", "basic")
    """

    def __init__(
        self,
        store: ClusterStoreProtocol,
        reconcilers: dict[MemberType, MemberReconciler],
    ) -> None:
        self.store = store
        self.reconcilers = reconcilers

    async def sync(self, namespace: str, name: str) -> None:
        cluster = await self.store.get_cluster(namespace, name)
        if cluster is None:
            logger.debug(f"Cluster {namespace}/{name} no longer exists")
            return
        await self.sync_cluster(cluster)

    async def sync_cluster(self, cluster: TidbCluster) -> None:
        before = copy.deepcopy(cluster.status)
        errors: list[Exception] = []

        try:
            for member_type in RECONCILE_ORDER:
                reconciler = self.reconcilers.get(member_type)
                if reconciler is not None:
                    await reconciler.sync(cluster)
        except Exception as e:
            errors.append(e)

        if cluster.status != before:
            try:
                await self.store.update_status(cluster)
            except Exception as e:
                errors.append(e)

        error = combine_errors(errors)
        if error is None:
            return
        if error is errors[0]:
            raise error
        raise error from errors[0]
