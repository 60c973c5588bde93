"""
Tests for ClusterController: ordering, status persistence and error combination.
"""

import copy
from unittest.mock import AsyncMock

import pytest

from fakes import make_cluster
from member_core.controller import RECONCILE_ORDER, ClusterController
from member_core.errors import (
    CombinedError,
    ErrorKind,
    RequeueError,
    TransientInfraError,
)
from member_core.types import ComponentSpec, MemberType, Phase


class MockStore:
    """In-memory ClusterStoreProtocol."""

    def __init__(self, clusters=None):
        self.clusters = {(c.namespace, c.name): c for c in clusters or []}
        self.status_updates = 0
        self.fail_update: Exception | None = None

    async def list_clusters(self, namespace):
        return [k for k in self.clusters if not namespace or k[0] == namespace]

    async def get_cluster(self, namespace, name):
        cluster = self.clusters.get((namespace, name))
        return copy.deepcopy(cluster)

    async def update_status(self, cluster):
        if self.fail_update is not None:
            raise self.fail_update
        self.status_updates += 1
        self.clusters[(cluster.namespace, cluster.name)] = copy.deepcopy(cluster)


class RecordingReconciler:
    def __init__(self, member_type, calls, error=None, mutate=False):
        self.member_type = member_type
        self.calls = calls
        self.error = error
        self.mutate = mutate

    async def sync(self, cluster):
        self.calls.append(self.member_type)
        if self.mutate:
            cluster.component_status(self.member_type).phase = Phase.SCALE
        if self.error is not None:
            raise self.error


@pytest.fixture
def cluster():
    return make_cluster(
        pd=ComponentSpec(replicas=3),
        tikv=ComponentSpec(replicas=3),
        tidb=ComponentSpec(replicas=2),
    )


class TestClusterController:
    @pytest.mark.asyncio
    async def test_runs_components_in_dependency_order(self, cluster):
        calls = []
        reconcilers = {mt: RecordingReconciler(mt, calls) for mt in reversed(RECONCILE_ORDER)}
        controller = ClusterController(MockStore([cluster]), reconcilers)

        await controller.sync("db", "basic")

        assert calls == list(RECONCILE_ORDER)
        assert calls[0] == MemberType.PD

    @pytest.mark.asyncio
    async def test_status_written_only_when_changed(self, cluster):
        store = MockStore([cluster])
        calls = []
        controller = ClusterController(store, {MemberType.PD: RecordingReconciler(MemberType.PD, calls)})

        await controller.sync("db", "basic")
        assert store.status_updates == 0

        controller.reconcilers[MemberType.PD].mutate = True
        await controller.sync("db", "basic")
        assert store.status_updates == 1

    @pytest.mark.asyncio
    async def test_first_error_stops_tick_but_status_is_kept(self, cluster):
        store = MockStore([cluster])
        calls = []
        reconcilers = {
            MemberType.PD: RecordingReconciler(MemberType.PD, calls, mutate=True),
            MemberType.TIKV: RecordingReconciler(
                MemberType.TIKV, calls, error=RequeueError("store going offline")
            ),
            MemberType.TIDB: RecordingReconciler(MemberType.TIDB, calls),
        }

        with pytest.raises(RequeueError):
            await ClusterController(store, reconcilers).sync("db", "basic")

        assert calls == [MemberType.PD, MemberType.TIKV]
        assert store.status_updates == 1

    @pytest.mark.asyncio
    async def test_errors_are_combined(self, cluster):
        store = MockStore([cluster])
        store.fail_update = TransientInfraError("status write failed")
        reconcilers = {
            MemberType.PD: RecordingReconciler(
                MemberType.PD, [], error=RequeueError("later", retry_after=5.0), mutate=True
            ),
        }

        with pytest.raises(CombinedError) as exc_info:
            await ClusterController(store, reconcilers).sync("db", "basic")

        assert exc_info.value.kind == ErrorKind.TRANSIENT
        assert exc_info.value.retry_after == 5.0
        assert len(exc_info.value.errors) == 2

    @pytest.mark.asyncio
    async def test_missing_cluster_is_no_op(self):
        reconciler = AsyncMock()
        controller = ClusterController(MockStore(), {MemberType.PD: reconciler})

        await controller.sync("db", "gone")

        reconciler.sync.assert_not_called()
