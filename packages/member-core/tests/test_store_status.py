"""
Tests for store membership tracking.

Verifies address-pattern attribution of stores, the three disjoint store
maps, transition-time carry-over and topology label sync.
"""

import asyncio
import json
from datetime import timedelta
from unittest.mock import AsyncMock

import pytest

from fakes import T0, make_cluster, store
from member_core.errors import TransientInfraError
from member_core.store_status import StoreStatusTracker, engine_matches
from member_core.types import ComponentSpec, MemberType
from member_protocols import StoreInfo

TIKV = MemberType.TIKV
TIFLASH = MemberType.TIFLASH


@pytest.fixture
def cluster():
    return make_cluster(
        tikv=ComponentSpec(replicas=3, image="pingcap/tikv:v7.5.0"),
        tiflash=ComponentSpec(replicas=1, image="pingcap/tiflash:v7.5.0"),
    )


class TestEngineMatches:
    def test_row_store_without_label(self):
        assert engine_matches({}, None)
        assert engine_matches({"engine": "tikv"}, None)
        assert not engine_matches({"engine": "tiflash"}, None)

    def test_named_engine(self):
        assert engine_matches({"engine": "tiflash"}, "tiflash")
        assert not engine_matches({}, "tiflash")


class TestRefresh:
    @pytest.mark.asyncio
    async def test_owned_stores_are_attributed_by_address(self, deps, pd, cluster):
        pd.stores = [store(cluster, TIKV, i) for i in range(3)]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        assert status.synced
        assert set(status.stores) == {"1", "2", "3"}
        assert status.stores["2"].pod_name == "basic-tikv-1"
        assert status.stores["2"].ip == "basic-tikv-1.basic-tikv-peer.db.svc"
        assert status.peer_stores == {}
        assert status.tombstone_stores == {}

    @pytest.mark.asyncio
    async def test_other_cluster_store_is_peer_when_engine_matches(self, deps, pd, cluster):
        pd.stores = [
            store(cluster, TIKV, 0),
            StoreInfo(id="10", address="other-tikv-0.other-tikv-peer.db.svc:20160", state="Up"),
            StoreInfo(
                id="11",
                address="other-tiflash-0.other-tiflash-peer.db.svc:3930",
                state="Up",
                labels={"engine": "tiflash"},
            ),
        ]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        assert set(status.stores) == {"1"}
        assert set(status.peer_stores) == {"10"}

    @pytest.mark.asyncio
    async def test_tiflash_uses_engine_label_for_peers(self, deps, pd, cluster):
        pd.stores = [
            store(cluster, TIKV, 0),
            StoreInfo(
                id="11",
                address="other-tiflash-0.other-tiflash-peer.db.svc:3930",
                state="Up",
                labels={"engine": "tiflash"},
            ),
        ]

        await StoreStatusTracker(deps).refresh(cluster, TIFLASH, engine="tiflash")

        status = cluster.component_status(TIFLASH)
        assert status.stores == {}
        assert set(status.peer_stores) == {"11"}

    @pytest.mark.asyncio
    async def test_tombstone_state_only_in_tombstone_map(self, deps, pd, cluster):
        """An owned store reported with state Tombstone appears only as a tombstone."""
        pd.stores = [store(cluster, TIKV, 0), store(cluster, TIKV, 2, state="Tombstone")]
        pd.tombstones = [store(cluster, TIKV, 2, state="Tombstone")]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        assert set(status.tombstone_stores) == {"3"}
        assert "3" not in status.stores
        assert "3" not in status.peer_stores

    @pytest.mark.asyncio
    async def test_foreign_tombstones_are_ignored(self, deps, pd, cluster):
        pd.tombstones = [
            StoreInfo(id="20", address="other-tikv-0.other-tikv-peer.db.svc:20160", state="Tombstone")
        ]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        assert cluster.component_status(TIKV).tombstone_stores == {}

    @pytest.mark.asyncio
    async def test_maps_are_pairwise_disjoint(self, deps, pd, cluster):
        pd.stores = [
            store(cluster, TIKV, 0),
            store(cluster, TIKV, 1, state="Down"),
            store(cluster, TIKV, 2, state="Tombstone"),
            StoreInfo(id="10", address="other-tikv-0.other-tikv-peer.db.svc:20160", state="Up"),
        ]
        pd.tombstones = [store(cluster, TIKV, 1, state="Tombstone", store_id="2")]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        owned, peers, tombs = set(status.stores), set(status.peer_stores), set(status.tombstone_stores)
        assert owned.isdisjoint(peers)
        assert owned.isdisjoint(tombs)
        assert peers.isdisjoint(tombs)
        assert tombs == {"2", "3"}

    @pytest.mark.asyncio
    async def test_stores_without_status_are_skipped(self, deps, pd, cluster):
        pd.stores = [store(cluster, TIKV, 0, has_status=False), store(cluster, TIKV, 1)]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        assert set(cluster.component_status(TIKV).stores) == {"2"}

    @pytest.mark.asyncio
    async def test_cluster_domain_is_part_of_the_pattern(self, deps, pd, cluster):
        cluster.spec.cluster_domain = "cluster.local"
        pd.stores = [
            StoreInfo(
                id="1",
                address="basic-tikv-0.basic-tikv-peer.db.svc.cluster.local:20160",
                state="Up",
            ),
            store(cluster, TIKV, 1),
        ]

        await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)

        assert set(cluster.component_status(TIKV).stores) == {"1"}

    @pytest.mark.asyncio
    async def test_transition_time_carried_over_when_state_unchanged(self, deps, pd, clock, cluster):
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)

        clock.advance(minutes=10)
        await tracker.refresh(cluster, TIKV, engine=None)
        assert cluster.component_status(TIKV).stores["1"].last_transition_time == T0

        pd.stores = [store(cluster, TIKV, 0, state="Down")]
        await tracker.refresh(cluster, TIKV, engine=None)
        assert cluster.component_status(TIKV).stores["1"].last_transition_time == T0 + timedelta(
            minutes=10
        )

    @pytest.mark.asyncio
    async def test_rpc_failure_keeps_previous_maps(self, deps, pd, cluster):
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)

        pd.fail["get_tombstone_stores"] = OSError("connection refused")
        with pytest.raises(TransientInfraError):
            await tracker.refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        assert status.synced is False
        assert set(status.stores) == {"1"}

    @pytest.mark.asyncio
    async def test_rpc_timeout_is_transient(self, deps, pd, cluster):
        async def slow():
            await asyncio.sleep(10)

        pd.get_stores = slow
        deps.settings.rpc_timeout_seconds = 0.01

        with pytest.raises(TransientInfraError, match="timed out"):
            await StoreStatusTracker(deps).refresh(cluster, TIKV, engine=None)
        assert cluster.component_status(TIKV).synced is False

    @pytest.mark.asyncio
    async def test_malformed_reply_is_transient(self, deps, pd, cluster):
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)

        pd.fail["get_stores"] = json.JSONDecodeError("Expecting value", "<html>proxy</html>", 0)
        with pytest.raises(TransientInfraError, match="malformed response"):
            await tracker.refresh(cluster, TIKV, engine=None)

        status = cluster.component_status(TIKV)
        assert status.synced is False
        assert set(status.stores) == {"1"}


class TestSyncStoreLabels:
    @pytest.mark.asyncio
    async def test_node_topology_labels_are_copied(self, deps, pd, objects, cluster):
        pd.replication.location_labels = ["zone", "host"]
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)
        objects.add_pod(cluster, TIKV, 0, node_name="node-a")
        objects.nodes["node-a"] = {
            "topology.kubernetes.io/zone": "us-east-1a",
            "kubernetes.io/hostname": "node-a",
            "unrelated": "x",
        }

        updated = await tracker.sync_store_labels(cluster, TIKV)

        assert updated == 1
        assert pd.called("set_store_labels") == [("1", {"zone": "us-east-1a", "host": "node-a"})]

    @pytest.mark.asyncio
    async def test_unchanged_labels_are_not_resent(self, deps, pd, objects, cluster):
        pd.replication.location_labels = ["zone"]
        pd.stores = [store(cluster, TIKV, 0, labels={"zone": "z1"})]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)
        objects.add_pod(cluster, TIKV, 0, node_name="node-a")
        objects.nodes["node-a"] = {"zone": "z1"}

        assert await tracker.sync_store_labels(cluster, TIKV) == 0
        assert pd.called("set_store_labels") == []

    @pytest.mark.asyncio
    async def test_skipped_without_node_access(self, deps, pd, cluster):
        deps.nodes_available = False
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)

        assert await tracker.sync_store_labels(cluster, TIKV) == 0
        assert pd.called("get_replication_config") == []

    @pytest.mark.asyncio
    async def test_failures_are_best_effort(self, deps, pd, objects, cluster):
        pd.replication.location_labels = ["zone"]
        pd.stores = [store(cluster, TIKV, 0)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)
        objects.add_pod(cluster, TIKV, 0, node_name="node-a")
        objects.nodes["node-a"] = {"zone": "z1"}
        pd.fail["set_store_labels"] = OSError("boom")

        assert await tracker.sync_store_labels(cluster, TIKV) == 0

    @pytest.mark.asyncio
    async def test_unreadable_node_skips_only_its_store(self, deps, pd, objects, cluster):
        pd.replication.location_labels = ["zone"]
        pd.stores = [store(cluster, TIKV, 0), store(cluster, TIKV, 1)]
        tracker = StoreStatusTracker(deps)
        await tracker.refresh(cluster, TIKV, engine=None)
        objects.add_pod(cluster, TIKV, 0, node_name="node-a")
        objects.add_pod(cluster, TIKV, 1, node_name="node-b")

        async def node_labels(node_name):
            if node_name == "node-a":
                raise TransientInfraError("node node-a: 500")
            return {"zone": "z2"}

        objects.get_node_labels = AsyncMock(side_effect=node_labels)

        assert await tracker.sync_store_labels(cluster, TIKV) == 1
        assert pd.called("set_store_labels") == [("2", {"zone": "z2"})]
