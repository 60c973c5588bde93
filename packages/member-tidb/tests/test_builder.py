"""
Tests for DefaultObjectBuilder.
"""

from datetime import datetime

import pytest

from member_core.apply import CONFIG_MAP_ANNOTATION
from member_core.naming import COMPONENT_LABEL, INSTANCE_LABEL
from member_core.types import (
    ClusterSpec,
    ComponentSpec,
    FailureRecord,
    MemberType,
    StorageClaim,
    TidbCluster,
    UpdateStrategy,
)
from member_protocols import ConfigMap
from member_tidb.builder import CONFIG_MOUNT_PATH, PORTS, DefaultObjectBuilder

TIKV = MemberType.TIKV
TIDB = MemberType.TIDB


@pytest.fixture
def cluster():
    return TidbCluster(
        name="basic",
        namespace="db",
        spec=ClusterSpec(
            components={
                TIKV: ComponentSpec(
                    replicas=3,
                    image="pingcap/tikv:v7.5.0",
                    storage_claims=[StorageClaim("tikv", "100Gi", "local-ssd")],
                    labels={"team": "storage"},
                ),
                TIDB: ComponentSpec(
                    replicas=2,
                    image="pingcap/tidb:v7.5.0",
                    config={"config-file": "[log]\nlevel = 'info'"},
                    update_strategy=UpdateStrategy.ON_DELETE,
                ),
            }
        ),
    )


class TestReplicaSet:
    def test_store_component(self, cluster):
        rs = DefaultObjectBuilder().build_replica_set(cluster, TIKV, None)

        assert rs.name == "basic-tikv"
        assert rs.namespace == "db"
        assert rs.replicas == 3
        assert rs.partition == 3
        assert rs.service_name == "basic-tikv-peer"
        assert rs.labels[INSTANCE_LABEL] == "basic"
        assert rs.labels[COMPONENT_LABEL] == "tikv"

        container = rs.template["spec"]["containers"][0]
        assert container["image"] == "pingcap/tikv:v7.5.0"
        assert container["ports"][0] == {"name": "server", "containerPort": 20160}
        assert rs.template["metadata"]["labels"]["team"] == "storage"

        (claim,) = rs.volume_claim_templates
        assert claim["metadata"]["name"] == "tikv"
        assert claim["spec"]["resources"]["requests"]["storage"] == "100Gi"
        assert claim["spec"]["storageClassName"] == "local-ssd"

    def test_failure_records_add_replicas(self, cluster):
        cluster.component_status(TIKV).failure_members[1] = FailureRecord(
            pod_name="basic-tikv-1", ordinal=1, reason="store down", detected_at=datetime(2026, 1, 1)
        )

        rs = DefaultObjectBuilder().build_replica_set(cluster, TIKV, None)

        assert rs.replicas == 4

    def test_config_map_is_mounted(self, cluster):
        config_map = ConfigMap(name="basic-tidb-0a1b2c3d", namespace="db")

        rs = DefaultObjectBuilder().build_replica_set(cluster, TIDB, config_map)

        assert rs.annotations[CONFIG_MAP_ANNOTATION] == "basic-tidb-0a1b2c3d"
        assert rs.template["spec"]["volumes"] == [
            {"name": "config", "configMap": {"name": "basic-tidb-0a1b2c3d"}}
        ]
        mounts = rs.template["spec"]["containers"][0]["volumeMounts"]
        assert {"name": "config", "mountPath": CONFIG_MOUNT_PATH} in mounts

    def test_on_delete_has_no_partition(self, cluster):
        rs = DefaultObjectBuilder().build_replica_set(cluster, TIDB, None)

        assert rs.update_strategy == "OnDelete"
        assert rs.partition is None


class TestServiceAndConfig:
    def test_headless_peer_service(self, cluster):
        svc = DefaultObjectBuilder().build_service(cluster, TIDB)

        assert svc.name == "basic-tidb-peer"
        assert svc.spec["clusterIP"] == "None"
        assert svc.spec["publishNotReadyAddresses"] is True
        assert [p["port"] for p in svc.spec["ports"]] == list(PORTS[TIDB].values())

    def test_config_map_only_with_config(self, cluster):
        builder = DefaultObjectBuilder()

        assert builder.build_config_map(cluster, TIKV) is None
        cm = builder.build_config_map(cluster, TIDB)
        assert cm.name == "basic-tidb"
        assert cm.data == {"config-file": "[log]\nlevel = 'info'"}
