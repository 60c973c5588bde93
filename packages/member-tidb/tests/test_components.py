"""
Tests for component capability sets and runtime wiring helpers.
"""

from unittest.mock import MagicMock

import pytest

from member_core.component import (
    FailoverProtocol,
    ObjectBuilderProtocol,
    ScalerProtocol,
    UpgraderProtocol,
)
from member_core.config import ReconcilerSettings
from member_core.deps import Dependencies
from member_core.failover import NoopFailover, PodFailover, StoreFailover
from member_core.scaler import CaptureScaler, CoordinatorScaler, StoreScaler
from member_core.types import ClusterSpec, MemberType, TidbCluster
from member_core.upgrader import CaptureUpgrader, CoordinatorUpgrader, StoreUpgrader
from member_tidb.components import build_variants
from member_tidb.factory import HTTPClients, pd_endpoint


@pytest.fixture
def deps():
    return Dependencies(
        settings=ReconcilerSettings(),
        snapshot=MagicMock(),
        control=MagicMock(),
        pd_control=MagicMock(),
        cdc_control=MagicMock(),
    )


class TestVariants:
    def test_every_component_type_has_a_variant(self, deps):
        variants = build_variants(deps)

        assert set(variants) == set(MemberType)
        for member_type, variant in variants.items():
            assert variant.member_type == member_type
            assert variant.container_name == member_type.value
            assert isinstance(variant.scaler, ScalerProtocol)
            assert isinstance(variant.failover, FailoverProtocol)
            assert isinstance(variant.upgrader, UpgraderProtocol)
            assert isinstance(variant.builder, ObjectBuilderProtocol)

    def test_capabilities(self, deps):
        variants = build_variants(deps)

        pd = variants[MemberType.PD]
        assert isinstance(pd.scaler, CoordinatorScaler)
        assert isinstance(pd.upgrader, CoordinatorUpgrader)
        assert isinstance(pd.failover, PodFailover)

        for member_type in (MemberType.TIKV, MemberType.TIFLASH):
            variant = variants[member_type]
            assert variant.has_stores
            assert isinstance(variant.scaler, StoreScaler)
            assert isinstance(variant.failover, StoreFailover)
            assert isinstance(variant.upgrader, StoreUpgrader)

        ticdc = variants[MemberType.TICDC]
        assert isinstance(ticdc.scaler, CaptureScaler)
        assert isinstance(ticdc.upgrader, CaptureUpgrader)
        assert isinstance(ticdc.failover, NoopFailover)

    def test_columnar_store_needs_placement_rules(self, deps):
        variants = build_variants(deps)

        assert variants[MemberType.TIFLASH].store_engine == "tiflash"
        assert variants[MemberType.TIFLASH].needs_placement_rules
        assert variants[MemberType.TIKV].store_engine is None
        assert not variants[MemberType.TIKV].needs_placement_rules

    def test_upgrades_wait_for_coordinator(self, deps):
        variants = build_variants(deps)

        assert variants[MemberType.PD].upgrader.wait_for == ()
        for member_type in (MemberType.TIKV, MemberType.TIDB, MemberType.TICDC):
            assert MemberType.PD in variants[member_type].upgrader.wait_for


class TestEndpoints:
    def test_pd_endpoint_from_service(self):
        cluster = TidbCluster(name="basic", namespace="db")
        assert pd_endpoint(cluster) == "http://basic-pd.db.svc:2379"

        cluster.spec.cluster_domain = "cluster.local"
        assert pd_endpoint(cluster) == "http://basic-pd.db.svc.cluster.local:2379"

    def test_explicit_pd_address(self):
        cluster = TidbCluster(
            name="basic", namespace="db", spec=ClusterSpec(pd_address="http://pd.external:2379")
        )
        assert pd_endpoint(cluster) == "http://pd.external:2379"

    @pytest.mark.asyncio
    async def test_pd_clients_cached_per_endpoint(self):
        clients = HTTPClients(timeout=2.0)
        a = TidbCluster(name="a", namespace="db")
        b = TidbCluster(name="b", namespace="db")

        assert clients.pd(a).http is clients.pd(a).http
        assert clients.pd(a).http is not clients.pd(b).http
        assert clients.cdc(a).http is clients.cdc(b).http
        assert clients.cdc(b).cluster is b

        await clients.aclose()
        assert clients._pd == {}
        assert clients._cdc is None
