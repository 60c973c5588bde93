"""
Capability sets of the TiDB cluster components.

Each component type gets its scaler, failover controller and upgrader
composed here. Upgrades wait on the components they depend on: nothing
rolls while the coordinator (pd) is upgrading, and components that read
from tikv also wait for it.
"""

from member_core.component import ComponentVariant, ObjectBuilderProtocol
from member_core.deps import Dependencies
from member_core.failover import NoopFailover, PodFailover, StoreFailover
from member_core.scaler import CaptureScaler, CoordinatorScaler, Scaler, StoreScaler
from member_core.types import MemberType
from member_core.upgrader import CaptureUpgrader, CoordinatorUpgrader, StoreUpgrader, Upgrader
from member_tidb.builder import PORTS, DefaultObjectBuilder

PD, TIKV, TIFLASH, TIDB, TICDC, PUMP = (
    MemberType.PD,
    MemberType.TIKV,
    MemberType.TIFLASH,
    MemberType.TIDB,
    MemberType.TICDC,
    MemberType.PUMP,
)


def build_variants(
    deps: Dependencies, builder: ObjectBuilderProtocol | None = None
) -> dict[MemberType, ComponentVariant]:
    """
    Compose the capability set of every component type.

    Args:
        deps: Dependency bundle shared by all capabilities.
        builder: Object builder; DefaultObjectBuilder when omitted.

    Returns:
        Variants keyed by component type.
    """
    builder = builder or DefaultObjectBuilder()
    return {
        PD: ComponentVariant(
            member_type=PD,
            scaler=CoordinatorScaler(deps, PD),
            failover=PodFailover(deps, PD),
            upgrader=CoordinatorUpgrader(deps, PD),
            builder=builder,
            container_name=PD.value,
            ports=PORTS[PD],
        ),
        TIKV: ComponentVariant(
            member_type=TIKV,
            scaler=StoreScaler(deps, TIKV),
            failover=StoreFailover(deps, TIKV),
            upgrader=StoreUpgrader(deps, TIKV, wait_for=(PD,)),
            builder=builder,
            has_stores=True,
            store_engine=None,
            container_name=TIKV.value,
            ports=PORTS[TIKV],
        ),
        TIFLASH: ComponentVariant(
            member_type=TIFLASH,
            scaler=StoreScaler(deps, TIFLASH),
            failover=StoreFailover(deps, TIFLASH),
            upgrader=StoreUpgrader(deps, TIFLASH, wait_for=(PD, TIKV)),
            builder=builder,
            has_stores=True,
            store_engine="tiflash",
            needs_placement_rules=True,
            container_name=TIFLASH.value,
            ports=PORTS[TIFLASH],
        ),
        TIDB: ComponentVariant(
            member_type=TIDB,
            scaler=Scaler(deps, TIDB),
            failover=PodFailover(deps, TIDB),
            upgrader=Upgrader(deps, TIDB, wait_for=(PD, TIKV)),
            builder=builder,
            container_name=TIDB.value,
            ports=PORTS[TIDB],
        ),
        TICDC: ComponentVariant(
            member_type=TICDC,
            scaler=CaptureScaler(deps, TICDC),
            failover=NoopFailover(),
            upgrader=CaptureUpgrader(deps, TICDC, wait_for=(PD, TIKV)),
            builder=builder,
            container_name=TICDC.value,
            ports=PORTS[TICDC],
        ),
        PUMP: ComponentVariant(
            member_type=PUMP,
            scaler=Scaler(deps, PUMP),
            failover=NoopFailover(),
            upgrader=Upgrader(deps, PUMP, wait_for=(PD,)),
            builder=builder,
            container_name=PUMP.value,
            ports=PORTS[PUMP],
        ),
    }
