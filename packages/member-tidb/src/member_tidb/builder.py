"""
Desired object construction for TiDB cluster components.

Builds the replica set (StatefulSet), headless peer service and config map
of one component from its ComponentSpec. The pod template is deliberately
minimal: the reconciler treats it as opaque and only compares it.
"""

from typing import Any

from member_core.apply import CONFIG_MAP_ANNOTATION
from member_core.naming import component_labels, member_name, peer_member_name
from member_core.types import MemberType, TidbCluster, UpdateStrategy
from member_protocols import ConfigMap, ReplicaSet, Service

# Container ports per component; the first one is the component's main port.
PORTS: dict[MemberType, dict[str, int]] = {
    MemberType.PD: {"client": 2379, "peer": 2380},
    MemberType.TIKV: {"server": 20160, "status": 20180},
    MemberType.TIFLASH: {"flash": 3930, "proxy": 20170, "metrics": 8234},
    MemberType.TIDB: {"mysql-client": 4000, "status": 10080},
    MemberType.TICDC: {"ticdc": 8301},
    MemberType.PUMP: {"pump": 8250},
}

CONFIG_VOLUME = "config"
CONFIG_MOUNT_PATH = "/etc/config"


class DefaultObjectBuilder:
    """
    Implements ObjectBuilderProtocol for every component type.

    Example:
        builder = DefaultObjectBuilder()
        desired = builder.build_replica_set(cluster, MemberType.TIKV, None)
        desired.replicas  # spec replicas + failure records
    """

    def build_replica_set(
        self, cluster: TidbCluster, member_type: MemberType, config_map: ConfigMap | None
    ) -> ReplicaSet:
        spec = cluster.component_spec(member_type)
        name = member_name(cluster.name, member_type)
        labels = component_labels(cluster, member_type)
        replicas = cluster.desired_replicas(member_type)

        container: dict[str, Any] = {
            "name": member_type.value,
            "image": spec.image,
            "ports": [
                {"name": port_name, "containerPort": port}
                for port_name, port in PORTS[member_type].items()
            ],
            "volumeMounts": [
                {"name": claim.name, "mountPath": f"/var/lib/{claim.name}"}
                for claim in spec.storage_claims
            ],
        }
        volumes = []
        annotations = {}
        if config_map is not None:
            container["volumeMounts"].append({"name": CONFIG_VOLUME, "mountPath": CONFIG_MOUNT_PATH})
            volumes.append({"name": CONFIG_VOLUME, "configMap": {"name": config_map.name}})
            annotations[CONFIG_MAP_ANNOTATION] = config_map.name

        template = {
            "metadata": {
                "labels": {**spec.labels, **labels},
                "annotations": dict(spec.annotations),
            },
            "spec": {
                "containers": [container],
                "volumes": volumes,
            },
        }

        rolling = spec.update_strategy == UpdateStrategy.ROLLING_UPDATE
        return ReplicaSet(
            name=name,
            namespace=cluster.namespace,
            replicas=replicas,
            template=template,
            labels=labels,
            annotations=annotations,
            update_strategy=spec.update_strategy.value,
            partition=replicas if rolling else None,
            volume_claim_templates=[
                {
                    "metadata": {"name": claim.name, "labels": dict(labels)},
                    "spec": {
                        "accessModes": ["ReadWriteOnce"],
                        "resources": {"requests": {"storage": claim.size}},
                        **({"storageClassName": claim.storage_class} if claim.storage_class else {}),
                    },
                }
                for claim in spec.storage_claims
            ],
            service_name=peer_member_name(cluster.name, member_type),
        )

    def build_service(self, cluster: TidbCluster, member_type: MemberType) -> Service:
        labels = component_labels(cluster, member_type)
        return Service(
            name=peer_member_name(cluster.name, member_type),
            namespace=cluster.namespace,
            labels=labels,
            spec={
                "clusterIP": "None",
                "publishNotReadyAddresses": True,
                "selector": labels,
                "ports": [
                    {"name": port_name, "port": port, "targetPort": port, "protocol": "TCP"}
                    for port_name, port in PORTS[member_type].items()
                ],
            },
        )

    def build_config_map(self, cluster: TidbCluster, member_type: MemberType) -> ConfigMap | None:
        spec = cluster.component_spec(member_type)
        if not spec.config:
            return None
        return ConfigMap(
            name=member_name(cluster.name, member_type),
            namespace=cluster.namespace,
            labels=component_labels(cluster, member_type),
            data=dict(spec.config),
        )
