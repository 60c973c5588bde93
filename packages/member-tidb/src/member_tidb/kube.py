"""
Kubernetes adapter.

KubeObjects implements the read snapshot and object control protocols on
the official `kubernetes` client (StatefulSets, Pods, PersistentVolumeClaims,
Services, ConfigMaps, Nodes). KubeClusterStore reads TidbCluster custom
resources and writes their status sub-resource.

The kubernetes client is synchronous; every call runs in a worker thread
via asyncio.to_thread so the event loop is never blocked.

Error mapping:
- 404 on reads returns None; on writes raises ObjectNotFoundError
- 409 raises ObjectConflictError
- anything else raises TransientInfraError
"""

import asyncio
import logging
from collections.abc import Callable
from datetime import datetime
from typing import Any, TypeVar

from kubernetes import client
from kubernetes.client import ApiException
from pydantic import TypeAdapter, ValidationError

from member_core.errors import TransientInfraError
from member_core.types import ClusterStatus, TidbCluster
from member_protocols import (
    ConfigMap,
    ObjectConflictError,
    ObjectNotFoundError,
    Pod,
    ReplicaSet,
    ReplicaSetStatus,
    Service,
    VolumeClaim,
)
from member_tidb.types import TidbClusterResource

logger = logging.getLogger(__name__)

T = TypeVar("T")

GROUP = "pingcap.com"
VERSION = "v1alpha1"
PLURAL = "tidbclusters"

_STATUS = TypeAdapter(ClusterStatus)


def _selector(labels: dict[str, str]) -> str:
    return ",".join(f"{key}={value}" for key, value in sorted(labels.items()))


async def _call(fn: Callable[..., T], kind: str, name: str, *args: Any, **kwargs: Any) -> T:
    try:
        return await asyncio.to_thread(fn, *args, **kwargs)
    except ApiException as e:
        if e.status == 404:
            raise ObjectNotFoundError(kind, name) from e
        if e.status == 409:
            raise ObjectConflictError(kind, name) from e
        raise TransientInfraError(f"{kind} {name}: {e.status} {e.reason}") from e


async def _get(fn: Callable[..., T], kind: str, name: str, *args: Any, **kwargs: Any) -> T | None:
    try:
        return await _call(fn, kind, name, *args, **kwargs)
    except ObjectNotFoundError:
        return None


class KubeObjects:
    """
    Orchestration objects backed by the Kubernetes API.

    Implements ClusterSnapshotProtocol and ObjectControlProtocol.

    Example:
        objects = KubeObjects(core=client.CoreV1Api(), apps=client.AppsV1Api())
        replica_set = await objects.get_replica_set("db", "basic-tikv")
    """

    def __init__(self, core: client.CoreV1Api, apps: client.AppsV1Api) -> None:
        self.core = core
        self.apps = apps

    def _sanitize(self, obj: Any) -> Any:
        return self.core.api_client.sanitize_for_serialization(obj)

    # -------------------------------------------------------------------------
    # Replica sets (StatefulSets)
    # -------------------------------------------------------------------------

    async def get_replica_set(self, namespace: str, name: str) -> ReplicaSet | None:
        sts = await _get(self.apps.read_namespaced_stateful_set, "statefulset", name, name, namespace)
        if sts is None:
            return None
        return self._replica_set_from(sts)

    async def create_replica_set(self, replica_set: ReplicaSet) -> ReplicaSet:
        sts = await _call(
            self.apps.create_namespaced_stateful_set,
            "statefulset",
            replica_set.name,
            replica_set.namespace,
            _replica_set_body(replica_set),
        )
        return self._replica_set_from(sts)

    async def update_replica_set(self, replica_set: ReplicaSet) -> ReplicaSet:
        sts = await _call(
            self.apps.replace_namespaced_stateful_set,
            "statefulset",
            replica_set.name,
            replica_set.name,
            replica_set.namespace,
            _replica_set_body(replica_set),
        )
        return self._replica_set_from(sts)

    def _replica_set_from(self, sts: client.V1StatefulSet) -> ReplicaSet:
        spec = sts.spec
        strategy = spec.update_strategy
        partition = None
        if strategy is not None and strategy.rolling_update is not None:
            partition = strategy.rolling_update.partition
        status = sts.status
        return ReplicaSet(
            name=sts.metadata.name,
            namespace=sts.metadata.namespace,
            replicas=spec.replicas or 0,
            template=self._sanitize(spec.template) or {},
            labels=dict(sts.metadata.labels or {}),
            annotations=dict(sts.metadata.annotations or {}),
            update_strategy=(strategy.type if strategy is not None and strategy.type else "RollingUpdate"),
            partition=partition,
            volume_claim_templates=[self._sanitize(t) for t in spec.volume_claim_templates or []],
            service_name=spec.service_name or "",
            generation=sts.metadata.generation or 0,
            resource_version=sts.metadata.resource_version or "",
            status=ReplicaSetStatus(
                replicas=status.replicas or 0,
                ready_replicas=status.ready_replicas or 0,
                current_replicas=status.current_replicas or 0,
                updated_replicas=status.updated_replicas or 0,
                current_revision=status.current_revision or "",
                update_revision=status.update_revision or "",
                observed_generation=status.observed_generation or 0,
            )
            if status is not None
            else ReplicaSetStatus(),
        )

    # -------------------------------------------------------------------------
    # Pods
    # -------------------------------------------------------------------------

    async def get_pod(self, namespace: str, name: str) -> Pod | None:
        pod = await _get(self.core.read_namespaced_pod, "pod", name, name, namespace)
        return _pod_from(pod) if pod is not None else None

    async def list_pods(self, namespace: str, selector: dict[str, str]) -> list[Pod]:
        pods = await _call(
            self.core.list_namespaced_pod, "pod", _selector(selector), namespace,
            label_selector=_selector(selector),
        )
        return [_pod_from(p) for p in pods.items]

    async def update_pod(self, pod: Pod) -> Pod:
        body = {
            "metadata": {
                "annotations": pod.annotations,
                "resourceVersion": pod.resource_version or None,
            }
        }
        patched = await _call(
            self.core.patch_namespaced_pod, "pod", pod.name, pod.name, pod.namespace, body
        )
        return _pod_from(patched)

    # -------------------------------------------------------------------------
    # Volume claims
    # -------------------------------------------------------------------------

    async def list_volume_claims(self, namespace: str, selector: dict[str, str]) -> list[VolumeClaim]:
        claims = await _call(
            self.core.list_namespaced_persistent_volume_claim,
            "persistentvolumeclaim",
            _selector(selector),
            namespace,
            label_selector=_selector(selector),
        )
        return [_claim_from(c) for c in claims.items]

    async def update_volume_claim(self, claim: VolumeClaim) -> VolumeClaim:
        body = {
            "metadata": {
                "annotations": claim.annotations,
                "resourceVersion": claim.resource_version or None,
            }
        }
        patched = await _call(
            self.core.patch_namespaced_persistent_volume_claim,
            "persistentvolumeclaim",
            claim.name,
            claim.name,
            claim.namespace,
            body,
        )
        return _claim_from(patched)

    async def delete_volume_claim(self, namespace: str, name: str) -> None:
        await _call(
            self.core.delete_namespaced_persistent_volume_claim,
            "persistentvolumeclaim",
            name,
            name,
            namespace,
        )

    # -------------------------------------------------------------------------
    # Services, config maps, nodes
    # -------------------------------------------------------------------------

    async def get_service(self, namespace: str, name: str) -> Service | None:
        svc = await _get(self.core.read_namespaced_service, "service", name, name, namespace)
        if svc is None:
            return None
        return Service(
            name=svc.metadata.name,
            namespace=svc.metadata.namespace,
            labels=dict(svc.metadata.labels or {}),
            annotations=dict(svc.metadata.annotations or {}),
            spec=self._sanitize(svc.spec) or {},
        )

    async def create_service(self, service: Service) -> Service:
        await _call(
            self.core.create_namespaced_service,
            "service",
            service.name,
            service.namespace,
            {"apiVersion": "v1", "kind": "Service", "metadata": _metadata(service), "spec": service.spec},
        )
        return service

    async def update_service(self, service: Service) -> Service:
        await _call(
            self.core.patch_namespaced_service,
            "service",
            service.name,
            service.name,
            service.namespace,
            {"metadata": _metadata(service), "spec": service.spec},
        )
        return service

    async def get_config_map(self, namespace: str, name: str) -> ConfigMap | None:
        cm = await _get(self.core.read_namespaced_config_map, "configmap", name, name, namespace)
        if cm is None:
            return None
        return ConfigMap(
            name=cm.metadata.name,
            namespace=cm.metadata.namespace,
            labels=dict(cm.metadata.labels or {}),
            data=dict(cm.data or {}),
        )

    async def create_or_update_config_map(self, config_map: ConfigMap) -> ConfigMap:
        body = {
            "apiVersion": "v1",
            "kind": "ConfigMap",
            "metadata": {
                "name": config_map.name,
                "namespace": config_map.namespace,
                "labels": config_map.labels,
            },
            "data": config_map.data,
        }
        try:
            await _call(
                self.core.replace_namespaced_config_map,
                "configmap",
                config_map.name,
                config_map.name,
                config_map.namespace,
                body,
            )
        except ObjectNotFoundError:
            await _call(
                self.core.create_namespaced_config_map,
                "configmap",
                config_map.name,
                config_map.namespace,
                body,
            )
        return config_map

    async def get_node_labels(self, node_name: str) -> dict[str, str] | None:
        try:
            node = await asyncio.to_thread(self.core.read_node, node_name)
        except ApiException as e:
            if e.status in (403, 404):
                logger.debug(f"Cannot read node {node_name}: {e.status}")
                return None
            raise TransientInfraError(f"node {node_name}: {e.status} {e.reason}") from e
        return dict(node.metadata.labels or {})


class KubeClusterStore:
    """
    TidbCluster custom resources.

    Implements ClusterStoreProtocol. Status is stored as the JSON form of
    ClusterStatus; an unreadable status starts over empty.
    """

    def __init__(self, custom: client.CustomObjectsApi) -> None:
        self.custom = custom

    async def list_clusters(self, namespace: str) -> list[tuple[str, str]]:
        if namespace:
            result = await _call(
                self.custom.list_namespaced_custom_object,
                "tidbcluster", namespace, GROUP, VERSION, namespace, PLURAL,
            )
        else:
            result = await _call(
                self.custom.list_cluster_custom_object,
                "tidbcluster", "*", GROUP, VERSION, PLURAL,
            )
        return [
            (item["metadata"]["namespace"], item["metadata"]["name"])
            for item in result.get("items", [])
        ]

    async def get_cluster(self, namespace: str, name: str) -> TidbCluster | None:
        raw = await _get(
            self.custom.get_namespaced_custom_object,
            "tidbcluster", name, GROUP, VERSION, namespace, PLURAL, name,
        )
        if raw is None:
            return None
        resource = TidbClusterResource.model_validate(raw)
        cluster = resource.to_cluster()
        try:
            cluster.status = _STATUS.validate_python(resource.status or {})
        except ValidationError as e:
            logger.warning(f"Ignoring unreadable status of {namespace}/{name}: {e}")
        return cluster

    async def update_status(self, cluster: TidbCluster) -> None:
        raw = await _call(
            self.custom.get_namespaced_custom_object,
            "tidbcluster", cluster.name, GROUP, VERSION, cluster.namespace, PLURAL, cluster.name,
        )
        raw["status"] = _STATUS.dump_python(cluster.status, mode="json")
        await _call(
            self.custom.replace_namespaced_custom_object_status,
            "tidbcluster", cluster.name,
            GROUP, VERSION, cluster.namespace, PLURAL, cluster.name, raw,
        )
        logger.debug(f"Updated status of {cluster.namespace}/{cluster.name}")


def _metadata(obj: Service) -> dict[str, Any]:
    return {
        "name": obj.name,
        "namespace": obj.namespace,
        "labels": obj.labels,
        "annotations": obj.annotations,
    }


def _replica_set_body(replica_set: ReplicaSet) -> dict[str, Any]:
    strategy: dict[str, Any] = {"type": replica_set.update_strategy}
    if replica_set.update_strategy == "RollingUpdate" and replica_set.partition is not None:
        strategy["rollingUpdate"] = {"partition": replica_set.partition}
    metadata: dict[str, Any] = {
        "name": replica_set.name,
        "namespace": replica_set.namespace,
        "labels": replica_set.labels,
        "annotations": replica_set.annotations,
    }
    if replica_set.resource_version:
        metadata["resourceVersion"] = replica_set.resource_version
    return {
        "apiVersion": "apps/v1",
        "kind": "StatefulSet",
        "metadata": metadata,
        "spec": {
            "replicas": replica_set.replicas,
            "selector": {"matchLabels": replica_set.labels},
            "serviceName": replica_set.service_name,
            "podManagementPolicy": "Parallel",
            "template": replica_set.template,
            "updateStrategy": strategy,
            "volumeClaimTemplates": replica_set.volume_claim_templates,
        },
    }


def _ready_condition(pod: client.V1Pod) -> tuple[bool, datetime | None]:
    for condition in (pod.status.conditions or []) if pod.status else []:
        if condition.type == "Ready":
            return condition.status == "True", condition.last_transition_time
    return False, None


def _pod_from(pod: client.V1Pod) -> Pod:
    ready, transition = _ready_condition(pod)
    return Pod(
        name=pod.metadata.name,
        namespace=pod.metadata.namespace,
        labels=dict(pod.metadata.labels or {}),
        annotations=dict(pod.metadata.annotations or {}),
        ready=ready,
        node_name=(pod.spec.node_name or "") if pod.spec else "",
        created_at=pod.metadata.creation_timestamp,
        ready_transition_time=transition,
        resource_version=pod.metadata.resource_version or "",
    )


def _claim_from(claim: client.V1PersistentVolumeClaim) -> VolumeClaim:
    return VolumeClaim(
        name=claim.metadata.name,
        namespace=claim.metadata.namespace,
        labels=dict(claim.metadata.labels or {}),
        annotations=dict(claim.metadata.annotations or {}),
        resource_version=claim.metadata.resource_version or "",
    )
