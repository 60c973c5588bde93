"""
Declarative apply helpers for replica sets, services and config maps.

Objects written by the reconciler carry a last-applied annotation holding
the fields the reconciler owns. Comparing desired objects against that
annotation, rather than the live object, keeps server-side defaulting from
looking like drift, so a tick with nothing to change writes nothing.
"""

import hashlib
import json
import logging
from dataclasses import replace
from typing import Any

from member_core.deps import Dependencies
from member_core.errors import ConflictError, FatalForTickError
from member_core.naming import LAST_APPLIED_ANNOTATION
from member_core.types import ConfigUpdateStrategy
from member_protocols import ConfigMap, ObjectConflictError, ReplicaSet, Service

logger = logging.getLogger(__name__)

CONFIG_MAP_ANNOTATION = "member-operator/config-map"


def _replica_set_owned_fields(replica_set: ReplicaSet) -> dict[str, Any]:
    return {
        "replicas": replica_set.replicas,
        "template": replica_set.template,
        "updateStrategy": replica_set.update_strategy,
        "partition": replica_set.partition,
    }


def set_last_applied(replica_set: ReplicaSet) -> None:
    replica_set.annotations[LAST_APPLIED_ANNOTATION] = json.dumps(
        _replica_set_owned_fields(replica_set), sort_keys=True
    )


def replica_set_equal(new: ReplicaSet, old: ReplicaSet) -> bool:
    """
    True when `new` matches what was last applied to `old`.

    Annotations are compared directly (ignoring the last-applied one);
    replicas, template and update strategy are compared against the
    last-applied annotation. Without the annotation the objects differ.
    """
    old_annotations = {k: v for k, v in old.annotations.items() if k != LAST_APPLIED_ANNOTATION}
    new_annotations = {k: v for k, v in new.annotations.items() if k != LAST_APPLIED_ANNOTATION}
    if new_annotations != old_annotations:
        return False
    applied = old.annotations.get(LAST_APPLIED_ANNOTATION)
    if applied is None:
        return False
    try:
        old_fields = json.loads(applied)
    except json.JSONDecodeError:
        return False
    return old_fields == json.loads(json.dumps(_replica_set_owned_fields(new), sort_keys=True))


def applied_template(replica_set: ReplicaSet) -> dict[str, Any]:
    """The template last applied by the reconciler, else the live one."""
    applied = replica_set.annotations.get(LAST_APPLIED_ANNOTATION)
    if applied is not None:
        try:
            return json.loads(applied)["template"]
        except (json.JSONDecodeError, KeyError, TypeError):
            logger.warning(f"Ignoring malformed {LAST_APPLIED_ANNOTATION} on {replica_set.name}")
    return replica_set.template


def template_equal(new: ReplicaSet, old: ReplicaSet) -> bool:
    return json.loads(json.dumps(new.template)) == applied_template(old)


def container_image(template: dict[str, Any], container_name: str) -> str:
    """Image of a named container in a pod template, empty if not found."""
    for container in template.get("spec", {}).get("containers", []):
        if container.get("name") == container_name:
            return container.get("image", "")
    return ""


async def update_replica_set_with_precheck(
    deps: Dependencies, new_set: ReplicaSet, old_set: ReplicaSet
) -> bool:
    """
    Persist `new_set` unless it equals what was last applied.

    The live object is re-read and its resource version compared with the
    one the tick started from; a mismatch means another writer got there
    first.

    Returns:
        True when a write was made.

    Raises:
        ConflictError: The replica set changed since it was read.
        FatalForTickError: The replica set disappeared.
    """
    if replica_set_equal(new_set, old_set):
        return False
    current = await deps.snapshot.get_replica_set(old_set.namespace, old_set.name)
    if current is None:
        raise FatalForTickError(f"replica set {old_set.namespace}/{old_set.name} disappeared")
    if current.resource_version != old_set.resource_version:
        raise ConflictError(f"replica set {old_set.namespace}/{old_set.name}")

    updated = replace(
        current,
        replicas=new_set.replicas,
        template=new_set.template,
        update_strategy=new_set.update_strategy,
        partition=new_set.partition,
        labels=dict(new_set.labels),
        annotations=dict(new_set.annotations),
    )
    set_last_applied(updated)
    try:
        await deps.control.update_replica_set(updated)
    except ObjectConflictError as e:
        raise ConflictError(f"replica set {old_set.namespace}/{old_set.name}") from e
    logger.info(
        f"Updated replica set {updated.namespace}/{updated.name}: replicas={updated.replicas} "
        f"partition={updated.partition}"
    )
    return True


async def sync_service(deps: Dependencies, desired: Service) -> bool:
    """
    Create the service, or patch its spec when it drifted from the desired one.

    Returns:
        True when a write was made.
    """
    applied = json.dumps(desired.spec, sort_keys=True)
    existing = await deps.snapshot.get_service(desired.namespace, desired.name)
    if existing is None:
        created = replace(desired, annotations={**desired.annotations, LAST_APPLIED_ANNOTATION: applied})
        await deps.control.create_service(created)
        logger.info(f"Created service {desired.namespace}/{desired.name}")
        return True

    last = existing.annotations.get(LAST_APPLIED_ANNOTATION)
    if last is not None and last == applied:
        return False
    updated = replace(
        existing,
        spec=desired.spec,
        labels={**existing.labels, **desired.labels},
        annotations={**existing.annotations, LAST_APPLIED_ANNOTATION: applied},
    )
    try:
        await deps.control.update_service(updated)
    except ObjectConflictError as e:
        raise ConflictError(f"service {desired.namespace}/{desired.name}") from e
    logger.info(f"Updated service {desired.namespace}/{desired.name}")
    return True


def config_digest(data: dict[str, str]) -> str:
    """First 8 hex digits of the sha256 of the config map data."""
    payload = json.dumps(data, sort_keys=True).encode()
    return hashlib.sha256(payload).hexdigest()[:8]


async def sync_config_map(
    deps: Dependencies,
    desired: ConfigMap,
    strategy: ConfigUpdateStrategy,
    in_use_name: str | None,
) -> ConfigMap:
    """
    Write the component's config map and return it under its final name.

    In-place: the name stays the one in use, content is updated under it.
    Rolling update: the in-use config map is reused while its data is
    unchanged; otherwise a new `<name>-<digest>` config map is written,
    which changes the pod template and rolls the replicas.

    Nothing is written when a config map with the final name already holds
    the desired data.
    """
    if strategy == ConfigUpdateStrategy.IN_PLACE:
        if in_use_name:
            desired = replace(desired, name=in_use_name)
    else:
        reused = False
        if in_use_name:
            in_use = await deps.snapshot.get_config_map(desired.namespace, in_use_name)
            if in_use is not None and in_use.data == desired.data:
                desired = replace(desired, name=in_use.name)
                reused = True
        if not reused:
            desired = replace(desired, name=f"{desired.name}-{config_digest(desired.data)}")

    existing = await deps.snapshot.get_config_map(desired.namespace, desired.name)
    if existing is not None and existing.data == desired.data:
        return existing
    written = await deps.control.create_or_update_config_map(desired)
    logger.info(f"Wrote config map {desired.namespace}/{desired.name}")
    return written
