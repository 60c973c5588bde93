"""
Object naming, label and annotation conventions.

Replica sets are named `<cluster>-<component>`, their pods
`<cluster>-<component>-<ordinal>`, and the headless service
`<cluster>-<component>-peer`. Stores advertise addresses of the form
`<pod>.<peer-service>.<namespace>.svc[.<domain>]:<port>`, which is how
store membership is attributed to a cluster.
"""

import re
from datetime import datetime, timezone

from member_core.types import MemberType, TidbCluster

NAME_LABEL = "app.kubernetes.io/name"
INSTANCE_LABEL = "app.kubernetes.io/instance"
COMPONENT_LABEL = "app.kubernetes.io/component"
MANAGED_BY_LABEL = "app.kubernetes.io/managed-by"
POD_NAME_LABEL = "tidb.pingcap.com/pod-name"
REVISION_LABEL = "controller-revision-hash"

NAME_LABEL_VALUE = "tidb-cluster"
MANAGED_BY_VALUE = "member-operator"

DEFER_DELETING_ANNOTATION = "tidb.pingcap.com/pvc-defer-deleting"
SHUTDOWN_BEGIN_ANNOTATION = "tidb.pingcap.com/ticdc-graceful-shutdown-begin-time"
LAST_APPLIED_ANNOTATION = "member-operator/last-applied-configuration"

_TIMESTAMP_FORMAT = "%Y-%m-%dT%H:%M:%SZ"


def member_name(cluster_name: str, member_type: MemberType) -> str:
    return f"{cluster_name}-{member_type.value}"


def peer_member_name(cluster_name: str, member_type: MemberType) -> str:
    return f"{cluster_name}-{member_type.value}-peer"


def pod_name(cluster_name: str, member_type: MemberType, ordinal: int) -> str:
    return f"{member_name(cluster_name, member_type)}-{ordinal}"


def ordinal_from_name(name: str) -> int | None:
    """Parse the trailing ordinal of a pod or claim name."""
    _, sep, suffix = name.rpartition("-")
    if not sep or not suffix.isdigit():
        return None
    return int(suffix)


def component_labels(cluster: TidbCluster, member_type: MemberType) -> dict[str, str]:
    """Labels selecting every object of one component of one cluster."""
    return {
        NAME_LABEL: NAME_LABEL_VALUE,
        MANAGED_BY_LABEL: MANAGED_BY_VALUE,
        INSTANCE_LABEL: cluster.name,
        COMPONENT_LABEL: member_type.value,
    }


def format_cluster_domain_for_regex(cluster_domain: str) -> str:
    if not cluster_domain:
        return ""
    return "\\." + re.escape(cluster_domain)


def store_address_pattern(cluster: TidbCluster, member_type: MemberType) -> re.Pattern[str]:
    """
    Pattern matching addresses of stores run by this cluster's replicas.

    Example:
        basic-tiflash-0.basic-tiflash-peer.db.svc:3930
    """
    name = re.escape(cluster.name)
    component = member_type.value
    return re.compile(
        rf"^{name}-{component}-\d+\.{name}-{component}-peer\."
        rf"{re.escape(cluster.namespace)}\.svc"
        rf"{format_cluster_domain_for_regex(cluster.spec.cluster_domain)}:\d+$"
    )


def split_store_address(address: str) -> tuple[str, str]:
    """
    Split a store address into (pod_name, host).

    Example:
        split_store_address("basic-tikv-1.basic-tikv-peer.db.svc:20160")
        # ("basic-tikv-1", "basic-tikv-1.basic-tikv-peer.db.svc")
    """
    host = address.rsplit(":", 1)[0]
    return host.split(".", 1)[0], host


def format_timestamp(value: datetime) -> str:
    """Render a timestamp for use as an annotation value (RFC 3339, UTC)."""
    return value.astimezone(timezone.utc).strftime(_TIMESTAMP_FORMAT)


def parse_timestamp(value: str) -> datetime:
    """
    Parse an annotation timestamp.

    Raises:
        ValueError: If the value is not an RFC 3339 timestamp.
    """
    parsed = datetime.fromisoformat(value.strip().replace("Z", "+00:00"))
    if parsed.tzinfo is None:
        parsed = parsed.replace(tzinfo=timezone.utc)
    return parsed
