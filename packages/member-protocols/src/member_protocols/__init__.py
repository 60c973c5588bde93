"""
Protocol definitions for the member reconciliation system.

This package provides the Protocol definitions the reconciler consumes.
It has zero dependencies on other member-* packages.

Key protocols:
- PlacementControlProtocol: Placement coordinator control RPC
- CaptureControlProtocol: Change-data-capture control RPC
- ClusterSnapshotProtocol: Read-only view of orchestration objects
- ObjectControlProtocol: Writes to orchestration objects

Key types:
- StoreInfo, ReplicationConfig: Coordinator-reported state
- ReplicaSet, Pod, VolumeClaim, Service, ConfigMap: Orchestration objects
"""

from member_protocols.control import CaptureControlProtocol, PlacementControlProtocol
from member_protocols.objects import (
    ClusterSnapshotProtocol,
    ObjectConflictError,
    ObjectControlProtocol,
    ObjectNotFoundError,
)
from member_protocols.types import (
    ConfigMap,
    Pod,
    ReplicaSet,
    ReplicaSetStatus,
    ReplicationConfig,
    Service,
    StoreId,
    StoreInfo,
    VolumeClaim,
)

__all__ = [
    # Protocols
    "PlacementControlProtocol",
    "CaptureControlProtocol",
    "ClusterSnapshotProtocol",
    "ObjectControlProtocol",
    # Errors
    "ObjectConflictError",
    "ObjectNotFoundError",
    # Data types
    "StoreId",
    "StoreInfo",
    "ReplicationConfig",
    "ReplicaSet",
    "ReplicaSetStatus",
    "Pod",
    "VolumeClaim",
    "Service",
    "ConfigMap",
]
