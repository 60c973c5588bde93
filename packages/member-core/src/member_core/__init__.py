"""
Member Core Library

Core reconciliation engine for the stateful members of a distributed
database cluster. This package provides:

- MemberReconciler: per-component reconcile tick (service, status,
  config, failover, scale, upgrade, replica set write)
- StoreStatusTracker: store membership as reported by the coordinator
- Scaler, BaseFailover, Upgrader: capability implementations
- graceful_shutdown: capture drain and owner resignation handshake
- ClusterController, ControllerLoop: cluster tick and daemon loop
- CLI infrastructure: Typer-based command structure
"""

__version__ = "0.1.0"

from member_core.component import ComponentVariant
from member_core.config import QuorumPolicy, ReconcilerSettings
from member_core.deps import Dependencies
from member_core.errors import (
    CombinedError,
    ConflictError,
    ErrorKind,
    FatalForTickError,
    ReconcileError,
    RequeueError,
    SpecValidationError,
    TransientInfraError,
)
from member_core.reconciler import MemberReconciler
from member_core.shutdown import ShutdownPendingError, ShutdownPhase, graceful_shutdown
from member_core.store_status import StoreStatusTracker
from member_core.types import (
    ClusterSpec,
    ClusterStatus,
    ComponentSpec,
    ComponentStatus,
    FailureRecord,
    MemberType,
    Phase,
    StoreRecord,
    TidbCluster,
)

__all__ = [
    "__version__",
    # Reconciliation
    "MemberReconciler",
    "StoreStatusTracker",
    "ComponentVariant",
    "Dependencies",
    "graceful_shutdown",
    "ShutdownPhase",
    # Configuration
    "ReconcilerSettings",
    "QuorumPolicy",
    # Errors
    "ErrorKind",
    "ReconcileError",
    "TransientInfraError",
    "ConflictError",
    "SpecValidationError",
    "RequeueError",
    "FatalForTickError",
    "CombinedError",
    "ShutdownPendingError",
    # Data types
    "MemberType",
    "Phase",
    "TidbCluster",
    "ClusterSpec",
    "ClusterStatus",
    "ComponentSpec",
    "ComponentStatus",
    "StoreRecord",
    "FailureRecord",
]
