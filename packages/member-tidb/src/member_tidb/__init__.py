"""
TiDB cluster implementation of the member reconciler.

This package provides the TiDB-specific adapters for the protocols
defined in member-protocols and the capability sets consumed by
member-core. It includes:

- PDClient: placement driver API (stores, replication config, schedulers)
- CDCClient: TiCDC capture drain and owner resignation
- KubeObjects, KubeClusterStore: Kubernetes object and TidbCluster access
- DefaultObjectBuilder: desired StatefulSet, Service and ConfigMap objects
- build_variants: per-component scaler/failover/upgrader composition
- create_runtime: wiring used by the CLI
"""

from member_tidb.builder import PORTS, DefaultObjectBuilder
from member_tidb.cdc_client import CDCClient
from member_tidb.components import build_variants
from member_tidb.factory import HTTPClients, Runtime, create_runtime, pd_endpoint
from member_tidb.kube import KubeClusterStore, KubeObjects
from member_tidb.pd_client import PDClient
from member_tidb.types import (
    CDCCapture,
    CDCDrainResponse,
    PDReplicationConfig,
    PDStoreInfo,
    PDStoreItem,
    PDStoresResponse,
    PDStoreStatus,
    TidbClusterResource,
)

__all__ = [
    # Clients
    "PDClient",
    "CDCClient",
    # Kubernetes
    "KubeObjects",
    "KubeClusterStore",
    # Composition
    "DefaultObjectBuilder",
    "PORTS",
    "build_variants",
    "create_runtime",
    "pd_endpoint",
    "HTTPClients",
    "Runtime",
    # API types
    "PDStoreInfo",
    "PDStoreStatus",
    "PDStoreItem",
    "PDStoresResponse",
    "PDReplicationConfig",
    "CDCCapture",
    "CDCDrainResponse",
    "TidbClusterResource",
]
