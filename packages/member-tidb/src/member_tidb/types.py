"""
Pydantic models for external data.

This module provides Pydantic models for parsing:
- PD API (Placement Driver): stores, replication config, leader
- TiCDC API: captures and drain responses
- TidbCluster custom resources

These are API/resource types for external data validation. Internal
types (StoreInfo, TidbCluster, ...) are dataclasses in member_protocols
and member_core.

Notes:
- PD nests store metadata and status: {"store": {...}, "status": {...}}
- PD store IDs are ints; internal StoreId is str
- PD renders replication booleans and label lists as strings
"""

from datetime import timedelta
from typing import Any

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

from member_core.types import (
    ClusterSpec,
    ComponentSpec,
    ConfigUpdateStrategy,
    MemberType,
    StorageClaim,
    TidbCluster,
    UpdateStrategy,
)
from member_protocols import ReplicationConfig, StoreInfo


# =============================================================================
# PD API Response Types
# =============================================================================
# Response structure: {"count": 1, "stores": [{"store": {...}, "status": {...}}]}


class PDStoreLabel(BaseModel):
    key: str
    value: str


class PDStoreInfo(BaseModel):
    """
    Inner store info from PD API.

    This is the nested 'store' object within each store entry.
    """

    id: int
    address: str
    state_name: str  # "Up", "Down", "Offline", "Tombstone", "Disconnected"
    version: str = ""
    labels: list[PDStoreLabel] = Field(default_factory=list)


class PDStoreStatus(BaseModel):
    """
    Store status metrics from PD API.

    This is the nested 'status' object within each store entry.
    """

    capacity: str = ""  # e.g., "100GiB"
    available: str = ""
    leader_count: int = 0
    region_count: int = 0


class PDStoreItem(BaseModel):
    """
    Single store entry from PD /stores endpoint.

    Entries without a 'store' or 'status' object are incomplete and are
    skipped by the tracker.
    """

    store: PDStoreInfo | None = None
    status: PDStoreStatus | None = None

    def to_store_info(self) -> StoreInfo | None:
        if self.store is None:
            return None
        return StoreInfo(
            id=str(self.store.id),
            address=self.store.address,
            state=self.store.state_name,
            leader_count=self.status.leader_count if self.status else 0,
            labels={label.key: label.value for label in self.store.labels},
            has_status=self.status is not None,
        )


class PDStoresResponse(BaseModel):
    """
    Response from GET /pd/api/v1/stores.

    Example response:
    {
        "count": 1,
        "stores": [
            {
                "store": {
                    "id": 1,
                    "address": "basic-tikv-0.basic-tikv-peer.db.svc:20160",
                    "state_name": "Up",
                    "labels": [{"key": "zone", "value": "z1"}]
                },
                "status": {"leader_count": 10}
            }
        ]
    }
    """

    count: int = 0
    stores: list[PDStoreItem] | None = None


class PDReplicationConfig(BaseModel):
    """
    Replication section of GET /pd/api/v1/config.

    Example:
        {"max-replicas": 3, "location-labels": "zone,host",
         "enable-placement-rules": "true"}
    """

    model_config = ConfigDict(populate_by_name=True)

    max_replicas: int = Field(default=3, alias="max-replicas")
    location_labels: list[str] = Field(default_factory=list, alias="location-labels")
    enable_placement_rules: bool | None = Field(default=None, alias="enable-placement-rules")

    @field_validator("location_labels", mode="before")
    @classmethod
    def _split_labels(cls, value: Any) -> Any:
        if isinstance(value, str):
            return [label for label in value.split(",") if label]
        return value

    def to_replication_config(self) -> ReplicationConfig:
        return ReplicationConfig(
            enable_placement_rules=self.enable_placement_rules,
            location_labels=list(self.location_labels),
            max_replicas=self.max_replicas,
        )

    @classmethod
    def from_replication_config(cls, config: ReplicationConfig) -> "PDReplicationConfig":
        return cls(
            max_replicas=config.max_replicas,
            location_labels=config.location_labels,
            enable_placement_rules=config.enable_placement_rules,
        )

    def to_request(self) -> dict[str, Any]:
        body: dict[str, Any] = {
            "max-replicas": self.max_replicas,
            "location-labels": ",".join(self.location_labels),
        }
        if self.enable_placement_rules is not None:
            body["enable-placement-rules"] = str(self.enable_placement_rules).lower()
        return body


class PDConfigResponse(BaseModel):
    """Response from GET /pd/api/v1/config (only the parts used here)."""

    model_config = ConfigDict(extra="allow")

    replication: PDReplicationConfig = Field(default_factory=PDReplicationConfig)


class PDLeaderResponse(BaseModel):
    """Response from GET /pd/api/v1/leader."""

    model_config = ConfigDict(extra="allow")

    name: str
    member_id: int = 0


# =============================================================================
# TiCDC API Response Types
# =============================================================================


class CDCCapture(BaseModel):
    """Entry of GET /api/v1/captures."""

    id: str
    is_owner: bool = False
    address: str = ""


class CDCDrainResponse(BaseModel):
    """Response from PUT /api/v1/captures/drain."""

    current_table_count: int = 0


# =============================================================================
# TidbCluster Resource
# =============================================================================
# Group pingcap.com, version v1alpha1, plural tidbclusters. Only the fields
# the reconciler consumes are modelled; everything else is ignored.


class _ResourceModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="ignore")


class ResourceMetadata(_ResourceModel):
    name: str
    namespace: str = "default"
    uid: str = ""
    resource_version: str = ""


class FailoverResource(_ResourceModel):
    recover_by_uid: str = Field(default="", alias="recoverByUID")


class StorageVolumeResource(_ResourceModel):
    name: str
    storage_size: str = "1Gi"
    storage_class_name: str | None = None


class ComponentResource(_ResourceModel):
    """
    One component section of the TidbCluster spec.

    `image` wins over `base_image` + cluster `version`.
    """

    replicas: int = 0
    image: str = ""
    base_image: str = ""
    version: str = ""
    labels: dict[str, str] = Field(default_factory=dict)
    annotations: dict[str, str] = Field(default_factory=dict)
    storage_size: str = ""
    storage_class_name: str | None = None
    storage_volumes: list[StorageVolumeResource] = Field(default_factory=list)
    config: dict[str, str] = Field(default_factory=dict)
    stateful_set_update_strategy: UpdateStrategy = UpdateStrategy.ROLLING_UPDATE
    config_update_strategy: ConfigUpdateStrategy = ConfigUpdateStrategy.IN_PLACE
    max_failover_count: int | None = 3
    recover_failover: bool = False
    failover: FailoverResource = Field(default_factory=FailoverResource)
    suspend: bool = False
    failover_period_seconds: int = 300
    graceful_shutdown_timeout_seconds: int = 600

    @field_validator("config", mode="before")
    @classmethod
    def _config_as_file(cls, value: Any) -> Any:
        # A bare string is the component's main config file.
        if isinstance(value, str):
            return {"config-file": value}
        return value

    def to_spec(self, member_type: MemberType, cluster_version: str) -> ComponentSpec:
        image = self.image
        if not image:
            base = self.base_image or f"pingcap/{member_type.value}"
            version = self.version or cluster_version or "latest"
            image = f"{base}:{version}"
        claims = []
        if self.storage_size:
            claims.append(StorageClaim(member_type.value, self.storage_size, self.storage_class_name))
        claims.extend(
            StorageClaim(v.name, v.storage_size, v.storage_class_name) for v in self.storage_volumes
        )
        return ComponentSpec(
            replicas=self.replicas,
            image=image,
            labels=dict(self.labels),
            annotations=dict(self.annotations),
            storage_claims=claims,
            config=dict(self.config),
            update_strategy=self.stateful_set_update_strategy,
            config_update_strategy=self.config_update_strategy,
            max_failover_count=self.max_failover_count,
            recover_failover=self.recover_failover,
            recover_by_uid=self.failover.recover_by_uid,
            suspend=self.suspend,
            failover_period=timedelta(seconds=self.failover_period_seconds),
            graceful_shutdown_timeout=timedelta(seconds=self.graceful_shutdown_timeout_seconds),
        )


class ClusterSpecResource(_ResourceModel):
    version: str = ""
    paused: bool = False
    cluster_domain: str = ""
    pd_addresses: list[str] = Field(default_factory=list)
    pd: ComponentResource | None = None
    tikv: ComponentResource | None = None
    tiflash: ComponentResource | None = None
    tidb: ComponentResource | None = None
    ticdc: ComponentResource | None = None
    pump: ComponentResource | None = None


class TidbClusterResource(_ResourceModel):
    """
    A TidbCluster custom resource as returned by the API server.

    Example:
        resource = TidbClusterResource.model_validate(raw)
        cluster = resource.to_cluster()
    """

    metadata: ResourceMetadata
    spec: ClusterSpecResource = Field(default_factory=ClusterSpecResource)
    status: dict[str, Any] = Field(default_factory=dict)

    def to_cluster(self) -> TidbCluster:
        components = {}
        for member_type in MemberType:
            section = getattr(self.spec, member_type.value)
            if section is not None:
                components[member_type] = section.to_spec(member_type, self.spec.version)
        return TidbCluster(
            name=self.metadata.name,
            namespace=self.metadata.namespace,
            spec=ClusterSpec(
                components=components,
                paused=self.spec.paused,
                cluster_domain=self.spec.cluster_domain,
                pd_address=self.spec.pd_addresses[0] if self.spec.pd_addresses else "",
            ),
            uid=self.metadata.uid,
            resource_version=self.metadata.resource_version,
        )
