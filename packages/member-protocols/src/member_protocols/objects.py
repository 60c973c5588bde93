"""
Object access protocols.

ClusterSnapshotProtocol is the read side: an explicitly passed, read-only
view of the orchestration layer. ObjectControlProtocol is the write side.
Reads return None for missing objects; writes raise ObjectConflictError
when the version token is stale and ObjectNotFoundError when the target
is gone.
"""

from typing import Protocol, runtime_checkable

from member_protocols.types import (
    ConfigMap,
    Pod,
    ReplicaSet,
    Service,
    VolumeClaim,
)


class ObjectConflictError(Exception):
    """Raised when a write carries a stale resource version."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name} was modified concurrently")


class ObjectNotFoundError(Exception):
    """Raised when a write targets an object that no longer exists."""

    def __init__(self, kind: str, name: str) -> None:
        self.kind = kind
        self.name = name
        super().__init__(f"{kind} {name} not found")


@runtime_checkable
class ClusterSnapshotProtocol(Protocol):
    """Read-only view of orchestration objects in one namespace scope."""

    async def get_replica_set(self, namespace: str, name: str) -> ReplicaSet | None: ...

    async def get_pod(self, namespace: str, name: str) -> Pod | None: ...

    async def list_pods(self, namespace: str, selector: dict[str, str]) -> list[Pod]: ...

    async def list_volume_claims(
        self, namespace: str, selector: dict[str, str]
    ) -> list[VolumeClaim]: ...

    async def get_service(self, namespace: str, name: str) -> Service | None: ...

    async def get_config_map(self, namespace: str, name: str) -> ConfigMap | None: ...

    async def get_node_labels(self, node_name: str) -> dict[str, str] | None:
        """Return node labels, or None when the node is unknown."""
        ...


@runtime_checkable
class ObjectControlProtocol(Protocol):
    """Write side of the orchestration layer."""

    async def create_replica_set(self, replica_set: ReplicaSet) -> ReplicaSet: ...

    async def update_replica_set(self, replica_set: ReplicaSet) -> ReplicaSet:
        """Update using `replica_set.resource_version` as precondition."""
        ...

    async def update_pod(self, pod: Pod) -> Pod: ...

    async def update_volume_claim(self, claim: VolumeClaim) -> VolumeClaim: ...

    async def delete_volume_claim(self, namespace: str, name: str) -> None: ...

    async def create_service(self, service: Service) -> Service: ...

    async def update_service(self, service: Service) -> Service: ...

    async def create_or_update_config_map(self, config_map: ConfigMap) -> ConfigMap: ...
