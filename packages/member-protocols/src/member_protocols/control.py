"""
Control RPC protocol definitions.

PlacementControlProtocol is the interface to the placement coordinator
(store membership, replication config, store labels, schedulers).
CaptureControlProtocol is the interface to the change-data-capture
service used by the graceful shutdown handshake.
"""

from typing import Protocol, runtime_checkable

from member_protocols.types import ReplicationConfig, StoreId, StoreInfo


@runtime_checkable
class PlacementControlProtocol(Protocol):
    """
    Protocol for placement coordinator clients.

    Implementations should raise on transport or HTTP errors; the
    reconciler classifies those as transient infrastructure failures.
    """

    async def get_stores(self) -> list[StoreInfo]:
        """Return active members (Up, Down, Offline)."""
        ...

    async def get_tombstone_stores(self) -> list[StoreInfo]:
        """Return tombstoned members."""
        ...

    async def get_replication_config(self) -> ReplicationConfig:
        """Return the replication section of the coordinator config."""
        ...

    async def update_replication_config(self, config: ReplicationConfig) -> None:
        """Update the replication section of the coordinator config."""
        ...

    async def set_store_labels(self, store_id: StoreId, labels: dict[str, str]) -> bool:
        """Set topology labels on a store. Returns True when applied."""
        ...

    async def delete_store(self, store_id: StoreId) -> None:
        """Ask the coordinator to take a store offline."""
        ...

    async def get_leader_name(self) -> str:
        """Return the member name of the current coordinator leader."""
        ...

    async def transfer_leader(self, to_member: str) -> None:
        """Transfer coordinator leadership to another member."""
        ...

    async def delete_member(self, name: str) -> None:
        """Remove a coordinator member. Removing an absent member succeeds."""
        ...

    async def add_evict_leader_scheduler(self, store_id: StoreId) -> None:
        """Continuously move region leaders away from a store."""
        ...

    async def remove_evict_leader_scheduler(self, store_id: StoreId) -> None:
        """Stop evicting region leaders from a store."""
        ...


@runtime_checkable
class CaptureControlProtocol(Protocol):
    """
    Protocol for change-data-capture control clients.

    Both calls address the capture running in the replica with the given
    ordinal of the given cluster.
    """

    async def drain_capture(self, ordinal: int) -> tuple[int, bool]:
        """
        Move replicated tables off a capture.

        Returns:
            (remaining_table_count, retry). A non-zero count or retry=True
            means draining is still in progress.
        """
        ...

    async def resign_owner(self, ordinal: int) -> bool:
        """
        Resign ownership if the capture is the owner.

        Returns:
            True when the capture is not (or no longer) the owner.
        """
        ...
