"""
PD API client for store membership and cluster control.

This module provides the PDClient class for the Placement Driver (PD)
HTTP API: store listing, replication config, store labels, store and
member removal, leadership transfer and evict-leader schedulers.

PDClient receives an injected httpx.AsyncClient with base_url set to the
PD server. All methods are async and fail loudly on HTTP errors; the
reconciler classifies those as transient infrastructure failures.

PD API Documentation:
- https://docs.pingcap.com/tidb/stable/tidb-monitoring-api/
"""

from dataclasses import dataclass

import httpx

from member_protocols import ReplicationConfig, StoreId, StoreInfo
from member_tidb.types import (
    PDConfigResponse,
    PDLeaderResponse,
    PDReplicationConfig,
    PDStoresResponse,
)

# PD store state filter value for Tombstone.
_TOMBSTONE_STATE = 2


@dataclass
class PDClient:
    """
    PD API client with injected httpx client.

    Implements PlacementControlProtocol.

    Attributes:
        http: Pre-configured httpx.AsyncClient with base_url set to PD server.

    Example:
        async with httpx.AsyncClient(base_url="http://basic-pd.db:2379") as http:
            client = PDClient(http=http)
            stores = await client.get_stores()
            for store in stores:
                print(f"Store {store.id} at {store.address}: {store.state}")
    """

    http: httpx.AsyncClient

    async def get_stores(self) -> list[StoreInfo]:
        """
        Get active stores (Up, Down, Offline, Disconnected).

        Calls GET /pd/api/v1/stores. Entries without store metadata are
        dropped; entries without status are returned with has_status=False.

        Raises:
            httpx.HTTPStatusError: On HTTP errors (4xx, 5xx responses).
            pydantic.ValidationError: On malformed response data.
        """
        return await self._list_stores({})

    async def get_tombstone_stores(self) -> list[StoreInfo]:
        """Get tombstoned stores via GET /pd/api/v1/stores?state=2."""
        return await self._list_stores({"state": _TOMBSTONE_STATE})

    async def _list_stores(self, params: dict[str, int]) -> list[StoreInfo]:
        response = await self.http.get("/pd/api/v1/stores", params=params)
        response.raise_for_status()

        data = PDStoresResponse.model_validate(response.json())
        stores = []
        for item in data.stores or []:
            info = item.to_store_info()
            if info is not None:
                stores.append(info)
        return stores

    async def get_replication_config(self) -> ReplicationConfig:
        """Get the replication section of GET /pd/api/v1/config."""
        response = await self.http.get("/pd/api/v1/config")
        response.raise_for_status()

        data = PDConfigResponse.model_validate(response.json())
        return data.replication.to_replication_config()

    async def update_replication_config(self, config: ReplicationConfig) -> None:
        """Update replication settings via POST /pd/api/v1/config/replicate."""
        body = PDReplicationConfig.from_replication_config(config).to_request()
        response = await self.http.post("/pd/api/v1/config/replicate", json=body)
        response.raise_for_status()

    async def set_store_labels(self, store_id: StoreId, labels: dict[str, str]) -> bool:
        """
        Set store labels via POST /pd/api/v1/store/{id}/label.

        Returns:
            True when PD accepted the labels.
        """
        response = await self.http.post(f"/pd/api/v1/store/{store_id}/label", json=labels)
        response.raise_for_status()
        return True

    async def delete_store(self, store_id: StoreId) -> None:
        """
        Take a store offline via DELETE /pd/api/v1/store/{id}.

        PD moves the store's regions away and tombstones it afterwards.
        Deleting an unknown store succeeds.
        """
        response = await self.http.delete(f"/pd/api/v1/store/{store_id}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return
        response.raise_for_status()

    async def get_leader_name(self) -> str:
        response = await self.http.get("/pd/api/v1/leader")
        response.raise_for_status()
        return PDLeaderResponse.model_validate(response.json()).name

    async def transfer_leader(self, to_member: str) -> None:
        """Transfer PD leadership via POST /pd/api/v1/leader/transfer/{name}."""
        response = await self.http.post(f"/pd/api/v1/leader/transfer/{to_member}")
        response.raise_for_status()

    async def delete_member(self, name: str) -> None:
        """Remove a PD member via DELETE /pd/api/v1/members/name/{name}."""
        response = await self.http.delete(f"/pd/api/v1/members/name/{name}")
        if response.status_code == httpx.codes.NOT_FOUND:
            return
        response.raise_for_status()

    # -------------------------------------------------------------------------
    # Scheduler Methods
    # -------------------------------------------------------------------------

    async def add_evict_leader_scheduler(self, store_id: StoreId) -> None:
        """
        Add evict-leader-scheduler via PD API.

        Posts an evict-leader-scheduler request to PD, which continuously
        moves all region leaders away from the specified store.

        Note:
            This is a persistent scheduler - leaders are continuously
            evicted until the scheduler is removed.
        """
        response = await self.http.post(
            "/pd/api/v1/schedulers",
            json={
                "name": "evict-leader-scheduler",
                "store_id": int(store_id),
            },
        )
        response.raise_for_status()

    async def remove_evict_leader_scheduler(self, store_id: StoreId) -> None:
        """Remove the evict-leader-scheduler of a store; absent schedulers are fine."""
        response = await self.http.delete(
            f"/pd/api/v1/schedulers/evict-leader-scheduler-{store_id}"
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            return
        response.raise_for_status()
