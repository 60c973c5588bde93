"""
TiCDC API client for the capture graceful shutdown handshake.

Each capture serves the TiCDC open API on its own pod address
`<pod>.<peer service>.<namespace>.svc[.<domain>]:8301`. Draining and
ownership resignation are requested from the capture being removed, which
forwards them to the current owner.

TiCDC API Documentation:
- https://docs.pingcap.com/tidb/stable/ticdc-open-api
"""

import logging
from dataclasses import dataclass

import httpx

from member_core.naming import peer_member_name, pod_name
from member_core.types import MemberType, TidbCluster
from member_tidb.types import CDCCapture, CDCDrainResponse

logger = logging.getLogger(__name__)

CDC_PORT = 8301


@dataclass
class CDCClient:
    """
    TiCDC API client for one cluster, with injected httpx client.

    Implements CaptureControlProtocol.

    Attributes:
        http: httpx.AsyncClient used for every capture (no base_url).
        cluster: Cluster whose captures are addressed.
        scheme: "http" or "https".

    Example:
        async with httpx.AsyncClient(timeout=10.0) as http:
            cdc = CDCClient(http=http, cluster=cluster)
            remaining, retry = await cdc.drain_capture(2)
    """

    http: httpx.AsyncClient
    cluster: TidbCluster
    scheme: str = "http"

    def capture_address(self, ordinal: int) -> str:
        name = pod_name(self.cluster.name, MemberType.TICDC, ordinal)
        peer = peer_member_name(self.cluster.name, MemberType.TICDC)
        domain = f".{self.cluster.spec.cluster_domain}" if self.cluster.spec.cluster_domain else ""
        return f"{name}.{peer}.{self.cluster.namespace}.svc{domain}:{CDC_PORT}"

    def _base_url(self, ordinal: int) -> str:
        return f"{self.scheme}://{self.capture_address(ordinal)}"

    async def _get_captures(self, ordinal: int) -> tuple[list[CDCCapture], bool]:
        """
        List captures through the capture with `ordinal`.

        Returns:
            (captures, retry). retry=True when the capture is not ready to
            answer yet.
        """
        response = await self.http.get(f"{self._base_url(ordinal)}/api/v1/captures")
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            return [], True
        response.raise_for_status()
        return [CDCCapture.model_validate(item) for item in response.json()], False

    def _this_and_owner(
        self, ordinal: int, captures: list[CDCCapture]
    ) -> tuple[CDCCapture | None, CDCCapture | None]:
        address = self.capture_address(ordinal)
        this = next((c for c in captures if c.address == address), None)
        owner = next((c for c in captures if c.is_owner), None)
        return this, owner

    async def drain_capture(self, ordinal: int) -> tuple[int, bool]:
        """
        Drain tables off the capture with `ordinal`.

        Returns:
            (remaining_table_count, retry). (0, False) when there is
            nothing to drain: a single capture, the capture is not
            registered, or the TiCDC version has no drain API.

        Raises:
            httpx.HTTPStatusError: On unexpected HTTP errors.
        """
        captures, retry = await self._get_captures(ordinal)
        if retry:
            return 0, True
        if len(captures) <= 1:
            return 0, False
        this, owner = self._this_and_owner(ordinal, captures)
        if this is None:
            logger.info(f"Capture {self.capture_address(ordinal)} not registered, nothing to drain")
            return 0, False
        if owner is None:
            return 0, True

        response = await self.http.put(
            f"{self._base_url(ordinal)}/api/v1/captures/drain",
            json={"capture_id": this.id},
        )
        if response.status_code == httpx.codes.NOT_FOUND:
            logger.info("TiCDC does not support draining captures, skipping drain")
            return 0, False
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            return 0, True
        response.raise_for_status()
        drained = CDCDrainResponse.model_validate(response.json())
        return drained.current_table_count, False

    async def resign_owner(self, ordinal: int) -> bool:
        """
        Resign ownership if the capture with `ordinal` is the owner.

        Returns:
            True when the capture is not the owner. After requesting a
            resignation False is returned so the next call checks again.
        """
        captures, retry = await self._get_captures(ordinal)
        if retry:
            return False
        if len(captures) <= 1:
            return True
        this, owner = self._this_and_owner(ordinal, captures)
        if this is None or owner is None or owner.id != this.id:
            return True

        response = await self.http.post(f"{self._base_url(ordinal)}/api/v1/owner/resign")
        if response.status_code == httpx.codes.NOT_FOUND:
            return True
        if response.status_code == httpx.codes.SERVICE_UNAVAILABLE:
            return False
        response.raise_for_status()
        logger.info(f"Requested owner resignation of capture {this.id}")
        return False
