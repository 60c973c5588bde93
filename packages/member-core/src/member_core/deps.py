"""
Dependency bundle threaded through every reconciler component.

Nothing in member_core reaches for global clients or caches: readers get
the explicitly passed ClusterSnapshotProtocol, writers the
ObjectControlProtocol, and control RPC clients are produced per cluster by
the injected factories.
"""

import asyncio
from collections.abc import Awaitable, Callable
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import TypeVar

import httpx

from member_core.config import ReconcilerSettings
from member_core.errors import TransientInfraError
from member_core.types import TidbCluster
from member_protocols import (
    CaptureControlProtocol,
    ClusterSnapshotProtocol,
    ObjectControlProtocol,
    PlacementControlProtocol,
)

T = TypeVar("T")


def utc_now() -> datetime:
    return datetime.now(timezone.utc)


@dataclass
class Dependencies:
    """
    Everything a reconciler component may touch.

    Attributes:
        snapshot: Read-only view of orchestration objects.
        control: Writes to orchestration objects.
        pd_control: Returns the placement coordinator client of a cluster.
        cdc_control: Returns the capture control client of a cluster.
        nodes_available: False when the operator lacks permission to read
            nodes; topology label sync is then skipped.
        clock: Source of "now"; overridden in tests.
    """

    settings: ReconcilerSettings
    snapshot: ClusterSnapshotProtocol
    control: ObjectControlProtocol
    pd_control: Callable[[TidbCluster], PlacementControlProtocol]
    cdc_control: Callable[[TidbCluster], CaptureControlProtocol]
    nodes_available: bool = True
    clock: Callable[[], datetime] = field(default=utc_now)

    async def rpc(self, call: Awaitable[T], what: str) -> T:
        """
        Await a control RPC with the configured timeout.

        Raises:
            TransientInfraError: On timeout, HTTP/transport failure or a
                reply that cannot be parsed.
        """
        try:
            return await asyncio.wait_for(call, timeout=self.settings.rpc_timeout_seconds)
        except asyncio.TimeoutError as e:
            raise TransientInfraError(
                f"{what} timed out after {self.settings.rpc_timeout_seconds}s"
            ) from e
        except (httpx.HTTPError, OSError) as e:
            raise TransientInfraError(f"{what} failed: {e}") from e
        except ValueError as e:
            # JSONDecodeError and pydantic ValidationError
            raise TransientInfraError(f"{what} returned a malformed response: {e}") from e
