"""
Factory for wiring the TiDB member reconciler runtime.

Loads the Kubernetes configuration, creates the object adapters and the
per-cluster PD/TiCDC clients, composes one MemberReconciler per component
type and hands them to a ClusterController. Used by the CLI through a lazy
import so member_core never imports member_tidb directly.
"""

import logging
from dataclasses import dataclass, field

import httpx
from kubernetes import client, config

from member_core.config import ReconcilerSettings
from member_core.controller import RECONCILE_ORDER, ClusterController
from member_core.deps import Dependencies
from member_core.reconciler import MemberReconciler
from member_core.store_status import StoreStatusTracker
from member_core.types import MemberType, TidbCluster
from member_tidb.cdc_client import CDCClient
from member_tidb.components import build_variants
from member_tidb.kube import KubeClusterStore, KubeObjects
from member_tidb.pd_client import PDClient

logger = logging.getLogger(__name__)

PD_CLIENT_PORT = 2379


def load_kube_config() -> None:
    """Use the in-cluster service account, falling back to ~/.kube/config."""
    try:
        config.load_incluster_config()
        logger.info("Loaded in-cluster Kubernetes configuration")
    except config.ConfigException:
        config.load_kube_config()
        logger.info("Loaded local kubeconfig")


def pd_endpoint(cluster: TidbCluster) -> str:
    """
    PD client URL of a cluster.

    Example:
        pd_endpoint(cluster)  # "http://basic-pd.db.svc:2379"
    """
    if cluster.spec.pd_address:
        return cluster.spec.pd_address
    domain = f".{cluster.spec.cluster_domain}" if cluster.spec.cluster_domain else ""
    return f"http://{cluster.name}-pd.{cluster.namespace}.svc{domain}:{PD_CLIENT_PORT}"


@dataclass
class HTTPClients:
    """
    httpx clients shared by all reconcilers.

    PD clients are cached per endpoint; TiCDC clients address each capture
    by full URL through one shared client.
    """

    timeout: float = 10.0
    _pd: dict[str, httpx.AsyncClient] = field(default_factory=dict)
    _cdc: httpx.AsyncClient | None = None

    def pd(self, cluster: TidbCluster) -> PDClient:
        endpoint = pd_endpoint(cluster)
        http = self._pd.get(endpoint)
        if http is None:
            http = httpx.AsyncClient(base_url=endpoint, timeout=self.timeout)
            self._pd[endpoint] = http
        return PDClient(http=http)

    def cdc(self, cluster: TidbCluster) -> CDCClient:
        if self._cdc is None:
            self._cdc = httpx.AsyncClient(timeout=self.timeout)
        return CDCClient(http=self._cdc, cluster=cluster)

    async def aclose(self) -> None:
        for http in self._pd.values():
            await http.aclose()
        self._pd.clear()
        if self._cdc is not None:
            await self._cdc.aclose()
            self._cdc = None


@dataclass
class Runtime:
    """Everything the controller loop and the CLI need."""

    deps: Dependencies
    store: KubeClusterStore
    controller: ClusterController
    clients: HTTPClients

    async def aclose(self) -> None:
        await self.clients.aclose()


def create_runtime(
    settings: ReconcilerSettings,
    nodes_available: bool = True,
    clients: HTTPClients | None = None,
) -> Runtime:
    """
    Create the reconciler runtime against the current Kubernetes context.

    Args:
        settings: Reconciler settings.
        nodes_available: Whether the operator may read Node objects.
        clients: Optional pre-configured HTTP clients.

    Returns:
        Runtime with a ClusterController reconciling every component type.
    """
    load_kube_config()
    clients = clients or HTTPClients(timeout=settings.rpc_timeout_seconds)

    objects = KubeObjects(core=client.CoreV1Api(), apps=client.AppsV1Api())
    store = KubeClusterStore(custom=client.CustomObjectsApi())
    deps = Dependencies(
        settings=settings,
        snapshot=objects,
        control=objects,
        pd_control=clients.pd,
        cdc_control=clients.cdc,
        nodes_available=nodes_available,
    )

    tracker = StoreStatusTracker(deps)
    variants = build_variants(deps)
    reconcilers: dict[MemberType, MemberReconciler] = {
        member_type: MemberReconciler(deps, variants[member_type], tracker=tracker)
        for member_type in RECONCILE_ORDER
    }
    controller = ClusterController(store=store, reconcilers=reconcilers)
    return Runtime(deps=deps, store=store, controller=controller, clients=clients)
