"""
Controller module: cluster reconciliation and the daemon loop.

Exports:
    ClusterController: Reconciles all components of one cluster
    ControllerLoop: Daemon resyncing and requeueing clusters
    RetryConfig: Backoff parameters for requeues
"""

from member_core.controller.cluster import RECONCILE_ORDER, ClusterController
from member_core.controller.loop import ControllerLoop
from member_core.controller.retry import RetryConfig

__all__ = ["RECONCILE_ORDER", "ClusterController", "ControllerLoop", "RetryConfig"]
