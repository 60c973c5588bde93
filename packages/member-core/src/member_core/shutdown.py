"""
Graceful shutdown handshake for capture replicas.

Before a capture pod is removed (scale-in, upgrade, or the pre-termination
hook) its replicated tables are drained to other captures and, if it owns
the changefeed scheduler, ownership is resigned. Progress is tracked by a
begin-time annotation on the pod so the handshake survives operator
restarts and can be re-entered on every tick:

    NotStarted -> ShutdownRequested -> Draining -> OwnerResignPending -> Complete
                                  \\________________________________-> TimedOut

Once the timeout has elapsed the pod is removable whatever the capture
reports.
"""

import logging
from dataclasses import replace
from datetime import datetime, timedelta
from enum import Enum

from member_core.deps import Dependencies
from member_core.errors import ConflictError, FatalForTickError, RequeueError
from member_core.naming import (
    SHUTDOWN_BEGIN_ANNOTATION,
    format_timestamp,
    ordinal_from_name,
    parse_timestamp,
)
from member_core.types import TidbCluster
from member_protocols import ObjectConflictError, Pod

logger = logging.getLogger(__name__)


class ShutdownPhase(str, Enum):
    NOT_STARTED = "NotStarted"
    SHUTDOWN_REQUESTED = "ShutdownRequested"
    DRAINING = "Draining"
    OWNER_RESIGN_PENDING = "OwnerResignPending"
    COMPLETE = "Complete"
    TIMED_OUT = "TimedOut"


class ShutdownPendingError(RequeueError):
    """
    The handshake has not finished yet.

    Attributes:
        phase: Where the handshake is waiting (Draining or OwnerResignPending).
        pod_name: Pod being shut down.
    """

    def __init__(
        self, message: str, phase: ShutdownPhase, pod_name: str, retry_after: float | None = None
    ) -> None:
        self.phase = phase
        self.pod_name = pod_name
        super().__init__(message, retry_after=retry_after)


def shutdown_begin_time(pod: Pod) -> datetime | None:
    """Return the recorded begin time, or None if absent or unparsable."""
    value = pod.annotations.get(SHUTDOWN_BEGIN_ANNOTATION)
    if value is None:
        return None
    try:
        return parse_timestamp(value)
    except ValueError:
        logger.warning(
            f"Pod {pod.namespace}/{pod.name} has malformed {SHUTDOWN_BEGIN_ANNOTATION}="
            f"{value!r}, restarting graceful shutdown"
        )
        return None


def observed_phase(pod: Pod, timeout: timedelta, now: datetime) -> ShutdownPhase:
    """Classify a pod from its annotation alone, without calling the capture."""
    begin = shutdown_begin_time(pod)
    if begin is None:
        return ShutdownPhase.NOT_STARTED
    if now - begin > timeout:
        return ShutdownPhase.TIMED_OUT
    return ShutdownPhase.SHUTDOWN_REQUESTED


async def graceful_shutdown(
    deps: Dependencies,
    cluster: TidbCluster,
    pod: Pod,
    timeout: timedelta,
    action: str,
) -> ShutdownPhase:
    """
    Run one step of the graceful shutdown handshake.

    Args:
        deps: Dependency bundle.
        cluster: Cluster the capture belongs to.
        pod: Capture pod about to be removed.
        timeout: Upper bound for the whole handshake.
        action: What the removal is for, e.g. "scale in"; used in messages.

    Returns:
        COMPLETE when draining and ownership resignation are done,
        TIMED_OUT when the timeout elapsed first. Either way the pod may be
        removed.

    Raises:
        ShutdownPendingError: Draining or resignation still in progress.
        TransientInfraError: Capture API or pod update failed.
    """
    now = deps.clock()
    begin = shutdown_begin_time(pod)

    if begin is None:
        annotations = dict(pod.annotations)
        annotations[SHUTDOWN_BEGIN_ANNOTATION] = format_timestamp(now)
        try:
            await deps.control.update_pod(replace(pod, annotations=annotations))
        except ObjectConflictError as e:
            raise ConflictError(f"pod {pod.namespace}/{pod.name}") from e
        logger.info(f"Graceful shutdown of {pod.namespace}/{pod.name} requested for {action}")
    elif now - begin > timeout:
        logger.warning(
            f"Graceful shutdown of {pod.namespace}/{pod.name} exceeded {timeout}, "
            f"proceeding with {action}"
        )
        return ShutdownPhase.TIMED_OUT

    ordinal = ordinal_from_name(pod.name)
    if ordinal is None:
        raise FatalForTickError(f"pod name {pod.name!r} has no ordinal")
    cdc = deps.cdc_control(cluster)

    remaining, retry = await deps.rpc(cdc.drain_capture(ordinal), f"drain capture {pod.name}")
    if remaining != 0 or retry:
        raise ShutdownPendingError(
            f"{action} {pod.name}: capture draining, {remaining} tables remaining",
            phase=ShutdownPhase.DRAINING,
            pod_name=pod.name,
        )

    resigned = await deps.rpc(cdc.resign_owner(ordinal), f"resign owner {pod.name}")
    if not resigned:
        raise ShutdownPendingError(
            f"{action} {pod.name}: waiting for capture to resign ownership",
            phase=ShutdownPhase.OWNER_RESIGN_PENDING,
            pod_name=pod.name,
        )

    logger.info(f"Graceful shutdown of {pod.namespace}/{pod.name} complete")
    return ShutdownPhase.COMPLETE
