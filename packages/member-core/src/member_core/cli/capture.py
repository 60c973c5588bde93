"""Capture CLI commands.

- shutdown: run one step of the graceful shutdown handshake for a capture
  replica and report the phase it reached. Repeat until the phase is
  Complete or TimedOut. Exits 0 once the pod may be removed, 3 while the
  handshake is still pending and 1 when the pod or cluster is missing.
"""

import asyncio

import typer
from rich.console import Console

from member_core.cli.runtime_factory import create_runtime
from member_core.config import ReconcilerSettings
from member_core.naming import pod_name
from member_core.shutdown import ShutdownPendingError, ShutdownPhase, graceful_shutdown
from member_core.types import MemberType

PENDING_EXIT_CODE = 3

capture_app = typer.Typer(help="Change-data-capture replica operations")


@capture_app.command("shutdown")
def shutdown(
    namespace: str = typer.Option(..., "--namespace", "-n", help="Cluster namespace"),
    cluster: str = typer.Option(..., "--cluster", "-c", help="Cluster name"),
    ordinal: int = typer.Option(..., "--ordinal", "-o", help="Capture replica ordinal"),
    runtime: str = typer.Option("tidb", "--runtime", "-r", help="Cluster implementation"),
) -> None:
    """Advance the graceful shutdown handshake of one capture replica."""
    console = Console()

    async def _shutdown() -> tuple[ShutdownPhase, str]:
        rt = create_runtime(runtime, ReconcilerSettings(namespace=namespace))
        try:
            tc = await rt.store.get_cluster(namespace, cluster)
            if tc is None:
                return ShutdownPhase.NOT_STARTED, f"cluster {namespace}/{cluster} not found"
            spec = tc.component_spec(MemberType.TICDC)
            if spec is None:
                return ShutdownPhase.NOT_STARTED, f"cluster {namespace}/{cluster} has no ticdc"
            name = pod_name(cluster, MemberType.TICDC, ordinal)
            pod = await rt.deps.snapshot.get_pod(namespace, name)
            if pod is None:
                return ShutdownPhase.NOT_STARTED, f"pod {namespace}/{name} not found"
            try:
                phase = await graceful_shutdown(
                    rt.deps, tc, pod, spec.graceful_shutdown_timeout, action="manual shutdown"
                )
            except ShutdownPendingError as e:
                return e.phase, str(e)
            return phase, f"pod {namespace}/{name} may be removed"
        finally:
            await rt.aclose()

    phase, message = asyncio.run(_shutdown())
    done = phase in (ShutdownPhase.COMPLETE, ShutdownPhase.TIMED_OUT)
    style = "green" if done else "yellow"
    console.print(f"[{style}]{phase.value}[/{style}] {message}")
    if phase == ShutdownPhase.NOT_STARTED:
        raise typer.Exit(1)
    if not done:
        raise typer.Exit(PENDING_EXIT_CODE)
