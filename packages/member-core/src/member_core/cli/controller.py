"""Controller daemon CLI commands.

This module provides the CLI commands for running the reconciler:
- run: Start the controller loop (resync + requeue) until interrupted
- sync: Reconcile one cluster once and report the outcome

Settings come from MEMBER_OPERATOR_* environment variables; options given
on the command line override them.
"""

import asyncio

import typer

from member_core.cli.runtime_factory import AVAILABLE_RUNTIMES, create_runtime
from member_core.config import ReconcilerSettings
from member_core.controller import ControllerLoop
from member_core.errors import ReconcileError, as_reconcile_error

controller_app = typer.Typer(help="Run the member reconciler")


def _settings(namespace: str | None, resync: float | None, workers: int | None) -> ReconcilerSettings:
    overrides: dict[str, object] = {}
    if namespace is not None:
        overrides["namespace"] = namespace
    if resync is not None:
        overrides["resync_seconds"] = resync
    if workers is not None:
        overrides["workers"] = workers
    return ReconcilerSettings(**overrides)


@controller_app.command("run")
def run_controller(
    runtime: str = typer.Option(
        "tidb", "--runtime", "-r", help=f"Cluster implementation ({', '.join(AVAILABLE_RUNTIMES)})"
    ),
    namespace: str = typer.Option(
        None, "--namespace", "-n", help="Namespace to watch (default: all namespaces)"
    ),
    resync: float = typer.Option(None, "--resync", help="Resync interval in seconds"),
    workers: int = typer.Option(None, "--workers", "-w", help="Concurrent reconcile workers"),
    no_nodes: bool = typer.Option(
        False, "--no-nodes", help="Skip topology label sync (no permission to read nodes)"
    ),
) -> None:
    """
    Run the controller loop.

    Reconciles every cluster at the resync interval and requeues failed
    clusters with backoff. Runs until interrupted with Ctrl+C or SIGTERM.
    """
    settings = _settings(namespace, resync, workers)

    print(f"Starting member reconciler ({runtime})")
    print(f"  Namespace: {settings.namespace or '<all>'}")
    print(f"  Resync: {settings.resync_seconds}s")
    print(f"  Workers: {settings.workers}")
    print(f"  Auto failover: {settings.auto_failover}")
    print()
    print("Press Ctrl+C to stop")
    print()

    async def _run() -> None:
        try:
            rt = create_runtime(runtime, settings, nodes_available=not no_nodes)
        except ValueError as e:
            print(f"Error: {e}")
            raise typer.Exit(1)
        try:
            loop = ControllerLoop(rt.controller, rt.store, settings)
            await loop.run()
        finally:
            await rt.aclose()

    asyncio.run(_run())


@controller_app.command("sync")
def sync_once(
    namespace: str = typer.Option(..., "--namespace", "-n", help="Cluster namespace"),
    cluster: str = typer.Option(..., "--cluster", "-c", help="Cluster name"),
    runtime: str = typer.Option("tidb", "--runtime", "-r", help="Cluster implementation"),
) -> None:
    """Reconcile one cluster once."""

    async def _sync() -> ReconcileError | None:
        rt = create_runtime(runtime, ReconcilerSettings(namespace=namespace))
        try:
            await rt.controller.sync(namespace, cluster)
        except Exception as e:
            return as_reconcile_error(e)
        finally:
            await rt.aclose()
        return None

    err = asyncio.run(_sync())
    if err is None:
        print(f"{namespace}/{cluster} reconciled")
        return
    print(f"{namespace}/{cluster} not reconciled ({err.kind.value}): {err}")
    raise typer.Exit(1)
