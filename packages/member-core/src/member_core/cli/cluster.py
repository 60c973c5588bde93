"""Cluster status CLI commands.

- status: show the reconciler-maintained status of a cluster (phase,
  replica counts, stores, failure records) as a table or JSON.
"""

import asyncio
import json

import typer
from pydantic import TypeAdapter
from rich.console import Console
from rich.table import Table

from member_core.cli.runtime_factory import create_runtime
from member_core.config import ReconcilerSettings
from member_core.types import ClusterStatus, TidbCluster

cluster_app = typer.Typer(help="Inspect cluster status")


@cluster_app.command("status")
def cluster_status(
    namespace: str = typer.Option(..., "--namespace", "-n", help="Cluster namespace"),
    cluster: str = typer.Option(..., "--cluster", "-c", help="Cluster name"),
    runtime: str = typer.Option("tidb", "--runtime", "-r", help="Cluster implementation"),
    json_output: bool = typer.Option(False, "--json", "-j", help="Output as JSON"),
) -> None:
    """Show component status of one cluster."""

    async def _get() -> TidbCluster | None:
        rt = create_runtime(runtime, ReconcilerSettings(namespace=namespace))
        try:
            return await rt.store.get_cluster(namespace, cluster)
        finally:
            await rt.aclose()

    tc = asyncio.run(_get())
    if tc is None:
        print(f"Cluster {namespace}/{cluster} not found")
        raise typer.Exit(1)

    if json_output:
        data = TypeAdapter(ClusterStatus).dump_python(tc.status, mode="json")
        print(json.dumps(data, indent=2))
        return

    console = Console()
    table = Table(title=f"{namespace}/{cluster}")
    table.add_column("Component", style="cyan")
    table.add_column("Phase", style="green")
    table.add_column("Replicas", justify="right")
    table.add_column("Ready", justify="right")
    table.add_column("Stores", justify="right")
    table.add_column("Tombstones", justify="right")
    table.add_column("Failures", justify="right")
    table.add_column("Synced", justify="center")
    table.add_column("Image")

    for member_type, status in tc.status.components.items():
        rs = status.replica_set
        failures = str(len(status.failure_members))
        if status.failure_members:
            failures = f"[red]{failures}[/red]"
        table.add_row(
            member_type.value,
            status.phase.value,
            str(rs.replicas) if rs else "-",
            str(rs.ready_replicas) if rs else "-",
            str(len(status.stores)),
            str(len(status.tombstone_stores)),
            failures,
            "yes" if status.synced else "no",
            status.image or "-",
        )

    console.print(table)
