"""Member operator CLI - reconciler for stateful cluster members."""

import logging

import typer
from rich.logging import RichHandler

from member_core.cli.capture import capture_app
from member_core.cli.cluster import cluster_app
from member_core.cli.controller import controller_app
from member_core.config import ReconcilerSettings

app = typer.Typer(
    name="member-operator",
    help="Reconciler for stateful cluster members",
    no_args_is_help=True,
)

# Add command groups
app.add_typer(controller_app, name="controller")
app.add_typer(cluster_app, name="cluster")
app.add_typer(capture_app, name="capture")


def setup_logging(level: str) -> None:
    logging.basicConfig(
        level=level.upper(),
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(rich_tracebacks=True)],
    )


def main() -> None:
    """Entry point for the CLI."""
    setup_logging(ReconcilerSettings().log_level)
    app()


if __name__ == "__main__":
    main()
