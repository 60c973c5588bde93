"""
Factory for creating the reconciler runtime.

Uses lazy imports so member_core never imports a cluster implementation
at module load time.
"""

from typing import TYPE_CHECKING, Any

if TYPE_CHECKING:
    from member_core.config import ReconcilerSettings

# Hardcoded list of available cluster implementations
AVAILABLE_RUNTIMES = ["tidb"]


def create_runtime(kind: str, settings: "ReconcilerSettings", **kwargs: Any) -> Any:
    """
    Create the runtime (controller, cluster store, dependencies) of `kind`.

    Raises:
        ValueError: If kind is not recognized

    Example:
        runtime = create_runtime("tidb", ReconcilerSettings())
        await runtime.controller.sync("db", "basic")
    """
    if kind == "tidb":
        # Lazy import to avoid loading the kubernetes client unless needed
        from member_tidb.factory import create_runtime as create_tidb_runtime

        return create_tidb_runtime(settings, **kwargs)
    raise ValueError(
        f"Unknown runtime '{kind}'. Available runtimes: {', '.join(AVAILABLE_RUNTIMES)}"
    )


def get_available_runtimes() -> list[str]:
    """Return list of available runtime names."""
    return AVAILABLE_RUNTIMES.copy()
