"""Branch reconciler: one authoritative task per id across git branches."""

from backlog_store.reconcile.loader import (
    CrossBranchTaskLoader,
    ReconciledView,
    resolve_snapshots,
    status_rank,
)

__all__ = [
    "CrossBranchTaskLoader",
    "ReconciledView",
    "resolve_snapshots",
    "status_rank",
]
