"""Reconciliation of harvested points against the catalog.

Public API:

- :func:`reconcile` -- classify points into additions, changes,
  removals and unchanged.
- :func:`build_mutations` / :func:`render_script` -- catalog statements
  for a result.
- :func:`merge_daily` -- concatenate same-day per-device artifacts.
"""

from bac_inventory.reconcile.engine import (
    FieldChange,
    PointAddition,
    ReconciliationResult,
    reconcile,
)
from bac_inventory.reconcile.merge import merge_daily
from bac_inventory.reconcile.statements import (
    Mutation,
    MutationKind,
    build_mutations,
    render_script,
)

__all__ = [
    "FieldChange",
    "Mutation",
    "MutationKind",
    "PointAddition",
    "ReconciliationResult",
    "build_mutations",
    "merge_daily",
    "reconcile",
    "render_script",
]
