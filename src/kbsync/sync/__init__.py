"""kbsync reconciliation: disk scan vs. store diff."""

from kbsync.sync.reconcile import (
    ReconcileAction,
    ReconciliationEngine,
    ReconciliationResult,
    build_plan,
    external_engine,
)
from kbsync.sync.scanner import PathFilter, scan

__all__ = [
    "PathFilter",
    "ReconcileAction",
    "ReconciliationEngine",
    "ReconciliationResult",
    "build_plan",
    "external_engine",
    "scan",
]
