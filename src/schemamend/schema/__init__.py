"""
Schema management package for schemamend.

This package provides:
- Schema reconciliation core logic
- Execution channels for additive statements
- Reconciliation reports and SQL rendering
"""

from .reconciler import PlannedColumn, ReconciliationPlan, SchemaReconciler
from .channels import DirectChannel, ExecutionChannel, RpcChannel, build_channels
from .report import (
    ApplyOutcome,
    ApplyResult,
    ChannelAttempt,
    ColumnEntry,
    ColumnProbeResult,
    ColumnStatus,
    ProbeState,
    ReconciliationReport,
    ReportOutcome,
)

__all__ = [
    "SchemaReconciler",
    "ReconciliationPlan",
    "PlannedColumn",
    "ExecutionChannel",
    "RpcChannel",
    "DirectChannel",
    "build_channels",
    "ApplyOutcome",
    "ApplyResult",
    "ChannelAttempt",
    "ColumnEntry",
    "ColumnProbeResult",
    "ColumnStatus",
    "ProbeState",
    "ReconciliationReport",
    "ReportOutcome",
]
