"""
Result types for schema reconciliation.

A ``ReconciliationReport`` is created fresh for every run and returned to
the caller. It answers two questions: did reconciliation fully succeed, and
which statements still need to be run by hand.
"""

from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Dict, List, Optional

from ..classification import ChannelOutcome, ProbeFailure
from ..exceptions import DatabaseConnectionError, SchemaError
from ..expectation import ColumnSpec


class ProbeState(str, Enum):
    """Tri-state result of probing a column."""

    PRESENT = "present"
    ABSENT = "absent"
    UNKNOWN = "unknown"


@dataclass
class ColumnProbeResult:
    """Outcome of probing one (table, column) pair."""

    table: str
    column: str
    state: ProbeState
    reason: Optional[str] = None
    failure: Optional[ProbeFailure] = None

    @property
    def is_present(self) -> bool:
        return self.state == ProbeState.PRESENT

    @property
    def is_absent(self) -> bool:
        return self.state == ProbeState.ABSENT

    @property
    def is_unknown(self) -> bool:
        return self.state == ProbeState.UNKNOWN


class ApplyOutcome(str, Enum):
    """Outcome of trying to add one column."""

    APPLIED = "applied"
    ALREADY_PRESENT = "already_present"
    FAILED = "failed"


@dataclass
class ChannelAttempt:
    """One statement execution through one channel."""

    channel: str
    outcome: ChannelOutcome
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return {"channel": self.channel, "outcome": self.outcome.value, "reason": self.reason}


@dataclass
class ApplyResult:
    """Result of ``SchemaReconciler.apply_column``."""

    outcome: ApplyOutcome
    statement: str
    attempts: List[ChannelAttempt] = field(default_factory=list)
    reason: Optional[str] = None

    @property
    def succeeded(self) -> bool:
        return self.outcome != ApplyOutcome.FAILED

    @property
    def channel(self) -> Optional[str]:
        """Channel that produced the final outcome."""
        if not self.succeeded or not self.attempts:
            return None
        return self.attempts[-1].channel


class ColumnStatus(str, Enum):
    """Final status of a column in a report."""

    PRESENT = "present"
    CONFIRMED = "confirmed"
    UNRESOLVED = "unresolved"
    BLOCKED = "blocked"


class ReportOutcome(str, Enum):
    """Overall result of a reconciliation run."""

    NOTHING_NEEDED = "nothing_needed"
    RESOLVED = "resolved"
    MANUAL_REQUIRED = "manual_required"
    CONNECTIVITY_FAILED = "connectivity_failed"


@dataclass
class ColumnEntry:
    """Everything a run learned and did about one expected column."""

    table: str
    spec: ColumnSpec
    probe: ProbeState
    status: ColumnStatus
    statement: str
    outcome: Optional[ApplyOutcome] = None
    attempts: List[ChannelAttempt] = field(default_factory=list)
    reason: Optional[str] = None
    error: Optional[SchemaError] = None
    backfilled: Optional[int] = None
    backfill_error: Optional[str] = None

    @property
    def column(self) -> str:
        return self.spec.name

    @property
    def needs_manual_action(self) -> bool:
        return self.status in (ColumnStatus.UNRESOLVED, ColumnStatus.BLOCKED)

    @property
    def is_newly_applied(self) -> bool:
        return self.status == ColumnStatus.CONFIRMED and self.outcome == ApplyOutcome.APPLIED

    def to_dict(self) -> Dict[str, Any]:
        return {
            "column": self.column,
            "definition": self.spec.definition(),
            "probe": self.probe.value,
            "status": self.status.value,
            "outcome": self.outcome.value if self.outcome else None,
            "statement": self.statement,
            "attempts": [a.to_dict() for a in self.attempts],
            "reason": self.reason,
            "backfilled": self.backfilled,
            "backfill_error": self.backfill_error,
        }


@dataclass
class ReconciliationReport:
    """Per-table account of one reconciliation run."""

    tables: Dict[str, List[ColumnEntry]] = field(default_factory=dict)
    connectivity_error: Optional[str] = None
    deadline_exceeded: bool = False
    execution_time_ms: float = 0.0

    def add(self, entry: ColumnEntry) -> None:
        self.tables.setdefault(entry.table, []).append(entry)

    @property
    def entries(self) -> List[ColumnEntry]:
        return [entry for entries in self.tables.values() for entry in entries]

    def _with_status(self, status: ColumnStatus) -> List[ColumnEntry]:
        return [e for e in self.entries if e.status == status]

    @property
    def present(self) -> List[ColumnEntry]:
        """Columns that already existed before the run."""
        return self._with_status(ColumnStatus.PRESENT)

    @property
    def confirmed(self) -> List[ColumnEntry]:
        """Columns found absent, then added and verified by re-probe."""
        return self._with_status(ColumnStatus.CONFIRMED)

    @property
    def unresolved(self) -> List[ColumnEntry]:
        return self._with_status(ColumnStatus.UNRESOLVED)

    @property
    def blocked(self) -> List[ColumnEntry]:
        return self._with_status(ColumnStatus.BLOCKED)

    @property
    def newly_applied(self) -> List[ColumnEntry]:
        return [e for e in self.entries if e.is_newly_applied]

    @property
    def failures(self) -> List[ColumnEntry]:
        """Columns whose apply step failed or could not be verified."""
        return [e for e in self.unresolved if e.error is not None]

    @property
    def rows_backfilled(self) -> int:
        return sum(e.backfilled or 0 for e in self.entries)

    @property
    def outcome(self) -> ReportOutcome:
        if self.connectivity_error is not None:
            return ReportOutcome.CONNECTIVITY_FAILED
        if self.unresolved or self.blocked:
            return ReportOutcome.MANUAL_REQUIRED
        if self.confirmed:
            return ReportOutcome.RESOLVED
        return ReportOutcome.NOTHING_NEEDED

    @property
    def is_fully_resolved(self) -> bool:
        return self.outcome in (ReportOutcome.NOTHING_NEEDED, ReportOutcome.RESOLVED)

    def required_statements(self) -> List[str]:
        """Statements an operator still has to run, in declaration order."""
        return [e.statement for e in self.entries if e.needs_manual_action]

    def render_sql(self) -> str:
        """Annotated SQL script of the statements still required."""
        statements = self.required_statements()
        if not statements:
            return "-- Nothing to do: the schema matches the expectation\n"

        lines = [f"-- {len(statements)} statement(s) require manual execution"]

        for table, entries in self.tables.items():
            pending = [e for e in entries if e.needs_manual_action]
            if not pending:
                continue

            lines.append("")
            lines.append(f"-- {table}")
            if any(e.status == ColumnStatus.BLOCKED for e in pending):
                reason = next(e.reason for e in pending if e.status == ColumnStatus.BLOCKED)
                lines.append(f"-- Table could not be probed ({reason}); create it first")

            for entry in pending:
                if entry.status == ColumnStatus.UNRESOLVED and entry.reason:
                    lines.append(f"-- {entry.column}: {entry.reason}")
                lines.append(f"{entry.statement};")

        return "\n".join(lines) + "\n"

    def summary(self) -> Dict[str, int]:
        return {
            "present": len(self.present),
            "confirmed": len(self.confirmed),
            "newly_applied": len(self.newly_applied),
            "unresolved": len(self.unresolved),
            "blocked": len(self.blocked),
            "rows_backfilled": self.rows_backfilled,
        }

    def to_dict(self) -> Dict[str, Any]:
        return {
            "outcome": self.outcome.value,
            "summary": self.summary(),
            "connectivity_error": self.connectivity_error,
            "deadline_exceeded": self.deadline_exceeded,
            "execution_time_ms": round(self.execution_time_ms, 2),
            "tables": {
                table: [e.to_dict() for e in entries]
                for table, entries in self.tables.items()
            },
            "required_statements": self.required_statements(),
        }

    def raise_for_connectivity(self) -> None:
        """
        Raise if the run was aborted by the initial connectivity check.

        Raises:
            DatabaseConnectionError: With the recorded connectivity error
        """
        if self.connectivity_error is not None:
            raise DatabaseConnectionError(
                f"Reconciliation aborted: {self.connectivity_error}"
            )
