"""
Schema reconciliation core logic for schemamend.

Brings a live database as close as possible to a ``SchemaExpectation``
using only additive, conditional statements. Every step is individually
idempotent, so independent runs may interleave freely.
"""

import asyncio
import logging
from dataclasses import dataclass, field
from typing import Any, Awaitable, Dict, List, Optional, Sequence

from .channels import ExecutionChannel, build_channels
from .report import (
    ApplyOutcome,
    ApplyResult,
    ChannelAttempt,
    ColumnEntry,
    ColumnProbeResult,
    ColumnStatus,
    ProbeState,
    ReconciliationReport,
)
from ..classification import (
    ChannelOutcome,
    ProbeFailure,
    classify_channel_result,
    classify_probe_error,
)
from ..database.gateway import DatabaseGateway
from ..exceptions import (
    ApplyError,
    DatabaseConnectionError,
    ProbeError,
    SchemamendError,
    ValidationError,
    VerificationMismatch,
)
from ..expectation import ColumnSpec, SchemaExpectation
from ..sql import validate_identifier


logger = logging.getLogger(__name__)

DEADLINE_EXCEEDED = "deadline exceeded"
VERIFICATION_FAILED = "verification failed"


@dataclass
class PlannedColumn:
    """An expected column together with its probe result."""

    table: str
    spec: ColumnSpec
    probe: ColumnProbeResult

    @property
    def column(self) -> str:
        return self.spec.name

    @property
    def statement(self) -> str:
        return self.spec.add_column_sql(self.table)

    def to_entry(self) -> ColumnEntry:
        """Report entry for this column before anything has been applied."""
        entry = ColumnEntry(
            table=self.table,
            spec=self.spec,
            probe=self.probe.state,
            status=ColumnStatus.UNRESOLVED,
            statement=self.statement,
        )

        if self.probe.is_present:
            entry.status = ColumnStatus.PRESENT
        elif self.probe.is_unknown:
            entry.status = ColumnStatus.BLOCKED
            entry.reason = self.probe.reason
            entry.error = ProbeError(self.table, self.column, self.probe.reason or "unknown")

        return entry


@dataclass
class ReconciliationPlan:
    """Expected columns split by probe outcome, in declaration order."""

    columns: List[PlannedColumn] = field(default_factory=list)

    @property
    def present(self) -> List[PlannedColumn]:
        return [c for c in self.columns if c.probe.is_present]

    @property
    def missing(self) -> List[PlannedColumn]:
        return [c for c in self.columns if c.probe.is_absent]

    @property
    def blocked(self) -> List[PlannedColumn]:
        """Columns that could not be probed; their table must be created first."""
        return [c for c in self.columns if c.probe.is_unknown]

    @property
    def is_empty(self) -> bool:
        """True when there is nothing to do and nothing undeterminable."""
        return not self.missing and not self.blocked

    def to_report(self) -> ReconciliationReport:
        """Report of what a run would start from, with nothing applied yet."""
        report = ReconciliationReport()
        for planned in self.columns:
            report.add(planned.to_entry())
        return report


class SchemaReconciler:
    """
    Core schema reconciliation engine for schemamend.

    Coordinates:
    - Probing columns with minimal reads
    - Adding missing columns through the configured execution channels
    - Mandatory verification by re-probing
    - Backfilling declared defaults into NULL rows
    """

    def __init__(
        self,
        gateway: DatabaseGateway,
        channels: Sequence[ExecutionChannel],
        backfill: bool = True,
        deadline_seconds: Optional[float] = None,
    ):
        self.gateway = gateway
        self.channels = list(channels)
        self.backfill = backfill
        self.deadline_seconds = deadline_seconds

    @classmethod
    def from_config(cls, config, gateway: DatabaseGateway) -> "SchemaReconciler":
        """Build a reconciler from a ``SchemamendConfig``."""
        return cls(
            gateway,
            build_channels(config.channels, gateway),
            backfill=config.reconciler.backfill,
            deadline_seconds=config.reconciler.deadline_seconds,
        )

    async def check_connectivity(self) -> Optional[str]:
        """
        Check that the database answers at all.

        Returns:
            None when reachable, otherwise the error message
        """
        try:
            await self.gateway.ping()
        except SchemamendError as e:
            logger.error(f"Connectivity check failed: {e}")
            return str(e)
        return None

    async def probe_column(self, table: str, column: str) -> ColumnProbeResult:
        """
        Determine whether a column exists by reading it.

        Raises:
            ValidationError: If a name is empty or invalid
        """
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")

        try:
            await self.gateway.select_column(table, column)
        except DatabaseConnectionError as e:
            logger.warning(f"Probe of {table}.{column} could not reach the database: {e}")
            return ColumnProbeResult(
                table, column, ProbeState.UNKNOWN, reason=str(e), failure=ProbeFailure.OTHER
            )
        except SchemamendError as e:
            failure = classify_probe_error(e)

            if failure == ProbeFailure.COLUMN_MISSING:
                logger.debug(f"Probe {table}.{column}: absent")
                return ColumnProbeResult(table, column, ProbeState.ABSENT, failure=failure)

            if failure == ProbeFailure.TABLE_MISSING:
                reason = f"table {table} does not exist"
            else:
                reason = f"probe failed: {e}"

            logger.debug(f"Probe {table}.{column}: unknown ({reason})")
            return ColumnProbeResult(
                table, column, ProbeState.UNKNOWN, reason=reason, failure=failure
            )

        logger.debug(f"Probe {table}.{column}: present")
        return ColumnProbeResult(table, column, ProbeState.PRESENT)

    async def plan_missing_columns(self, expectation: SchemaExpectation) -> ReconciliationPlan:
        """Probe every expected column in declaration order."""
        plan = ReconciliationPlan()
        await self._fill_plan(plan, expectation, None)
        return plan

    async def _fill_plan(
        self,
        plan: ReconciliationPlan,
        expectation: SchemaExpectation,
        deadline_at: Optional[float],
    ) -> None:
        # Filled in place so a deadline leaves the probes done so far
        missing_tables: Dict[str, str] = {}

        for table, spec in expectation.iter_columns():
            if table in missing_tables:
                probe = ColumnProbeResult(
                    table,
                    spec.name,
                    ProbeState.UNKNOWN,
                    reason=missing_tables[table],
                    failure=ProbeFailure.TABLE_MISSING,
                )
            else:
                probe = await self._bounded(self.probe_column(table, spec.name), deadline_at)
                if probe.failure == ProbeFailure.TABLE_MISSING:
                    missing_tables[table] = probe.reason

            plan.columns.append(PlannedColumn(table, spec, probe))

    async def apply_column(self, table: str, column: str, spec: ColumnSpec) -> ApplyResult:
        """
        Add one column through the first execution channel that exists.

        Remote failures are returned as a ``failed`` outcome, never raised.
        """
        if column != spec.name:
            raise ValidationError(f"Column {column!r} does not match spec {spec.name!r}")

        statement = spec.add_column_sql(table)
        attempts: List[ChannelAttempt] = []

        if not self.channels:
            return ApplyResult(
                ApplyOutcome.FAILED, statement, attempts, "no execution channels configured"
            )

        for channel in self.channels:
            exc = None
            data: Any = None

            try:
                data = await channel.execute(statement)
            except SchemamendError as e:
                exc = e

            verdict = classify_channel_result(exc, data, channel.function)
            attempts.append(ChannelAttempt(channel.name, verdict.outcome, verdict.reason))

            if verdict.outcome == ChannelOutcome.CHANNEL_MISSING:
                logger.debug(f"Channel {channel.name} not available, trying next")
                continue

            if verdict.outcome == ChannelOutcome.OK:
                logger.info(f"Added {table}.{column} via {channel.name}")
                return ApplyResult(ApplyOutcome.APPLIED, statement, attempts)

            if verdict.outcome == ChannelOutcome.ALREADY_EXISTS:
                logger.info(f"{table}.{column} already exists (via {channel.name})")
                return ApplyResult(ApplyOutcome.ALREADY_PRESENT, statement, attempts)

            reason = f"{channel.name} rejected the statement: {verdict.reason}"
            logger.warning(f"Could not add {table}.{column}: {reason}")
            return ApplyResult(ApplyOutcome.FAILED, statement, attempts, reason)

        tried = ", ".join(a.channel for a in attempts)
        reason = f"no execution channel available (tried {tried})"
        logger.warning(f"Could not add {table}.{column}: {reason}")
        return ApplyResult(ApplyOutcome.FAILED, statement, attempts, reason)

    async def backfill_defaults(self, table: str, column: str, default_literal: str) -> int:
        """
        Set the default on rows where the column is NULL.

        Returns:
            Number of rows updated; zero on a repeated run
        """
        updated = await self.gateway.backfill_nulls(table, column, default_literal)
        if updated:
            logger.info(f"Backfilled {updated} rows of {table}.{column} with {default_literal}")
        return updated

    async def reconcile(
        self,
        expectation: SchemaExpectation,
        deadline_seconds: Optional[float] = None,
    ) -> ReconciliationReport:
        """
        Reconcile the live schema with an expectation.

        Columns are processed one at a time in declaration order: apply,
        verify by re-probe, then backfill. Only a failed initial
        connectivity check aborts the run.

        Args:
            expectation: Expected tables and columns
            deadline_seconds: Overall deadline; overrides the configured one

        Returns:
            ReconciliationReport for this run
        """
        loop = asyncio.get_running_loop()
        start_time = loop.time()

        deadline = deadline_seconds if deadline_seconds is not None else self.deadline_seconds
        deadline_at = start_time + deadline if deadline is not None else None

        report = ReconciliationReport()
        plan = ReconciliationPlan()

        logger.info(
            f"Starting reconciliation of {len(expectation)} columns "
            f"across {len(expectation.tables)} tables"
        )

        try:
            error = await self._bounded(self.check_connectivity(), deadline_at)
            if error is not None:
                report.connectivity_error = error
                for table, spec in expectation.iter_columns():
                    report.add(self._blocked_entry(table, spec, f"connectivity check failed: {error}"))
                return report

            await self._fill_plan(plan, expectation, deadline_at)

            for planned in plan.columns:
                entry = planned.to_entry()
                report.add(entry)
                await self._process_entry(entry, deadline_at)

        except asyncio.TimeoutError:
            logger.warning(f"Reconciliation deadline of {deadline}s exceeded")
            report.deadline_exceeded = True
            self._expire_remaining(report, plan, expectation)

        finally:
            report.execution_time_ms = (loop.time() - start_time) * 1000

        summary = report.summary()
        logger.info(
            f"Reconciliation finished ({report.outcome.value}): "
            f"{summary['confirmed']} confirmed, {summary['unresolved']} unresolved, "
            f"{summary['blocked']} blocked, {summary['rows_backfilled']} rows backfilled "
            f"in {report.execution_time_ms:.0f}ms"
        )
        return report

    def _blocked_entry(self, table: str, spec: ColumnSpec, reason: str) -> ColumnEntry:
        return ColumnEntry(
            table=table,
            spec=spec,
            probe=ProbeState.UNKNOWN,
            status=ColumnStatus.BLOCKED,
            statement=spec.add_column_sql(table),
            reason=reason,
            error=ProbeError(table, spec.name, reason),
        )

    async def _process_entry(self, entry: ColumnEntry, deadline_at: Optional[float]) -> None:
        """Apply, verify and backfill one column, updating its entry in place."""
        if entry.status == ColumnStatus.BLOCKED:
            logger.warning(f"{entry.table}.{entry.column} blocked: {entry.reason}")
            return

        if entry.status == ColumnStatus.PRESENT:
            await self._backfill_entry(entry, deadline_at)
            return

        result = await self._bounded(
            self.apply_column(entry.table, entry.column, entry.spec), deadline_at
        )
        entry.outcome = result.outcome
        entry.attempts = result.attempts

        if not result.succeeded:
            entry.reason = result.reason
            entry.error = ApplyError(entry.table, entry.column, result.reason or "unknown")
            return

        # Channels can report success for statements that never took effect
        verification = await self._bounded(
            self.probe_column(entry.table, entry.column), deadline_at
        )
        if not verification.is_present:
            entry.reason = VERIFICATION_FAILED
            entry.error = VerificationMismatch(entry.table, entry.column, result.channel)
            logger.warning(str(entry.error))
            return

        entry.status = ColumnStatus.CONFIRMED
        await self._backfill_entry(entry, deadline_at)

    def _wants_backfill(self, entry: ColumnEntry) -> bool:
        return self.backfill and entry.spec.default is not None

    async def _backfill_entry(self, entry: ColumnEntry, deadline_at: Optional[float]) -> None:
        if not self._wants_backfill(entry):
            return

        try:
            entry.backfilled = await self._bounded(
                self.backfill_defaults(entry.table, entry.column, entry.spec.default),
                deadline_at,
            )
        except SchemamendError as e:
            entry.backfill_error = str(e)
            logger.warning(f"Backfill of {entry.table}.{entry.column} failed: {e}")

    def _expire_remaining(
        self,
        report: ReconciliationReport,
        plan: ReconciliationPlan,
        expectation: SchemaExpectation,
    ) -> None:
        """Record every column the deadline cut off."""
        reported = {(e.table, e.column): e for e in report.entries}
        probed = {(c.table, c.column): c for c in plan.columns}

        for table, spec in expectation.iter_columns():
            key = (table, spec.name)
            entry = reported.get(key)

            if entry is None:
                planned = probed.get(key)
                if planned is not None:
                    entry = planned.to_entry()
                else:
                    entry = ColumnEntry(
                        table=table,
                        spec=spec,
                        probe=ProbeState.UNKNOWN,
                        status=ColumnStatus.UNRESOLVED,
                        statement=spec.add_column_sql(table),
                    )
                report.add(entry)

            if entry.status == ColumnStatus.UNRESOLVED and entry.error is None:
                entry.reason = DEADLINE_EXCEEDED
            elif (
                entry.status in (ColumnStatus.PRESENT, ColumnStatus.CONFIRMED)
                and self._wants_backfill(entry)
                and entry.backfilled is None
                and entry.backfill_error is None
            ):
                entry.backfill_error = DEADLINE_EXCEEDED

    @staticmethod
    async def _bounded(awaitable: Awaitable[Any], deadline_at: Optional[float]) -> Any:
        """Await with whatever time is left before the deadline."""
        if deadline_at is None:
            return await awaitable

        remaining = deadline_at - asyncio.get_running_loop().time()
        if remaining <= 0:
            # Never awaited; close it to avoid a "never awaited" warning
            awaitable.close()
            raise asyncio.TimeoutError()

        return await asyncio.wait_for(awaitable, timeout=remaining)
