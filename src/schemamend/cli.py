"""
Command-line interface for schemamend.
"""

import asyncio
import json
import sys
from functools import wraps
from pathlib import Path
from typing import Optional, Tuple

import click
from rich.console import Console
from rich.table import Table

from . import __version__
from .config import (
    PostgresConnection,
    RestConnection,
    SchemamendConfig,
)
from .database import DatabaseHealthChecker, create_gateway
from .exceptions import ConfigurationError, SchemamendError
from .expectation import SchemaExpectation
from .logging_setup import configure_logging
from .schema import (
    ColumnStatus,
    ReconciliationPlan,
    ReconciliationReport,
    ReportOutcome,
    SchemaReconciler,
    build_channels,
)


console = Console()

EXIT_OK = 0
EXIT_CONNECTIVITY = 1
EXIT_MANUAL_REQUIRED = 2

_EXIT_CODES = {
    ReportOutcome.NOTHING_NEEDED: EXIT_OK,
    ReportOutcome.RESOLVED: EXIT_OK,
    ReportOutcome.MANUAL_REQUIRED: EXIT_MANUAL_REQUIRED,
    ReportOutcome.CONNECTIVITY_FAILED: EXIT_CONNECTIVITY,
}

_STATUS_STYLES = {
    ColumnStatus.PRESENT: "dim",
    ColumnStatus.CONFIRMED: "green",
    ColumnStatus.UNRESOLVED: "red",
    ColumnStatus.BLOCKED: "yellow",
}


def handle_errors(func):
    """Decorator to handle errors gracefully in CLI commands."""
    @wraps(func)
    def wrapper(*args, **kwargs):
        try:
            return func(*args, **kwargs)
        except SchemamendError as e:
            console.print(f"[red]Error:[/red] {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            console.print("\n[yellow]Interrupted by user[/yellow]")
            sys.exit(1)
    return wrapper


config_option = click.option(
    "--config",
    "-c",
    type=click.Path(exists=True),
    required=True,
    help="Configuration file path",
)

expectation_option = click.option(
    "--expectation",
    "-e",
    "expectations",
    multiple=True,
    help="Expectation file or builtin:<name> (overrides the configured ones)",
)


@click.group()
@click.version_option(__version__)
@click.option(
    "--debug", is_flag=True, help="Enable debug logging"
)
@click.pass_context
def main(ctx, debug):
    """schemamend: idempotent schema reconciliation for hosted PostgreSQL."""
    ctx.ensure_object(dict)
    ctx.obj["debug"] = debug


@main.command()
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    default="schemamend.yaml",
    help="Output configuration file path",
)
@click.option(
    "--postgres",
    is_flag=True,
    help="Use a direct PostgreSQL connection instead of the REST API",
)
@handle_errors
def init(output: str, postgres: bool):
    """Initialize a new schemamend configuration file."""
    if Path(output).exists():
        if not click.confirm(f"Configuration file {output} already exists. Overwrite?"):
            return

    config = _create_default_config(postgres)
    config.to_yaml(output)

    console.print(f"[green]✓[/green] Configuration file created: {output}")
    console.print("\n[yellow]Next steps:[/yellow]")
    console.print("1. Set the connection variables referenced in the file")
    console.print("2. Run: schemamend validate-config -c " + output)
    console.print("3. Run: schemamend test-connection -c " + output)
    console.print("4. Run: schemamend reconcile -c " + output)


@main.command()
@config_option
@handle_errors
def validate_config(config: str):
    """Validate configuration file."""
    console.print(f"Validating configuration: {config}")

    try:
        schemamend_config = SchemamendConfig.from_yaml(config)
        schemamend_config.validate_config()
        expectation = SchemaExpectation.load_all(schemamend_config.expectations)
    except ConfigurationError as e:
        console.print(f"[red]✗[/red] Configuration error: {e}")
        sys.exit(1)

    console.print("[green]✓[/green] Configuration is valid")
    _display_config_summary(schemamend_config, expectation)


@main.command()
@config_option
@click.pass_context
@handle_errors
def test_connection(ctx, config: str):
    """Test the database connection and the execution channels."""
    schemamend_config, _ = _load(ctx, config, ())
    console.print("[blue]Testing connection...[/blue]")

    async def run_checks():
        async with create_gateway(schemamend_config.connection) as gateway:
            channels = build_channels(schemamend_config.channels, gateway)
            checker = DatabaseHealthChecker(gateway)
            return await checker.check_all(channels)

    results = asyncio.run(run_checks())

    connectivity = results["connectivity"]
    if connectivity.is_critical:
        console.print(f"  ❌ [red]{connectivity.message}[/red]")
        sys.exit(1)

    console.print(
        f"  ✅ [green]{connectivity.message}[/green] ({connectivity.duration_ms:.1f}ms)"
    )

    table = Table(title="Execution Channels")
    table.add_column("Channel", style="cyan")
    table.add_column("Status", style="magenta")
    table.add_column("Message")

    available = 0
    for name, result in results.items():
        if name == "connectivity":
            continue
        if result.is_healthy:
            available += 1
        table.add_row(name.split(":", 1)[1], result.status.value, result.message)

    console.print(table)

    if available == 0:
        console.print(
            "[yellow]No execution channel is available; "
            "missing columns will have to be added by hand[/yellow]"
        )


@main.command()
@config_option
@expectation_option
@click.pass_context
@handle_errors
def plan(ctx, config: str, expectations: Tuple[str, ...]):
    """Show which expected columns are missing, without changing anything."""
    schemamend_config, expectation = _load(ctx, config, expectations)
    result = _run_plan(schemamend_config, expectation)

    _display_plan(result)
    sys.exit(EXIT_OK if result.is_empty else EXIT_MANUAL_REQUIRED)


@main.command()
@config_option
@expectation_option
@click.option(
    "--output",
    "-o",
    type=click.Path(),
    help="Write the script to a file instead of stdout",
)
@click.pass_context
@handle_errors
def sql(ctx, config: str, expectations: Tuple[str, ...], output: Optional[str]):
    """Print the statements needed to add missing columns, without running them."""
    schemamend_config, expectation = _load(ctx, config, expectations)
    result = _run_plan(schemamend_config, expectation)

    report = result.to_report()
    script = report.render_sql()

    if output:
        Path(output).write_text(script, encoding="utf-8")
        console.print(f"[green]✓[/green] Wrote {len(report.required_statements())} statement(s) to {output}")
    else:
        click.echo(script, nl=False)


@main.command()
@config_option
@expectation_option
@click.option(
    "--deadline",
    type=float,
    help="Overall deadline in seconds (overrides config)",
)
@click.option(
    "--no-backfill",
    is_flag=True,
    help="Do not write declared defaults into NULL rows",
)
@click.option(
    "--json",
    "as_json",
    is_flag=True,
    help="Print the report as JSON",
)
@click.option(
    "--sql-output",
    type=click.Path(),
    help="Write statements that still need manual execution to a file",
)
@click.pass_context
@handle_errors
def reconcile(
    ctx,
    config: str,
    expectations: Tuple[str, ...],
    deadline: Optional[float],
    no_backfill: bool,
    as_json: bool,
    sql_output: Optional[str],
):
    """
    Add missing columns and verify them.

    Exit codes: 0 when nothing was needed or everything was resolved,
    2 when statements need manual execution, 1 when the database could
    not be reached.
    """
    schemamend_config, expectation = _load(ctx, config, expectations)

    if no_backfill:
        schemamend_config.reconciler.backfill = False
    if deadline is not None:
        if deadline <= 0:
            raise ConfigurationError("--deadline must be positive")
        schemamend_config.reconciler.deadline_seconds = deadline

    if not as_json:
        console.print(
            f"[blue]Reconciling {len(expectation)} columns "
            f"across {len(expectation.tables)} tables...[/blue]"
        )

    async def run_reconcile():
        async with create_gateway(schemamend_config.connection) as gateway:
            reconciler = SchemaReconciler.from_config(schemamend_config, gateway)
            return await reconciler.reconcile(expectation)

    report = asyncio.run(run_reconcile())

    if sql_output and report.required_statements():
        Path(sql_output).write_text(report.render_sql(), encoding="utf-8")

    if as_json:
        click.echo(json.dumps(report.to_dict(), indent=2))
    else:
        _display_report(report)
        if sql_output and report.required_statements():
            console.print(f"\nManual SQL written to {sql_output}")

    sys.exit(_EXIT_CODES[report.outcome])


def _load(ctx, config_path: str, expectation_refs: Tuple[str, ...]):
    """Load and validate configuration, set up logging, load expectations."""
    schemamend_config = SchemamendConfig.from_yaml(config_path)
    if expectation_refs:
        schemamend_config.expectations = list(expectation_refs)

    debug = bool(ctx.obj and ctx.obj.get("debug"))
    configure_logging(schemamend_config.logging, debug=debug)

    schemamend_config.validate_config()
    expectation = SchemaExpectation.load_all(schemamend_config.expectations)
    return schemamend_config, expectation


def _run_plan(config: SchemamendConfig, expectation: SchemaExpectation) -> ReconciliationPlan:
    """Probe the expectation; exits with the connectivity code if unreachable."""

    async def run_plan():
        async with create_gateway(config.connection) as gateway:
            reconciler = SchemaReconciler.from_config(config, gateway)
            error = await reconciler.check_connectivity()
            if error is not None:
                return None, error
            return await reconciler.plan_missing_columns(expectation), None

    result, error = asyncio.run(run_plan())

    if error is not None:
        console.print(f"[red]✗ Cannot reach the database:[/red] {error}")
        sys.exit(EXIT_CONNECTIVITY)

    return result


def _create_default_config(postgres: bool = False) -> SchemamendConfig:
    """Create a default configuration with examples."""
    if postgres:
        connection = PostgresConnection(
            host="${POSTGRES_HOST}",
            database="${POSTGRES_DB}",
            user="${POSTGRES_USER}",
            password="${POSTGRES_PASSWORD}",
        )
    else:
        connection = RestConnection(
            url="${SUPABASE_URL}",
            api_key="${SUPABASE_SERVICE_ROLE_KEY}",
        )

    return SchemamendConfig(
        connection=connection,
        expectations=["builtin:business"],
    )


def _display_config_summary(config: SchemamendConfig, expectation: SchemaExpectation):
    """Display a summary of the configuration."""
    console.print("\n[blue]Configuration Summary[/blue]")

    connection = config.connection
    target = connection.url if connection.kind == "rest" else (
        connection.dsn or f"{connection.host}:{connection.port}/{connection.database}"
    )
    console.print(f"  Connection: {connection.kind} ({target})")
    console.print(f"  Channels: {', '.join(c.label for c in config.channels)}")
    console.print(f"  Backfill: {'on' if config.reconciler.backfill else 'off'}")
    if config.reconciler.deadline_seconds:
        console.print(f"  Deadline: {config.reconciler.deadline_seconds}s")

    exp_table = Table(title="Expected Columns")
    exp_table.add_column("Table", style="cyan")
    exp_table.add_column("Columns", style="magenta")

    for table, columns in expectation.tables.items():
        exp_table.add_row(table, ", ".join(c.name for c in columns))

    console.print(exp_table)


def _display_plan(plan: ReconciliationPlan):
    """Display a reconciliation plan."""
    table = Table(title="Schema Plan")
    table.add_column("Table", style="cyan")
    table.add_column("Column", style="magenta")
    table.add_column("State")
    table.add_column("Note")

    for planned in plan.columns:
        state = planned.probe.state.value
        style = {"present": "dim", "absent": "red", "unknown": "yellow"}[state]
        table.add_row(
            planned.table,
            planned.column,
            f"[{style}]{state}[/{style}]",
            planned.probe.reason or "",
        )

    console.print(table)
    console.print(
        f"\nPresent: {len(plan.present)}  Missing: [red]{len(plan.missing)}[/red]  "
        f"Blocked: [yellow]{len(plan.blocked)}[/yellow]"
    )


def _display_report(report: ReconciliationReport):
    """Display a reconciliation report."""
    if report.connectivity_error is not None:
        console.print(f"[red]✗ Cannot reach the database:[/red] {report.connectivity_error}")
        return

    table = Table(title="Reconciliation Report")
    table.add_column("Table", style="cyan")
    table.add_column("Column", style="magenta")
    table.add_column("Status")
    table.add_column("Backfilled", justify="right")
    table.add_column("Note")

    for entry in report.entries:
        style = _STATUS_STYLES[entry.status]
        note = entry.reason or entry.backfill_error or ""
        if entry.outcome is not None and entry.status == ColumnStatus.CONFIRMED:
            note = entry.outcome.value
        table.add_row(
            entry.table,
            entry.column,
            f"[{style}]{entry.status.value}[/{style}]",
            str(entry.backfilled) if entry.backfilled else "",
            note,
        )

    console.print(table)

    summary = report.summary()
    console.print(
        f"\nConfirmed: [green]{summary['confirmed']}[/green]  "
        f"Unresolved: [red]{summary['unresolved']}[/red]  "
        f"Blocked: [yellow]{summary['blocked']}[/yellow]  "
        f"Rows backfilled: {summary['rows_backfilled']}"
    )

    if report.deadline_exceeded:
        console.print("[yellow]Deadline exceeded before every column was processed[/yellow]")

    if report.outcome == ReportOutcome.NOTHING_NEEDED:
        console.print("\n[green]✓ Nothing needed: the schema matches the expectation[/green]")
    elif report.outcome == ReportOutcome.RESOLVED:
        console.print("\n[green]✓ All missing columns were added and verified[/green]")
    else:
        statements = report.required_statements()
        console.print(
            f"\n[yellow]{len(statements)} column(s) require manual SQL:[/yellow]"
        )
        for statement in statements:
            console.print(f"  {statement};", markup=False, highlight=False)


if __name__ == "__main__":
    main()
