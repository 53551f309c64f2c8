"""
Pytest configuration and shared fixtures for schemamend tests.

The ``FakeGateway`` keeps tables in memory and answers with the same error
shapes a hosted PostgREST endpoint produces, so reconciler tests run
without a database.
"""

import re
from typing import Any, Dict, Iterable, List, Optional

import pytest
import yaml

from schemamend.config import ChannelConfig, RestConnection
from schemamend.database.gateway import DatabaseGateway
from schemamend.exceptions import DatabaseConnectionError, RemoteCallError
from schemamend.expectation import SchemaExpectation
from schemamend.schema.channels import RpcChannel
from schemamend.sql import parse_default_literal


_ADD_COLUMN_RE = re.compile(
    r"^ALTER TABLE (\w+) ADD COLUMN IF NOT EXISTS (\w+)", re.IGNORECASE
)


class FakeGateway(DatabaseGateway):
    """
    In-memory stand-in for a hosted database.

    Args:
        tables: table name -> list of column names
        rows: table name -> list of row dicts
        functions: function name -> parameter name it accepts
        silent: functions that report success without applying anything
        rejecting: functions that answer every statement with an error payload
        reachable: when False every call raises DatabaseConnectionError
    """

    kind = "rest"

    def __init__(
        self,
        tables: Optional[Dict[str, List[str]]] = None,
        rows: Optional[Dict[str, List[Dict[str, Any]]]] = None,
        functions: Optional[Dict[str, str]] = None,
        silent: Iterable[str] = (),
        rejecting: Iterable[str] = (),
        reachable: bool = True,
    ):
        self.tables = {name: list(columns) for name, columns in (tables or {}).items()}
        self.rows = {name: [dict(r) for r in table_rows] for name, table_rows in (rows or {}).items()}
        self.functions = dict(functions or {})
        self.silent = set(silent)
        self.rejecting = set(rejecting)
        self.reachable = reachable
        self.calls: List[tuple] = []
        self.closed = False

    def _check_reachable(self) -> None:
        if not self.reachable:
            raise DatabaseConnectionError("Could not reach https://example.supabase.co")

    async def ping(self) -> Dict[str, Any]:
        self.calls.append(("ping",))
        self._check_reachable()
        return {"url": "https://example.supabase.co", "schema": "public", "status": 200}

    async def select_column(self, table: str, column: str) -> Any:
        self.calls.append(("select", table, column))
        self._check_reachable()

        if table not in self.tables:
            raise RemoteCallError(
                f"Could not find the table 'public.{table}' in the schema cache",
                code="PGRST205",
                status=404,
            )
        if column not in self.tables[table]:
            raise RemoteCallError(
                f"column {table}.{column} does not exist",
                code="42703",
                status=400,
            )

        return [{column: row.get(column)} for row in self.rows.get(table, [])[:1]]

    async def call_function(self, name: str, params: Dict[str, Any]) -> Any:
        self.calls.append(("rpc", name, dict(params)))
        self._check_reachable()

        param = self.functions.get(name)
        if param is None or list(params) != [param]:
            raise RemoteCallError(
                f"Could not find the function public.{name}({', '.join(params)}) "
                "in the schema cache",
                code="PGRST202",
                status=404,
            )

        if name in self.rejecting:
            return {"success": False, "error": "permission denied for schema public"}
        if name in self.silent:
            return {"success": True}

        return self._execute(params[param])

    def _execute(self, statement: str) -> Any:
        if statement.strip().upper() == "SELECT 1":
            return [{"?column?": 1}]

        match = _ADD_COLUMN_RE.match(statement)
        if not match:
            raise RemoteCallError(f"syntax error at or near \"{statement[:10]}\"", code="42601")

        table, column = match.groups()
        if table not in self.tables:
            raise RemoteCallError(f'relation "{table}" does not exist', code="42P01", status=400)

        if column not in self.tables[table]:
            self.tables[table].append(column)
            for row in self.rows.get(table, []):
                row.setdefault(column, None)

        return {"success": True}

    async def execute_sql(self, sql: str) -> Any:
        self.calls.append(("execute", sql))
        raise RemoteCallError("Could not find a raw SQL endpoint on the REST API", code="PGRST202")

    async def backfill_nulls(self, table: str, column: str, default_literal: str) -> int:
        self.calls.append(("backfill", table, column, default_literal))
        self._check_reachable()

        value = parse_default_literal(default_literal)
        updated = 0
        for row in self.rows.get(table, []):
            if row.get(column) is None:
                row[column] = value
                updated += 1
        return updated

    async def close(self) -> None:
        self.closed = True

    def count_calls(self, kind: str) -> int:
        return sum(1 for call in self.calls if call[0] == kind)


# ============================================================================
# Gateway and Channel Fixtures
# ============================================================================

@pytest.fixture
def orders_gateway() -> FakeGateway:
    """Database with an orders table of three rows and a working exec_sql(sql)."""
    return FakeGateway(
        tables={"orders": ["id", "customer"]},
        rows={"orders": [{"id": 1}, {"id": 2}, {"id": 3}]},
        functions={"exec_sql": "sql"},
    )


@pytest.fixture
def channel_configs() -> List[ChannelConfig]:
    return [
        ChannelConfig(function="exec_sql", param="sql"),
        ChannelConfig(function="exec_sql", param="query"),
        ChannelConfig(function="execute_sql", param="sql"),
    ]


def make_channels(gateway: DatabaseGateway, *specs: str) -> List[RpcChannel]:
    """Build rpc channels from ``"function(param)"`` strings."""
    channels = []
    for spec in specs:
        function, param = spec.rstrip(")").split("(")
        channels.append(RpcChannel(gateway, function, param))
    return channels


# ============================================================================
# Expectation Fixtures
# ============================================================================

@pytest.fixture
def orders_expectation() -> SchemaExpectation:
    """orders.tax_amount (numeric, default 0) and orders.ship_date."""
    return SchemaExpectation.from_dict(
        {
            "orders": [
                {"name": "tax_amount", "type": "NUMERIC(15,2)", "default": 0},
                {"name": "ship_date", "type": "DATE"},
            ]
        }
    )


@pytest.fixture
def rest_connection() -> RestConnection:
    return RestConnection(
        url="https://example.supabase.co/",
        api_key="service-key",
        max_retries=2,
        retry_delay=0.0,
    )


@pytest.fixture
def config_file(tmp_path):
    """Config file pointing at an expectation file next to it."""
    expectation = {
        "tables": {
            "orders": [
                {"name": "tax_amount", "type": "NUMERIC(15,2)", "default": 0},
            ]
        }
    }
    (tmp_path / "orders.yaml").write_text(yaml.safe_dump(expectation))

    config = {
        "connection": {
            "kind": "rest",
            "url": "https://example.supabase.co",
            "api_key": "service-key",
        },
        "channels": [{"function": "exec_sql", "param": "sql"}],
        "expectations": ["orders.yaml"],
    }
    path = tmp_path / "schemamend.yaml"
    path.write_text(yaml.safe_dump(config, sort_keys=False))
    return path


@pytest.fixture
def gateway_factory():
    """The FakeGateway class, for tests that need a custom database state."""
    return FakeGateway


@pytest.fixture
def channels_for():
    """Build rpc channels from ``"function(param)"`` strings."""
    return make_channels
