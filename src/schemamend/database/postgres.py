"""
Direct PostgreSQL gateway.

Used when an operator holds a connection string. Runs the same probes and
function calls as the REST gateway over an asyncpg pool, and additionally
supports raw statement execution for the ``direct`` channel.
"""

import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict

import asyncpg

from .connection import ConnectionConfig, ConnectionPool
from .gateway import DatabaseGateway
from ..exceptions import DatabaseConnectionError, RemoteCallError
from ..sql import (
    backfill_statement,
    function_call_statement,
    probe_statement,
    validate_identifier,
)


logger = logging.getLogger(__name__)


def parse_command_count(status: str) -> int:
    """Row count from a command tag such as ``UPDATE 3``."""
    if not status:
        return 0
    last = status.split()[-1]
    return int(last) if last.isdigit() else 0


class PostgresGateway(DatabaseGateway):
    """Gateway over a direct asyncpg connection pool."""

    kind = "postgres"

    def __init__(self, pool: ConnectionPool):
        self.pool = pool

    @classmethod
    def from_config(cls, config: ConnectionConfig) -> "PostgresGateway":
        return cls(ConnectionPool(config))

    async def _run(self, operation: Callable[..., Awaitable[Any]], *args) -> Any:
        """Run a pool operation, translating driver errors."""
        if not self.pool.is_initialized:
            await self.pool.initialize()

        try:
            return await operation(*args)
        except asyncpg.exceptions.PostgresConnectionError as e:
            raise DatabaseConnectionError(f"Connection lost: {e}", cause=e) from e
        except asyncpg.PostgresError as e:
            raise RemoteCallError(
                str(e),
                code=getattr(e, "sqlstate", None),
                hint=getattr(e, "hint", None),
                remote_details=getattr(e, "detail", None),
            ) from e
        except (OSError, asyncio.TimeoutError, asyncpg.InterfaceError) as e:
            raise DatabaseConnectionError(f"Connection lost: {e}", cause=e) from e

    async def ping(self) -> Dict[str, Any]:
        rows = await self._run(
            self.pool.fetch,
            "SELECT current_database() AS database, current_user AS db_user",
        )
        row = rows[0]
        return {
            "host": self.pool.config.host,
            "database": row["database"],
            "user": row["db_user"],
        }

    async def select_column(self, table: str, column: str) -> Any:
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")

        rows = await self._run(self.pool.fetch, probe_statement(table, column))
        return [dict(row) for row in rows]

    async def call_function(self, name: str, params: Dict[str, Any]) -> Any:
        validate_identifier(name, "function name")
        for param in params:
            validate_identifier(param, "parameter name")

        statement = function_call_statement(name, list(params.keys()))
        return await self._run(self.pool.fetchval, statement, *params.values())

    async def execute_sql(self, sql: str) -> Any:
        return await self._run(self.pool.execute, sql)

    async def backfill_nulls(self, table: str, column: str, default_literal: str) -> int:
        validate_identifier(table, "table name")
        validate_identifier(column, "column name")

        status = await self._run(
            self.pool.execute, backfill_statement(table, column, default_literal)
        )
        updated = parse_command_count(status)

        logger.debug(f"Backfilled {updated} rows of {table}.{column}")
        return updated

    async def close(self) -> None:
        await self.pool.close()

    def __repr__(self) -> str:
        config = self.pool.config
        return f"PostgresGateway(host={config.host}, database={config.database})"
