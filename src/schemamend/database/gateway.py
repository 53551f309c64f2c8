"""
Abstract base class for database gateways.

A gateway is the remote boundary the reconciler talks to: ordinary row
reads and writes against declared tables, remote function calls, and
(where the transport allows it) raw statement execution.
"""

import logging
from abc import ABC, abstractmethod
from typing import Any, Dict


logger = logging.getLogger(__name__)


class DatabaseGateway(ABC):
    """
    Interface every gateway implements.

    Error contract:
    - ``DatabaseConnectionError`` when the database cannot be reached.
    - ``RemoteCallError`` when the database answered with an error payload.
    """

    kind: str = "abstract"

    @abstractmethod
    async def ping(self) -> Dict[str, Any]:
        """
        Check that the database is reachable with the configured credential.

        Returns:
            Connection details for display

        Raises:
            DatabaseConnectionError: If the database cannot be reached
        """
        pass

    @abstractmethod
    async def select_column(self, table: str, column: str) -> Any:
        """Read at most one row of a single column."""
        pass

    @abstractmethod
    async def call_function(self, name: str, params: Dict[str, Any]) -> Any:
        """Call a remote function with named parameters and return its result."""
        pass

    @abstractmethod
    async def execute_sql(self, sql: str) -> Any:
        """Execute an arbitrary statement without going through a function."""
        pass

    @abstractmethod
    async def backfill_nulls(self, table: str, column: str, default_literal: str) -> int:
        """
        Set ``column`` to ``default_literal`` where it is currently NULL.

        Returns:
            Number of rows updated
        """
        pass

    async def close(self) -> None:
        """Release transport resources."""
        pass

    async def __aenter__(self):
        """Async context manager entry."""
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        """Async context manager exit."""
        await self.close()

    def __repr__(self) -> str:
        return f"{self.__class__.__name__}(kind={self.kind})"
